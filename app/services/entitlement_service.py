"""
User resolution and entitlement writes.

Entitlement writes are best-effort with one privileged fallback path. Each
step returns an explicit result instead of raising, so callers can log a
final failure for manual follow-up without failing the webhook.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import StoreError
from app.core.plan_limits import Entitlement
from app.db.models.user import User

logger = logging.getLogger(__name__)


class WriteOutcome(enum.Enum):
    APPLIED = "applied"
    NEEDS_FALLBACK = "needs_fallback"
    FAILED = "failed"


@dataclass
class EntitlementWrite:
    outcome: WriteOutcome
    path: str  # "primary" | "fallback"
    error: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.outcome is WriteOutcome.APPLIED


# ============================================
# User resolution
# ============================================

def find_user_by_auth_id(db: Session, auth_user_id: Optional[str]) -> Optional[User]:
    if not auth_user_id:
        return None
    return db.execute(
        select(User).where(User.auth_user_id == str(auth_user_id))
    ).scalar_one_or_none()


def find_user_by_email(db: Session, email: Optional[str]) -> Optional[User]:
    if not email:
        return None
    return db.execute(
        select(User).where(func.lower(User.email) == email.strip().lower())
    ).scalar_one_or_none()


def resolve_user(db: Session, user_ref: Optional[str], email: Optional[str]) -> Optional[User]:
    """
    Resolve the local user for a billing object.

    Tries the auth identity embedded in Stripe metadata first, then the
    customer email.
    """
    try:
        user = find_user_by_auth_id(db, user_ref)
        if user is None:
            if user_ref:
                logger.warning(f"No local user for metadata user id={user_ref}, trying email")
            user = find_user_by_email(db, email)
    except SQLAlchemyError as e:
        raise StoreError(f"Failed to resolve user: {e}")
    return user


def entitlement_changed(user: User, entitlement: Entitlement) -> bool:
    return (
        user.current_plan_id != entitlement.plan_id
        or user.generation_limit != entitlement.generation_limit
    )


# ============================================
# Entitlement writes
# ============================================

def primary_update(db: Session, user_id: int, entitlement: Entitlement) -> EntitlementWrite:
    """Standard ORM update; plan change always resets usage."""
    try:
        result = db.execute(
            update(User)
            .where(User.id == user_id)
            .values(
                current_plan_id=entitlement.plan_id,
                generation_limit=entitlement.generation_limit,
                generations_used=0,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Standard user update failed for user {user_id}: {e}")
        return EntitlementWrite(WriteOutcome.NEEDS_FALLBACK, "primary", str(e))

    if not result.rowcount:
        return EntitlementWrite(WriteOutcome.NEEDS_FALLBACK, "primary", "no rows updated")
    return EntitlementWrite(WriteOutcome.APPLIED, "primary")


def fallback_update(db: Session, user_id: int, entitlement: Entitlement) -> EntitlementWrite:
    """
    Privileged update path.

    On PostgreSQL this calls the SECURITY DEFINER function update_user_plan,
    which bypasses row-level write rules. Other databases get the same
    statement as raw SQL.
    """
    params = {
        "user_id": user_id,
        "plan_id": entitlement.plan_id,
        "limit": entitlement.generation_limit,
    }
    try:
        if db.get_bind().dialect.name == "postgresql":
            updated = db.execute(
                text("SELECT update_user_plan(:user_id, :plan_id, :limit)"),
                params,
            ).scalar()
        else:
            updated = db.execute(
                text(
                    "UPDATE users SET current_plan_id = :plan_id, generation_limit = :limit, "
                    "generations_used = 0, updated_at = CURRENT_TIMESTAMP WHERE id = :user_id"
                ),
                params,
            ).rowcount
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Fallback update_user_plan failed for user {user_id}: {e}")
        return EntitlementWrite(WriteOutcome.FAILED, "fallback", str(e))

    if not updated:
        return EntitlementWrite(WriteOutcome.FAILED, "fallback", "no rows updated")
    return EntitlementWrite(WriteOutcome.APPLIED, "fallback")


def apply_entitlement(db: Session, user_id: int, entitlement: Entitlement) -> EntitlementWrite:
    """
    Write plan, limit and reset usage for a user.

    Args:
        db: Database session
        user_id: Local user id
        entitlement: Entitlement from plan_limits.resolve_entitlement

    Returns:
        Result of the primary update, or of the fallback when the primary
        update needed it. Never raises.
    """
    logger.info(
        f"Preparing to update user {user_id}: set current_plan_id='{entitlement.plan_id}', "
        f"generation_limit={entitlement.generation_limit}"
    )
    write = primary_update(db, user_id, entitlement)
    if write.outcome is WriteOutcome.NEEDS_FALLBACK:
        logger.warning(f"Falling back to update_user_plan for user {user_id}: {write.error}")
        write = fallback_update(db, user_id, entitlement)

    if write.applied:
        logger.info(f"User record {user_id} updated via {write.path} path")
    else:
        logger.error(
            f"Entitlement update failed for user {user_id} via standard and fallback paths: {write.error}. "
            "Manual reconciliation required."
        )
    return write
