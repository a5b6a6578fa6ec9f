"""
Subscription store: idempotent, timestamp-guarded writes to the subscriptions table.

Every write is keyed on the Stripe subscription id and carries the creation
time of the Stripe event that produced it. A row only accepts writes from
events at least as new as the last one applied, so redelivery re-applies
identical values and an older event never overwrites newer state.
"""
import enum
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import StoreError
from app.db.models.subscription import Subscription
from app.schemas.billing import StripeSubscription

logger = logging.getLogger(__name__)

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class UpdateOutcome(enum.Enum):
    APPLIED = "applied"
    STALE = "stale"
    NOT_FOUND = "not_found"


def to_datetime(timestamp: Optional[int]) -> Optional[datetime]:
    """Convert a Stripe epoch-seconds timestamp to an aware UTC datetime."""
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def dialect_insert(db: Session):
    """Return the dialect's INSERT construct supporting ON CONFLICT."""
    dialect = db.get_bind().dialect.name
    try:
        return _DIALECT_INSERTS[dialect]
    except KeyError:
        raise StoreError(f"Unsupported database dialect for upserts: {dialect}")


def subscription_fields(
    subscription: StripeSubscription,
    user_id: Optional[int],
    event_at: datetime,
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Map a Stripe subscription onto subscriptions columns."""
    price_id = subscription.price_id
    fields = {
        "stripe_id": subscription.id,
        "price_id": price_id,
        "stripe_price_id": price_id,
        "currency": subscription.currency,
        "interval": subscription.interval,
        "status": subscription.status,
        "amount": subscription.amount,
        "current_period_start": to_datetime(subscription.period_start),
        "current_period_end": to_datetime(subscription.period_end),
        "cancel_at_period_end": subscription.cancel_at_period_end,
        "started_at": to_datetime(subscription.start_date) or event_at,
        "customer_id": subscription.customer_id,
        "metadata_": metadata if metadata is not None else subscription.metadata,
        "canceled_at": to_datetime(subscription.canceled_at),
        "ended_at": to_datetime(subscription.ended_at),
    }
    # Never unlink a subscription from a user already resolved by an earlier event
    if user_id is not None:
        fields["user_id"] = user_id
    return fields


def _is_not_stale(event_at: datetime):
    return or_(
        Subscription.last_event_at.is_(None),
        Subscription.last_event_at <= event_at,
    )


def get_subscription(db: Session, stripe_id: Optional[str]) -> Optional[Subscription]:
    if not stripe_id:
        return None
    try:
        return db.execute(
            select(Subscription).where(Subscription.stripe_id == stripe_id)
        ).scalar_one_or_none()
    except SQLAlchemyError as e:
        raise StoreError(f"Failed to read subscription {stripe_id}: {e}")


def upsert_subscription(db: Session, fields: Dict[str, Any], event_at: datetime) -> bool:
    """
    Insert or update a subscription row keyed on stripe_id.

    Args:
        db: Database session
        fields: Column values (attribute names), must include stripe_id
        event_at: Creation time of the Stripe event carrying these values

    Returns:
        True if the row was inserted or updated, False if skipped because a
        newer event has already been applied

    Raises:
        StoreError: If the write fails
    """
    values = dict(fields)
    values["last_event_at"] = event_at
    values["updated_at"] = datetime.now(timezone.utc)
    table = Subscription.__table__

    # Translate ORM attribute names (metadata_) to column names (metadata)
    row = {Subscription.__mapper__.columns[key].name: value for key, value in values.items()}

    insert = dialect_insert(db)
    stmt = insert(table).values(**row)
    update_columns = {
        name: stmt.excluded[name]
        for name in row
        if name != "stripe_id"
    }
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.stripe_id],
        set_=update_columns,
        where=or_(table.c.last_event_at.is_(None), table.c.last_event_at <= event_at),
    )

    try:
        result = db.execute(stmt)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Subscription upsert failed: stripe_id={fields.get('stripe_id')}, error={e}")
        raise StoreError("Failed to upsert subscription")

    applied = result.rowcount != 0
    if not applied:
        logger.info(
            f"Skipped stale subscription write: stripe_id={fields.get('stripe_id')}, event_at={event_at.isoformat()}"
        )
    return applied


def update_subscription(
    db: Session,
    stripe_id: str,
    values: Dict[str, Any],
    event_at: datetime,
) -> UpdateOutcome:
    """
    Conditionally update an existing subscription row.

    Returns:
        APPLIED when the row was written, STALE when a newer event already
        wrote it, NOT_FOUND when no row exists for stripe_id

    Raises:
        StoreError: If the write fails
    """
    values = dict(values)
    values["last_event_at"] = event_at
    values["updated_at"] = datetime.now(timezone.utc)

    stmt = (
        update(Subscription)
        .where(Subscription.stripe_id == stripe_id, _is_not_stale(event_at))
        .values({getattr(Subscription, key): value for key, value in values.items()})
        .execution_options(synchronize_session=False)
    )
    try:
        result = db.execute(stmt)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Subscription update failed: stripe_id={stripe_id}, error={e}")
        raise StoreError("Failed to update subscription")

    if result.rowcount:
        return UpdateOutcome.APPLIED
    if get_subscription(db, stripe_id) is None:
        return UpdateOutcome.NOT_FOUND
    return UpdateOutcome.STALE
