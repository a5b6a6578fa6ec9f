"""
Append-only log of Stripe webhook deliveries.

The raw event is recorded before any handler runs. Inserts are idempotent on
(stripe_event_id, entry_kind): a redelivered event is not an error and does
not add a row.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import EventLogError, StoreError
from app.db.models.webhook_event import WebhookEvent
from app.services.subscription_store import dialect_insert

logger = logging.getLogger(__name__)

ENTRY_EVENT = "event"
ENTRY_AUDIT = "audit"


def _insert_ignore(db: Session, row: Dict[str, Any]) -> bool:
    insert = dialect_insert(db)
    stmt = insert(WebhookEvent.__table__).values(**row).on_conflict_do_nothing(
        index_elements=["stripe_event_id", "entry_kind"]
    )
    result = db.execute(stmt)
    db.commit()
    return result.rowcount != 0


def _event_created_at(event: Dict[str, Any]) -> datetime:
    created = event.get("created")
    if created is None:
        return datetime.now(timezone.utc)
    return datetime.fromtimestamp(created, tz=timezone.utc)


def record_event(db: Session, event: Dict[str, Any]) -> bool:
    """
    Record a verified event before it is dispatched.

    Args:
        db: Database session
        event: Verified Stripe event dictionary

    Returns:
        True if a new row was written, False for a duplicate delivery

    Raises:
        EventLogError: If the store is unavailable; the request must fail so
            Stripe redelivers
    """
    created_at = _event_created_at(event)
    event_type = event["type"]
    row = {
        "stripe_event_id": event["id"],
        "event_type": event_type,
        "type": event_type.split(".")[0],
        "entry_kind": ENTRY_EVENT,
        "data": (event.get("data") or {}).get("object") or {},
        "created_at": created_at,
        "modified_at": created_at,
    }
    try:
        inserted = _insert_ignore(db, row)
    except (SQLAlchemyError, StoreError) as e:
        db.rollback()
        logger.error(f"Error logging webhook event {event['id']}: {e}")
        raise EventLogError()

    if inserted:
        logger.info(f"Logged webhook event: {event_type}, id={event['id']}")
    else:
        logger.info(f"Duplicate delivery of webhook event {event['id']} ({event_type})")
    return inserted


def record_audit_entry(db: Session, event: Dict[str, Any], data: Dict[str, Any]) -> bool:
    """
    Append the invoice outcome record for an event.

    Raises:
        StoreError: If the write fails
    """
    created_at = _event_created_at(event)
    row = {
        "stripe_event_id": event["id"],
        "event_type": event["type"],
        "type": "invoice",
        "entry_kind": ENTRY_AUDIT,
        "data": data,
        "created_at": created_at,
        "modified_at": created_at,
    }
    try:
        return _insert_ignore(db, row)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error appending audit entry for event {event['id']}: {e}")
        raise StoreError("Failed to record invoice audit entry")


def count_events(db: Session, stripe_event_id: str, entry_kind: str = ENTRY_EVENT) -> int:
    return db.execute(
        select(func.count(WebhookEvent.id)).where(
            WebhookEvent.stripe_event_id == stripe_event_id,
            WebhookEvent.entry_kind == entry_kind,
        )
    ).scalar_one()


def load_event(db: Session, stripe_event_id: str) -> Optional[Dict[str, Any]]:
    """
    Rebuild a logged event in Stripe's event shape for replay.

    Returns:
        Event dictionary, or None if the event was never logged
    """
    entry = db.execute(
        select(WebhookEvent).where(
            WebhookEvent.stripe_event_id == stripe_event_id,
            WebhookEvent.entry_kind == ENTRY_EVENT,
        )
    ).scalar_one_or_none()
    if entry is None:
        return None

    created_at = entry.created_at
    if created_at.tzinfo is None:
        # SQLite returns naive datetimes; stored values are UTC
        created_at = created_at.replace(tzinfo=timezone.utc)
    return {
        "id": entry.stripe_event_id,
        "type": entry.event_type,
        "created": int(created_at.timestamp()),
        "data": {"object": entry.data},
    }
