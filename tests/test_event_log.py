"""
Tests for the webhook event log.
"""
import pytest
from sqlalchemy import select

from app.core.errors import EventLogError
from app.db.models.webhook_event import WebhookEvent
from app.services.event_log import (
    ENTRY_AUDIT,
    count_events,
    load_event,
    record_audit_entry,
    record_event,
)
from conftest import EVENT_CREATED, build_event, build_subscription


def test_record_event_is_idempotent(db):
    event = build_event("customer.subscription.created", build_subscription())

    assert record_event(db, event) is True
    assert record_event(db, event) is False
    assert count_events(db, "evt_1") == 1


def test_record_event_stores_event_object_and_timestamps(db):
    record_event(db, build_event("checkout.session.completed", {"id": "cs_1"}, event_id="evt_cs"))

    entry = db.execute(select(WebhookEvent).where(WebhookEvent.stripe_event_id == "evt_cs")).scalar_one()
    assert entry.event_type == "checkout.session.completed"
    assert entry.type == "checkout"
    assert entry.data == {"id": "cs_1"}
    assert entry.created_at is not None
    assert entry.received_at is not None


def test_record_event_store_unavailable(db):
    WebhookEvent.__table__.drop(bind=db.get_bind())

    with pytest.raises(EventLogError):
        record_event(db, build_event("invoice.payment_failed", {"id": "in_1"}))


def test_audit_entry_coexists_with_raw_event(db):
    event = build_event("invoice.payment_succeeded", {"id": "in_1"})
    record_event(db, event)

    assert record_audit_entry(db, event, {"invoiceId": "in_1", "amountPaid": 1500}) is True
    assert record_audit_entry(db, event, {"invoiceId": "in_1", "amountPaid": 1500}) is False
    assert count_events(db, "evt_1") == 1
    assert count_events(db, "evt_1", entry_kind=ENTRY_AUDIT) == 1


def test_load_event_rebuilds_stripe_shape(db):
    subscription = build_subscription(status="past_due")
    record_event(db, build_event("customer.subscription.updated", subscription, event_id="evt_replay"))

    event = load_event(db, "evt_replay")

    assert event == {
        "id": "evt_replay",
        "type": "customer.subscription.updated",
        "created": EVENT_CREATED,
        "data": {"object": subscription},
    }


def test_load_event_unknown_id(db):
    assert load_event(db, "evt_missing") is None
