"""
Shared fixtures for billing webhook tests.

Uses an in-memory SQLite database, a fake Stripe gateway, and real
Stripe-format signatures computed with a test signing secret.
"""
import hashlib
import hmac
import json
import time

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db import models  # noqa: F401  registers all models on Base.metadata
from app.core import config
from app.core.errors import ProviderError
from app.db.base import Base
from app.db.models.user import User
from app.db.session import get_db
from app.main import app
from app.schemas.billing import StripeSubscription
from app.services.stripe_gateway import get_stripe_gateway

TEST_WEBHOOK_SECRET = "whsec_test_secret"
EVENT_CREATED = 1_700_000_100

# Setup in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


class FakeStripeGateway:
    """In-memory stand-in for StripeGateway."""

    def __init__(self):
        self.subscriptions = {}
        self.customer_emails = {}
        self.metadata_updates = []
        self.fail = False

    def retrieve_subscription(self, subscription_id):
        if self.fail:
            raise ProviderError("Failed to retrieve subscription: Stripe unavailable")
        return StripeSubscription.model_validate(self.subscriptions[subscription_id])

    def merge_subscription_metadata(self, subscription_id, metadata):
        self.metadata_updates.append((subscription_id, dict(metadata)))
        subscription = self.subscriptions[subscription_id]
        subscription["metadata"] = {**subscription.get("metadata", {}), **metadata}
        return StripeSubscription.model_validate(subscription)

    def retrieve_customer_email(self, customer_id):
        return self.customer_emails.get(customer_id)


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=test_engine)
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(autouse=True)
def webhook_secret(monkeypatch):
    monkeypatch.setattr(config, "STRIPE_WEBHOOK_SECRET", TEST_WEBHOOK_SECRET)
    return TEST_WEBHOOK_SECRET


@pytest.fixture
def gateway():
    return FakeStripeGateway()


@pytest.fixture
def client(db, gateway):
    """TestClient with database and Stripe gateway overridden."""
    def override_get_db():
        session = TestSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_stripe_gateway] = lambda: gateway
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make_user(email="test@example.com", auth_user_id=None, plan="free", limit=1, used=0):
        user = User(
            email=email,
            auth_user_id=auth_user_id,
            full_name="Test User",
            current_plan_id=plan,
            generation_limit=limit,
            generations_used=used,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make_user


def sign_payload(payload: bytes, secret: str = TEST_WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Build a Stripe-Signature header value for payload."""
    timestamp = timestamp or int(time.time())
    signed_payload = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def build_subscription(
    subscription_id="sub_1",
    status="active",
    amount=1500,
    metadata=None,
    customer="cus_1",
    **overrides,
) -> dict:
    subscription = {
        "id": subscription_id,
        "object": "subscription",
        "customer": customer,
        "status": status,
        "currency": "usd",
        "items": {
            "object": "list",
            "data": [{
                "price": {"id": "price_monthly", "unit_amount": amount, "recurring": {"interval": "month"}},
                "plan": {"id": "price_monthly", "amount": amount, "interval": "month"},
            }],
        },
        "metadata": metadata or {},
        "current_period_start": 1_700_000_000,
        "current_period_end": 1_702_592_000,
        "cancel_at_period_end": False,
        "start_date": 1_700_000_000,
        "canceled_at": None,
        "ended_at": None,
    }
    subscription.update(overrides)
    return subscription


def build_event(event_type: str, obj: dict, event_id: str = "evt_1", created: int = EVENT_CREATED) -> dict:
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": created,
        "data": {"object": obj},
    }


@pytest.fixture
def post_event(client):
    """Sign and POST an event to the webhook endpoint."""
    def _post_event(event, secret=TEST_WEBHOOK_SECRET):
        payload = json.dumps(event).encode("utf-8")
        return client.post(
            "/billing/webhook",
            content=payload,
            headers={"Stripe-Signature": sign_payload(payload, secret), "Content-Type": "application/json"},
        )
    return _post_event

