from sqlalchemy import Column, Integer, String, DateTime, JSON, UniqueConstraint
from sqlalchemy.sql import func
from app.db.base import Base


class WebhookEvent(Base):
    """
    Append-only audit log of Stripe webhook deliveries.

    entry_kind "event" is the raw record written before any handler runs;
    "audit" is the invoice outcome record. Each provider event id has at most
    one row of each kind.
    """
    __tablename__ = "webhook_events"

    id = Column(Integer, primary_key=True, index=True)
    stripe_event_id = Column(String, nullable=False, index=True)
    event_type = Column(String, nullable=False, index=True)  # invoice.payment_failed, checkout.session.completed, ...
    type = Column(String, nullable=False)  # event_type prefix: invoice, customer, checkout
    entry_kind = Column(String, nullable=False, default="event")
    data = Column(JSON, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=True)
    modified_at = Column(DateTime(timezone=True), nullable=True)
    received_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("stripe_event_id", "entry_kind", name="uq_webhook_events_event_kind"),
    )
