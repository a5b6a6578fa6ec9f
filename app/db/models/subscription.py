from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.base import Base


class Subscription(Base):
    """
    Local mirror of a Stripe subscription.

    One row per Stripe subscription id. Cancellation is a status transition;
    rows are never deleted.
    """
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    stripe_id = Column(String, unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    price_id = Column(String, nullable=True)
    stripe_price_id = Column(String, nullable=True)
    currency = Column(String, nullable=True)
    interval = Column(String, nullable=True)
    status = Column(String, nullable=False, default="incomplete")  # incomplete | trialing | active | past_due | canceled | unpaid
    amount = Column(Integer, nullable=False, default=0)  # minor currency units

    current_period_start = Column(DateTime(timezone=True), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    canceled_at = Column(DateTime(timezone=True), nullable=True)
    ended_at = Column(DateTime(timezone=True), nullable=True)

    customer_id = Column(String, nullable=True, index=True)
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)

    # Creation time of the newest Stripe event applied to this row
    last_event_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User")
