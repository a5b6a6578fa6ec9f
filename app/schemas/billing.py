"""
Pydantic schemas for Stripe webhook payloads and responses.

Handled event kinds form a tagged union discriminated on the event "type".
Kinds outside the union are not parsed at all.
"""
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from app.core.errors import MalformedEvent


def _object_id(value: Union[str, Dict[str, Any], None]) -> Optional[str]:
    """Stripe references arrive either as an id string or as an expanded object."""
    if isinstance(value, dict):
        return value.get("id")
    return value


# ============================================
# Stripe objects
# ============================================

class StripePrice(BaseModel):
    id: Optional[str] = None
    unit_amount: Optional[int] = None
    recurring: Optional[Dict[str, Any]] = None


class StripePlan(BaseModel):
    id: Optional[str] = None
    amount: Optional[int] = None
    interval: Optional[str] = None


class StripeSubscriptionItem(BaseModel):
    price: Optional[StripePrice] = None
    plan: Optional[StripePlan] = None
    # Newer API versions report billing periods per item
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None


class StripeSubscriptionItems(BaseModel):
    data: List[StripeSubscriptionItem] = Field(default_factory=list)


class StripeSubscription(BaseModel):
    id: str
    customer: Union[str, Dict[str, Any], None] = None
    status: str
    currency: Optional[str] = None
    items: StripeSubscriptionItems = Field(default_factory=StripeSubscriptionItems)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    cancel_at_period_end: bool = False
    start_date: Optional[int] = None
    canceled_at: Optional[int] = None
    ended_at: Optional[int] = None

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_default(cls, value):
        return value or {}

    @field_validator("cancel_at_period_end", mode="before")
    @classmethod
    def _flag_default(cls, value):
        return bool(value)

    @property
    def customer_id(self) -> Optional[str]:
        return _object_id(self.customer)

    @property
    def first_item(self) -> Optional[StripeSubscriptionItem]:
        return self.items.data[0] if self.items.data else None

    @property
    def amount(self) -> int:
        """Amount of the first line item in minor currency units (0 if unknown)."""
        item = self.first_item
        if item is None:
            return 0
        if item.plan and item.plan.amount is not None:
            return item.plan.amount
        if item.price and item.price.unit_amount is not None:
            return item.price.unit_amount
        return 0

    @property
    def price_id(self) -> Optional[str]:
        item = self.first_item
        if item is None:
            return None
        if item.price and item.price.id:
            return item.price.id
        return item.plan.id if item.plan else None

    @property
    def interval(self) -> Optional[str]:
        item = self.first_item
        if item is None:
            return None
        if item.plan and item.plan.interval:
            return item.plan.interval
        if item.price and item.price.recurring:
            return item.price.recurring.get("interval")
        return None

    @property
    def period_start(self) -> Optional[int]:
        if self.current_period_start is not None:
            return self.current_period_start
        item = self.first_item
        return item.current_period_start if item else None

    @property
    def period_end(self) -> Optional[int]:
        if self.current_period_end is not None:
            return self.current_period_end
        item = self.first_item
        return item.current_period_end if item else None

    @property
    def user_ref(self) -> Optional[str]:
        return metadata_user_ref(self.metadata)


class StripeCheckoutSession(BaseModel):
    id: str
    mode: Optional[str] = None
    subscription: Union[str, Dict[str, Any], None] = None
    customer: Union[str, Dict[str, Any], None] = None
    customer_email: Optional[str] = None
    customer_details: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_default(cls, value):
        return value or {}

    @property
    def subscription_id(self) -> Optional[str]:
        return _object_id(self.subscription)

    @property
    def email(self) -> Optional[str]:
        if self.customer_email:
            return self.customer_email
        if self.customer_details:
            return self.customer_details.get("email")
        return None

    @property
    def user_ref(self) -> Optional[str]:
        return metadata_user_ref(self.metadata)


class StripeInvoice(BaseModel):
    id: str
    subscription: Union[str, Dict[str, Any], None] = None
    parent: Optional[Dict[str, Any]] = None
    customer: Union[str, Dict[str, Any], None] = None
    customer_email: Optional[str] = None
    currency: Optional[str] = None
    amount_paid: int = 0
    amount_due: int = 0

    @property
    def subscription_id(self) -> Optional[str]:
        subscription_id = _object_id(self.subscription)
        if subscription_id:
            return subscription_id
        # API versions from 2025 move the reference under parent.subscription_details
        details = (self.parent or {}).get("subscription_details") or {}
        return _object_id(details.get("subscription"))


def metadata_user_ref(metadata: Dict[str, Any]) -> Optional[str]:
    """User identifier embedded by checkout, under either spelling."""
    return metadata.get("user_id") or metadata.get("userId")


# ============================================
# Events (tagged union)
# ============================================

class SubscriptionEventData(BaseModel):
    object: StripeSubscription


class CheckoutSessionEventData(BaseModel):
    object: StripeCheckoutSession


class InvoiceEventData(BaseModel):
    object: StripeInvoice


class StripeEventBase(BaseModel):
    id: str
    type: str
    created: int

    @property
    def created_at(self) -> datetime:
        return datetime.fromtimestamp(self.created, tz=timezone.utc)


class SubscriptionCreatedEvent(StripeEventBase):
    type: Literal["customer.subscription.created"]
    data: SubscriptionEventData


class SubscriptionUpdatedEvent(StripeEventBase):
    type: Literal["customer.subscription.updated"]
    data: SubscriptionEventData


class SubscriptionDeletedEvent(StripeEventBase):
    type: Literal["customer.subscription.deleted"]
    data: SubscriptionEventData


class CheckoutCompletedEvent(StripeEventBase):
    type: Literal["checkout.session.completed"]
    data: CheckoutSessionEventData


class InvoicePaymentSucceededEvent(StripeEventBase):
    type: Literal["invoice.payment_succeeded"]
    data: InvoiceEventData


class InvoicePaymentFailedEvent(StripeEventBase):
    type: Literal["invoice.payment_failed"]
    data: InvoiceEventData


HandledEvent = Annotated[
    Union[
        SubscriptionCreatedEvent,
        SubscriptionUpdatedEvent,
        SubscriptionDeletedEvent,
        CheckoutCompletedEvent,
        InvoicePaymentSucceededEvent,
        InvoicePaymentFailedEvent,
    ],
    Field(discriminator="type"),
]

HANDLED_EVENT_TYPES = (
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
    "checkout.session.completed",
    "invoice.payment_succeeded",
    "invoice.payment_failed",
)

_handled_event_adapter = TypeAdapter(HandledEvent)


def parse_event(raw: Dict[str, Any]) -> Optional[StripeEventBase]:
    """
    Parse a verified Stripe event into its typed model.

    Returns:
        Typed event, or None when the event kind is not handled

    Raises:
        MalformedEvent: If a handled event kind does not match its schema
    """
    if raw.get("type") not in HANDLED_EVENT_TYPES:
        return None
    try:
        return _handled_event_adapter.validate_python(raw)
    except ValidationError as e:
        raise MalformedEvent(f"Malformed {raw.get('type')} event: {e.error_count()} validation error(s)")


# ============================================
# Responses
# ============================================

class WebhookAck(BaseModel):
    """Response body acknowledging a webhook delivery."""
    message: str = Field(..., description="Processing outcome")

    class Config:
        json_schema_extra = {
            "example": {
                "message": "Checkout session processed successfully"
            }
        }


class WebhookErrorBody(BaseModel):
    """Error response returned to Stripe; any non-200 triggers redelivery."""
    error: str = Field(..., description="Error message")

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Invalid signature"
            }
        }
