"""
Routes verified Stripe events to their reconciliation handler.
"""
import logging
from typing import Callable, Dict

from app.schemas.billing import parse_event
from app.services import billing_invoice_handlers, billing_service
from app.services.handler_context import HandlerContext, WebhookResult

logger = logging.getLogger(__name__)

HANDLERS: Dict[str, Callable] = {
    "customer.subscription.created": billing_service.handle_subscription_created,
    "customer.subscription.updated": billing_service.handle_subscription_updated,
    "customer.subscription.deleted": billing_service.handle_subscription_deleted,
    "checkout.session.completed": billing_service.handle_checkout_session_completed,
    "invoice.payment_succeeded": billing_invoice_handlers.handle_invoice_payment_succeeded,
    "invoice.payment_failed": billing_invoice_handlers.handle_invoice_payment_failed,
}


def dispatch(ctx: HandlerContext) -> WebhookResult:
    """
    Dispatch the verified event in ctx to its handler.

    Unknown kinds are acknowledged without invoking any handler so Stripe
    stops redelivering them. A handler's result or exception is passed
    through unchanged.
    """
    event_type = ctx.raw_event["type"]
    handler = HANDLERS.get(event_type)
    if handler is None:
        logger.info(f"Unhandled event type: {event_type}")
        return WebhookResult(f"Unhandled event type: {event_type}")

    event = parse_event(ctx.raw_event)
    logger.info(f"Processing webhook event: {event_type}, id={event.id}")
    return handler(event, ctx)
