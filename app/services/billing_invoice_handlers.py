"""
Invoice event handlers for Stripe webhooks.

Handles invoice.payment_succeeded and invoice.payment_failed events. Neither
touches user entitlements; plan and quota change only through checkout and
subscription creation.
"""
import logging
from typing import Dict, Optional

from app.db.models.subscription import Subscription
from app.schemas.billing import InvoicePaymentFailedEvent, InvoicePaymentSucceededEvent, StripeInvoice
from app.services.event_log import record_audit_entry
from app.services.handler_context import HandlerContext, WebhookResult
from app.services.subscription_store import UpdateOutcome, get_subscription, update_subscription

logger = logging.getLogger(__name__)


def _audit_data(
    invoice: StripeInvoice,
    subscription: Optional[Subscription],
    amount_key: str,
    amount: int,
    status: str,
) -> Dict:
    email = None
    if subscription is not None and subscription.user is not None:
        email = subscription.user.email
    return {
        "invoiceId": invoice.id,
        "subscriptionId": invoice.subscription_id,
        amount_key: amount,  # minor currency units
        "currency": invoice.currency or (subscription.currency if subscription else None),
        "status": status,
        "email": email or invoice.customer_email,
    }


def _lookup_subscription(ctx: HandlerContext, subscription_id: Optional[str]) -> Optional[Subscription]:
    subscription = get_subscription(ctx.db, subscription_id)
    if subscription_id and subscription is None:
        logger.warning(f"No local subscription for invoice: subscription_id={subscription_id}")
    return subscription


def handle_invoice_payment_succeeded(event: InvoicePaymentSucceededEvent, ctx: HandlerContext) -> WebhookResult:
    """
    Handle invoice.payment_succeeded webhook event.

    Appends an audit entry recording the amount paid.
    """
    invoice = event.data.object
    logger.info(f"Handling invoice payment succeeded: {invoice.id}")

    subscription = _lookup_subscription(ctx, invoice.subscription_id)
    record_audit_entry(
        ctx.db,
        ctx.raw_event,
        _audit_data(invoice, subscription, "amountPaid", invoice.amount_paid, "succeeded"),
    )

    logger.info(
        f"Invoice payment succeeded: invoice_id={invoice.id}, subscription_id={invoice.subscription_id}, "
        f"amount_paid={invoice.amount_paid} {invoice.currency}"
    )
    return WebhookResult("Invoice payment succeeded")


def handle_invoice_payment_failed(event: InvoicePaymentFailedEvent, ctx: HandlerContext) -> WebhookResult:
    """
    Handle invoice.payment_failed webhook event.

    Appends an audit entry recording the amount due and updates the
    subscription status to past_due.
    """
    invoice = event.data.object
    logger.info(f"Handling invoice payment failed: {invoice.id}")

    subscription_id = invoice.subscription_id
    subscription = _lookup_subscription(ctx, subscription_id)
    record_audit_entry(
        ctx.db,
        ctx.raw_event,
        _audit_data(invoice, subscription, "amountDue", invoice.amount_due, "failed"),
    )

    if subscription_id:
        outcome = update_subscription(ctx.db, subscription_id, {"status": "past_due"}, event.created_at)
        if outcome is UpdateOutcome.NOT_FOUND:
            logger.warning(f"invoice.payment_failed: Subscription not found for subscription_id={subscription_id}")
    else:
        logger.warning(f"invoice.payment_failed: No subscription ID in invoice {invoice.id}")

    logger.warning(
        f"Invoice payment failed: invoice_id={invoice.id}, subscription_id={subscription_id}, "
        f"amount_due={invoice.amount_due} {invoice.currency}"
    )
    return WebhookResult("Invoice payment failed")
