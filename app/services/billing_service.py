"""
Billing service: reconciliation of Stripe subscription lifecycle and checkout
events into local subscription and user entitlement records.

Every write is an idempotent upsert or conditional update keyed on the Stripe
subscription id, so redelivered and concurrently delivered events converge on
the same state.
"""
import logging

from app.core.errors import UserResolutionFailed
from app.core.plan_limits import CANCELED_ENTITLEMENT, ENTITLED_STATUSES, FREE_PLAN_ID, resolve_entitlement
from app.schemas.billing import (
    CheckoutCompletedEvent,
    SubscriptionCreatedEvent,
    SubscriptionDeletedEvent,
    SubscriptionUpdatedEvent,
)
from app.services.entitlement_service import (
    apply_entitlement,
    entitlement_changed,
    resolve_user,
)
from app.services.handler_context import HandlerContext, WebhookResult
from app.services.subscription_store import (
    UpdateOutcome,
    subscription_fields,
    to_datetime,
    update_subscription,
    upsert_subscription,
)

logger = logging.getLogger(__name__)


def handle_subscription_created(event: SubscriptionCreatedEvent, ctx: HandlerContext) -> WebhookResult:
    """
    Handle customer.subscription.created webhook event.

    Resolves the owning user (metadata user id, then Stripe customer email)
    and upserts the subscription row.

    Raises:
        UserResolutionFailed: If no local user can be linked; Stripe will
            redeliver until the linkage is fixed
    """
    subscription = event.data.object
    logger.info(f"Handling subscription created: {subscription.id}")

    user = resolve_user(ctx.db, subscription.user_ref, None)
    if user is None:
        email = ctx.gateway.retrieve_customer_email(subscription.customer_id)
        user = resolve_user(ctx.db, None, email) if email else None
        if user is None:
            logger.error(
                f"Unable to find associated user: subscription_id={subscription.id}, "
                f"customer_id={subscription.customer_id}, metadata_user={subscription.user_ref}, "
                f"customer_email={email}. Manual reconciliation required."
            )
            raise UserResolutionFailed()

    applied = upsert_subscription(
        ctx.db,
        subscription_fields(subscription, user.id, event.created_at),
        event.created_at,
    )

    # A pending (incomplete) subscription must not downgrade a paying user
    if applied and subscription.status in ENTITLED_STATUSES:
        entitlement = resolve_entitlement(subscription.status, subscription.amount)
        if entitlement_changed(user, entitlement):
            apply_entitlement(ctx.db, user.id, entitlement)

    logger.info(
        f"Subscription created: user_id={user.id}, status={subscription.status}, "
        f"amount={subscription.amount}, subscription_id={subscription.id}"
    )
    return WebhookResult("Subscription created successfully")


def handle_subscription_updated(event: SubscriptionUpdatedEvent, ctx: HandlerContext) -> WebhookResult:
    """
    Handle customer.subscription.updated webhook event.

    A missing row (update delivered before create) is logged and acknowledged.
    """
    subscription = event.data.object
    logger.info(f"Handling subscription updated: {subscription.id}")

    outcome = update_subscription(
        ctx.db,
        subscription.id,
        {
            "status": subscription.status,
            "current_period_start": to_datetime(subscription.period_start),
            "current_period_end": to_datetime(subscription.period_end),
            "cancel_at_period_end": subscription.cancel_at_period_end,
            "metadata_": subscription.metadata,
            "canceled_at": to_datetime(subscription.canceled_at),
            "ended_at": to_datetime(subscription.ended_at),
        },
        event.created_at,
    )

    if outcome is UpdateOutcome.NOT_FOUND:
        logger.warning(
            f"Subscription not found for update (out-of-order delivery?): subscription_id={subscription.id}, "
            f"event_id={event.id}"
        )
        return WebhookResult("Subscription not found; update ignored")
    if outcome is UpdateOutcome.STALE:
        return WebhookResult("Stale subscription update ignored")

    logger.info(f"Subscription updated: status={subscription.status}, subscription_id={subscription.id}")
    return WebhookResult("Subscription updated successfully")


def handle_subscription_deleted(event: SubscriptionDeletedEvent, ctx: HandlerContext) -> WebhookResult:
    """
    Handle customer.subscription.deleted webhook event.

    Marks the subscription canceled (rows are never deleted) and, when the
    subscription metadata carries an email, clears that user's plan.
    """
    subscription = event.data.object
    logger.info(f"Handling subscription deleted: {subscription.id}")

    outcome = update_subscription(
        ctx.db,
        subscription.id,
        {
            "status": "canceled",
            "canceled_at": to_datetime(subscription.canceled_at),
            "ended_at": to_datetime(subscription.ended_at),
        },
        event.created_at,
    )
    if outcome is UpdateOutcome.NOT_FOUND:
        logger.warning(f"Subscription not found for deletion: subscription_id={subscription.id}, event_id={event.id}")

    email = subscription.metadata.get("email")
    if email:
        user = resolve_user(ctx.db, None, email)
        if user is None:
            logger.warning(f"No user with email {email} to downgrade for subscription {subscription.id}")
        else:
            apply_entitlement(ctx.db, user.id, CANCELED_ENTITLEMENT)
            logger.info(f"User downgraded: user_id={user.id}, subscription_id={subscription.id}")

    return WebhookResult("Subscription deleted successfully")


def handle_checkout_session_completed(event: CheckoutCompletedEvent, ctx: HandlerContext) -> WebhookResult:
    """
    Handle checkout.session.completed webhook event.

    Re-fetches the authoritative subscription from Stripe, persists it, and
    sets the user's plan and quota purely from the subscription's status and
    amount. Usage is reset only when the plan or limit changes. The
    entitlement write is best-effort: its final failure is logged
    but the event is still acknowledged.

    Raises:
        ProviderError: If Stripe cannot be reached
        StoreError: If the subscription row cannot be written
    """
    session = event.data.object
    logger.info(f"Handling checkout session completed: {session.id}")

    subscription_id = session.subscription_id
    if not subscription_id:
        logger.info(f"No subscription ID found in checkout session {session.id}")
        return WebhookResult("No subscription in checkout session")

    subscription = ctx.gateway.retrieve_subscription(subscription_id)
    logger.info(
        f"Retrieved Stripe subscription {subscription_id}: status={subscription.status}, amount={subscription.amount}"
    )

    metadata = {**session.metadata, "checkoutSessionId": session.id}
    ctx.gateway.merge_subscription_metadata(subscription_id, metadata)
    merged_metadata = {**subscription.metadata, **metadata}

    user = resolve_user(ctx.db, session.user_ref, session.email)

    upsert_subscription(
        ctx.db,
        subscription_fields(subscription, user.id if user else None, event.created_at, merged_metadata),
        event.created_at,
    )

    if user is None:
        logger.warning(
            f"Could not find user record to update plan details for session {session.id} "
            f"(metadata_user={session.user_ref}, email={session.email})"
        )
        return WebhookResult("Checkout session processed successfully")

    entitlement = resolve_entitlement(subscription.status, subscription.amount)
    if entitlement.plan_id == FREE_PLAN_ID and subscription.status in ENTITLED_STATUSES:
        logger.warning(
            f"Subscription {subscription_id} is {subscription.status} but amount ({subscription.amount}) "
            "doesn't match known plans. Defaulting to free plan values."
        )

    # Redelivery of an already applied checkout must not reset usage again
    if not entitlement_changed(user, entitlement):
        logger.info(f"Entitlement for user {user.id} already matches checkout {session.id}")
    else:
        write = apply_entitlement(ctx.db, user.id, entitlement)
        if not write.applied:
            logger.error(
                f"Checkout {session.id} persisted but entitlement for user {user.id} was not applied; "
                "acknowledging to avoid redelivery"
            )

    logger.info(
        f"Checkout completed: user_id={user.id}, plan={entitlement.plan_id}, "
        f"limit={entitlement.generation_limit}, subscription_id={subscription_id}"
    )
    return WebhookResult("Checkout session processed successfully")
