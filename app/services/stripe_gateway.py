"""
Stripe API access for the webhook handlers.

Handlers never trust subscription data embedded in a checkout session; they
re-fetch it through this gateway.
"""
import logging
from typing import Any, Dict, Optional

import stripe

from app.core import config
from app.core.errors import ProviderError
from app.schemas.billing import StripeSubscription

logger = logging.getLogger(__name__)

# Process-wide HTTP client shared by every gateway
stripe.default_http_client = stripe.RequestsClient(timeout=config.STRIPE_TIMEOUT_SECONDS)


class StripeGateway:
    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key or config.STRIPE_SECRET_KEY

    def retrieve_subscription(self, subscription_id: str) -> StripeSubscription:
        """Fetch the authoritative subscription state."""
        try:
            subscription = stripe.Subscription.retrieve(subscription_id, api_key=self.api_key)
        except stripe.StripeError as e:
            logger.error(f"Stripe error retrieving subscription {subscription_id}: {e}")
            raise ProviderError(f"Failed to retrieve subscription: {e}")
        return StripeSubscription.model_validate(subscription.to_dict())

    def merge_subscription_metadata(self, subscription_id: str, metadata: Dict[str, Any]) -> StripeSubscription:
        """Merge keys into the subscription's Stripe metadata."""
        try:
            subscription = stripe.Subscription.modify(
                subscription_id,
                metadata={key: str(value) for key, value in metadata.items()},
                api_key=self.api_key,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error updating metadata for subscription {subscription_id}: {e}")
            raise ProviderError(f"Failed to update subscription metadata: {e}")
        logger.info(f"Updated Stripe subscription metadata: subscription_id={subscription_id}")
        return StripeSubscription.model_validate(subscription.to_dict())

    def retrieve_customer_email(self, customer_id: Optional[str]) -> Optional[str]:
        if not customer_id:
            return None
        try:
            customer = stripe.Customer.retrieve(customer_id, api_key=self.api_key)
        except stripe.StripeError as e:
            logger.error(f"Stripe error retrieving customer {customer_id}: {e}")
            raise ProviderError(f"Failed to retrieve customer: {e}")
        # Deleted customers carry no email
        return getattr(customer, "email", None)


def get_stripe_gateway() -> StripeGateway:
    """Stripe gateway dependency."""
    return StripeGateway()
