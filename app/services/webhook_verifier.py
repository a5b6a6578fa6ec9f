"""
Stripe webhook signature verification.
"""
import json
import logging
from typing import Optional

import stripe

from app.core.errors import InvalidSignature, MissingSecret, MissingSignature

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = stripe.Webhook.DEFAULT_TOLERANCE


def verify_webhook(
    request_body: bytes,
    signature: Optional[str],
    secret: Optional[str],
    tolerance: int = DEFAULT_TOLERANCE,
) -> dict:
    """
    Verify and parse a Stripe webhook event.

    The signature is checked against the exact raw bytes received; the event
    is decoded from those same bytes, never from a re-serialized form.

    Args:
        request_body: Raw request body bytes
        signature: Stripe-Signature header value
        secret: Webhook signing secret
        tolerance: Maximum accepted signature age in seconds

    Returns:
        Parsed event dictionary

    Raises:
        MissingSecret: If the signing secret is not configured
        MissingSignature: If the Stripe-Signature header is absent
        InvalidSignature: If verification fails for any other reason
    """
    if not secret:
        logger.critical("STRIPE_WEBHOOK_SECRET not configured")
        raise MissingSecret()

    if not signature:
        logger.warning("Webhook request without Stripe-Signature header")
        raise MissingSignature()

    try:
        # HMAC-SHA256 with constant-time comparison and timestamp tolerance
        stripe.Webhook.construct_event(request_body, signature, secret, tolerance=tolerance)
        event = json.loads(request_body)
    except stripe.SignatureVerificationError as e:
        logger.error(f"Webhook signature verification failed: {e}")
        raise InvalidSignature()
    except ValueError as e:
        # Undecodable body (json.JSONDecodeError and UnicodeDecodeError are ValueErrors)
        logger.error(f"Invalid webhook payload: {e}")
        raise InvalidSignature("Invalid payload")

    if not isinstance(event, dict) or not event.get("id") or not event.get("type"):
        logger.error("Verified webhook payload is not a Stripe event")
        raise InvalidSignature("Invalid payload")

    logger.info(f"Verified webhook event: {event['type']}, id={event['id']}")
    return event
