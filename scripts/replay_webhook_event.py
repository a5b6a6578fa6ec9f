"""
Script to replay a logged Stripe webhook event through its handler.

Use after fixing the cause of a logged reconciliation failure (e.g. a user
that could not be resolved). Handlers are idempotent, so replaying an event
that already succeeded leaves state unchanged.

Run: python -m scripts.replay_webhook_event evt_123 [evt_456 ...]
"""
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.core.errors import WebhookError
from app.db.session import SessionLocal
from app.services.event_log import load_event
from app.services.handler_context import HandlerContext
from app.services.stripe_gateway import StripeGateway
from app.services.webhook_dispatcher import dispatch
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def replay_event(stripe_event_id: str) -> bool:
    """Re-dispatch one logged event. Returns True on success."""
    db = SessionLocal()
    try:
        event = load_event(db, stripe_event_id)
        if event is None:
            logger.error(f"Event {stripe_event_id} not found in webhook_events")
            return False

        result = dispatch(HandlerContext(db=db, gateway=StripeGateway(), raw_event=event))
        logger.info(f"Replayed {stripe_event_id} ({event['type']}): {result.message}")
        return True
    except WebhookError as e:
        logger.error(f"Replay of {stripe_event_id} failed: {e.detail}")
        return False
    finally:
        db.close()


if __name__ == "__main__":
    event_ids = sys.argv[1:]
    if not event_ids:
        print("Usage: python -m scripts.replay_webhook_event <stripe_event_id> [...]")
        sys.exit(2)

    failures = [event_id for event_id in event_ids if not replay_event(event_id)]
    if failures:
        print(f"\n[ERROR] Failed to replay: {', '.join(failures)}")
        sys.exit(1)
    print(f"\n[SUCCESS] Replayed {len(event_ids)} event(s)")
