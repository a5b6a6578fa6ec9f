"""
Stripe webhook endpoint.

Flow: verify signature -> log raw event -> dispatch -> acknowledge. Any
non-200 response makes Stripe redeliver the event.
"""
import logging

from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.core import config
from app.core.errors import WebhookError
from app.db.session import get_db
from app.schemas.billing import WebhookAck, WebhookErrorBody
from app.services.event_log import record_event
from app.services.handler_context import HandlerContext, WebhookResult
from app.services.stripe_gateway import StripeGateway, get_stripe_gateway
from app.services.webhook_dispatcher import dispatch
from app.services.webhook_verifier import verify_webhook

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["Billing Webhook"])


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _process_webhook(
    payload: bytes,
    signature: str,
    db: Session,
    gateway: StripeGateway,
) -> WebhookResult:
    """Verify, log and dispatch one delivery. Runs in the threadpool."""
    event = verify_webhook(
        payload,
        signature,
        config.STRIPE_WEBHOOK_SECRET,
        tolerance=config.STRIPE_WEBHOOK_TOLERANCE,
    )
    record_event(db, event)
    return dispatch(HandlerContext(db=db, gateway=gateway, raw_event=event))


@router.post(
    "/webhook",
    response_model=WebhookAck,
    responses={400: {"model": WebhookErrorBody}, 500: {"model": WebhookErrorBody}},
)
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None),
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    payload = await request.body()

    try:
        # Database and Stripe API calls block; keep them off the event loop
        result = await run_in_threadpool(_process_webhook, payload, stripe_signature, db, gateway)
    except WebhookError as e:
        if e.status_code >= 500:
            logger.error(f"Error processing webhook: {e.detail}")
        return _error_response(e.status_code, e.detail)
    except Exception:
        logger.exception("Unexpected error processing webhook")
        return _error_response(500, "Internal error")

    return JSONResponse(status_code=result.status_code, content={"message": result.message})
