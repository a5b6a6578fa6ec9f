from dataclasses import dataclass
from typing import Any, Dict

from sqlalchemy.orm import Session

from app.services.stripe_gateway import StripeGateway


@dataclass
class HandlerContext:
    """Collaborators available to every webhook handler."""
    db: Session
    gateway: StripeGateway
    raw_event: Dict[str, Any]


@dataclass
class WebhookResult:
    message: str
    status_code: int = 200
