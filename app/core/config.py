import os

from app.core.errors import MissingSecret

# ✅ Database
DATABASE_URL = os.getenv("DATABASE_URL")
RUN_MIGRATIONS = os.getenv("RUN_MIGRATIONS", "0") == "1"

# ✅ Stripe
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
STRIPE_WEBHOOK_TOLERANCE = int(os.getenv("STRIPE_WEBHOOK_TOLERANCE", "300"))  # seconds
STRIPE_TIMEOUT_SECONDS = int(os.getenv("STRIPE_TIMEOUT_SECONDS", "10"))

# ✅ Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = os.getenv("LOG_DIR", "logs")

REQUIRED_SETTINGS = ("DATABASE_URL", "STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET")


def validate_required_settings() -> None:
    """
    Fail fast when a required secret is absent.

    Raises:
        MissingSecret: naming every required variable that is not set
    """
    missing = [name for name in REQUIRED_SETTINGS if not globals().get(name)]
    if missing:
        raise MissingSecret(f"Missing required configuration: {', '.join(missing)}")
