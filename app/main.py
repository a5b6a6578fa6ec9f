import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import billing_webhook, health
from app.core import config
from app.core.logging_config import sanitize_log_data, setup_logging

logger = logging.getLogger(__name__)


# ============================================
# ✅ STARTUP
# ============================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(config.LOG_LEVEL, config.LOG_DIR)
    config.validate_required_settings()
    logger.info(
        "Starting billing webhook service: %s",
        sanitize_log_data({
            "database_url": config.DATABASE_URL,
            "stripe_secret_key": config.STRIPE_SECRET_KEY,
            "stripe_webhook_secret": config.STRIPE_WEBHOOK_SECRET,
            "run_migrations": config.RUN_MIGRATIONS,
        }),
    )

    if config.RUN_MIGRATIONS:
        from app.db.migrate import run_migrations
        run_migrations()

    yield


# ============================================
# ✅ FASTAPI APP INIT
# ============================================

app = FastAPI(title="Lab Report Billing Webhooks", lifespan=lifespan)

# ✅ CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type", "stripe-signature"],
)


# ============================================
# ✅ REGISTER ALL ROUTERS
# ============================================

app.include_router(billing_webhook.router)
app.include_router(health.router)


@app.get("/")
def root():
    return {"status": "Billing webhook API running"}
