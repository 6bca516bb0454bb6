from contextlib import asynccontextmanager
import asyncio
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis
from routers import (
    admin_router,
    agents_router,
    health_router,
    users_router,
    wallet_router,
    webhooks_router,
)
from settings import Settings
from db import init_db, close_db
from cron import reconcile_task

# Logging setup
settings = Settings()
logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)

# Database initialization
init_db(settings.database)


async def run_reconcile_periodically():
    """
    Background task running payment reconciliation every
    WALLET_RECONCILE_INTERVAL seconds
    Keeps running after a failed run
    """
    interval = settings.wallet.reconcile_interval
    while True:
        try:
            logger.info("Reconcile task started")
            await reconcile_task(settings)
            logger.info("Reconcile task completed")
        except Exception:
            logger.exception("Error in reconcile task, next run in %s seconds", interval)
        await asyncio.sleep(interval)


async def run_reconcile_with_restart():
    """
    Wrapper restarting the reconcile loop if it crashes
    """
    while True:
        try:
            await run_reconcile_periodically()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Reconcile loop crashed, restarting in 5 seconds")
            await asyncio.sleep(5)


def check_environment():
    """Log configuration problems; refuse to start a misconfigured production app"""
    errors, warnings = settings.validate_environment()
    for warning in warnings:
        logger.warning(warning)
    for error in errors:
        logger.error(error)
    if errors and settings.is_production:
        raise RuntimeError("Environment validation failed: " + "; ".join(errors))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for the FastAPI app
    Runs on application startup and shutdown
    """
    check_environment()

    redis_client = None
    if settings.redis.enabled:
        redis_client = Redis.from_url(settings.redis.url, decode_responses=True)
        app.state.redis = redis_client

    reconcile_handle = None
    if settings.wallet.reconcile_enabled:
        reconcile_handle = asyncio.create_task(run_reconcile_with_restart())

    yield

    if reconcile_handle is not None:
        reconcile_handle.cancel()
        try:
            await reconcile_handle
        except asyncio.CancelledError:
            pass

    if redis_client is not None:
        await redis_client.aclose()

    await close_db()


app = FastAPI(
    title=settings.app_name,
    description="Wallet, Stripe payments and paid AI agent runs",
    version=settings.app_version,
    lifespan=lifespan
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict to the frontend domain in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(webhooks_router)
app.include_router(wallet_router)
app.include_router(users_router)
app.include_router(agents_router)
app.include_router(admin_router)
app.include_router(health_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
