"""
Router for health / liveness / readiness.
Everything lives under /health so a reverse proxy can expose it separately.
"""
import logging

from fastapi import APIRouter, Request, Response, status
from redis.asyncio import Redis
from sqlalchemy import text

from dependencies import SettingsDepends
import db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


async def _check_database() -> str:
    if db.SessionLocal is None:
        raise RuntimeError("not initialized")
    async with db.SessionLocal() as session:
        await session.execute(text("SELECT 1"))
    return "ok"


async def _check_redis(request: Request, url: str) -> str:
    client = getattr(request.app.state, "redis", None)
    if client is not None:
        await client.ping()
        return "ok"

    client = Redis.from_url(url, decode_responses=True)
    try:
        await client.ping()
    finally:
        await client.aclose()
    return "ok"


@router.get("")
async def health():
    return {"status": "ok"}


@router.get("/live")
async def live():
    """Liveness: the process is up, dependencies are not checked."""
    return {"status": "ok"}


@router.get("/ready")
async def ready(request: Request, response: Response, settings: SettingsDepends):
    """
    Readiness: database and, when enabled, Redis must answer (503 otherwise).

    Stripe and agent workflow configuration is reported but does not fail
    the check; the API still serves balances without them.
    """
    checks = {}
    errors = []

    try:
        checks["database"] = await _check_database()
    except Exception as e:
        checks["database"] = "error"
        errors.append(f"database: {e!s}")

    if settings.redis.enabled:
        try:
            checks["redis"] = await _check_redis(request, settings.redis.url)
        except Exception as e:
            checks["redis"] = "error"
            errors.append(f"redis: {e!s}")

    checks["stripe"] = "configured" if settings.stripe.is_configured else "not configured"
    checks["agents"] = f"{len(settings.n8n.webhook_urls())} workflows configured"

    if errors:
        logger.warning("Readiness check failed: %s", "; ".join(errors))
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "unhealthy", "checks": checks, "detail": "; ".join(errors)}

    return {"status": "ok", "checks": checks}
