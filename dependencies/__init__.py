"""
Dependencies for the FastAPI application
"""
import logging
from typing import Optional, Annotated

from fastapi import Request, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
import jwt

from core.security import RateLimiter
from dependencies.settings import SettingsDepends, get_settings
from db import get_db
from services.admin import AdminService

logger = logging.getLogger(__name__)


def _bearer_token(request: Request) -> Optional[str]:
    authorization = request.headers.get("Authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


async def get_current_user_id(
    request: Request,
    settings: SettingsDepends
) -> str:
    """
    Dependency for the authenticated user's id

    The bearer token is an access token of the external auth provider; its
    ``sub`` claim is the user id.

    Raises:
        HTTPException: If the token is missing or invalid
    """
    token = _bearer_token(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )

    try:
        payload = jwt.decode(
            token,
            settings.auth.jwt_secret.get_secret_value(),
            algorithms=[settings.auth.jwt_algorithm],
            audience=settings.auth.jwt_audience,
            options={"verify_aud": bool(settings.auth.jwt_audience)}
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired"
        )
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )
    return user_id


async def get_admin_from_request(
    request: Request,
    settings: SettingsDepends
) -> Optional[dict]:
    """
    Dependency for admin info from the admin_token cookie or a bearer token

    Returns None if no valid admin token is present
    """
    token = request.cookies.get("admin_token") or _bearer_token(request)
    if not token:
        return None
    return AdminService.decode_token(token, settings)


async def require_admin(
    request: Request,
    settings: SettingsDepends
) -> dict:
    """
    Dependency requiring admin authorization

    Raises:
        HTTPException: If the caller is not an authenticated admin
    """
    admin_info = await get_admin_from_request(request, settings)

    if not admin_info:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Admin authentication required"
        )

    return admin_info


async def get_webhook_limiter(request: Request, settings: SettingsDepends) -> RateLimiter:
    """Shared limiter for webhook endpoints, created on first use"""
    limiter = getattr(request.app.state, "webhook_limiter", None)
    if limiter is None:
        limiter = RateLimiter(
            max_attempts=settings.wallet.webhook_rate_limit,
            window_seconds=settings.wallet.webhook_rate_window,
            redis=getattr(request.app.state, "redis", None),
            prefix="ratelimit:webhook",
        )
        request.app.state.webhook_limiter = limiter
    return limiter


async def webhook_rate_limit(
    request: Request,
    limiter: RateLimiter = Depends(get_webhook_limiter)
) -> None:
    """
    Dependency limiting webhook calls per client address

    Raises:
        HTTPException: 429 when the limit is exceeded
    """
    identifier = request.client.host if request.client else "unknown"
    allowed, remaining, reset_at = await limiter.check(identifier)
    if not allowed:
        logger.warning("Webhook rate limit exceeded for %s", identifier)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests"
        )


CurrentUserDepends = Annotated[str, Depends(get_current_user_id)]
AdminDepends = Annotated[Optional[dict], Depends(get_admin_from_request)]
RequireAdminDepends = Annotated[dict, Depends(require_admin)]
WebhookRateLimitDepends = Depends(webhook_rate_limit)


# Database dependency
DbDepends = Annotated[AsyncSession, Depends(get_db)]


__all__ = [
    "CurrentUserDepends", "AdminDepends", "RequireAdminDepends",
    "SettingsDepends", "DbDepends", "WebhookRateLimitDepends",
    "get_settings", "get_db",
]
