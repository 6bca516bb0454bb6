"""
Router for Stripe webhooks
"""
import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from core.exceptions import (
    WalletError,
    InvalidWebhookError,
    PaymentConfigurationError,
)
from dependencies import DbDepends, SettingsDepends, WebhookRateLimitDepends
from routers.utils import wallet_error_status
from services.payments import StripePaymentService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api",
    tags=["webhooks"],
    dependencies=[WebhookRateLimitDepends]
)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def _verified_event(request: Request, service: StripePaymentService):
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    return service.construct_event(payload, signature)


@router.post("/stripe-webhook")
async def stripe_webhook(
    request: Request,
    db: DbDepends,
    settings: SettingsDepends
):
    """
    Stripe webhook for all checkout sessions

    Wallet top-ups credit the wallet; Payment Link checkouts grant legacy
    credits by amount tier.
    """
    service = StripePaymentService(settings)

    try:
        event = await _verified_event(request, service)
    except PaymentConfigurationError as e:
        logger.error("Stripe webhook rejected: %s", e)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(e))
    except InvalidWebhookError as e:
        return _error(status.HTTP_400_BAD_REQUEST, str(e))

    try:
        return await service.handle_event(event, db)
    except WalletError as e:
        logger.error("Webhook processing failed for %s: %s", event.get("id"), e)
        return _error(wallet_error_status(e), str(e))
    except ValueError as e:
        logger.error("Webhook processing failed for %s: %s", event.get("id"), e)
        return _error(status.HTTP_400_BAD_REQUEST, str(e))
    except Exception:
        await db.rollback()
        logger.exception("Unexpected webhook error for %s", event.get("id"))
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Webhook processing failed")


@router.post("/wallet/webhook")
async def wallet_webhook(
    request: Request,
    db: DbDepends,
    settings: SettingsDepends
):
    """
    Stripe webhook for wallet top-ups only

    Errors a retry cannot fix are acknowledged so Stripe stops redelivering;
    unexpected failures answer 500 so Stripe retries.
    """
    service = StripePaymentService(settings)

    try:
        event = await _verified_event(request, service)
    except PaymentConfigurationError as e:
        logger.error("Wallet webhook rejected: %s", e)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(e))
    except InvalidWebhookError as e:
        return _error(status.HTTP_400_BAD_REQUEST, str(e))

    try:
        return await service.handle_event(event, db, wallet_only=True)
    except (WalletError, ValueError) as e:
        logger.error("Wallet top-up failed for %s: %s", event.get("id"), e)
        return {"received": True, "status": "failed", "error": str(e)}
    except Exception:
        await db.rollback()
        logger.exception("Unexpected wallet webhook error for %s", event.get("id"))
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Webhook processing failed")
