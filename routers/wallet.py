"""
Router for wallet top-ups, balances and transaction history
"""
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import RedirectResponse

from core.exceptions import WalletError
from core.wallet import (
    CURRENCY,
    WALLET_PACKAGES,
    calculate_total_amount,
    format_wallet_balance,
    get_wallet_status,
)
from db.models import TRANSACTION_TYPES
from dependencies import CurrentUserDepends, DbDepends, SettingsDepends
from routers.utils import http_error
from schemas.wallet import (
    BalanceResponse,
    PackageList,
    TransactionItem,
    TransactionList,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
    WalletPackageItem,
    WalletStatus,
)
from services.ledger import LedgerService
from services.payments import StripePaymentService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/wallet",
    tags=["wallet"]
)


@router.get("/packages", response_model=PackageList)
async def list_packages():
    """Wallet packages available for purchase"""
    return PackageList(
        packages=[
            WalletPackageItem(
                id=package.id,
                amount=package.amount,
                price=package.price,
                label=package.label,
                popular=package.popular,
                bonus=package.bonus,
                total=calculate_total_amount(package.id),
            )
            for package in WALLET_PACKAGES
        ],
        currency=CURRENCY
    )


@router.get("/create-checkout")
async def create_checkout(
    db: DbDepends,
    settings: SettingsDepends,
    package: Optional[str] = None,
    user: Optional[str] = None,
    success: Optional[str] = None,
    cancel: Optional[str] = None
):
    """
    Create a Stripe Checkout session and redirect to it

    Args:
        package: Wallet package ID
        user: Paying user ID
        success: Redirect URL after payment
        cancel: Redirect URL on cancel

    Returns:
        303 redirect to Stripe
    """
    if not package or not user or not success or not cancel:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing required parameters"
        )

    try:
        checkout = await StripePaymentService(settings).create_wallet_checkout(
            user, package, success, cancel, db
        )
    except WalletError as e:
        raise http_error(e)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except Exception:
        logger.exception("Wallet checkout creation error")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create checkout session"
        )

    return RedirectResponse(checkout["url"], status_code=status.HTTP_303_SEE_OTHER)


@router.post("/verify-payment", response_model=VerifyPaymentResponse)
async def verify_payment(
    request: VerifyPaymentRequest,
    user_id: CurrentUserDepends,
    db: DbDepends,
    settings: SettingsDepends
):
    """
    Credit a wallet top-up after the Stripe success redirect

    Safe to call alongside the webhook: a session credits the wallet once,
    later calls answer 400 "Payment already processed".
    """
    service = StripePaymentService(settings)

    try:
        result = await service.verify_payment(
            request.session_id, request.package_id, db, expected_user_id=user_id
        )
        return VerifyPaymentResponse(**result)

    except HTTPException:
        raise
    except WalletError as e:
        raise http_error(e)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except Exception as e:
        await db.rollback()
        logger.exception("Payment verification error")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Internal server error: {str(e)}"
        )


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(
    user_id: CurrentUserDepends,
    db: DbDepends
):
    """Wallet balance and legacy credits of the authenticated user"""
    try:
        balance = await LedgerService.get_balance(user_id, db)
    except WalletError as e:
        raise http_error(e)

    wallet_balance = balance["wallet_balance"]
    return BalanceResponse(
        wallet_balance=wallet_balance,
        credits=balance["credits"],
        currency=CURRENCY,
        formatted=format_wallet_balance(wallet_balance),
        status=WalletStatus(**get_wallet_status(wallet_balance))
    )


@router.get("/transactions", response_model=TransactionList)
async def get_transactions(
    user_id: CurrentUserDepends,
    db: DbDepends,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    type: Optional[str] = None
):
    """
    Transaction history of the authenticated user, newest first

    Args:
        limit: Page size (max 100)
        offset: Rows to skip
        type: Optional filter (top_up, agent_usage, refund)
    """
    if type is not None and type not in TRANSACTION_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid transaction type: {type}"
        )

    transactions = await LedgerService.get_transaction_history(
        user_id, db, limit=limit, offset=offset, transaction_type=type
    )

    return TransactionList(
        transactions=[TransactionItem.model_validate(t) for t in transactions],
        limit=limit,
        offset=offset
    )
