"""
Router for Admin API endpoints
"""
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Response, status

from core.exceptions import WalletError
from core.security import sanitize_text_input
from dependencies import RequireAdminDepends, SettingsDepends, DbDepends
from routers.utils import http_error
from schemas.admin import (
    AdminLoginRequest, AdminLoginResponse,
    AdminTransactionItem, AdminTransactionList,
    ManualCreditRequest, ManualCreditResponse,
    ReconcileRequest, ReconcileResponse,
    RefundRequest, RefundResponse,
)
from services.admin import AdminService
from services.agents import AgentService
from services.ledger import LedgerService
from services.payments import StripePaymentService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api",
    tags=["admin"]
)


@router.post("/admin/login", response_model=AdminLoginResponse)
async def admin_login(
    request: AdminLoginRequest,
    response: Response,
    settings: SettingsDepends
):
    """
    Admin login with username and password

    Returns:
        Admin token, also set as the admin_token cookie
    """
    if not AdminService.verify_credentials(request.username, request.password, settings):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password"
        )

    token = AdminService.create_token(request.username, settings)
    response.set_cookie(
        key="admin_token",
        value=token,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        max_age=settings.admin.token_ttl_hours * 3600
    )
    logger.info("Admin logged in: %s", request.username)

    return AdminLoginResponse(success=True, token=token)


@router.post("/admin/logout")
async def admin_logout(response: Response):
    response.delete_cookie("admin_token")
    return {"success": True}


@router.post("/manual-credit", response_model=ManualCreditResponse)
async def manual_credit(
    request: ManualCreditRequest,
    db: DbDepends,
    admin: RequireAdminDepends
):
    """
    Grant legacy credits by hand (e.g. for a payment whose webhook failed)

    Args:
        request: userId, credits and reason
        db: Database session
        admin: Admin authentication
    """
    reason = sanitize_text_input(request.reason) if request.reason else "Manual credit"
    description = f"Manual credit: {reason} (by {admin.get('username')})"

    try:
        user, _ = await LedgerService.add_credits(request.user_id, request.credits, description, db)
    except WalletError as e:
        raise http_error(e)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except Exception as e:
        await db.rollback()
        logger.exception("Manual credit error")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error adding credits: {str(e)}"
        )

    logger.info("Manual credit: %s", {
        "user_id": user.id,
        "credits": request.credits,
        "new_total": user.credits,
        "admin": admin.get("username"),
    })

    return ManualCreditResponse(
        success=True,
        user_id=user.id,
        credits_added=request.credits,
        new_total=user.credits
    )


@router.post("/admin/users/{user_id}/refund", response_model=RefundResponse)
async def refund_user(
    user_id: str,
    request: RefundRequest,
    db: DbDepends,
    admin: RequireAdminDepends
):
    """Return AED to a user's wallet"""
    try:
        user, transaction = await LedgerService.refund(
            user_id,
            request.amount,
            sanitize_text_input(request.reason),
            db,
            agent_slug=request.agent_slug
        )
    except WalletError as e:
        raise http_error(e)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except Exception as e:
        await db.rollback()
        logger.exception("Refund error")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error creating refund: {str(e)}"
        )

    return RefundResponse(
        success=True,
        user_id=user.id,
        amount=transaction.amount,
        new_balance=user.wallet_balance
    )


@router.get("/admin/transactions", response_model=AdminTransactionList)
async def list_transactions(
    db: DbDepends,
    admin: RequireAdminDepends,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    user_id: Optional[str] = None
):
    """
    All wallet transactions, newest first

    Args:
        page: Page number (starting from 1)
        page_size: Number of items per page
        user_id: Optional user filter
    """
    transactions, total = await LedgerService.list_transactions(
        db, page=page, page_size=page_size, user_id=user_id
    )

    return AdminTransactionList(
        transactions=[AdminTransactionItem.model_validate(t) for t in transactions],
        total=total,
        page=page,
        page_size=page_size
    )


@router.post("/admin/reconcile", response_model=ReconcileResponse)
async def reconcile_payments(
    request: ReconcileRequest,
    db: DbDepends,
    settings: SettingsDepends,
    admin: RequireAdminDepends
):
    """Credit paid Stripe sessions whose webhook never arrived"""
    try:
        summary = await StripePaymentService(settings).reconcile_recent_sessions(
            db,
            lookback_hours=request.lookback_hours,
            session_ids=request.session_ids
        )
    except WalletError as e:
        raise http_error(e)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(e)
        )

    return ReconcileResponse(**summary)


@router.get("/admin/agents/status")
async def agents_status(
    settings: SettingsDepends,
    admin: RequireAdminDepends
):
    """Whether each configured agent workflow answers"""
    return {"agents": await AgentService.get_webhook_status(settings)}
