"""
Schemas for admin operations
"""
from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Optional, List

from schemas.wallet import TransactionItem


class AdminLoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class AdminLoginResponse(BaseModel):
    success: bool = Field(True)
    token: str = Field(..., description="Admin token, also set as admin_token cookie")


class ManualCreditRequest(BaseModel):
    """Grant legacy credits by hand"""
    user_id: str = Field(..., alias="userId", min_length=1, description="User ID")
    credits: int = Field(..., gt=0, description="Credits to add")
    reason: Optional[str] = Field(None, max_length=255, description="Why the credits are granted")

    class Config:
        populate_by_name = True


class ManualCreditResponse(BaseModel):
    success: bool = Field(True)
    user_id: str
    credits_added: int
    new_total: int


class RefundRequest(BaseModel):
    """Return AED to a user's wallet"""
    amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2, description="AED to refund")
    reason: str = Field(..., min_length=1, max_length=255, description="Refund reason")
    agent_slug: Optional[str] = Field(None, description="Agent the refund relates to")


class RefundResponse(BaseModel):
    success: bool = Field(True)
    user_id: str
    amount: float
    new_balance: float


class AdminTransactionItem(TransactionItem):
    user_id: str
    stripe_session_id: Optional[str] = None


class AdminTransactionList(BaseModel):
    """All transactions with pagination"""
    transactions: List[AdminTransactionItem] = Field(..., description="List of transactions")
    total: int = Field(..., description="Total number of transactions")
    page: int = Field(..., description="Current page")
    page_size: int = Field(..., description="Page size")


class ReconcileRequest(BaseModel):
    """Re-check recent Stripe sessions"""
    lookback_hours: Optional[int] = Field(None, ge=1, le=24 * 30)
    session_ids: Optional[List[str]] = Field(None, description="Explicit sessions instead of a scan")


class ReconcileResponse(BaseModel):
    checked: int
    credited: int
    skipped: int
    failed: int
