"""
Schemas for wallet packages, balances and transactions
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime


class WalletPackageItem(BaseModel):
    """Wallet top-up package"""
    id: str = Field(..., description="Package ID")
    amount: float = Field(..., description="AED credited to the wallet")
    price: float = Field(..., description="AED charged")
    label: str = Field(..., description="Display label")
    popular: bool = Field(False, description="Highlighted package")
    bonus: float = Field(0, description="Bonus AED")
    total: float = Field(..., description="Amount plus bonus")


class PackageList(BaseModel):
    """Available wallet packages"""
    packages: List[WalletPackageItem] = Field(..., description="Packages, cheapest first")
    currency: str = Field(..., description="Currency code")


class WalletStatus(BaseModel):
    """Color-coded balance status"""
    status: str = Field(..., description="low, medium or high")
    color: str = Field(..., description="Hex color")
    message: str = Field(..., description="Hint for the user")


class BalanceResponse(BaseModel):
    """Current balances of the authenticated user"""
    wallet_balance: float = Field(..., description="Wallet balance in AED")
    credits: int = Field(..., description="Legacy credits")
    currency: str = Field(..., description="Currency code")
    formatted: str = Field(..., description="Formatted balance, e.g. 10.00 AED")
    status: WalletStatus


class TransactionItem(BaseModel):
    """Single wallet transaction"""
    id: str = Field(..., description="Transaction ID")
    amount: float = Field(..., description="AED delta: positive for top-ups and refunds, negative for usage")
    type: str = Field(..., description="top_up, agent_usage or refund")
    description: Optional[str] = Field(None, description="Description")
    agent_slug: Optional[str] = Field(None, description="Agent involved")
    credits: Optional[int] = Field(None, description="Legacy credits granted")
    created_at: datetime = Field(..., description="Transaction timestamp")

    class Config:
        from_attributes = True


class TransactionList(BaseModel):
    """Page of a user's transactions, newest first"""
    transactions: List[TransactionItem] = Field(..., description="List of transactions")
    limit: int = Field(..., description="Page size")
    offset: int = Field(..., description="Rows skipped")


class VerifyPaymentRequest(BaseModel):
    """Client-side confirmation after the Stripe success redirect"""
    session_id: str = Field(..., alias="sessionId", min_length=1, description="Stripe checkout session ID")
    package_id: str = Field(..., alias="packageId", min_length=1, description="Wallet package ID")

    class Config:
        populate_by_name = True


class TransactionSummary(BaseModel):
    amount: float
    type: str
    description: str


class VerifyPaymentResponse(BaseModel):
    """Result of a verified top-up"""
    success: bool = Field(True)
    amount: float = Field(..., description="AED credited")
    new_balance: float = Field(..., description="Wallet balance after the top-up")
    transaction: TransactionSummary
