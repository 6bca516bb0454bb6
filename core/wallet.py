"""
Wallet packages and balance helpers

Amounts are AED held as Decimal; Stripe amounts are fils (1/100 AED).
"""
from collections import OrderedDict
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, List, Dict, Any, Iterable, Union

from pydantic import BaseModel, Field


CURRENCY = "AED"
CENT = Decimal("0.01")

Number = Union[int, float, str, Decimal]


class WalletPackage(BaseModel):
    """Wallet top-up package sold through Stripe Checkout"""
    id: str = Field(..., description="Package ID")
    amount: Decimal = Field(..., description="AED credited to the wallet")
    price: Decimal = Field(..., description="AED charged by Stripe")
    label: str = Field(..., description="Display label")
    popular: bool = Field(False, description="Highlighted package")
    bonus: Decimal = Field(Decimal("0"), description="Extra AED credited on top of amount")


WALLET_PACKAGES: List[WalletPackage] = [
    WalletPackage(id="wallet_10", amount=Decimal("10"), price=Decimal("10"), label="10 AED"),
    WalletPackage(id="wallet_25", amount=Decimal("25"), price=Decimal("25"), label="25 AED", popular=True),
    WalletPackage(id="wallet_50", amount=Decimal("50"), price=Decimal("50"), label="50 AED"),
    # 110 AED for a 100 AED payment
    WalletPackage(id="wallet_100", amount=Decimal("100"), price=Decimal("100"), label="100 AED", bonus=Decimal("10")),
]

# Payment Link tiers: minimum paid amount (AED) -> legacy credits
CREDIT_TIERS = [
    (Decimal("499.99"), 500),
    (Decimal("99.99"), 100),
    (Decimal("49.99"), 50),
    (Decimal("9.99"), 10),
]


def to_decimal(value: Number) -> Decimal:
    """Convert a number to a 2-place Decimal"""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Number) -> int:
    """AED -> fils, as Stripe expects"""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
    """fils -> AED"""
    return (Decimal(amount or 0) / 100).quantize(CENT, rounding=ROUND_HALF_UP)


def get_wallet_package(package_id: Optional[str]) -> Optional[WalletPackage]:
    """Get wallet package by ID"""
    for package in WALLET_PACKAGES:
        if package.id == package_id:
            return package
    return None


def calculate_total_amount(package_id: Optional[str]) -> Decimal:
    """
    Total credited for a package (base amount plus bonus)

    Returns:
        Decimal("0") for an unknown package
    """
    package = get_wallet_package(package_id)
    if package is None:
        return Decimal("0")
    return package.amount + package.bonus


def top_up_description(package: WalletPackage) -> str:
    description = f"Wallet top-up: {package.label}"
    if package.bonus:
        description += f" (+{package.bonus:g} {CURRENCY} bonus)"
    return description


def has_sufficient_balance(wallet_balance: Number, required_amount: Number) -> bool:
    return Decimal(str(wallet_balance)) >= Decimal(str(required_amount))


def format_wallet_balance(balance: Number) -> str:
    return f"{to_decimal(balance)} {CURRENCY}"


def get_wallet_status(balance: Number) -> Dict[str, str]:
    """
    Color-coded wallet status for clients

    Args:
        balance: Wallet balance in AED

    Returns:
        Dict with status (low/medium/high), color and message
    """
    balance = Decimal(str(balance))
    if balance < 5:
        return {
            "status": "low",
            "color": "#ef4444",
            "message": "Low balance - Add money to continue using agents",
        }
    if balance < 20:
        return {
            "status": "medium",
            "color": "#f59e0b",
            "message": "Consider adding more funds",
        }
    return {
        "status": "high",
        "color": "#10b981",
        "message": "Good balance",
    }


def calculate_usage_count(wallet_balance: Number, agent_price: Number) -> int:
    """How many times an agent can be run with the current balance"""
    price = Decimal(str(agent_price))
    if price <= 0:
        raise ValueError("Agent price must be positive")
    return int(Decimal(str(wallet_balance)) // price)


def get_recommended_top_up(current_balance: Number, agent_price: Number) -> Optional[WalletPackage]:
    """
    Recommend a package based on how many runs the balance still covers

    Returns:
        Smallest package covering three runs when the balance cannot pay for one,
        the popular package when it covers fewer than two, otherwise None
    """
    balance = Decimal(str(current_balance))
    price = Decimal(str(agent_price))

    if balance < price:
        target = price * 3
        for package in WALLET_PACKAGES:
            if package.amount >= target:
                return package
        return WALLET_PACKAGES[0]

    if balance < price * 2:
        for package in WALLET_PACKAGES:
            if package.popular:
                return package
        return WALLET_PACKAGES[1]

    return None


def validate_wallet_balance(balance: Number, max_balance: Number = 1000) -> Dict[str, Any]:
    """
    Check a balance against the allowed range

    Returns:
        {"is_valid": bool, "error": Optional[str]}
    """
    balance = Decimal(str(balance))
    if balance < 0:
        return {"is_valid": False, "error": "Wallet balance cannot be negative"}
    if balance > Decimal(str(max_balance)):
        return {"is_valid": False, "error": f"Wallet balance cannot exceed {max_balance} {CURRENCY}"}
    return {"is_valid": True, "error": None}


def credits_for_amount(amount_total: Optional[int]) -> int:
    """
    Legacy credits for a Payment Link purchase

    Args:
        amount_total: Amount paid in fils

    Returns:
        Credits for the highest tier reached, 0 when below every tier
    """
    amount = from_minor_units(amount_total or 0)
    for minimum, credits in CREDIT_TIERS:
        if amount >= minimum:
            return credits
    return 0


class TransactionDescriptions:
    """Standard descriptions for wallet_transactions rows"""

    @staticmethod
    def top_up(amount: Number) -> str:
        return f"Wallet top-up: {format_wallet_balance(amount)}"

    @staticmethod
    def agent_usage(agent_name: str, amount: Number) -> str:
        return f"Used {agent_name} ({format_wallet_balance(amount)})"

    @staticmethod
    def refund(amount: Number, reason: str) -> str:
        return f"Refund: {format_wallet_balance(amount)} - {reason}"

    @staticmethod
    def credit_purchase(credits: int, amount: Number) -> str:
        return f"Credit purchase: {credits} credits ({format_wallet_balance(amount)})"


def _as_date(value: Any) -> date:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()


def _field(transaction: Any, name: str) -> Any:
    if isinstance(transaction, dict):
        return transaction.get(name)
    return getattr(transaction, name)


def group_transactions_by_date(transactions: Iterable[Any]) -> "OrderedDict[str, List[Any]]":
    """Group transactions by ISO date of created_at, keeping input order"""
    groups: "OrderedDict[str, List[Any]]" = OrderedDict()
    for transaction in transactions:
        key = _as_date(_field(transaction, "created_at")).isoformat()
        groups.setdefault(key, []).append(transaction)
    return groups


def calculate_daily_spending(
    transactions: Iterable[Any],
    days: int = 7,
    today: Optional[date] = None
) -> List[Decimal]:
    """
    Agent spending per day for the last ``days`` days

    Returns:
        List ordered oldest to newest, today last
    """
    today = today or datetime.now(timezone.utc).date()
    totals = {today - timedelta(days=i): Decimal("0") for i in range(days)}

    for transaction in transactions:
        if _field(transaction, "type") != "agent_usage":
            continue
        day = _as_date(_field(transaction, "created_at"))
        if day in totals:
            totals[day] += abs(Decimal(str(_field(transaction, "amount"))))

    return [totals[day] for day in sorted(totals)]
