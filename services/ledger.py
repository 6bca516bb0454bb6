"""
Wallet ledger: balance mutations and their audit rows

Every mutation locks the user row, updates the balance and inserts one
wallet_transactions row in the same database transaction.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List, Tuple, Dict, Any

from sqlalchemy import select, delete, func, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import (
    UserNotFoundError,
    InsufficientBalanceError,
    DuplicatePaymentError,
    InvalidPackageError,
    UnknownAgentError,
)
from core.pricing import get_agent_price
from core.security import sanitize_for_logging, sanitize_text_input, validate_email
from core.wallet import (
    Number,
    TransactionDescriptions,
    get_wallet_package,
    calculate_total_amount,
    top_up_description,
    to_decimal,
)
from db.models import User, WalletTransaction, TRANSACTION_TYPES

logger = logging.getLogger(__name__)

MAX_HISTORY_LIMIT = 100


class LedgerService:
    """Service for reading and mutating wallet and credit balances"""

    # ====================
    # Lookups
    # ====================

    @staticmethod
    async def get_user(user_id: str, db: AsyncSession) -> Optional[User]:
        result = await db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_user_by_email(email: str, db: AsyncSession) -> Optional[User]:
        result = await db.execute(
            select(User).where(User.email == email.strip().lower())
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def find_user(
        db: AsyncSession,
        user_id: Optional[str] = None,
        email: Optional[str] = None
    ) -> User:
        """
        Find a user by id first, then by email

        Args:
            db: Database session
            user_id: User id (e.g. Stripe client_reference_id)
            email: Fallback email (e.g. Stripe customer email)

        Returns:
            Matching User

        Raises:
            UserNotFoundError: If neither lookup matches
        """
        if user_id:
            user = await LedgerService.get_user(user_id, db)
            if user:
                return user
            logger.info("User not found by id: %s", user_id)

        if email:
            user = await LedgerService.get_user_by_email(email, db)
            if user:
                return user
            logger.info("User not found by email: %s", email)

        raise UserNotFoundError(user_id=user_id, email=email)

    @staticmethod
    async def get_transaction_by_session(
        stripe_session_id: str,
        db: AsyncSession
    ) -> Optional[WalletTransaction]:
        result = await db.execute(
            select(WalletTransaction).where(WalletTransaction.stripe_session_id == stripe_session_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _lock_user(user_id: str, db: AsyncSession) -> User:
        result = await db.execute(
            select(User)
            .where(User.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        user = result.scalar_one_or_none()
        if user is None:
            raise UserNotFoundError(user_id=user_id)
        return user

    # ====================
    # Mutations
    # ====================

    @staticmethod
    async def apply_wallet_transaction(
        user_id: str,
        amount: Number,
        transaction_type: str,
        description: str,
        db: AsyncSession,
        agent_slug: Optional[str] = None,
        stripe_session_id: Optional[str] = None,
        credits: Optional[int] = None
    ) -> Tuple[User, WalletTransaction]:
        """
        Change a user's balances and record the change

        Args:
            user_id: User to mutate
            amount: AED delta for wallet_balance (negative for charges)
            transaction_type: top_up, agent_usage or refund
            description: Human readable description
            db: Database session
            agent_slug: Agent involved, if any
            stripe_session_id: Idempotency key of a Stripe payment
            credits: Legacy credits to add alongside

        Returns:
            (updated User, created WalletTransaction)

        Raises:
            ValueError: Unknown transaction type
            UserNotFoundError: User does not exist
            InsufficientBalanceError: A charge exceeds the balance
            DuplicatePaymentError: stripe_session_id was already recorded
        """
        if transaction_type not in TRANSACTION_TYPES:
            raise ValueError(f"Invalid transaction type: {transaction_type}")

        amount = to_decimal(amount)

        if stripe_session_id:
            existing = await LedgerService.get_transaction_by_session(stripe_session_id, db)
            if existing:
                logger.info("Payment already processed: %s", stripe_session_id)
                raise DuplicatePaymentError(stripe_session_id)

        try:
            user = await LedgerService._lock_user(user_id, db)
        except UserNotFoundError:
            await db.rollback()
            raise

        current_balance = Decimal(user.wallet_balance or 0)
        new_balance = current_balance + amount

        if amount < 0 and new_balance < 0:
            await db.rollback()
            raise InsufficientBalanceError(current_balance, -amount)

        user.wallet_balance = new_balance
        if credits:
            user.credits = (user.credits or 0) + credits
        user.updated_at = datetime.now(timezone.utc)

        transaction = WalletTransaction(
            user_id=user.id,
            amount=amount,
            type=transaction_type,
            description=description,
            agent_slug=agent_slug,
            stripe_session_id=stripe_session_id,
            credits=credits,
        )
        db.add(transaction)

        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            if stripe_session_id:
                logger.warning("Concurrent processing of payment detected: %s", stripe_session_id)
                raise DuplicatePaymentError(stripe_session_id)
            raise

        await db.refresh(user)
        await db.refresh(transaction)

        logger.info("Wallet transaction completed: %s", sanitize_for_logging({
            "user_id": user.id,
            "type": transaction_type,
            "amount": str(amount),
            "credits": credits,
            "new_balance": str(user.wallet_balance),
            "stripe_session_id": stripe_session_id,
        }))

        return user, transaction

    @staticmethod
    async def credit_top_up(
        user_id: str,
        package_id: str,
        stripe_session_id: str,
        db: AsyncSession
    ) -> Tuple[User, WalletTransaction]:
        """Credit a paid wallet package (base amount plus bonus)"""
        package = get_wallet_package(package_id)
        if package is None:
            raise InvalidPackageError(package_id)

        return await LedgerService.apply_wallet_transaction(
            user_id=user_id,
            amount=calculate_total_amount(package_id),
            transaction_type="top_up",
            description=top_up_description(package),
            db=db,
            stripe_session_id=stripe_session_id,
        )

    @staticmethod
    async def charge_agent_usage(
        user_id: str,
        agent_slug: str,
        db: AsyncSession,
        description: Optional[str] = None
    ) -> Tuple[User, WalletTransaction]:
        """Deduct the price of one agent run"""
        agent = get_agent_price(agent_slug)
        if agent is None:
            raise UnknownAgentError(agent_slug)

        return await LedgerService.apply_wallet_transaction(
            user_id=user_id,
            amount=-agent.price,
            transaction_type="agent_usage",
            description=description or TransactionDescriptions.agent_usage(agent.name, agent.price),
            db=db,
            agent_slug=agent_slug,
        )

    @staticmethod
    async def refund(
        user_id: str,
        amount: Number,
        reason: str,
        db: AsyncSession,
        agent_slug: Optional[str] = None
    ) -> Tuple[User, WalletTransaction]:
        """Return AED to a wallet"""
        amount = to_decimal(amount)
        if amount <= 0:
            raise ValueError("Refund amount must be positive")

        return await LedgerService.apply_wallet_transaction(
            user_id=user_id,
            amount=amount,
            transaction_type="refund",
            description=TransactionDescriptions.refund(amount, reason),
            db=db,
            agent_slug=agent_slug,
        )

    @staticmethod
    async def add_credits(
        user_id: str,
        credits: int,
        description: str,
        db: AsyncSession,
        stripe_session_id: Optional[str] = None
    ) -> Tuple[User, WalletTransaction]:
        """
        Grant legacy credits

        The audit row has amount 0 and carries the credits granted.
        """
        if not isinstance(credits, int) or isinstance(credits, bool) or credits <= 0:
            raise ValueError("Credits must be a positive integer")

        return await LedgerService.apply_wallet_transaction(
            user_id=user_id,
            amount=0,
            transaction_type="top_up",
            description=description,
            db=db,
            stripe_session_id=stripe_session_id,
            credits=credits,
        )

    # ====================
    # Reads
    # ====================

    @staticmethod
    async def get_balance(user_id: str, db: AsyncSession) -> Dict[str, Any]:
        user = await LedgerService.get_user(user_id, db)
        if user is None:
            raise UserNotFoundError(user_id=user_id)
        return {
            "wallet_balance": Decimal(user.wallet_balance or 0),
            "credits": user.credits or 0,
        }

    @staticmethod
    async def get_transaction_history(
        user_id: str,
        db: AsyncSession,
        limit: int = 50,
        offset: int = 0,
        transaction_type: Optional[str] = None
    ) -> List[WalletTransaction]:
        """
        A user's transactions, newest first

        Args:
            user_id: User id
            db: Database session
            limit: Page size, capped at 100
            offset: Rows to skip
            transaction_type: Optional type filter
        """
        safe_limit = max(1, min(limit, MAX_HISTORY_LIMIT))

        stmt = select(WalletTransaction).where(WalletTransaction.user_id == user_id)
        if transaction_type:
            stmt = stmt.where(WalletTransaction.type == transaction_type)
        stmt = (
            stmt.order_by(desc(WalletTransaction.created_at))
            .offset(max(offset, 0))
            .limit(safe_limit)
        )

        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_transactions(
        db: AsyncSession,
        page: int = 1,
        page_size: int = 20,
        user_id: Optional[str] = None
    ) -> Tuple[List[WalletTransaction], int]:
        """All transactions for admins, paginated, with total count"""
        stmt = select(WalletTransaction)
        count_stmt = select(func.count(WalletTransaction.id))

        if user_id:
            stmt = stmt.where(WalletTransaction.user_id == user_id)
            count_stmt = count_stmt.where(WalletTransaction.user_id == user_id)

        total = (await db.execute(count_stmt)).scalar() or 0

        stmt = stmt.order_by(desc(WalletTransaction.created_at))
        stmt = stmt.offset((page - 1) * page_size).limit(page_size)
        result = await db.execute(stmt)

        return list(result.scalars().all()), total

    # ====================
    # Profiles
    # ====================

    @staticmethod
    async def create_user_profile(
        user_id: str,
        email: str,
        name: Optional[str],
        db: AsyncSession
    ) -> User:
        """
        Create the profile row for an authenticated user

        Raises:
            ValueError: Invalid input, or the profile or email already exists
        """
        if not user_id:
            raise ValueError("Missing required user data")

        is_valid, normalized_email, error = validate_email(email)
        if not is_valid:
            raise ValueError(error)

        clean_name = sanitize_text_input(name) if name else None
        if clean_name is not None and len(clean_name) > 100:
            raise ValueError("Name cannot exceed 100 characters")

        if await LedgerService.get_user(user_id, db):
            raise ValueError("User profile already exists")
        if await LedgerService.get_user_by_email(normalized_email, db):
            raise ValueError(f"Email '{normalized_email}' is already registered")

        user = User(
            id=user_id,
            email=normalized_email,
            name=clean_name,
            credits=0,
            wallet_balance=Decimal("0.00"),
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)

        logger.info("User profile created: %s", user.id)
        return user

    @staticmethod
    async def delete_user_data(user_id: str, db: AsyncSession) -> None:
        """Delete a user's transactions and profile"""
        user = await LedgerService.get_user(user_id, db)
        if user is None:
            raise UserNotFoundError(user_id=user_id)

        await db.execute(delete(WalletTransaction).where(WalletTransaction.user_id == user_id))
        await db.execute(delete(User).where(User.id == user_id))
        await db.commit()

        logger.info("User data deleted: %s", user_id)
