"""
Database models for users and the wallet ledger
"""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Text, DateTime, Numeric, ForeignKey, CheckConstraint
from sqlalchemy.sql import func
import uuid
from db import Base


TRANSACTION_TYPES = ("top_up", "agent_usage", "refund")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """
    Marketplace user

    The id is issued by the external auth provider (JWT ``sub``).
    ``credits`` is the legacy point balance, ``wallet_balance`` the AED wallet.
    The two are never converted into each other.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id, comment="Auth provider user id (UUID)")
    email = Column(String(254), unique=True, nullable=False, index=True, comment="Lowercased email address")
    name = Column(String(100), nullable=True, comment="Display name")
    credits = Column(Integer, default=0, server_default="0", nullable=False, comment="Legacy integer credit balance")
    wallet_balance = Column(Numeric(10, 2), default=0, server_default="0", nullable=False, comment="Wallet balance in AED")
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), onupdate=_utcnow, nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, credits={self.credits}, wallet_balance={self.wallet_balance})>"


class WalletTransaction(Base):
    """
    Audit row for every balance or credit mutation

    ``stripe_session_id`` is the idempotency key for Stripe payments.
    """

    __tablename__ = "wallet_transactions"
    __table_args__ = (
        CheckConstraint(
            "type IN ('top_up', 'agent_usage', 'refund')",
            name="ck_wallet_transactions_type"
        ),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True, comment="Reference to user")
    amount = Column(Numeric(10, 2), nullable=False, comment="AED: positive for top_up/refund, negative for agent_usage")
    type = Column(String(20), nullable=False, comment="top_up, agent_usage or refund")
    description = Column(Text, nullable=True)
    agent_slug = Column(String(100), nullable=True, comment="Agent charged or refunded")
    stripe_session_id = Column(String(255), nullable=True, unique=True, index=True, comment="Stripe Checkout session id (dedup key)")
    credits = Column(Integer, nullable=True, comment="Legacy credits granted by this entry")
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return (
            f"<WalletTransaction(id={self.id}, user_id={self.user_id}, amount={self.amount}, "
            f"type={self.type}, stripe_session_id={self.stripe_session_id})>"
        )
