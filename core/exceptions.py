"""
Custom exceptions for the application
"""
from decimal import Decimal
from typing import Optional


class WalletError(Exception):
    """
    Base exception for wallet and payment errors

    Routers map subclasses to HTTP status codes.
    """


class UserNotFoundError(WalletError):
    """Raised when no user matches the given id or email"""

    def __init__(self, user_id: Optional[str] = None, email: Optional[str] = None):
        self.user_id = user_id
        self.email = email
        super().__init__("User not found")


class InsufficientBalanceError(WalletError):
    """Raised when a charge would take the wallet balance below zero"""

    def __init__(self, balance: Decimal, required: Decimal):
        """
        Initialize the exception

        Args:
            balance: Current wallet balance
            required: Amount the operation needs
        """
        self.balance = balance
        self.required = required
        super().__init__(
            f"Insufficient balance. Current balance: {balance}, required: {required}"
        )


class DuplicatePaymentError(WalletError):
    """Raised when a Stripe session has already been credited"""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__("Payment already processed")


class InvalidPackageError(WalletError):
    """Raised for an unknown wallet package id"""

    def __init__(self, package_id: Optional[str]):
        self.package_id = package_id
        super().__init__("Invalid package ID")


class UnknownAgentError(WalletError):
    """Raised for an agent slug without pricing"""

    def __init__(self, agent_slug: str):
        self.agent_slug = agent_slug
        super().__init__(f"Unknown agent: {agent_slug}")


class PaymentNotCompletedError(WalletError):
    """Raised when a checkout session is not paid"""

    def __init__(self, session_id: str, payment_status: Optional[str] = None):
        self.session_id = session_id
        self.payment_status = payment_status
        super().__init__("Payment not completed")


class PaymentConfigurationError(WalletError):
    """Raised when Stripe or a workflow endpoint is not configured"""


class InvalidWebhookError(WalletError):
    """Raised when a webhook payload or its signature cannot be verified"""


class AgentWorkflowError(WalletError):
    """Raised when an n8n workflow call fails"""

    def __init__(self, agent_slug: Optional[str], message: str, status: Optional[int] = None):
        self.agent_slug = agent_slug
        self.status = status
        super().__init__(message)


class PaymentOwnershipError(WalletError):
    """Raised when a checkout session belongs to a different user"""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__("Checkout session belongs to another user")
