"""
Utility functions for routers
"""
from fastapi import HTTPException, status

from core.exceptions import (
    WalletError,
    UserNotFoundError,
    InsufficientBalanceError,
    DuplicatePaymentError,
    InvalidPackageError,
    UnknownAgentError,
    PaymentNotCompletedError,
    PaymentConfigurationError,
    InvalidWebhookError,
    AgentWorkflowError,
    PaymentOwnershipError,
)


ERROR_STATUS = {
    UserNotFoundError: status.HTTP_404_NOT_FOUND,
    InsufficientBalanceError: status.HTTP_402_PAYMENT_REQUIRED,
    DuplicatePaymentError: status.HTTP_400_BAD_REQUEST,
    InvalidPackageError: status.HTTP_400_BAD_REQUEST,
    UnknownAgentError: status.HTTP_404_NOT_FOUND,
    PaymentNotCompletedError: status.HTTP_400_BAD_REQUEST,
    PaymentConfigurationError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    InvalidWebhookError: status.HTTP_400_BAD_REQUEST,
    AgentWorkflowError: status.HTTP_502_BAD_GATEWAY,
    PaymentOwnershipError: status.HTTP_403_FORBIDDEN,
}


def wallet_error_status(error: WalletError) -> int:
    """HTTP status code for a domain error"""
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def http_error(error: WalletError) -> HTTPException:
    """
    Translate a domain error to an HTTPException

    Example: DuplicatePaymentError -> 400 "Payment already processed"
    """
    return HTTPException(
        status_code=wallet_error_status(error),
        detail=str(error)
    )
