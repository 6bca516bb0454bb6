"""
Stripe Checkout integration: wallet top-ups, Payment Link credits,
webhook verification and reconciliation of missed payments
"""
import json
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional, Dict, Any, List, Iterable

import stripe
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import (
    DuplicatePaymentError,
    InvalidPackageError,
    InvalidWebhookError,
    PaymentConfigurationError,
    PaymentNotCompletedError,
    PaymentOwnershipError,
    UserNotFoundError,
    WalletError,
)
from core.security import sanitize_for_logging
from core.wallet import (
    TransactionDescriptions,
    calculate_total_amount,
    credits_for_amount,
    from_minor_units,
    get_wallet_package,
    to_minor_units,
    top_up_description,
)
from services.ledger import LedgerService
from settings import Settings

logger = logging.getLogger(__name__)

WALLET_TOPUP = "wallet_topup"
CHECKOUT_COMPLETED = "checkout.session.completed"


def _to_plain(obj: Any) -> Dict[str, Any]:
    """Convert a StripeObject (or dict) to a plain dict"""
    if obj is None:
        return {}
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


class StripePaymentService:
    """Service for Stripe Checkout and webhook handling"""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.stripe_settings = settings.stripe

    # ====================
    # Stripe API access
    # ====================

    def _api_key(self) -> str:
        if not self.stripe_settings.is_configured:
            raise PaymentConfigurationError("Payment system not configured")
        return self.stripe_settings.secret_key.get_secret_value()

    def _request_options(self) -> Dict[str, Any]:
        return {
            "api_key": self._api_key(),
            "stripe_version": self.stripe_settings.api_version,
        }

    async def retrieve_session(self, session_id: str) -> Dict[str, Any]:
        """
        Retrieve a checkout session from Stripe

        Raises:
            PaymentConfigurationError: Stripe not configured
            ValueError: Stripe rejected the request
        """
        options = self._request_options()
        try:
            session = await run_in_threadpool(
                stripe.checkout.Session.retrieve, session_id, **options
            )
        except stripe.StripeError as e:
            logger.error("Stripe API error retrieving %s: %s", session_id, e)
            raise ValueError(f"Invalid session ID or Stripe error: {e}")

        if not session:
            raise ValueError("Invalid session ID")
        return _to_plain(session)

    async def list_recent_sessions(self, since: datetime) -> List[Dict[str, Any]]:
        """Completed checkout sessions created after ``since``"""
        options = self._request_options()

        def _list() -> List[Dict[str, Any]]:
            page = stripe.checkout.Session.list(
                created={"gte": int(since.timestamp())},
                status="complete",
                limit=100,
                **options
            )
            return [_to_plain(item) for item in page.auto_paging_iter()]

        try:
            return await run_in_threadpool(_list)
        except stripe.StripeError as e:
            logger.error("Stripe error listing checkout sessions: %s", e)
            raise ValueError(f"Stripe error: {e}")

    # ====================
    # Checkout
    # ====================

    async def create_wallet_checkout(
        self,
        user_id: str,
        package_id: str,
        success_url: str,
        cancel_url: str,
        db: AsyncSession
    ) -> Dict[str, str]:
        """
        Create a Stripe Checkout session for a wallet package

        Args:
            user_id: Paying user
            package_id: Wallet package id
            success_url: Redirect after payment
            cancel_url: Redirect on cancel
            db: Database session

        Returns:
            Dict with session_id and url

        Raises:
            InvalidPackageError: Unknown package
            UserNotFoundError: Unknown user
            ValueError: Top-up would exceed the maximum balance, or Stripe error
        """
        package = get_wallet_package(package_id)
        if package is None:
            raise InvalidPackageError(package_id)

        options = self._request_options()

        user = await LedgerService.get_user(user_id, db)
        if user is None:
            raise UserNotFoundError(user_id=user_id)

        max_balance = Decimal(self.settings.wallet.max_balance)
        if Decimal(user.wallet_balance or 0) + calculate_total_amount(package_id) > max_balance:
            raise ValueError(f"Wallet balance cannot exceed {max_balance} AED")

        logger.info("Creating wallet checkout session: %s", {
            "package_id": package_id,
            "user_id": user_id,
            "amount": str(package.price),
            "currency": self.stripe_settings.currency,
        })

        try:
            session = await run_in_threadpool(
                stripe.checkout.Session.create,
                payment_method_types=["card"],
                line_items=[{
                    "price_data": {
                        "currency": self.stripe_settings.currency,
                        "product_data": {
                            "name": f"Wallet Top-up - {package.label}",
                            "description": f"Add {package.label} to your wallet balance",
                        },
                        "unit_amount": to_minor_units(package.price),
                    },
                    "quantity": 1,
                }],
                mode="payment",
                success_url=success_url,
                cancel_url=cancel_url,
                metadata={
                    "package_id": package_id,
                    "user_id": user_id,
                    "wallet_amount": str(package.amount),
                    "bonus_amount": str(package.bonus),
                    "type": WALLET_TOPUP,
                },
                client_reference_id=user_id,
                **options
            )
        except stripe.StripeError as e:
            logger.error("Stripe error creating checkout session: %s", e)
            raise ValueError(f"Stripe error: {e}")

        logger.info("Checkout session created: %s", session.id)
        return {"session_id": session.id, "url": session.url}

    # ====================
    # Webhooks
    # ====================

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify the Stripe-Signature header and parse the event

        Raises:
            PaymentConfigurationError: Webhook secret not configured
            InvalidWebhookError: Missing or invalid signature, malformed payload
        """
        secret = self.stripe_settings.webhook_secret
        if not secret or not secret.get_secret_value():
            raise PaymentConfigurationError("Webhook secret not configured")

        if not signature:
            raise InvalidWebhookError("Missing stripe signature")

        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8") if isinstance(payload, bytes) else payload,
                signature,
                secret.get_secret_value(),
                stripe.Webhook.DEFAULT_TOLERANCE,
            )
        except stripe.SignatureVerificationError as e:
            logger.error("Webhook signature verification failed: %s", e)
            raise InvalidWebhookError("Invalid signature")

        try:
            event = json.loads(payload)
        except ValueError as e:
            raise InvalidWebhookError(f"Invalid payload: {e}")

        if not isinstance(event, dict) or "type" not in event:
            raise InvalidWebhookError("Invalid payload: not a Stripe event")

        logger.info("Webhook signature verified: %s", event["type"])
        return event

    async def handle_event(
        self,
        event: Dict[str, Any],
        db: AsyncSession,
        wallet_only: bool = False
    ) -> Dict[str, Any]:
        """
        Dispatch a verified event

        Args:
            event: Parsed Stripe event
            db: Database session
            wallet_only: Ignore checkouts that are not wallet top-ups

        Returns:
            Response body for Stripe
        """
        if event.get("type") != CHECKOUT_COMPLETED:
            logger.info("Unhandled webhook event: %s", event.get("type"))
            return {"received": True}

        session = event.get("data", {}).get("object", {})
        metadata = session.get("metadata") or {}

        if wallet_only and metadata.get("type") != WALLET_TOPUP:
            logger.info("Checkout %s is not a wallet top-up, skipping", session.get("id"))
            return {"received": True}

        return await self.process_checkout_session(session, db)

    async def process_checkout_session(self, session: Dict[str, Any], db: AsyncSession) -> Dict[str, Any]:
        """Credit a completed checkout session, once"""
        metadata = session.get("metadata") or {}
        if metadata.get("type") == WALLET_TOPUP:
            return await self.handle_wallet_top_up(session, db)
        return await self.handle_payment_link(session, db)

    async def handle_wallet_top_up(self, session: Dict[str, Any], db: AsyncSession) -> Dict[str, Any]:
        """
        Credit a wallet package bought through create_wallet_checkout

        Raises:
            ValueError: Missing user or package in the session
            InvalidPackageError: Unknown package
            UserNotFoundError: Unknown user
        """
        session_id = session.get("id")
        metadata = session.get("metadata") or {}

        logger.info("Processing wallet top-up: %s", sanitize_for_logging({
            "session_id": session_id,
            "payment_status": session.get("payment_status"),
            "metadata": metadata,
        }))

        if session.get("payment_status") != "paid":
            logger.info("Payment not completed, skipping: %s", session_id)
            return {"received": True, "status": "skipped"}

        user_id = session.get("client_reference_id") or metadata.get("user_id")
        package_id = metadata.get("package_id")
        if not user_id or not package_id:
            raise ValueError("Missing user ID or package ID in session")

        try:
            user, transaction = await LedgerService.credit_top_up(user_id, package_id, session_id, db)
        except DuplicatePaymentError:
            return {"received": True, "status": "already_processed"}

        logger.info("Wallet top-up processed: %s", {
            "user_id": user.id,
            "session_id": session_id,
            "amount_added": str(transaction.amount),
            "new_balance": str(user.wallet_balance),
        })

        return {
            "received": True,
            "status": "processed",
            "amount_added": str(transaction.amount),
            "new_balance": str(user.wallet_balance),
        }

    async def handle_payment_link(self, session: Dict[str, Any], db: AsyncSession) -> Dict[str, Any]:
        """
        Grant legacy credits for a Payment Link checkout

        Credits come from metadata.credits when present, otherwise from the
        amount tiers.

        Raises:
            ValueError: Credits cannot be determined
            UserNotFoundError: No user for the reference id or customer email
        """
        started = datetime.now(timezone.utc)
        session_id = session.get("id")
        metadata = session.get("metadata") or {}
        customer_email = (session.get("customer_details") or {}).get("email")

        if session.get("payment_status") != "paid" or session.get("status") != "complete":
            logger.info("Payment not complete yet, skipping: %s", {
                "payment_status": session.get("payment_status"),
                "status": session.get("status"),
            })
            return {"received": True, "status": "skipped"}

        amount_total = session.get("amount_total") or 0
        amount = from_minor_units(amount_total)
        credits = credits_for_amount(amount_total)

        try:
            metadata_credits = int(metadata.get("credits") or 0)
        except (TypeError, ValueError):
            metadata_credits = 0
        if metadata_credits > 0:
            credits = metadata_credits

        logger.info("Credit calculation: %s", {
            "amount_total": amount_total,
            "amount": str(amount),
            "credits": credits,
            "metadata_credits": metadata.get("credits"),
        })

        if not credits:
            raise ValueError(f"Could not determine credits for amount: {amount} AED")

        user = await LedgerService.find_user(
            db,
            user_id=session.get("client_reference_id"),
            email=customer_email,
        )
        old_credits = user.credits or 0

        try:
            user, _ = await LedgerService.add_credits(
                user.id,
                credits,
                TransactionDescriptions.credit_purchase(credits, amount),
                db,
                stripe_session_id=session_id,
            )
        except DuplicatePaymentError:
            return {"received": True, "status": "already_processed"}

        processing_ms = int((datetime.now(timezone.utc) - started).total_seconds() * 1000)
        logger.info("Credits updated: %s", {
            "user_id": user.id,
            "old_credits": old_credits,
            "new_credits": user.credits,
            "session_id": session_id,
            "processing_ms": processing_ms,
        })

        return {
            "success": True,
            "credits_added": credits,
            "new_total": user.credits,
            "processing_time_ms": processing_ms,
        }

    # ====================
    # Client-side verification
    # ====================

    async def verify_payment(
        self,
        session_id: str,
        package_id: str,
        db: AsyncSession,
        expected_user_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Credit a wallet top-up after the success redirect

        Runs alongside the webhook; whichever arrives first credits the wallet.

        Raises:
            PaymentConfigurationError: Stripe not configured
            ValueError: Stripe error, missing user, or package mismatch
            PaymentOwnershipError: Session paid by another user than expected_user_id
            PaymentNotCompletedError: Session not paid
            InvalidPackageError: Unknown package
            DuplicatePaymentError: Already credited
            UserNotFoundError: Unknown user
        """
        logger.info("Verifying wallet payment: %s", {"session_id": session_id, "package_id": package_id})

        session = await self.retrieve_session(session_id)

        if session.get("payment_status") != "paid":
            raise PaymentNotCompletedError(session_id, session.get("payment_status"))

        metadata = session.get("metadata") or {}
        user_id = session.get("client_reference_id") or metadata.get("user_id")
        if not user_id:
            raise ValueError("User ID not found in session")
        if expected_user_id and user_id != expected_user_id:
            raise PaymentOwnershipError(session_id)

        package = get_wallet_package(package_id)
        if package is None:
            raise InvalidPackageError(package_id)

        if metadata.get("type") != WALLET_TOPUP:
            raise ValueError("Checkout session is not a wallet top-up")
        if metadata.get("package_id") != package_id:
            raise ValueError("Package does not match the paid checkout session")

        user, transaction = await LedgerService.credit_top_up(user_id, package_id, session_id, db)

        logger.info("Wallet payment verified: %s", {
            "user_id": user_id,
            "session_id": session_id,
            "amount_added": str(transaction.amount),
            "new_balance": str(user.wallet_balance),
        })

        return {
            "success": True,
            "amount": transaction.amount,
            "new_balance": user.wallet_balance,
            "transaction": {
                "amount": transaction.amount,
                "type": transaction.type,
                "description": top_up_description(package),
            },
        }

    # ====================
    # Reconciliation
    # ====================

    async def reconcile_recent_sessions(
        self,
        db: AsyncSession,
        lookback_hours: Optional[int] = None,
        session_ids: Optional[Iterable[str]] = None
    ) -> Dict[str, int]:
        """
        Credit paid checkout sessions the webhook never delivered

        Args:
            db: Database session
            lookback_hours: Scan window (defaults to settings)
            session_ids: Explicit sessions to check instead of scanning

        Returns:
            Counters: checked, credited, skipped, failed
        """
        if session_ids:
            sessions = [await self.retrieve_session(session_id) for session_id in session_ids]
        else:
            hours = lookback_hours or self.settings.wallet.reconcile_lookback_hours
            since = datetime.now(timezone.utc) - timedelta(hours=hours)
            sessions = await self.list_recent_sessions(since)

        summary = {"checked": 0, "credited": 0, "skipped": 0, "failed": 0}

        for session in sessions:
            summary["checked"] += 1
            session_id = session.get("id")

            try:
                if await LedgerService.get_transaction_by_session(session_id, db):
                    summary["skipped"] += 1
                    continue
                result = await self.process_checkout_session(session, db)
            except (WalletError, ValueError) as e:
                logger.error("Reconciliation failed for %s: %s", session_id, e)
                summary["failed"] += 1
                continue
            except SQLAlchemyError:
                await db.rollback()
                logger.exception("Database error reconciling %s", session_id)
                summary["failed"] += 1
                continue

            if result.get("status") in ("skipped", "already_processed"):
                summary["skipped"] += 1
            else:
                summary["credited"] += 1
                logger.info("Recovered payment %s", session_id)

        logger.info("Reconciliation finished: %s", summary)
        return summary
