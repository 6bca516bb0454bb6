"""
Tests for StripePaymentService
Stripe API calls are mocked; webhook signatures are real HMACs
"""
import json
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import stripe
from sqlalchemy.exc import OperationalError

from conftest import TEST_WEBHOOK_SECRET, sign_stripe_payload
from core.exceptions import (
    DuplicatePaymentError,
    InvalidPackageError,
    InvalidWebhookError,
    PaymentConfigurationError,
    PaymentNotCompletedError,
    PaymentOwnershipError,
    UserNotFoundError,
)
from services.ledger import LedgerService
from services.payments import StripePaymentService
from settings import Settings, StripeSettings


@pytest.fixture
def service(test_settings):
    return StripePaymentService(test_settings)


def completed_event(session):
    return {"type": "checkout.session.completed", "data": {"object": session}}


class TestConstructEvent:

    def test_valid_signature(self, service):
        payload = json.dumps({"id": "evt_1", "type": "checkout.session.completed", "data": {"object": {}}})

        event = service.construct_event(payload.encode(), sign_stripe_payload(payload))

        assert event["id"] == "evt_1"
        assert event["type"] == "checkout.session.completed"

    def test_invalid_signature(self, service):
        payload = json.dumps({"id": "evt_1", "type": "checkout.session.completed"})
        header = sign_stripe_payload(payload, secret="whsec_other")

        with pytest.raises(InvalidWebhookError, match="Invalid signature"):
            service.construct_event(payload.encode(), header)

    def test_tampered_payload(self, service):
        payload = json.dumps({"id": "evt_1", "type": "checkout.session.completed"})
        header = sign_stripe_payload(payload)

        with pytest.raises(InvalidWebhookError):
            service.construct_event(payload.replace("evt_1", "evt_2").encode(), header)

    def test_missing_signature(self, service):
        with pytest.raises(InvalidWebhookError, match="Missing stripe signature"):
            service.construct_event(b"{}", None)

    def test_missing_secret(self):
        service = StripePaymentService(Settings(stripe=StripeSettings(secret_key="sk_test_1", webhook_secret=None)))
        with pytest.raises(PaymentConfigurationError):
            service.construct_event(b"{}", "t=1,v1=abc")

    def test_signed_non_event(self, service):
        payload = json.dumps({"hello": "world"})
        with pytest.raises(InvalidWebhookError):
            service.construct_event(payload.encode(), sign_stripe_payload(payload))


class TestWalletTopUpEvents:

    @pytest.mark.asyncio
    async def test_credits_wallet(self, service, test_db, make_user, wallet_session_factory):
        await make_user()

        result = await service.handle_event(completed_event(wallet_session_factory()), test_db)

        assert result["status"] == "processed"
        balance = await LedgerService.get_balance("user-1", test_db)
        assert balance["wallet_balance"] == Decimal("25.00")

    @pytest.mark.asyncio
    async def test_redelivery_is_acknowledged(self, service, test_db, make_user, wallet_session_factory):
        await make_user()
        event = completed_event(wallet_session_factory())

        await service.handle_event(event, test_db)
        result = await service.handle_event(event, test_db)

        assert result == {"received": True, "status": "already_processed"}
        balance = await LedgerService.get_balance("user-1", test_db)
        assert balance["wallet_balance"] == Decimal("25.00")

    @pytest.mark.asyncio
    async def test_unpaid_session_is_skipped(self, service, test_db, make_user, wallet_session_factory):
        await make_user()

        result = await service.handle_event(
            completed_event(wallet_session_factory(payment_status="unpaid")), test_db
        )

        assert result["status"] == "skipped"
        assert (await LedgerService.get_balance("user-1", test_db))["wallet_balance"] == Decimal("0")

    @pytest.mark.asyncio
    async def test_user_from_metadata(self, service, test_db, make_user, wallet_session_factory):
        await make_user()
        session = wallet_session_factory()
        session["client_reference_id"] = None

        await service.handle_event(completed_event(session), test_db)

        assert (await LedgerService.get_balance("user-1", test_db))["wallet_balance"] == Decimal("25.00")

    @pytest.mark.asyncio
    async def test_missing_package(self, service, test_db, make_user, wallet_session_factory):
        await make_user()
        session = wallet_session_factory()
        del session["metadata"]["package_id"]

        with pytest.raises(ValueError):
            await service.handle_event(completed_event(session), test_db)

    @pytest.mark.asyncio
    async def test_other_events_are_ignored(self, service, test_db):
        result = await service.handle_event({"type": "payment_intent.created", "data": {"object": {}}}, test_db)
        assert result == {"received": True}


class TestPaymentLinkEvents:

    @pytest.mark.asyncio
    async def test_credits_by_amount_tier(self, service, test_db, make_user, payment_link_session_factory):
        await make_user(credits=3)

        result = await service.handle_event(
            completed_event(payment_link_session_factory(amount_total=9999, client_reference_id="user-1")),
            test_db
        )

        assert result["credits_added"] == 100
        assert result["new_total"] == 103
        transaction = await LedgerService.get_transaction_by_session("cs_test_link_1", test_db)
        assert transaction.credits == 100
        assert transaction.amount == Decimal("0")
        assert transaction.description == "Credit purchase: 100 credits (99.99 AED)"

    @pytest.mark.asyncio
    async def test_metadata_credits_override_tiers(self, service, test_db, make_user, payment_link_session_factory):
        await make_user()

        result = await service.handle_event(
            completed_event(payment_link_session_factory(amount_total=999, metadata={"credits": "42"})),
            test_db
        )

        assert result["credits_added"] == 42

    @pytest.mark.asyncio
    async def test_user_found_by_customer_email(self, service, test_db, make_user, payment_link_session_factory):
        await make_user(user_id="user-7", email="buyer@example.com")

        result = await service.handle_event(
            completed_event(payment_link_session_factory(amount_total=4999, email="Buyer@Example.com")),
            test_db
        )

        assert result["credits_added"] == 50
        assert (await LedgerService.get_user("user-7", test_db)).credits == 50

    @pytest.mark.asyncio
    async def test_unknown_user(self, service, test_db, payment_link_session_factory):
        with pytest.raises(UserNotFoundError):
            await service.handle_event(
                completed_event(payment_link_session_factory(email="nobody@example.com")), test_db
            )

    @pytest.mark.asyncio
    async def test_amount_below_tiers(self, service, test_db, make_user, payment_link_session_factory):
        await make_user()
        with pytest.raises(ValueError, match="Could not determine credits"):
            await service.handle_event(
                completed_event(payment_link_session_factory(amount_total=500)), test_db
            )

    @pytest.mark.asyncio
    async def test_incomplete_session_is_skipped(self, service, test_db, make_user, payment_link_session_factory):
        await make_user()
        session = payment_link_session_factory()
        session["status"] = "open"

        result = await service.handle_event(completed_event(session), test_db)

        assert result["status"] == "skipped"

    @pytest.mark.asyncio
    async def test_redelivery_grants_once(self, service, test_db, make_user, payment_link_session_factory):
        await make_user()
        event = completed_event(payment_link_session_factory(amount_total=999))

        await service.handle_event(event, test_db)
        result = await service.handle_event(event, test_db)

        assert result["status"] == "already_processed"
        assert (await LedgerService.get_user("user-1", test_db)).credits == 10

    @pytest.mark.asyncio
    async def test_wallet_only_ignores_payment_links(self, service, test_db, make_user, payment_link_session_factory):
        await make_user()

        result = await service.handle_event(
            completed_event(payment_link_session_factory()), test_db, wallet_only=True
        )

        assert result == {"received": True}
        assert (await LedgerService.get_user("user-1", test_db)).credits == 0


class TestVerifyPayment:

    @pytest.mark.asyncio
    async def test_verify_credits_wallet(self, service, test_db, make_user, wallet_session_factory):
        await make_user()

        with patch("stripe.checkout.Session.retrieve", return_value=wallet_session_factory()) as retrieve:
            result = await service.verify_payment("cs_test_wallet_1", "wallet_25", test_db)

        retrieve.assert_called_once()
        assert retrieve.call_args.args[0] == "cs_test_wallet_1"
        assert retrieve.call_args.kwargs["api_key"] == "sk_test_123"
        assert result["amount"] == Decimal("25.00")
        assert result["new_balance"] == Decimal("25.00")
        assert result["transaction"]["description"] == "Wallet top-up: 25 AED"

    @pytest.mark.asyncio
    async def test_verify_after_webhook(self, service, test_db, make_user, wallet_session_factory):
        await make_user()
        session = wallet_session_factory()
        await service.handle_event(completed_event(session), test_db)

        with patch("stripe.checkout.Session.retrieve", return_value=session):
            with pytest.raises(DuplicatePaymentError, match="Payment already processed"):
                await service.verify_payment("cs_test_wallet_1", "wallet_25", test_db)

        assert (await LedgerService.get_balance("user-1", test_db))["wallet_balance"] == Decimal("25.00")

    @pytest.mark.asyncio
    async def test_unpaid(self, service, test_db, make_user, wallet_session_factory):
        await make_user()
        with patch("stripe.checkout.Session.retrieve", return_value=wallet_session_factory(payment_status="unpaid")):
            with pytest.raises(PaymentNotCompletedError):
                await service.verify_payment("cs_test_wallet_1", "wallet_25", test_db)

    @pytest.mark.asyncio
    async def test_package_mismatch(self, service, test_db, make_user, wallet_session_factory):
        await make_user()
        with patch("stripe.checkout.Session.retrieve", return_value=wallet_session_factory(package_id="wallet_10")):
            with pytest.raises(ValueError, match="Package does not match"):
                await service.verify_payment("cs_test_wallet_1", "wallet_100", test_db)

    @pytest.mark.asyncio
    async def test_payment_link_session_is_not_a_top_up(
        self, service, test_db, make_user, payment_link_session_factory
    ):
        await make_user()
        session = payment_link_session_factory(amount_total=999, client_reference_id="user-1")

        with patch("stripe.checkout.Session.retrieve", return_value=session):
            with pytest.raises(ValueError, match="not a wallet top-up"):
                await service.verify_payment("cs_test_link_1", "wallet_100", test_db, expected_user_id="user-1")

        assert (await LedgerService.get_balance("user-1", test_db))["wallet_balance"] == Decimal("0.00")
        assert await LedgerService.get_transaction_by_session("cs_test_link_1", test_db) is None

    @pytest.mark.asyncio
    async def test_invalid_package(self, service, test_db, make_user, wallet_session_factory):
        await make_user()
        with patch("stripe.checkout.Session.retrieve", return_value=wallet_session_factory()):
            with pytest.raises(InvalidPackageError):
                await service.verify_payment("cs_test_wallet_1", "wallet_3", test_db)

    @pytest.mark.asyncio
    async def test_other_users_session(self, service, test_db, make_user, wallet_session_factory):
        await make_user()
        with patch("stripe.checkout.Session.retrieve", return_value=wallet_session_factory()):
            with pytest.raises(PaymentOwnershipError):
                await service.verify_payment("cs_test_wallet_1", "wallet_25", test_db, expected_user_id="user-2")

    @pytest.mark.asyncio
    async def test_stripe_error(self, service, test_db):
        error = stripe.InvalidRequestError("No such checkout.session", "id")
        with patch("stripe.checkout.Session.retrieve", side_effect=error):
            with pytest.raises(ValueError, match="Invalid session ID"):
                await service.verify_payment("cs_missing", "wallet_25", test_db)

    @pytest.mark.asyncio
    async def test_not_configured(self, test_db):
        service = StripePaymentService(Settings(stripe=StripeSettings(secret_key=None)))
        with pytest.raises(PaymentConfigurationError):
            await service.verify_payment("cs_test", "wallet_25", test_db)


class TestCreateCheckout:

    @pytest.mark.asyncio
    async def test_creates_session(self, service, test_db, make_user):
        await make_user()
        created = MagicMock(id="cs_test_new", url="https://checkout.stripe.com/c/pay/cs_test_new")

        with patch("stripe.checkout.Session.create", return_value=created) as create:
            result = await service.create_wallet_checkout(
                "user-1", "wallet_100", "https://app/success", "https://app/cancel", test_db
            )

        assert result == {"session_id": "cs_test_new", "url": "https://checkout.stripe.com/c/pay/cs_test_new"}
        kwargs = create.call_args.kwargs
        assert kwargs["mode"] == "payment"
        assert kwargs["client_reference_id"] == "user-1"
        assert kwargs["line_items"][0]["price_data"]["currency"] == "aed"
        assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 10000
        assert kwargs["metadata"] == {
            "package_id": "wallet_100",
            "user_id": "user-1",
            "wallet_amount": "100",
            "bonus_amount": "10",
            "type": "wallet_topup",
        }

    @pytest.mark.asyncio
    async def test_unknown_package(self, service, test_db, make_user):
        await make_user()
        with pytest.raises(InvalidPackageError):
            await service.create_wallet_checkout("user-1", "wallet_1", "s", "c", test_db)

    @pytest.mark.asyncio
    async def test_unknown_user(self, service, test_db):
        with patch("stripe.checkout.Session.create") as create:
            with pytest.raises(UserNotFoundError):
                await service.create_wallet_checkout("missing", "wallet_10", "s", "c", test_db)
        create.assert_not_called()

    @pytest.mark.asyncio
    async def test_max_balance(self, service, test_db, make_user):
        await make_user(wallet_balance="950.00")
        with patch("stripe.checkout.Session.create") as create:
            with pytest.raises(ValueError, match="cannot exceed 1000"):
                await service.create_wallet_checkout("user-1", "wallet_100", "s", "c", test_db)
        create.assert_not_called()


class TestReconcile:

    @pytest.mark.asyncio
    async def test_recovers_missed_payments(
        self, service, test_db, make_user, wallet_session_factory, payment_link_session_factory
    ):
        await make_user()
        await LedgerService.credit_top_up("user-1", "wallet_10", "cs_already", test_db)

        sessions = [
            wallet_session_factory(session_id="cs_already", package_id="wallet_10"),
            wallet_session_factory(session_id="cs_missed", package_id="wallet_50"),
            wallet_session_factory(session_id="cs_orphan", user_id="ghost"),
            payment_link_session_factory(session_id="cs_link", amount_total=999, client_reference_id="user-1"),
        ]
        page = MagicMock()
        page.auto_paging_iter.return_value = iter(sessions)

        with patch("stripe.checkout.Session.list", return_value=page) as list_sessions:
            summary = await service.reconcile_recent_sessions(test_db, lookback_hours=2)

        assert summary == {"checked": 4, "credited": 2, "skipped": 1, "failed": 1}
        assert list_sessions.call_args.kwargs["status"] == "complete"
        balance = await LedgerService.get_balance("user-1", test_db)
        assert balance["wallet_balance"] == Decimal("60.00")
        assert balance["credits"] == 10

    @pytest.mark.asyncio
    async def test_explicit_session_ids(self, service, test_db, make_user, wallet_session_factory):
        await make_user()

        with patch("stripe.checkout.Session.retrieve", return_value=wallet_session_factory()) as retrieve:
            summary = await service.reconcile_recent_sessions(test_db, session_ids=["cs_test_wallet_1"])

        retrieve.assert_called_once()
        assert summary["credited"] == 1

    @pytest.mark.asyncio
    async def test_database_error_counts_as_failed(self, service, test_db, make_user, wallet_session_factory):
        await make_user()
        sessions = [
            wallet_session_factory(session_id="cs_broken"),
            wallet_session_factory(session_id="cs_next"),
        ]
        page = MagicMock()
        page.auto_paging_iter.return_value = iter(sessions)
        outcomes = [
            OperationalError("INSERT INTO wallet_transactions", {}, Exception("database is locked")),
            {"received": True, "status": "processed"},
        ]

        with patch("stripe.checkout.Session.list", return_value=page), \
                patch.object(StripePaymentService, "process_checkout_session", side_effect=outcomes) as process:
            summary = await service.reconcile_recent_sessions(test_db, lookback_hours=2)

        assert summary == {"checked": 2, "credited": 1, "skipped": 0, "failed": 1}
        assert process.call_count == 2
        assert (await LedgerService.get_balance("user-1", test_db))["wallet_balance"] == Decimal("0.00")
