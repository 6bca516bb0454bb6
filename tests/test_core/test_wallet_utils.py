"""
Tests for wallet packages and balance helpers
"""
from datetime import date, datetime
from decimal import Decimal

import pytest

from core.wallet import (
    WALLET_PACKAGES,
    TransactionDescriptions,
    calculate_daily_spending,
    calculate_total_amount,
    calculate_usage_count,
    credits_for_amount,
    format_wallet_balance,
    from_minor_units,
    get_recommended_top_up,
    get_wallet_package,
    get_wallet_status,
    group_transactions_by_date,
    has_sufficient_balance,
    to_minor_units,
    top_up_description,
    validate_wallet_balance,
)


class TestPackages:

    def test_package_catalogue(self):
        assert [p.id for p in WALLET_PACKAGES] == ["wallet_10", "wallet_25", "wallet_50", "wallet_100"]
        assert [p.id for p in WALLET_PACKAGES if p.popular] == ["wallet_25"]

    def test_get_wallet_package(self):
        package = get_wallet_package("wallet_50")
        assert package.amount == Decimal("50")
        assert package.price == Decimal("50")
        assert get_wallet_package("wallet_999") is None
        assert get_wallet_package(None) is None

    def test_total_includes_bonus(self):
        assert calculate_total_amount("wallet_100") == Decimal("110")
        assert calculate_total_amount("wallet_10") == Decimal("10")

    def test_total_for_unknown_package_is_zero(self):
        assert calculate_total_amount("nope") == Decimal("0")

    def test_top_up_description(self):
        assert top_up_description(get_wallet_package("wallet_100")) == "Wallet top-up: 100 AED (+10 AED bonus)"
        assert top_up_description(get_wallet_package("wallet_25")) == "Wallet top-up: 25 AED"


class TestBalanceHelpers:

    def test_has_sufficient_balance(self):
        assert has_sufficient_balance(10, 5)
        assert has_sufficient_balance("5.00", 5)
        assert not has_sufficient_balance(4.99, 5)

    def test_format_wallet_balance(self):
        assert format_wallet_balance(10) == "10.00 AED"
        assert format_wallet_balance("7.5") == "7.50 AED"

    @pytest.mark.parametrize("balance,expected", [
        (0, "low"),
        (4.99, "low"),
        (5, "medium"),
        (19.99, "medium"),
        (20, "high"),
    ])
    def test_wallet_status(self, balance, expected):
        assert get_wallet_status(balance)["status"] == expected

    def test_low_status_asks_for_top_up(self):
        status = get_wallet_status(1)
        assert status["color"] == "#ef4444"
        assert "Add money" in status["message"]

    def test_usage_count(self):
        assert calculate_usage_count(25, 8) == 3
        assert calculate_usage_count(1, 2) == 0

    def test_usage_count_rejects_free_agents(self):
        with pytest.raises(ValueError):
            calculate_usage_count(10, 0)

    def test_recommendation_when_balance_too_low(self):
        # 3 runs of an 8 AED agent need 24 AED
        assert get_recommended_top_up(2, 8).id == "wallet_25"
        # 3 runs of 40 AED exceed every package
        assert get_recommended_top_up(0, 40).id == "wallet_10"

    def test_recommendation_when_balance_covers_one_run(self):
        assert get_recommended_top_up(9, 5).id == "wallet_25"

    def test_no_recommendation_with_enough_balance(self):
        assert get_recommended_top_up(50, 5) is None

    def test_validate_wallet_balance(self):
        assert validate_wallet_balance(500) == {"is_valid": True, "error": None}
        assert validate_wallet_balance(-1)["error"] == "Wallet balance cannot be negative"
        assert validate_wallet_balance(1000.01)["error"] == "Wallet balance cannot exceed 1000 AED"


class TestMinorUnits:

    def test_to_minor_units(self):
        assert to_minor_units(Decimal("25")) == 2500
        assert to_minor_units("9.99") == 999

    def test_from_minor_units(self):
        assert from_minor_units(9999) == Decimal("99.99")
        assert from_minor_units(None) == Decimal("0.00")


class TestCreditTiers:

    @pytest.mark.parametrize("amount_total,credits", [
        (49999, 500),
        (9999, 100),
        (4999, 50),
        (999, 10),
        (998, 0),
        (0, 0),
        (None, 0),
    ])
    def test_credits_for_amount(self, amount_total, credits):
        assert credits_for_amount(amount_total) == credits


class TestDescriptions:

    def test_descriptions(self):
        assert TransactionDescriptions.top_up(25) == "Wallet top-up: 25.00 AED"
        assert TransactionDescriptions.agent_usage("Data Analysis Agent", 5) == "Used Data Analysis Agent (5.00 AED)"
        assert TransactionDescriptions.refund(10, "workflow failed") == "Refund: 10.00 AED - workflow failed"
        assert TransactionDescriptions.credit_purchase(100, Decimal("99.99")) == "Credit purchase: 100 credits (99.99 AED)"


class TestHistoryHelpers:

    def test_group_transactions_by_date(self):
        transactions = [
            {"id": "a", "created_at": "2026-10-19T10:00:00Z"},
            {"id": "b", "created_at": datetime(2026, 10, 19, 8, 0)},
            {"id": "c", "created_at": "2026-10-18T23:59:00+00:00"},
        ]
        groups = group_transactions_by_date(transactions)
        assert list(groups.keys()) == ["2026-10-19", "2026-10-18"]
        assert [t["id"] for t in groups["2026-10-19"]] == ["a", "b"]

    def test_daily_spending_counts_only_usage(self):
        today = date(2026, 10, 19)
        transactions = [
            {"type": "agent_usage", "amount": "-5.00", "created_at": "2026-10-19T09:00:00Z"},
            {"type": "agent_usage", "amount": "-2.00", "created_at": "2026-10-19T11:00:00Z"},
            {"type": "agent_usage", "amount": "-8.00", "created_at": "2026-10-17T11:00:00Z"},
            {"type": "top_up", "amount": "25.00", "created_at": "2026-10-19T08:00:00Z"},
            {"type": "agent_usage", "amount": "-4.00", "created_at": "2026-10-01T08:00:00Z"},
        ]
        spending = calculate_daily_spending(transactions, days=3, today=today)
        assert spending == [Decimal("8.00"), Decimal("0"), Decimal("7.00")]
