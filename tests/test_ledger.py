"""Tests for the holdings ledger delta rules."""

from decimal import Decimal

import pytest

from conftest import holding
from portfolio_manager.domain.errors import InsufficientBalanceError
from portfolio_manager.domain.models import CASH_ASSET
from portfolio_manager.ledger import HoldingsLedger


def apply(repository, asset, quantity, cost):
    with repository.transaction() as session:
        return HoldingsLedger(session).apply_delta(asset, Decimal(quantity), Decimal(cost))


class TestApplyDelta:
    """Quantity, total cost and average cost updates."""

    def test_creates_missing_holding(self, repository):
        """A delta on an unknown asset creates its row."""
        apply(repository, "BTC", "2", "100000")

        btc = holding(repository, "BTC")
        assert btc.quantity == Decimal("2")
        assert btc.total_cost == Decimal("100000")
        assert btc.average_cost == Decimal("50000")

    def test_average_cost_blends_lots(self, repository):
        """Average cost is total cost over quantity after each delta."""
        apply(repository, "ETH", "2", "3000")
        apply(repository, "ETH", "1", "4500")

        eth = holding(repository, "ETH")
        assert eth.quantity == Decimal("3")
        assert eth.average_cost == Decimal("2500")

    def test_zero_quantity_keeps_average_cost(self, repository):
        """Emptying a holding leaves its last average cost in place."""
        apply(repository, "SOL", "4", "800")
        apply(repository, "SOL", "-4", "-800")

        sol = holding(repository, "SOL")
        assert sol.quantity == 0
        assert sol.total_cost == 0
        assert sol.average_cost == Decimal("200")

    def test_negative_quantity_rejected(self, repository):
        """A delta below zero raises and rolls the transaction back."""
        apply(repository, "LINK", "1", "20")

        with pytest.raises(InsufficientBalanceError):
            apply(repository, "LINK", "-2", "-40")

        assert holding(repository, "LINK").quantity == Decimal("1")

    def test_cash_average_cost_pinned(self, repository):
        """The cash holding always reports an average cost of 1."""
        apply(repository, CASH_ASSET, "500", "500")
        apply(repository, CASH_ASSET, "-500", "-500")

        usdt = holding(repository, CASH_ASSET)
        assert usdt.quantity == 0
        assert usdt.average_cost == Decimal("1")


    def test_values_kept_at_stored_scale(self, repository):
        """Deltas and the derived average cost keep 8 decimal places."""
        apply(repository, "BTC", "3", "100")
        apply(repository, "ETH", "0.123456789", "10.000000005")

        assert holding(repository, "BTC").average_cost == Decimal("33.33333333")
        eth = holding(repository, "ETH")
        assert eth.quantity == Decimal("0.12345679")
        assert eth.total_cost == Decimal("10.00000001")


class TestBalanceAndReset:
    def test_balance_of_unknown_asset_is_zero(self, repository):
        with repository.session() as session:
            assert HoldingsLedger(session).balance("DOGE") == 0

    def test_reset_keeps_cash_row(self, repository):
        """Reset drops asset rows and zeroes the cash holding."""
        apply(repository, CASH_ASSET, "1000", "1000")
        apply(repository, "BTC", "1", "900")

        with repository.transaction() as session:
            HoldingsLedger(session).reset()

        assert holding(repository, "BTC") is None
        usdt = holding(repository, CASH_ASSET)
        assert usdt.quantity == 0
        assert usdt.total_cost == 0
        assert usdt.average_cost == Decimal("1")
