"""Tests for portfolio aggregation, asset detail and reset."""

from decimal import Decimal

import pytest

from conftest import cash, holding
from portfolio_manager.coinmarketcap_client import CoinMarketCapAPIError
from portfolio_manager.domain.errors import InsufficientBalanceError, NotFoundError
from portfolio_manager.domain.models import CASH_ASSET, CapitalKind, OrderSide
from portfolio_manager.order_engine import OrderRequest
from portfolio_manager.portfolio import percent_of, reset_portfolio


def buy(engine, asset, quantity, price):
    return engine.execute(
        OrderRequest(
            asset=asset,
            side=OrderSide.BUY,
            quantity=Decimal(quantity),
            price=Decimal(price),
        )
    )


class TestOverview:
    def test_empty_portfolio(self, aggregator):
        """No capital means every percentage is zero."""
        overview = aggregator.overview()

        assert overview.total_capital == 0
        assert overview.available_usdt == 0
        assert overview.total_pnl_percent == 0
        assert overview.holdings == []

    def test_rejected_buy_leaves_totals(self, aggregator, journal, engine):
        """A buy beyond the cash balance leaves nothing invested."""
        journal.deposit(Decimal("1000"), CapitalKind.INITIAL)

        with pytest.raises(InsufficientBalanceError):
            buy(engine, "BTC", "1", "50000")

        overview = aggregator.overview()
        assert overview.available_usdt == Decimal("1000")
        assert overview.total_invested == 0
        assert overview.holdings == []

    def test_values_holdings_at_live_price(self, aggregator, journal, engine, quote_table):
        journal.deposit(Decimal("10000"), CapitalKind.INITIAL)
        buy(engine, "BTC", "0.1", "50000")
        quote_table["BTC"] = Decimal("60000")

        overview = aggregator.overview()

        assert overview.available_usdt == Decimal("5000")
        assert overview.total_invested == Decimal("5000")
        assert overview.current_value == Decimal("6000")
        assert overview.unrealized_pnl == Decimal("1000")
        assert overview.total_pnl == Decimal("1000")
        assert overview.total_pnl_percent == Decimal("10")

        [btc] = overview.holdings
        assert btc.asset == "BTC"
        assert btc.current_price == Decimal("60000")
        assert btc.pnl == Decimal("1000")
        assert btc.pnl_percent == Decimal("20")
        assert btc.percent_of_capital == Decimal("50")

    def test_realized_loss_and_withdrawals(self, aggregator, journal, engine):
        """Losses reduce total PnL and are added back to reported capital."""
        journal.deposit(Decimal("10000"), CapitalKind.INITIAL)
        journal.withdraw(Decimal("2000"))
        journal.record_realized_loss(Decimal("400"))
        buy(engine, "ETH", "2", "2000")

        overview = aggregator.overview()

        assert overview.realized_loss == Decimal("400")
        assert overview.total_capital == Decimal("8400")
        assert overview.unrealized_pnl == 0
        assert overview.total_pnl == Decimal("-400")
        assert overview.total_pnl_percent == Decimal("-5")
        assert overview.holdings[0].percent_of_capital == Decimal("50")

    def test_provider_failure_falls_back_to_mock(self, aggregator, journal, engine, market_client):
        """Aggregation never fails on a price error."""
        journal.deposit(Decimal("1000"))
        buy(engine, "DOGE", "1000", "0.5")
        market_client.get_quotes.side_effect = CoinMarketCapAPIError(500, None, "down")

        overview = aggregator.overview()

        [doge] = overview.holdings
        assert doge.current_price == Decimal("1")
        assert overview.current_value == Decimal("1000")

    def test_excludes_empty_and_cash_holdings(self, aggregator, journal, engine):
        journal.deposit(Decimal("1000"))
        buy(engine, "ETH", "0.1", "2000")
        engine.execute(
            OrderRequest(
                asset="ETH",
                side=OrderSide.SELL,
                quantity=Decimal("0.1"),
                price=Decimal("2000"),
            )
        )

        overview = aggregator.overview()

        assert overview.holdings == []
        assert overview.available_usdt == Decimal("1000")

    def test_list_holdings_includes_cash(self, aggregator, journal, engine):
        journal.deposit(Decimal("1000"))
        buy(engine, "BTC", "0.01", "50000")

        assert [h.asset for h in aggregator.list_holdings()] == ["BTC", CASH_ASSET]


class TestAssetDetail:
    def test_unknown_asset(self, aggregator):
        with pytest.raises(NotFoundError):
            aggregator.asset_detail("BTC")

    def test_detail_with_orders(self, aggregator, journal, engine):
        """Percent of capital uses the signed sum of all journal entries."""
        journal.deposit(Decimal("10000"))
        journal.record_realized_loss(Decimal("2000"))
        buy(engine, "eth", "1", "1600")
        buy(engine, "ETH", "1", "2400")

        detail = aggregator.asset_detail("eth")

        assert detail.asset == "ETH"
        assert detail.quantity == Decimal("2")
        assert detail.average_cost == Decimal("2000")
        assert detail.current_price == Decimal("2000")
        assert detail.pnl == 0
        assert detail.percent_of_capital == Decimal("50")
        assert detail.percent_change_24h == Decimal("2")
        assert detail.change_24h == Decimal("40")
        assert len(detail.orders) == 2


class TestReset:
    def test_reset_clears_everything(self, repository, journal, engine, logger):
        journal.deposit(Decimal("5000"))
        journal.record_realized_loss(Decimal("10"))
        buy(engine, "BTC", "0.05", "50000")

        reset_portfolio(repository, logger)

        assert journal.list_entries() == []
        assert engine.list_orders() == []
        assert holding(repository, "BTC") is None
        usdt = holding(repository, CASH_ASSET)
        assert usdt is not None
        assert cash(repository) == 0
        assert usdt.total_cost == 0


def test_percent_of_zero_base():
    assert percent_of(Decimal("5"), Decimal("0")) == 0
    assert percent_of(Decimal("5"), Decimal("20")) == Decimal("25")
