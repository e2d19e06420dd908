"""Portfolio-level aggregation over the ledger, journal and live prices."""

import logging
from decimal import Decimal

from portfolio_manager.capital_journal import summarize
from portfolio_manager.coinmarketcap_client import PriceSource
from portfolio_manager.domain.errors import NotFoundError
from portfolio_manager.domain.models import (
    CASH_ASSET,
    AssetDetail,
    Holding,
    HoldingDetail,
    PortfolioOverview,
    PriceData,
)
from portfolio_manager.infrastructure.repositories import Repository
from portfolio_manager.ledger import HoldingsLedger
from portfolio_manager.utils import normalize_symbol

HUNDRED = Decimal("100")
ZERO = Decimal("0")


def percent_of(part: Decimal, whole: Decimal) -> Decimal:
    """part / whole * 100, or zero when whole is zero."""
    if whole == 0:
        return ZERO
    return part / whole * HUNDRED


class PortfolioAggregator:
    """Read-side portfolio totals. Never mutates storage."""

    def __init__(
        self,
        repository: Repository,
        price_source: PriceSource,
        logger: logging.Logger,
    ):
        self._repo = repository
        self._prices = price_source
        self._logger = logger

    def list_holdings(self) -> list[Holding]:
        with self._repo.session() as session:
            return HoldingsLedger(session).list_holdings()

    def overview(self) -> PortfolioOverview:
        """
        Value every non-cash holding at the current price and total it.

        Percentages are taken against the capital base (deposits minus
        withdrawals). The reported total capital adds realized losses back,
        showing gross capital deployed before the loss write-down.
        """
        with self._repo.session() as session:
            totals = summarize(session)
            holdings = HoldingsLedger(session).list_holdings()

        capital_base = totals.capital_base
        available_usdt = ZERO
        assets: list[Holding] = []
        for holding in holdings:
            if holding.asset == CASH_ASSET:
                available_usdt = holding.quantity
            else:
                assets.append(holding)

        prices = self._prices.quotes([h.asset for h in assets])

        details = [
            self._detail(h, prices[h.asset].price, capital_base) for h in assets
        ]
        total_invested = sum((d.total_cost for d in details), ZERO)
        current_value = sum((d.current_value for d in details), ZERO)
        unrealized_pnl = current_value - total_invested
        total_pnl = unrealized_pnl - totals.realized_loss

        self._logger.debug(
            f"Overview: invested={total_invested} value={current_value} "
            f"pnl={total_pnl} over {len(details)} holdings"
        )

        return PortfolioOverview(
            total_capital=capital_base + totals.realized_loss,
            available_usdt=available_usdt,
            total_invested=total_invested,
            current_value=current_value,
            unrealized_pnl=unrealized_pnl,
            realized_loss=totals.realized_loss,
            total_pnl=total_pnl,
            total_pnl_percent=percent_of(total_pnl, capital_base),
            holdings=details,
        )

    def asset_detail(self, symbol: str) -> AssetDetail:
        """
        Value one holding and list its orders.

        Percent of capital here is taken against the signed sum of every
        journal entry, realized losses included.
        """
        asset = normalize_symbol(symbol)
        with self._repo.session() as session:
            holding = HoldingsLedger(session).get_holding(asset)
            if holding is None:
                raise NotFoundError("No holdings for this asset")
            totals = summarize(session)
            orders = session.list_orders(asset)

        quote: PriceData = self._prices.quote(asset)
        detail = self._detail(holding, quote.price, totals.net)

        return AssetDetail(
            asset=asset,
            quantity=detail.quantity,
            average_cost=detail.average_cost,
            current_price=detail.current_price,
            total_cost=detail.total_cost,
            current_value=detail.current_value,
            pnl=detail.pnl,
            pnl_percent=detail.pnl_percent,
            percent_of_capital=detail.percent_of_capital,
            change_24h=quote.change_24h,
            percent_change_24h=quote.percent_change_24h,
            orders=orders,
        )

    def _detail(
        self, holding: Holding, current_price: Decimal, capital: Decimal
    ) -> HoldingDetail:
        current_value = holding.quantity * current_price
        pnl = current_value - holding.total_cost
        return HoldingDetail(
            asset=holding.asset,
            quantity=holding.quantity,
            average_cost=holding.average_cost,
            current_price=current_price,
            total_cost=holding.total_cost,
            current_value=current_value,
            pnl=pnl,
            pnl_percent=percent_of(pnl, holding.total_cost),
            percent_of_capital=percent_of(holding.total_cost, capital),
        )


def reset_portfolio(repository: Repository, logger: logging.Logger) -> None:
    """Clear capitals, orders and asset holdings, zeroing the cash holding."""
    with repository.transaction() as session:
        session.delete_all_orders()
        session.delete_all_capitals()
        HoldingsLedger(session).reset()
    logger.info("All portfolio data has been reset")
