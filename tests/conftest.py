"""Shared fixtures: in-memory storage and a price source over a mocked client."""

import logging
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from portfolio_manager.capital_journal import CapitalJournal
from portfolio_manager.coinmarketcap_client import (
    CoinMarketCapClient,
    PriceSource,
    build_price_data,
)
from portfolio_manager.domain.models import CASH_ASSET, Holding
from portfolio_manager.infrastructure.repositories import InMemoryRepository
from portfolio_manager.order_engine import OrderEngine
from portfolio_manager.portfolio import PortfolioAggregator
from portfolio_manager.watchlist import Watchlist

ZERO = Decimal("0")


@pytest.fixture
def logger():
    return logging.getLogger("portfolio-manager-test")


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def quote_table():
    """Live prices served by the mocked provider. Tests may edit it."""
    return {"BTC": Decimal("50000"), "ETH": Decimal("2000")}


@pytest.fixture
def market_client(quote_table):
    client = MagicMock(spec=CoinMarketCapClient)
    client.get_quotes.side_effect = lambda symbols: {
        s: build_price_data(s, quote_table[s], ZERO, Decimal("2"), ZERO, ZERO)
        for s in symbols
        if s in quote_table
    }
    return client


@pytest.fixture
def price_source(market_client, logger):
    return PriceSource(market_client, logger)


@pytest.fixture
def journal(repository, logger):
    return CapitalJournal(repository, logger)


@pytest.fixture
def engine(repository, price_source, logger):
    return OrderEngine(repository, price_source, logger)


@pytest.fixture
def aggregator(repository, price_source, logger):
    return PortfolioAggregator(repository, price_source, logger)


@pytest.fixture
def watchlist(repository, price_source, logger):
    return Watchlist(repository, price_source, logger)


def holding(repository, asset: str) -> Holding | None:
    with repository.session() as session:
        return session.get_holding(asset)


def cash(repository) -> Decimal:
    return holding(repository, CASH_ASSET).quantity


def snapshot(repository):
    """Everything a failed mutation must leave untouched."""
    with repository.session() as session:
        return (
            session.list_holdings(),
            session.list_capitals(),
            session.list_orders(),
        )
