"""Watchlist of symbols followed without being held."""

import logging
from datetime import UTC, datetime

from portfolio_manager.coinmarketcap_client import PriceSource
from portfolio_manager.domain.errors import ValidationError
from portfolio_manager.domain.models import (
    WATCHLIST_NAME_MAX_LENGTH,
    WATCHLIST_SYMBOL_MAX_LENGTH,
    PriceData,
    WatchlistItem,
)
from portfolio_manager.infrastructure.repositories import Repository
from portfolio_manager.utils import normalize_symbol


class Watchlist:
    def __init__(
        self,
        repository: Repository,
        price_source: PriceSource,
        logger: logging.Logger,
    ):
        self._repo = repository
        self._prices = price_source
        self._logger = logger

    def items(self) -> list[WatchlistItem]:
        with self._repo.session() as session:
            return session.list_watchlist()

    def add(self, symbol: str, name: str = "") -> WatchlistItem:
        """Add a symbol, or rename it if already watched."""
        symbol = normalize_symbol(symbol)
        if not symbol:
            raise ValidationError("Symbol is required")
        if len(symbol) > WATCHLIST_SYMBOL_MAX_LENGTH:
            raise ValidationError(
                f"Symbol must be at most {WATCHLIST_SYMBOL_MAX_LENGTH} characters"
            )
        if len(name) > WATCHLIST_NAME_MAX_LENGTH:
            raise ValidationError(
                f"Name must be at most {WATCHLIST_NAME_MAX_LENGTH} characters"
            )

        item = WatchlistItem(symbol=symbol, name=name, added_at=datetime.now(UTC))
        with self._repo.transaction() as session:
            session.upsert_watchlist(item)
        self._logger.info(f"Added {symbol} to watchlist")
        return item

    def remove(self, symbol: str) -> None:
        symbol = normalize_symbol(symbol)
        with self._repo.transaction() as session:
            session.delete_watchlist(symbol)
        self._logger.info(f"Removed {symbol} from watchlist")

    def prices(self) -> list[PriceData]:
        symbols = [item.symbol for item in self.items()]
        return list(self._prices.quotes(symbols).values())
