"""Tests for the watchlist."""

import pytest

from portfolio_manager.domain.errors import ValidationError


class TestAdd:
    def test_add_normalizes_symbol(self, watchlist):
        item = watchlist.add(" ada ", "Cardano")

        assert item.symbol == "ADA"
        assert [i.symbol for i in watchlist.items()] == ["ADA"]

    def test_add_existing_renames(self, watchlist):
        watchlist.add("ADA", "Cardano")
        watchlist.add("ada", "Cardano ADA")

        [item] = watchlist.items()
        assert item.name == "Cardano ADA"

    def test_rejects_blank_symbol(self, watchlist):
        with pytest.raises(ValidationError):
            watchlist.add("   ")

    def test_rejects_symbol_longer_than_column(self, watchlist):
        """Symbols that do not fit the stored column are input errors."""
        with pytest.raises(ValidationError) as exc_info:
            watchlist.add("X" * 21)

        assert exc_info.value.status_code == 400
        assert watchlist.items() == []

    def test_rejects_name_longer_than_column(self, watchlist):
        with pytest.raises(ValidationError):
            watchlist.add("ADA", "n" * 101)

        assert watchlist.items() == []

    def test_accepts_symbol_at_column_width(self, watchlist):
        assert watchlist.add("X" * 20).symbol == "X" * 20


class TestPrices:
    def test_prices_batched_for_watched_symbols(self, watchlist, market_client):
        watchlist.add("BTC")
        watchlist.add("ADA")

        prices = {p.symbol: p.price for p in watchlist.prices()}

        market_client.get_quotes.assert_called_once()
        assert set(prices) == {"BTC", "ADA"}

    def test_remove(self, watchlist):
        watchlist.add("ADA")

        watchlist.remove("ada")

        assert watchlist.items() == []
        assert watchlist.prices() == []
