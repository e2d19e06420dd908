"""CoinMarketCap quote client and the price source used by the portfolio."""

import logging
from decimal import Decimal
from typing import Any

import requests

from portfolio_manager.domain.errors import PriceUnavailableError
from portfolio_manager.domain.models import CoinInfo, PriceData

DEFAULT_BASE_URL = "https://pro-api.coinmarketcap.com"

# Symbols quoted by the default price board
TRACKED_SYMBOLS = ["BTC", "ETH", "SOL", "ONDO", "LINK"]

# symbol -> (price, (1h, 24h, 7d, 30d) percent changes)
MOCK_QUOTES: dict[str, tuple[str, tuple[str, str, str, str]]] = {
    "BTC": ("97000", ("0.3", "2.1", "5.2", "12.5")),
    "ETH": ("3400", ("0.5", "3.2", "8.1", "18.3")),
    "SOL": ("190", ("1.2", "5.5", "15.3", "35.2")),
    "ONDO": ("1.35", ("0.8", "4.2", "12.1", "28.5")),
    "LINK": ("23", ("0.6", "3.8", "9.5", "22.1")),
}
DEFAULT_MOCK_PRICE = "1"
DEFAULT_MOCK_CHANGES = ("0.5", "2.0", "5.0", "10.0")

MOCK_COINS: list[tuple[str, str, str, int]] = [
    ("BTC", "Bitcoin", "89000", 1),
    ("ETH", "Ethereum", "3100", 2),
    ("USDT", "Tether", "1", 3),
    ("BNB", "BNB", "600", 4),
    ("SOL", "Solana", "130", 5),
    ("XRP", "XRP", "2.2", 6),
    ("USDC", "USD Coin", "1", 7),
    ("ADA", "Cardano", "0.9", 8),
    ("AVAX", "Avalanche", "35", 9),
    ("DOGE", "Dogecoin", "0.32", 10),
    ("DOT", "Polkadot", "7", 11),
    ("TRX", "TRON", "0.25", 12),
    ("LINK", "Chainlink", "13", 13),
    ("MATIC", "Polygon", "0.5", 14),
    ("SHIB", "Shiba Inu", "0.000022", 15),
    ("LTC", "Litecoin", "100", 16),
    ("BCH", "Bitcoin Cash", "450", 17),
    ("ATOM", "Cosmos", "9", 18),
    ("UNI", "Uniswap", "12", 19),
    ("XLM", "Stellar", "0.4", 20),
    ("ONDO", "Ondo", "1.35", 50),
]


class CoinMarketCapAPIError(Exception):
    """Raised when the CoinMarketCap API returns an error."""

    def __init__(self, status_code: int, code: int | None, msg: str):
        self.status_code = status_code
        self.code = code
        self.msg = msg
        super().__init__(f"CoinMarketCap API error {status_code}: [{code}] {msg}")


def to_decimal(value: Any) -> Decimal:
    """Convert a JSON number (already Decimal, int or None) to Decimal."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def build_price_data(
    symbol: str,
    price: Decimal,
    pct_1h: Decimal,
    pct_24h: Decimal,
    pct_7d: Decimal,
    pct_30d: Decimal,
) -> PriceData:
    """Build price data, deriving absolute changes as price * percent / 100."""
    hundred = Decimal("100")
    return PriceData(
        symbol=symbol,
        price=price,
        change_1h=price * pct_1h / hundred,
        percent_change_1h=pct_1h,
        change_24h=price * pct_24h / hundred,
        percent_change_24h=pct_24h,
        change_7d=price * pct_7d / hundred,
        percent_change_7d=pct_7d,
        change_30d=price * pct_30d / hundred,
        percent_change_30d=pct_30d,
    )


def mock_price(symbol: str) -> PriceData:
    """Deterministic quote for a symbol. Unknown symbols are priced at 1."""
    price, changes = MOCK_QUOTES.get(symbol, (DEFAULT_MOCK_PRICE, DEFAULT_MOCK_CHANGES))
    return build_price_data(symbol, Decimal(price), *(Decimal(c) for c in changes))


def mock_coins(limit: int) -> list[CoinInfo]:
    return [
        CoinInfo(symbol=s, name=n, price=Decimal(p), rank=r)
        for s, n, p, r in MOCK_COINS[:limit]
    ]


def mock_top_prices(limit: int) -> list[PriceData]:
    return [
        build_price_data(
            coin.symbol, coin.price, *(Decimal(c) for c in DEFAULT_MOCK_CHANGES)
        )
        for coin in mock_coins(min(limit, 20))
    ]


def _parse_usd_quote(symbol: str, asset: dict[str, Any]) -> PriceData:
    usd = asset["quote"]["USD"]
    return build_price_data(
        symbol,
        to_decimal(usd["price"]),
        to_decimal(usd.get("percent_change_1h")),
        to_decimal(usd.get("percent_change_24h")),
        to_decimal(usd.get("percent_change_7d")),
        to_decimal(usd.get("percent_change_30d")),
    )


class CoinMarketCapClient:
    """Client for the CoinMarketCap Pro API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10,
        logger: logging.Logger | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._logger = logger
        self.session = requests.Session()
        self.session.headers.update(
            {"X-CMC_PRO_API_KEY": api_key, "Accept": "application/json"}
        )

    def _log(self, level: int, msg: str) -> None:
        """Log a message if logger is configured."""
        if self._logger:
            self._logger.log(level, msg)

    def _request(
        self, endpoint: str, params: dict[str, Any], timeout: float
    ) -> dict[str, Any]:
        """
        Make a GET request and decode the JSON body.

        Floats are decoded straight into Decimal so quotes never pass through
        binary floating point.
        """
        url = f"{self.base_url}{endpoint}"
        self._log(logging.DEBUG, f"Request: GET {endpoint} params={params}")

        try:
            response = self.session.get(url, params=params, timeout=timeout)
        except requests.RequestException as e:
            raise CoinMarketCapAPIError(0, None, f"Network error: {e}") from e

        try:
            data = response.json(parse_float=Decimal) if response.text else {}
        except ValueError as e:
            raise CoinMarketCapAPIError(
                response.status_code, None, f"Invalid JSON response: {e}"
            ) from e

        if response.status_code != 200:
            status = data.get("status") if isinstance(data, dict) else None
            if not isinstance(status, dict):
                status = {}
            raise CoinMarketCapAPIError(
                response.status_code,
                status.get("error_code"),
                status.get("error_message") or response.text,
            )

        return data

    def get_quotes(self, symbols: list[str]) -> dict[str, PriceData]:
        """Get latest USD quotes keyed by symbol. Unknown symbols are omitted."""
        data = self._request(
            "/v1/cryptocurrency/quotes/latest",
            {"symbol": ",".join(symbols)},
            self.timeout,
        )
        try:
            return {
                symbol: _parse_usd_quote(symbol, asset)
                for symbol, asset in (data.get("data") or {}).items()
            }
        except (AttributeError, KeyError, TypeError) as e:
            raise CoinMarketCapAPIError(200, None, f"Malformed quote payload: {e}") from e

    def get_listings(self, limit: int) -> list[tuple[CoinInfo, PriceData]]:
        """Get the top coins by market cap with their USD quotes."""
        data = self._request(
            "/v1/cryptocurrency/listings/latest",
            {"limit": limit, "convert": "USD"},
            self.timeout + 5,
        )
        try:
            listings = []
            for rank, coin in enumerate(data.get("data") or [], start=1):
                quote = _parse_usd_quote(coin["symbol"], coin)
                info = CoinInfo(
                    symbol=coin["symbol"],
                    name=coin["name"],
                    price=quote.price,
                    rank=rank,
                )
                listings.append((info, quote))
            return listings
        except (AttributeError, KeyError, TypeError) as e:
            raise CoinMarketCapAPIError(200, None, f"Malformed listings payload: {e}") from e


class PriceSource:
    """
    Current prices for symbols.

    Without a client every lookup is served from the mock tables. With a
    client, provider failures fall back to mock data unless the caller asks
    for a strict quote, in which case PriceUnavailableError is raised.
    """

    def __init__(self, client: CoinMarketCapClient | None, logger: logging.Logger):
        self._client = client
        self._logger = logger

    @property
    def is_live(self) -> bool:
        return self._client is not None

    def quote(self, symbol: str, fallback: bool = True) -> PriceData:
        if self._client is None:
            return mock_price(symbol)

        try:
            quotes = self._client.get_quotes([symbol])
        except CoinMarketCapAPIError as e:
            if not fallback:
                raise PriceUnavailableError(f"Failed to fetch price: {e}") from e
            self._logger.warning(f"Price fetch for {symbol} failed, using mock: {e}")
            return mock_price(symbol)

        if symbol in quotes:
            return quotes[symbol]
        if not fallback:
            raise PriceUnavailableError(f"Failed to fetch price: no quote for {symbol}")
        return mock_price(symbol)

    def quotes(self, symbols: list[str]) -> dict[str, PriceData]:
        """Quote several symbols in one call. Missing symbols get mock data."""
        if not symbols:
            return {}

        quotes: dict[str, PriceData] = {}
        if self._client is not None:
            try:
                quotes = self._client.get_quotes(symbols)
            except CoinMarketCapAPIError as e:
                self._logger.warning(f"Batch price fetch failed, using mock: {e}")

        return {s: quotes[s] if s in quotes else mock_price(s) for s in symbols}

    def tracked_prices(self) -> list[PriceData]:
        return list(self.quotes(TRACKED_SYMBOLS).values())

    def top_coins(self, limit: int = 100) -> list[CoinInfo]:
        if self._client is None:
            return mock_coins(limit)
        try:
            return [info for info, _ in self._client.get_listings(limit)]
        except CoinMarketCapAPIError as e:
            self._logger.warning(f"Listings fetch failed, using mock: {e}")
            return mock_coins(limit)

    def top_prices(self, limit: int = 20) -> list[PriceData]:
        if self._client is None:
            return mock_top_prices(limit)
        try:
            return [quote for _, quote in self._client.get_listings(limit)]
        except CoinMarketCapAPIError as e:
            self._logger.warning(f"Listings fetch failed, using mock: {e}")
            return mock_top_prices(limit)
