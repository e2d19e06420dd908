"""Domain models for the portfolio manager."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum

CASH_ASSET = "USDT"

# Stored scale of every amount, price and cost column
AMOUNT_QUANTUM = Decimal("0.00000001")

# Column widths of the stored symbol and name fields
ASSET_SYMBOL_MAX_LENGTH = 10
WATCHLIST_SYMBOL_MAX_LENGTH = 20
WATCHLIST_NAME_MAX_LENGTH = 100


class CapitalKind(str, Enum):
    """Kind of capital journal entry."""

    INITIAL = "initial"
    DCA = "dca"
    WITHDRAW = "withdraw"
    REALIZED_LOSS = "realized_loss"


class OrderSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


@dataclass
class Holding:
    """Running cost-basis aggregate for one asset."""

    asset: str
    quantity: Decimal = Decimal("0")
    average_cost: Decimal = Decimal("0")
    total_cost: Decimal = Decimal("0")


@dataclass
class CapitalEntry:
    """Capital journal entry. Withdrawals and realized losses are stored negative."""

    amount: Decimal
    kind: CapitalKind
    description: str
    created_at: datetime
    id: int | None = None


@dataclass
class Order:
    """Simulated trade record."""

    asset: str
    side: OrderSide
    quantity: Decimal
    price: Decimal
    total_quote: Decimal
    is_custom_price: bool
    created_at: datetime
    id: int | None = None


@dataclass
class WatchlistItem:
    symbol: str
    name: str
    added_at: datetime


@dataclass
class PriceData:
    """Current price and percentage changes for a symbol."""

    symbol: str
    price: Decimal
    change_1h: Decimal
    percent_change_1h: Decimal
    change_24h: Decimal
    percent_change_24h: Decimal
    change_7d: Decimal
    percent_change_7d: Decimal
    change_30d: Decimal
    percent_change_30d: Decimal


@dataclass
class CoinInfo:
    symbol: str
    name: str
    price: Decimal
    rank: int


@dataclass
class HoldingDetail:
    """A holding valued at the current market price."""

    asset: str
    quantity: Decimal
    average_cost: Decimal
    current_price: Decimal
    total_cost: Decimal
    current_value: Decimal
    pnl: Decimal
    pnl_percent: Decimal
    percent_of_capital: Decimal


@dataclass
class PortfolioOverview:
    total_capital: Decimal
    available_usdt: Decimal
    total_invested: Decimal
    current_value: Decimal
    unrealized_pnl: Decimal
    realized_loss: Decimal
    total_pnl: Decimal
    total_pnl_percent: Decimal
    holdings: list[HoldingDetail] = field(default_factory=list)


@dataclass
class AssetDetail:
    """Single asset view with its trade history."""

    asset: str
    quantity: Decimal
    average_cost: Decimal
    current_price: Decimal
    total_cost: Decimal
    current_value: Decimal
    pnl: Decimal
    pnl_percent: Decimal
    percent_of_capital: Decimal
    change_24h: Decimal
    percent_change_24h: Decimal
    orders: list[Order] = field(default_factory=list)
