"""
Pydantic schemas for the portfolio HTTP API.

Monetary fields are Decimal, serialised as JSON strings.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from portfolio_manager.domain.models import (
    AssetDetail,
    CapitalEntry,
    CapitalKind,
    Holding,
    HoldingDetail,
    Order,
    OrderSide,
    PortfolioOverview,
)


# =============================================================
# REQUESTS
# =============================================================

class CapitalCreate(BaseModel):
    amount: Decimal
    type: CapitalKind
    description: str = ""


class AmountCreate(BaseModel):
    """Withdrawal or realized loss."""
    amount: Decimal
    description: str = ""


class OrderCreate(BaseModel):
    """Trade request. Exactly one of amount / total_usdt is expected."""
    asset: str
    type: OrderSide
    amount: Optional[Decimal] = None
    total_usdt: Optional[Decimal] = None
    price: Optional[Decimal] = None
    is_custom_price: bool = False

    @field_validator("amount", "total_usdt", "price", mode="before")
    @classmethod
    def blank_as_missing(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class WatchlistCreate(BaseModel):
    symbol: str
    name: str = ""


# =============================================================
# RESPONSES
# =============================================================

class MessageResponse(BaseModel):
    message: str


class CreatedResponse(BaseModel):
    id: int
    message: str


class CapitalResponse(BaseModel):
    id: int
    amount: Decimal
    type: CapitalKind
    description: str
    created_at: datetime

    @classmethod
    def from_domain(cls, entry: CapitalEntry) -> "CapitalResponse":
        return cls(
            id=entry.id,
            amount=entry.amount,
            type=entry.kind,
            description=entry.description,
            created_at=entry.created_at,
        )


class OrderResponse(BaseModel):
    id: int
    asset: str
    type: OrderSide
    amount: Decimal
    price: Decimal
    total_usdt: Decimal
    is_custom_price: bool
    created_at: datetime

    @classmethod
    def from_domain(cls, order: Order) -> "OrderResponse":
        return cls(
            id=order.id,
            asset=order.asset,
            type=order.side,
            amount=order.quantity,
            price=order.price,
            total_usdt=order.total_quote,
            is_custom_price=order.is_custom_price,
            created_at=order.created_at,
        )


class OrderExecutedResponse(BaseModel):
    id: int
    asset: str
    type: OrderSide
    amount: Decimal
    price: Decimal
    total: Decimal
    message: str


class HoldingResponse(BaseModel):
    asset: str
    amount: Decimal
    average_price: Decimal
    total_cost: Decimal

    @classmethod
    def from_domain(cls, holding: Holding) -> "HoldingResponse":
        return cls(
            asset=holding.asset,
            amount=holding.quantity,
            average_price=holding.average_cost,
            total_cost=holding.total_cost,
        )


class HoldingDetailResponse(BaseModel):
    asset: str
    amount: Decimal
    average_price: Decimal
    current_price: Decimal
    total_cost: Decimal
    current_value: Decimal
    pnl: Decimal
    pnl_percent: Decimal
    percent_of_capital: Decimal

    @classmethod
    def from_domain(cls, detail: HoldingDetail) -> "HoldingDetailResponse":
        return cls(
            asset=detail.asset,
            amount=detail.quantity,
            average_price=detail.average_cost,
            current_price=detail.current_price,
            total_cost=detail.total_cost,
            current_value=detail.current_value,
            pnl=detail.pnl,
            pnl_percent=detail.pnl_percent,
            percent_of_capital=detail.percent_of_capital,
        )


class PortfolioOverviewResponse(BaseModel):
    total_capital: Decimal
    available_usdt: Decimal
    total_invested: Decimal
    current_value: Decimal
    unrealized_pnl: Decimal
    realized_loss: Decimal
    total_pnl: Decimal
    total_pnl_percent: Decimal
    holdings: List[HoldingDetailResponse]

    @classmethod
    def from_domain(cls, overview: PortfolioOverview) -> "PortfolioOverviewResponse":
        return cls(
            total_capital=overview.total_capital,
            available_usdt=overview.available_usdt,
            total_invested=overview.total_invested,
            current_value=overview.current_value,
            unrealized_pnl=overview.unrealized_pnl,
            realized_loss=overview.realized_loss,
            total_pnl=overview.total_pnl,
            total_pnl_percent=overview.total_pnl_percent,
            holdings=[HoldingDetailResponse.from_domain(h) for h in overview.holdings],
        )


class AssetDetailResponse(HoldingDetailResponse):
    change_24h: Decimal
    percent_change_24h: Decimal
    orders: List[OrderResponse]

    @classmethod
    def from_domain(cls, detail: AssetDetail) -> "AssetDetailResponse":
        return cls(
            asset=detail.asset,
            amount=detail.quantity,
            average_price=detail.average_cost,
            current_price=detail.current_price,
            total_cost=detail.total_cost,
            current_value=detail.current_value,
            pnl=detail.pnl,
            pnl_percent=detail.pnl_percent,
            percent_of_capital=detail.percent_of_capital,
            change_24h=detail.change_24h,
            percent_change_24h=detail.percent_change_24h,
            orders=[OrderResponse.from_domain(o) for o in detail.orders],
        )


class PriceDataResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

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


class CoinInfoResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    symbol: str
    name: str
    price: Decimal
    rank: int


class WatchlistItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    symbol: str
    name: str
    added_at: datetime
