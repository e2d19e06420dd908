"""Simulated order execution against the holdings ledger."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

from portfolio_manager.coinmarketcap_client import PriceSource
from portfolio_manager.domain.errors import (
    InsufficientBalanceError,
    NoHoldingsError,
    NotFoundError,
    PriceUnavailableError,
    ValidationError,
)
from portfolio_manager.domain.models import (
    ASSET_SYMBOL_MAX_LENGTH,
    CASH_ASSET,
    Order,
    OrderSide,
)
from portfolio_manager.infrastructure.repositories import Repository
from portfolio_manager.ledger import HoldingsLedger
from portfolio_manager.utils import normalize_symbol, round_amount


@dataclass
class OrderRequest:
    """Requested trade. Exactly one of quantity or total_quote must be set."""

    asset: str
    side: OrderSide
    quantity: Decimal | None = None
    total_quote: Decimal | None = None
    price: Decimal | None = None


class OrderEngine:
    """Validates trades and applies them to the ledger in one transaction."""

    def __init__(
        self,
        repository: Repository,
        price_source: PriceSource,
        logger: logging.Logger,
    ):
        self._repo = repository
        self._prices = price_source
        self._logger = logger

    def execute(self, request: OrderRequest) -> Order:
        """
        Execute a buy or sell at an explicit or live price.

        Buys debit cash and blend the new lot into the asset's average cost.
        Sells remove cost in proportion to the fraction sold and credit the
        proceeds to cash. Ledger updates and the order record commit together.
        """
        asset = self._validate(request)
        price, is_custom_price = self._resolve_price(asset, request.price)
        quantity, total_quote = self._derive_amounts(request, price)

        self._logger.debug(
            f"Order: {request.side.value} {quantity} {asset} @ {price} = {total_quote}"
        )

        with self._repo.transaction() as session:
            ledger = HoldingsLedger(session)
            if request.side == OrderSide.BUY:
                self._apply_buy(ledger, asset, quantity, total_quote)
            else:
                self._apply_sell(ledger, asset, quantity, total_quote)

            order = Order(
                asset=asset,
                side=request.side,
                quantity=quantity,
                price=price,
                total_quote=total_quote,
                is_custom_price=is_custom_price,
                created_at=datetime.now(UTC),
            )
            order.id = session.add_order(order)

        self._logger.info(
            f"Order {order.id} executed: {order.side.value} {quantity} {asset} "
            f"@ {price} ({total_quote} {CASH_ASSET})"
        )
        return order

    def delete_order(self, order_id: int) -> None:
        """Delete an order record. Holdings are left as they are."""
        with self._repo.transaction() as session:
            if not session.delete_order(order_id):
                raise NotFoundError("Order not found")
        self._logger.info(f"Deleted order {order_id}")

    def list_orders(self, asset: str | None = None) -> list[Order]:
        with self._repo.session() as session:
            return session.list_orders(normalize_symbol(asset) if asset else None)

    def _validate(self, request: OrderRequest) -> str:
        """Validate the request. Returns the normalized asset symbol."""
        asset = normalize_symbol(request.asset or "")
        if not asset:
            raise ValidationError("Asset is required")
        if len(asset) > ASSET_SYMBOL_MAX_LENGTH:
            raise ValidationError(
                f"Asset symbol must be at most {ASSET_SYMBOL_MAX_LENGTH} characters"
            )
        if asset == CASH_ASSET:
            raise ValidationError(f"Cannot trade {CASH_ASSET} against itself")

        if request.quantity is None and request.total_quote is None:
            raise ValidationError("Either amount or total_usdt is required")
        if request.quantity is not None and request.total_quote is not None:
            raise ValidationError("Provide either amount or total_usdt, not both")

        for name, value in (
            ("amount", request.quantity),
            ("total_usdt", request.total_quote),
            ("price", request.price),
        ):
            if value is not None and value <= 0:
                raise ValidationError(f"{name} must be positive")

        return asset

    def _resolve_price(
        self, asset: str, explicit: Decimal | None
    ) -> tuple[Decimal, bool]:
        """Returns the execution price and whether it was user-supplied."""
        if explicit is not None:
            price = round_amount(explicit)
            if price <= 0:
                raise ValidationError("price is below the smallest stored unit")
            return price, True

        price = round_amount(self._prices.quote(asset, fallback=False).price)
        if price <= 0:
            raise PriceUnavailableError(f"Invalid price {price} for {asset}")
        return price, False

    def _derive_amounts(
        self, request: OrderRequest, price: Decimal
    ) -> tuple[Decimal, Decimal]:
        """
        Quantity and quote total at the stored scale.

        The given side is rounded first and the other is derived from the
        rounded value, so the returned order matches the stored row.
        """
        if request.quantity is not None:
            quantity = round_amount(request.quantity)
            total_quote = round_amount(quantity * price)
        else:
            assert request.total_quote is not None
            total_quote = round_amount(request.total_quote)
            quantity = round_amount(total_quote / price)

        if quantity <= 0 or total_quote <= 0:
            raise ValidationError("Order is below the smallest tradable amount")
        return quantity, total_quote

    def _apply_buy(
        self,
        ledger: HoldingsLedger,
        asset: str,
        quantity: Decimal,
        total_quote: Decimal,
    ) -> None:
        if ledger.balance(CASH_ASSET) < total_quote:
            raise InsufficientBalanceError("Insufficient USDT balance")

        ledger.apply_delta(CASH_ASSET, -total_quote, -total_quote)
        ledger.apply_delta(asset, quantity, total_quote)

    def _apply_sell(
        self,
        ledger: HoldingsLedger,
        asset: str,
        quantity: Decimal,
        total_quote: Decimal,
    ) -> None:
        holding = ledger.get_holding(asset, for_update=True)
        if holding is None:
            raise NoHoldingsError("No holdings for this asset")
        if holding.quantity < quantity:
            raise InsufficientBalanceError("Insufficient asset balance")

        if quantity == holding.quantity:
            cost_to_remove = holding.total_cost
        else:
            cost_to_remove = round_amount(
                holding.total_cost * quantity / holding.quantity
            )
        ledger.apply_delta(asset, -quantity, -cost_to_remove)
        ledger.apply_delta(CASH_ASSET, total_quote, total_quote)
