"""Holdings ledger with weighted-average cost basis."""

from decimal import Decimal

from portfolio_manager.domain.errors import InsufficientBalanceError
from portfolio_manager.domain.models import CASH_ASSET, Holding
from portfolio_manager.infrastructure.repositories import Session
from portfolio_manager.utils import round_amount


class HoldingsLedger:
    """
    Per-asset quantity and cost basis, bound to one storage session.

    Each holding is a running aggregate: quantity and total cost are moved by
    deltas and the average cost is derived from them. The cash asset is a
    holding like any other with its average cost pinned to 1.
    """

    def __init__(self, session: Session):
        self._session = session

    def get_holding(self, asset: str, for_update: bool = False) -> Holding | None:
        return self._session.get_holding(asset, for_update=for_update)

    def balance(self, asset: str) -> Decimal:
        """Current quantity of an asset, locking its row until commit."""
        holding = self._session.get_holding(asset, for_update=True)
        return holding.quantity if holding is not None else Decimal("0")

    def apply_delta(
        self, asset: str, quantity_delta: Decimal, cost_delta: Decimal
    ) -> Holding:
        """
        Move quantity and total cost of an asset by the given deltas.

        The average cost is recomputed as total_cost / quantity while the
        quantity stays positive, otherwise it is left unchanged. Every value
        is kept at the stored scale of 8 decimal places. Raises
        InsufficientBalanceError instead of letting the quantity go negative.
        """
        holding = self._session.get_holding(asset, for_update=True)
        if holding is None:
            holding = Holding(asset=asset)

        quantity = holding.quantity + round_amount(quantity_delta)
        if quantity < 0:
            raise InsufficientBalanceError(f"Insufficient {asset} balance")

        holding.quantity = quantity
        holding.total_cost += round_amount(cost_delta)
        if asset == CASH_ASSET:
            holding.average_cost = Decimal("1")
        elif quantity > 0:
            holding.average_cost = round_amount(holding.total_cost / quantity)

        self._session.save_holding(holding)
        return holding

    def list_holdings(self) -> list[Holding]:
        return self._session.list_holdings()

    def reset(self) -> None:
        """Drop every asset row and zero the cash holding."""
        self._session.delete_holdings_except(CASH_ASSET)
        self._session.save_holding(
            Holding(asset=CASH_ASSET, average_cost=Decimal("1"))
        )
