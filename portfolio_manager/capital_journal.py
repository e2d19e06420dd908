"""Capital journal: deposits, withdrawals and realized losses."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Callable

from portfolio_manager.domain.errors import (
    InsufficientBalanceError,
    NotFoundError,
    ValidationError,
)
from portfolio_manager.domain.models import CASH_ASSET, CapitalEntry, CapitalKind
from portfolio_manager.infrastructure.repositories import Repository, Session
from portfolio_manager.ledger import HoldingsLedger
from portfolio_manager.utils import round_amount

# Applies the ledger effect of a new entry and returns its signed stored amount
LedgerEffect = Callable[[HoldingsLedger, Decimal], Decimal]

DEPOSIT_KINDS = (CapitalKind.INITIAL, CapitalKind.DCA)


@dataclass
class CapitalTotals:
    """Journal sums used for portfolio reporting. All fields are non-negative except net."""

    deposits: Decimal
    withdrawals: Decimal
    realized_loss: Decimal
    net: Decimal

    @property
    def capital_base(self) -> Decimal:
        return self.deposits - self.withdrawals


def summarize(session: Session) -> CapitalTotals:
    sums = session.sum_capitals_by_kind()
    return CapitalTotals(
        deposits=sum((sums[kind] for kind in DEPOSIT_KINDS), Decimal("0")),
        withdrawals=abs(sums[CapitalKind.WITHDRAW]),
        realized_loss=abs(sums[CapitalKind.REALIZED_LOSS]),
        net=sum(sums.values(), Decimal("0")),
    )


class CapitalJournal:
    """Append-only log of capital events that fund or drain the cash holding."""

    def __init__(self, repository: Repository, logger: logging.Logger):
        self._repo = repository
        self._logger = logger
        self._effects: dict[CapitalKind, LedgerEffect] = {
            CapitalKind.INITIAL: self._credit_cash,
            CapitalKind.DCA: self._credit_cash,
            CapitalKind.WITHDRAW: self._debit_cash,
            CapitalKind.REALIZED_LOSS: self._book_loss,
        }

    def deposit(
        self,
        amount: Decimal,
        kind: CapitalKind = CapitalKind.DCA,
        description: str = "",
    ) -> CapitalEntry:
        if kind not in DEPOSIT_KINDS:
            raise ValidationError(f"Invalid deposit type: {kind.value}")
        return self._record(kind, amount, description)

    def withdraw(self, amount: Decimal, description: str = "") -> CapitalEntry:
        return self._record(CapitalKind.WITHDRAW, amount, description)

    def record_realized_loss(
        self, amount: Decimal, description: str = ""
    ) -> CapitalEntry:
        """Book a loss against reported PnL. The cash holding is not touched."""
        return self._record(CapitalKind.REALIZED_LOSS, amount, description)

    def delete_entry(self, capital_id: int) -> CapitalEntry:
        """
        Delete an entry and reverse its stored amount from the cash holding.

        The reversal is the same for every kind, so deleting a realized loss
        credits cash it never debited.
        """
        with self._repo.transaction() as session:
            entry = session.get_capital(capital_id)
            if entry is None:
                raise NotFoundError("Capital not found")

            session.delete_capital(capital_id)
            HoldingsLedger(session).apply_delta(
                CASH_ASSET, -entry.amount, -entry.amount
            )

        self._logger.info(
            f"Deleted capital entry {capital_id} ({entry.kind.value} {entry.amount})"
        )
        return entry

    def list_entries(self) -> list[CapitalEntry]:
        with self._repo.session() as session:
            return session.list_capitals()

    def _record(
        self, kind: CapitalKind, amount: Decimal, description: str
    ) -> CapitalEntry:
        amount = round_amount(amount)
        if amount <= 0:
            raise ValidationError("Amount must be positive")

        with self._repo.transaction() as session:
            signed = self._effects[kind](HoldingsLedger(session), amount)
            entry = CapitalEntry(
                amount=signed,
                kind=kind,
                description=description,
                created_at=datetime.now(UTC),
            )
            entry.id = session.add_capital(entry)

        self._logger.info(f"Recorded {kind.value} of {amount} (id={entry.id})")
        return entry

    def _credit_cash(self, ledger: HoldingsLedger, amount: Decimal) -> Decimal:
        ledger.apply_delta(CASH_ASSET, amount, amount)
        return amount

    def _debit_cash(self, ledger: HoldingsLedger, amount: Decimal) -> Decimal:
        if ledger.balance(CASH_ASSET) < amount:
            raise InsufficientBalanceError("Insufficient USDT balance")
        ledger.apply_delta(CASH_ASSET, -amount, -amount)
        return -amount

    def _book_loss(self, ledger: HoldingsLedger, amount: Decimal) -> Decimal:
        return -amount
