"""Repository interfaces and implementations for persistence."""

import copy
import threading
from abc import ABC, abstractmethod
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Iterator, Optional

import psycopg
from psycopg import Connection
from psycopg.rows import TupleRow
from psycopg_pool import ConnectionPool

from portfolio_manager.domain.errors import StorageError
from portfolio_manager.domain.models import (
    CASH_ASSET,
    CapitalEntry,
    CapitalKind,
    Holding,
    Order,
    OrderSide,
    WatchlistItem,
)

SCHEMA = """
CREATE TABLE IF NOT EXISTS capitals (
    id SERIAL PRIMARY KEY,
    amount DECIMAL(20, 8) NOT NULL,
    type VARCHAR(20) NOT NULL DEFAULT 'dca',
    description TEXT,
    created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS orders (
    id SERIAL PRIMARY KEY,
    asset VARCHAR(10) NOT NULL,
    type VARCHAR(10) NOT NULL,
    amount DECIMAL(20, 8) NOT NULL,
    price DECIMAL(20, 8) NOT NULL,
    total_usdt DECIMAL(20, 8) NOT NULL,
    is_custom_price BOOLEAN DEFAULT FALSE,
    created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS holdings (
    asset VARCHAR(10) PRIMARY KEY,
    amount DECIMAL(20, 8) NOT NULL DEFAULT 0,
    average_price DECIMAL(20, 8) NOT NULL DEFAULT 0,
    total_cost DECIMAL(20, 8) NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS watchlist (
    symbol VARCHAR(20) PRIMARY KEY,
    name VARCHAR(100),
    added_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
);

INSERT INTO holdings (asset, amount, average_price, total_cost)
VALUES ('USDT', 0, 1, 0)
ON CONFLICT (asset) DO NOTHING;
"""


class Session(ABC):
    """Read/write operations bound to one storage connection."""

    @abstractmethod
    def get_holding(self, asset: str, for_update: bool = False) -> Optional[Holding]:
        """Get the holding row for an asset, optionally locking it."""
        ...

    @abstractmethod
    def save_holding(self, holding: Holding) -> None:
        """Insert or replace the holding row for holding.asset."""
        ...

    @abstractmethod
    def list_holdings(self) -> list[Holding]:
        """List holdings with a positive quantity."""
        ...

    @abstractmethod
    def delete_holdings_except(self, asset: str) -> None: ...

    @abstractmethod
    def add_capital(self, entry: CapitalEntry) -> int:
        """Add a capital entry. Returns the generated ID."""
        ...

    @abstractmethod
    def get_capital(self, capital_id: int) -> Optional[CapitalEntry]: ...

    @abstractmethod
    def delete_capital(self, capital_id: int) -> None: ...

    @abstractmethod
    def list_capitals(self) -> list[CapitalEntry]:
        """List capital entries, newest first."""
        ...

    @abstractmethod
    def sum_capitals_by_kind(self) -> dict[CapitalKind, Decimal]:
        """Sum of signed amounts per kind. Kinds without entries map to zero."""
        ...

    @abstractmethod
    def delete_all_capitals(self) -> None: ...

    @abstractmethod
    def add_order(self, order: Order) -> int:
        """Add an order. Returns the generated ID."""
        ...

    @abstractmethod
    def delete_order(self, order_id: int) -> bool:
        """Delete an order. Returns False if it did not exist."""
        ...

    @abstractmethod
    def list_orders(self, asset: str | None = None) -> list[Order]:
        """List orders newest first, optionally for one asset."""
        ...

    @abstractmethod
    def delete_all_orders(self) -> None: ...

    @abstractmethod
    def list_watchlist(self) -> list[WatchlistItem]: ...

    @abstractmethod
    def upsert_watchlist(self, item: WatchlistItem) -> None: ...

    @abstractmethod
    def delete_watchlist(self, symbol: str) -> None: ...


class Repository(ABC):
    """Abstract repository interface."""

    @abstractmethod
    def session(self) -> AbstractContextManager[Session]:
        """Open a non-transactional session for reads."""
        ...

    @abstractmethod
    def transaction(self) -> AbstractContextManager[Session]:
        """
        Open a session whose writes commit together.

        Any exception raised inside the block rolls every write back.
        """
        ...

    @abstractmethod
    def init_schema(self) -> None:
        """Create tables if missing and seed the cash holding."""
        ...


class PostgresSession(Session):
    """PostgreSQL session over a single pooled connection."""

    def __init__(self, conn: Connection[TupleRow]):
        self._conn = conn

    def get_holding(self, asset: str, for_update: bool = False) -> Optional[Holding]:
        query = (
            "SELECT asset, amount, average_price, total_cost FROM holdings "
            "WHERE asset = %s"
        )
        if for_update:
            query += " FOR UPDATE"
        row = self._conn.execute(query, (asset,)).fetchone()
        if row is None:
            return None
        return _holding_from_row(row)

    def save_holding(self, holding: Holding) -> None:
        self._conn.execute(
            """
            INSERT INTO holdings (asset, amount, average_price, total_cost)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (asset) DO UPDATE SET
                amount = EXCLUDED.amount,
                average_price = EXCLUDED.average_price,
                total_cost = EXCLUDED.total_cost
            """,
            (
                holding.asset,
                holding.quantity,
                holding.average_cost,
                holding.total_cost,
            ),
        )

    def list_holdings(self) -> list[Holding]:
        rows = self._conn.execute(
            """
            SELECT asset, amount, average_price, total_cost
            FROM holdings
            WHERE amount > 0
            ORDER BY asset
            """
        ).fetchall()
        return [_holding_from_row(row) for row in rows]

    def delete_holdings_except(self, asset: str) -> None:
        self._conn.execute("DELETE FROM holdings WHERE asset != %s", (asset,))

    def add_capital(self, entry: CapitalEntry) -> int:
        row = self._conn.execute(
            """
            INSERT INTO capitals (amount, type, description, created_at)
            VALUES (%s, %s, %s, %s)
            RETURNING id
            """,
            (entry.amount, entry.kind.value, entry.description, entry.created_at),
        ).fetchone()
        if row is None:
            raise RuntimeError("Failed to insert capital entry")
        return row[0]

    def get_capital(self, capital_id: int) -> Optional[CapitalEntry]:
        row = self._conn.execute(
            """
            SELECT id, amount, type, COALESCE(description, ''), created_at
            FROM capitals
            WHERE id = %s
            """,
            (capital_id,),
        ).fetchone()
        if row is None:
            return None
        return _capital_from_row(row)

    def delete_capital(self, capital_id: int) -> None:
        self._conn.execute("DELETE FROM capitals WHERE id = %s", (capital_id,))

    def list_capitals(self) -> list[CapitalEntry]:
        rows = self._conn.execute(
            """
            SELECT id, amount, type, COALESCE(description, ''), created_at
            FROM capitals
            ORDER BY created_at DESC, id DESC
            """
        ).fetchall()
        return [_capital_from_row(row) for row in rows]

    def sum_capitals_by_kind(self) -> dict[CapitalKind, Decimal]:
        rows = self._conn.execute(
            "SELECT type, COALESCE(SUM(amount), 0) FROM capitals GROUP BY type"
        ).fetchall()
        totals = {kind: Decimal("0") for kind in CapitalKind}
        for kind, total in rows:
            totals[CapitalKind(kind)] = total
        return totals

    def delete_all_capitals(self) -> None:
        self._conn.execute("DELETE FROM capitals")

    def add_order(self, order: Order) -> int:
        row = self._conn.execute(
            """
            INSERT INTO orders
            (asset, type, amount, price, total_usdt, is_custom_price, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING id
            """,
            (
                order.asset,
                order.side.value,
                order.quantity,
                order.price,
                order.total_quote,
                order.is_custom_price,
                order.created_at,
            ),
        ).fetchone()
        if row is None:
            raise RuntimeError("Failed to insert order")
        return row[0]

    def delete_order(self, order_id: int) -> bool:
        cur = self._conn.execute("DELETE FROM orders WHERE id = %s", (order_id,))
        return cur.rowcount > 0

    def list_orders(self, asset: str | None = None) -> list[Order]:
        query = """
            SELECT id, asset, type, amount, price, total_usdt, is_custom_price, created_at
            FROM orders
        """
        params: tuple = ()
        if asset is not None:
            query += " WHERE asset = %s"
            params = (asset,)
        query += " ORDER BY created_at DESC, id DESC"
        rows = self._conn.execute(query, params).fetchall()
        return [
            Order(
                id=row[0],
                asset=row[1],
                side=OrderSide(row[2]),
                quantity=row[3],
                price=row[4],
                total_quote=row[5],
                is_custom_price=row[6],
                created_at=row[7],
            )
            for row in rows
        ]

    def delete_all_orders(self) -> None:
        self._conn.execute("DELETE FROM orders")

    def list_watchlist(self) -> list[WatchlistItem]:
        rows = self._conn.execute(
            """
            SELECT symbol, COALESCE(name, ''), added_at
            FROM watchlist
            ORDER BY added_at DESC
            """
        ).fetchall()
        return [WatchlistItem(symbol=r[0], name=r[1], added_at=r[2]) for r in rows]

    def upsert_watchlist(self, item: WatchlistItem) -> None:
        self._conn.execute(
            """
            INSERT INTO watchlist (symbol, name, added_at)
            VALUES (%s, %s, %s)
            ON CONFLICT (symbol) DO UPDATE SET name = EXCLUDED.name
            """,
            (item.symbol, item.name, item.added_at),
        )

    def delete_watchlist(self, symbol: str) -> None:
        self._conn.execute("DELETE FROM watchlist WHERE symbol = %s", (symbol,))


class PostgresRepository(Repository):
    """PostgreSQL implementation of the repository."""

    def __init__(self, pool: ConnectionPool[Connection[TupleRow]]):
        self._pool = pool

    @contextmanager
    def session(self) -> Iterator[Session]:
        try:
            with self._pool.connection() as conn:
                yield PostgresSession(conn)
        except psycopg.Error as e:
            raise StorageError(f"Storage error: {e}") from e

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        try:
            with self._pool.connection() as conn:
                with conn.transaction():
                    yield PostgresSession(conn)
        except psycopg.Error as e:
            raise StorageError(f"Storage error: {e}") from e

    def init_schema(self) -> None:
        try:
            with self._pool.connection() as conn:
                conn.execute(SCHEMA)
        except psycopg.Error as e:
            raise StorageError(f"Failed to initialize database schema: {e}") from e


def _holding_from_row(row: TupleRow) -> Holding:
    return Holding(
        asset=row[0],
        quantity=row[1],
        average_cost=row[2],
        total_cost=row[3],
    )


def _capital_from_row(row: TupleRow) -> CapitalEntry:
    return CapitalEntry(
        id=row[0],
        amount=row[1],
        kind=CapitalKind(row[2]),
        description=row[3],
        created_at=row[4],
    )


@dataclass
class _MemoryState:
    holdings: dict[str, Holding] = field(default_factory=dict)
    capitals: dict[int, CapitalEntry] = field(default_factory=dict)
    orders: dict[int, Order] = field(default_factory=dict)
    watchlist: dict[str, WatchlistItem] = field(default_factory=dict)
    next_capital_id: int = 1
    next_order_id: int = 1


class InMemorySession(Session):
    """Session over process-local state. Returned rows are copies."""

    def __init__(self, state: _MemoryState):
        self._state = state

    def get_holding(self, asset: str, for_update: bool = False) -> Optional[Holding]:
        holding = self._state.holdings.get(asset)
        return replace(holding) if holding is not None else None

    def save_holding(self, holding: Holding) -> None:
        self._state.holdings[holding.asset] = replace(holding)

    def list_holdings(self) -> list[Holding]:
        return [
            replace(h)
            for _, h in sorted(self._state.holdings.items())
            if h.quantity > 0
        ]

    def delete_holdings_except(self, asset: str) -> None:
        self._state.holdings = {
            k: v for k, v in self._state.holdings.items() if k == asset
        }

    def add_capital(self, entry: CapitalEntry) -> int:
        capital_id = self._state.next_capital_id
        self._state.next_capital_id += 1
        self._state.capitals[capital_id] = replace(entry, id=capital_id)
        return capital_id

    def get_capital(self, capital_id: int) -> Optional[CapitalEntry]:
        entry = self._state.capitals.get(capital_id)
        return replace(entry) if entry is not None else None

    def delete_capital(self, capital_id: int) -> None:
        self._state.capitals.pop(capital_id, None)

    def list_capitals(self) -> list[CapitalEntry]:
        entries = sorted(
            self._state.capitals.values(),
            key=lambda e: (e.created_at, e.id or 0),
            reverse=True,
        )
        return [replace(e) for e in entries]

    def sum_capitals_by_kind(self) -> dict[CapitalKind, Decimal]:
        totals = {kind: Decimal("0") for kind in CapitalKind}
        for entry in self._state.capitals.values():
            totals[entry.kind] += entry.amount
        return totals

    def delete_all_capitals(self) -> None:
        self._state.capitals.clear()

    def add_order(self, order: Order) -> int:
        order_id = self._state.next_order_id
        self._state.next_order_id += 1
        self._state.orders[order_id] = replace(order, id=order_id)
        return order_id

    def delete_order(self, order_id: int) -> bool:
        return self._state.orders.pop(order_id, None) is not None

    def list_orders(self, asset: str | None = None) -> list[Order]:
        orders = sorted(
            (o for o in self._state.orders.values() if asset is None or o.asset == asset),
            key=lambda o: (o.created_at, o.id or 0),
            reverse=True,
        )
        return [replace(o) for o in orders]

    def delete_all_orders(self) -> None:
        self._state.orders.clear()

    def list_watchlist(self) -> list[WatchlistItem]:
        items = sorted(
            self._state.watchlist.values(), key=lambda i: i.added_at, reverse=True
        )
        return [replace(i) for i in items]

    def upsert_watchlist(self, item: WatchlistItem) -> None:
        existing = self._state.watchlist.get(item.symbol)
        if existing is not None:
            existing.name = item.name
        else:
            self._state.watchlist[item.symbol] = replace(item)

    def delete_watchlist(self, symbol: str) -> None:
        self._state.watchlist.pop(symbol, None)


class InMemoryRepository(Repository):
    """
    Process-local repository.

    Access is serialised with a lock. A transaction works on the live state
    and restores a snapshot taken at its start if the block raises.
    """

    def __init__(self) -> None:
        self._state = _MemoryState()
        self._lock = threading.RLock()
        self.init_schema()

    @contextmanager
    def session(self) -> Iterator[Session]:
        with self._lock:
            yield InMemorySession(self._state)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        with self._lock:
            snapshot = copy.deepcopy(self._state)
            try:
                yield InMemorySession(self._state)
            except Exception:
                self._state = snapshot
                raise

    def init_schema(self) -> None:
        with self._lock:
            self._state.holdings.setdefault(
                CASH_ASSET,
                Holding(asset=CASH_ASSET, average_cost=Decimal("1")),
            )
