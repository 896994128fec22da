"""Cart store abstractions and SQLite implementation."""

from __future__ import annotations

import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable

from shopbot.core.db import (
    datetime_from_iso,
    datetime_to_iso,
    json_dumps,
    json_loads,
    sqlite_connection,
    utcnow,
)

from .models import Cart, CartItem, CartStatus


class CartStore(ABC):
    """Abstract interface for per-customer cart documents."""

    @abstractmethod
    def get_active(self, customer_id: str) -> Cart | None:
        """Return the customer's active cart, if any."""

    @abstractmethod
    def get(self, cart_id: int) -> Cart | None:
        """Return a cart by id regardless of status."""

    @abstractmethod
    def mutate(self, customer_id: str, mutation: Callable[[Cart], None]) -> Cart:
        """Apply ``mutation`` to the active cart under a write lock and persist it.

        A new active cart is created when the customer has none. If the
        mutation raises, nothing is written.
        """

    @abstractmethod
    def set_status(self, cart_id: int, status: CartStatus) -> bool:
        """Move a cart to another lifecycle status."""

    @abstractmethod
    def expire_stale(self, cutoff: datetime) -> int:
        """Mark active carts untouched since ``cutoff`` as expired."""

    @abstractmethod
    def purge_expired(self) -> int:
        """Delete expired carts, returning the number removed."""


class SQLiteCartStore(CartStore):
    """SQLite-backed cart store."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        with sqlite_connection(self.db_path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS carts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    customer_id TEXT NOT NULL,
                    items TEXT NOT NULL,
                    total TEXT NOT NULL,
                    status TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    expires_at TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_carts_customer_status
                    ON carts (customer_id, status)
                """
            )

    def get_active(self, customer_id: str) -> Cart | None:
        with sqlite_connection(self.db_path) as conn:
            return self._select_active(conn, customer_id)

    def get(self, cart_id: int) -> Cart | None:
        with sqlite_connection(self.db_path) as conn:
            row = conn.execute("SELECT * FROM carts WHERE id = ?", (cart_id,)).fetchone()
        return _row_to_cart(row) if row else None

    def mutate(self, customer_id: str, mutation: Callable[[Cart], None]) -> Cart:
        with sqlite_connection(self.db_path, immediate=True) as conn:
            cart = self._select_active(conn, customer_id) or Cart(customer_id=customer_id)
            mutation(cart)

            values = (
                json_dumps([item.to_dict() for item in cart.items]),
                str(cart.total),
                cart.status.value,
                datetime_to_iso(cart.updated_at),
                datetime_to_iso(cart.expires_at),
            )
            if cart.id is None:
                cursor = conn.execute(
                    """
                    INSERT INTO carts (items, total, status, updated_at, expires_at, customer_id, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (*values, customer_id, datetime_to_iso(cart.created_at)),
                )
                cart.id = cursor.lastrowid
            else:
                conn.execute(
                    """
                    UPDATE carts
                    SET items = ?, total = ?, status = ?, updated_at = ?, expires_at = ?
                    WHERE id = ?
                    """,
                    (*values, cart.id),
                )
        return cart

    def set_status(self, cart_id: int, status: CartStatus) -> bool:
        with sqlite_connection(self.db_path, immediate=True) as conn:
            cursor = conn.execute(
                "UPDATE carts SET status = ?, updated_at = ? WHERE id = ?",
                (status.value, datetime_to_iso(utcnow()), cart_id),
            )
            return cursor.rowcount == 1

    def expire_stale(self, cutoff: datetime) -> int:
        with sqlite_connection(self.db_path, immediate=True) as conn:
            rows = conn.execute(
                "SELECT id, updated_at FROM carts WHERE status = ?",
                (CartStatus.ACTIVE.value,),
            ).fetchall()
            stale = [
                row["id"]
                for row in rows
                if (datetime_from_iso(row["updated_at"]) or cutoff) < cutoff
            ]
            for cart_id in stale:
                conn.execute(
                    "UPDATE carts SET status = ? WHERE id = ?",
                    (CartStatus.EXPIRED.value, cart_id),
                )
        return len(stale)

    def purge_expired(self) -> int:
        with sqlite_connection(self.db_path, immediate=True) as conn:
            cursor = conn.execute("DELETE FROM carts WHERE status = ?", (CartStatus.EXPIRED.value,))
            return cursor.rowcount

    def _select_active(self, conn: sqlite3.Connection, customer_id: str) -> Cart | None:
        row = conn.execute(
            """
            SELECT * FROM carts
            WHERE customer_id = ? AND status = ?
            ORDER BY id DESC
            LIMIT 1
            """,
            (customer_id, CartStatus.ACTIVE.value),
        ).fetchone()
        return _row_to_cart(row) if row else None


def _row_to_cart(row: sqlite3.Row) -> Cart:
    created_at = datetime_from_iso(row["created_at"]) or utcnow()
    return Cart(
        id=row["id"],
        customer_id=row["customer_id"],
        items=[CartItem.from_dict(item) for item in json_loads(row["items"], [])],
        total=Decimal(row["total"]),
        status=CartStatus(row["status"]),
        created_at=created_at,
        updated_at=datetime_from_iso(row["updated_at"]) or created_at,
        expires_at=datetime_from_iso(row["expires_at"]),
    )
