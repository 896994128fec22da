"""Cart documents and the pure mutations applied to them."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Callable, Iterable, Mapping

from shopbot.core.db import datetime_from_iso, datetime_to_iso, utcnow

PriceLookup = Callable[[int, "int | None"], "Decimal | None"]

CENT = Decimal("0.01")


class CartStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    EXPIRED = "expired"


def item_key(product_id: int, variant_id: int | None = None) -> str:
    """Identity of a cart line: one line per product/variant pair."""

    return f"{product_id}_{variant_id}" if variant_id else f"{product_id}"


@dataclass(slots=True)
class CartItem:
    product_id: int
    quantity: int
    variant_id: int | None = None
    added_at: datetime = field(default_factory=utcnow)

    @property
    def key(self) -> str:
        return item_key(self.product_id, self.variant_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "added_at": datetime_to_iso(self.added_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CartItem":
        variant = data.get("variant_id")
        return cls(
            product_id=int(data["product_id"]),
            variant_id=int(variant) if variant else None,
            quantity=int(data.get("quantity", 1)),
            added_at=datetime_from_iso(data.get("added_at")) or utcnow(),
        )


@dataclass(slots=True)
class Cart:
    """Active or archived cart of one customer."""

    customer_id: str
    id: int | None = None
    items: list[CartItem] = field(default_factory=list)
    total: Decimal = Decimal("0.00")
    status: CartStatus = CartStatus.ACTIVE
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    expires_at: datetime | None = None

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def item_count(self) -> int:
        return len(self.items)

    def find(self, key: str) -> CartItem | None:
        for item in self.items:
            if item.key == key:
                return item
        return None

    def quantity_of(self, product_id: int, variant_id: int | None = None) -> int:
        existing = self.find(item_key(product_id, variant_id))
        return existing.quantity if existing else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "items": [item.to_dict() for item in self.items],
            "total": str(self.total),
            "status": self.status.value,
            "created_at": datetime_to_iso(self.created_at),
            "updated_at": datetime_to_iso(self.updated_at),
            "expires_at": datetime_to_iso(self.expires_at),
        }


def add_item(
    cart: Cart,
    product_id: int,
    variant_id: int | None,
    quantity: int,
    now: datetime | None = None,
) -> CartItem:
    """Merge ``quantity`` into the line with the same identity key.

    Replaying the same add increments the quantity instead of duplicating the
    line, which keeps at-least-once delivery from corrupting the cart.
    """

    if quantity <= 0:
        raise ValueError(f"Quantity must be positive, got: {quantity}")

    existing = cart.find(item_key(product_id, variant_id))
    if existing is not None:
        existing.quantity += quantity
        return existing

    item = CartItem(
        product_id=product_id,
        variant_id=variant_id or None,
        quantity=quantity,
        added_at=now or utcnow(),
    )
    cart.items.append(item)
    return item


def update_quantity(cart: Cart, key: str, quantity: int) -> CartItem | None:
    """Set the quantity of a line. Zero or less removes it."""

    existing = cart.find(key)
    if existing is None:
        raise KeyError(key)
    if quantity <= 0:
        remove_item(cart, key)
        return None
    existing.quantity = quantity
    return existing


def remove_item(cart: Cart, key: str) -> CartItem:
    existing = cart.find(key)
    if existing is None:
        raise KeyError(key)
    cart.items.remove(existing)
    return existing


def clear(cart: Cart) -> int:
    removed = len(cart.items)
    cart.items.clear()
    return removed


def compute_total(items: Iterable[CartItem], price_lookup: PriceLookup) -> Decimal:
    """Sum unit price times quantity, rounded to cents.

    Prices are looked up at computation time; lines whose product no longer
    resolves to a price are left out of the total.
    """

    total = Decimal("0")
    for item in items:
        price = price_lookup(item.product_id, item.variant_id)
        if price is None:
            continue
        total += Decimal(price) * item.quantity
    return total.quantize(CENT, rounding=ROUND_HALF_UP)
