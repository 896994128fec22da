"""Order persistence and payment link collaborators."""

from __future__ import annotations

import itertools
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping
from urllib.parse import urlencode

from shopbot.cart.models import Cart
from shopbot.core.db import utcnow


@dataclass(slots=True, frozen=True)
class OrderRecord:
    id: int
    customer_id: str
    cart_id: int | None
    items: tuple[dict[str, Any], ...]
    total: Decimal
    shipping_address: dict[str, Any]
    payment_method: str
    created_at: datetime = field(default_factory=utcnow)


class OrderGateway(ABC):
    """Creates orders in the commerce backend."""

    @abstractmethod
    def create_order(
        self,
        customer_id: str,
        cart: Cart,
        shipping_address: Mapping[str, Any],
        payment_method: str,
    ) -> int:
        """Create an order for ``cart`` and return its identifier."""

    @abstractmethod
    def find_by_cart(self, cart_id: int) -> int | None:
        """Return the order already created for ``cart_id``, if any."""


class InMemoryOrderGateway(OrderGateway):
    def __init__(self, start_id: int = 1000) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(start_id)
        self.orders: dict[int, OrderRecord] = {}

    def create_order(
        self,
        customer_id: str,
        cart: Cart,
        shipping_address: Mapping[str, Any],
        payment_method: str,
    ) -> int:
        with self._lock:
            order_id = next(self._ids)
            self.orders[order_id] = OrderRecord(
                id=order_id,
                customer_id=customer_id,
                cart_id=cart.id,
                items=tuple(item.to_dict() for item in cart.items),
                total=cart.total,
                shipping_address=dict(shipping_address),
                payment_method=payment_method,
            )
        return order_id

    def find_by_cart(self, cart_id: int) -> int | None:
        with self._lock:
            for order in self.orders.values():
                if order.cart_id == cart_id:
                    return order.id
        return None


class PaymentGateway(ABC):
    """Produces payment links; payment execution happens elsewhere."""

    @abstractmethod
    def payment_link(self, customer_id: str, amount: Decimal, method: str) -> str | None:
        """Return a link the customer can follow to pay, or ``None``."""


class StaticPaymentGateway(PaymentGateway):
    def __init__(self, base_url: str, currency: str = "USD") -> None:
        self.base_url = base_url.rstrip("/")
        self.currency = currency

    def payment_link(self, customer_id: str, amount: Decimal, method: str) -> str | None:
        query = urlencode(
            {
                "customer": customer_id,
                "amount": str(amount),
                "currency": self.currency,
                "method": method,
            }
        )
        return f"{self.base_url}?{query}"
