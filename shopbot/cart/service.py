"""Cart operations used by conversation actions."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable

from shopbot.core.db import utcnow
from shopbot.services.catalog import Catalog

from . import models
from .errors import CartItemNotFound, InsufficientStock, InvalidQuantity, ProductNotFound
from .models import Cart, CartStatus
from .store import CartStore

logger = logging.getLogger("shopbot.cart")


class CartService:
    """Validates cart mutations against the catalog and persists them."""

    def __init__(
        self,
        store: CartStore,
        catalog: Catalog,
        expiry_hours: int = 72,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self.expiry_hours = expiry_hours
        self._clock = clock

    def get_cart(self, customer_id: str) -> Cart:
        """Return the active cart, or an unsaved empty one."""

        return self.store.get_active(customer_id) or Cart(customer_id=customer_id)

    def add_item(
        self,
        customer_id: str,
        product_id: int,
        variant_id: int | None = None,
        quantity: int = 1,
    ) -> Cart:
        if quantity <= 0:
            raise InvalidQuantity(f"Quantity must be positive, got: {quantity}", quantity=quantity)

        product = self.catalog.get_product(product_id)
        if product is None or (variant_id is not None and product.variant(variant_id) is None):
            raise ProductNotFound(
                f"Product not found: {variant_id or product_id}",
                product_id=product_id,
                variant_id=variant_id,
            )

        def mutation(cart: Cart) -> None:
            # Stock is checked against what the line would hold after merging.
            requested = cart.quantity_of(product_id, variant_id) + quantity
            if not self.catalog.has_stock(product_id, requested, variant_id):
                raise InsufficientStock(
                    f"Insufficient stock for {product.name}. Requested: {requested}",
                    product_id=product_id,
                    variant_id=variant_id,
                    requested=requested,
                )
            now = self._clock()
            models.add_item(cart, product_id, variant_id, quantity, now)
            self._touch(cart, now)

        cart = self.store.mutate(customer_id, mutation)
        logger.info(
            "Cart %s: added product %s (variant %s) x%s",
            cart.id,
            product_id,
            variant_id,
            quantity,
        )
        return cart

    def update_quantity(self, customer_id: str, key: str, quantity: int) -> Cart:
        def mutation(cart: Cart) -> None:
            existing = cart.find(key)
            if existing is None:
                raise CartItemNotFound(f"Item not found: {key}", key=key)
            if quantity > 0 and not self.catalog.has_stock(existing.product_id, quantity, existing.variant_id):
                raise InsufficientStock(
                    f"Insufficient stock for item {key}. Requested: {quantity}",
                    key=key,
                    requested=quantity,
                )
            models.update_quantity(cart, key, quantity)
            self._touch(cart, self._clock())

        return self.store.mutate(customer_id, mutation)

    def remove_item(self, customer_id: str, key: str) -> Cart:
        def mutation(cart: Cart) -> None:
            if cart.find(key) is None:
                raise CartItemNotFound(f"Item not found: {key}", key=key)
            models.remove_item(cart, key)
            self._touch(cart, self._clock())

        return self.store.mutate(customer_id, mutation)

    def clear(self, customer_id: str) -> Cart:
        def mutation(cart: Cart) -> None:
            models.clear(cart)
            self._touch(cart, self._clock())

        return self.store.mutate(customer_id, mutation)

    def complete(self, cart: Cart) -> None:
        if cart.id is not None:
            self.store.set_status(cart.id, CartStatus.COMPLETED)
            cart.status = CartStatus.COMPLETED

    def compute_total(self, cart: Cart) -> Decimal:
        return models.compute_total(cart.items, self.catalog.unit_price)

    def cleanup_expired(self, now: datetime | None = None, purge: bool = False) -> int:
        """Expire active carts idle for longer than the expiry window."""

        now = now or self._clock()
        cutoff = now - timedelta(hours=self.expiry_hours)
        expired = self.store.expire_stale(cutoff)
        purged = self.store.purge_expired() if purge else 0
        if expired or purged:
            logger.info("Cart cleanup completed: expired=%s purged=%s", expired, purged)
        else:
            logger.info("No expired carts to clean up")
        return expired

    def _touch(self, cart: Cart, now: datetime) -> None:
        cart.total = models.compute_total(cart.items, self.catalog.unit_price)
        cart.updated_at = now
        cart.expires_at = now + timedelta(hours=self.expiry_hours)
