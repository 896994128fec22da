"""Cart mutation failures."""

from __future__ import annotations

from typing import Any


class CartError(Exception):
    code = "cart_error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidQuantity(CartError):
    code = "invalid_quantity"


class ProductNotFound(CartError):
    code = "product_not_found"


class InsufficientStock(CartError):
    code = "stock_error"


class CartItemNotFound(CartError):
    code = "item_not_found"
