"""Named guard predicates gating transitions."""

from __future__ import annotations

import logging
from typing import Any, Callable, Literal, Mapping

from shopbot.services.catalog import Catalog

from .models import Conversation

logger = logging.getLogger("shopbot.guards")

Guard = Callable[[Conversation, Mapping[str, Any]], bool]

BUILTIN_GUARDS = ("product_exists", "has_stock", "cart_not_empty", "address_valid", "payment_method_valid")


def product_exists(conversation: Conversation, payload: Mapping[str, Any]) -> bool:
    return bool(payload.get("product_id"))


def cart_not_empty(conversation: Conversation, payload: Mapping[str, Any]) -> bool:
    return bool(conversation.state_data.get("cart_items"))


def address_valid(conversation: Conversation, payload: Mapping[str, Any]) -> bool:
    address = payload.get("address")
    return isinstance(address, Mapping) and bool(address)


def payment_method_valid(conversation: Conversation, payload: Mapping[str, Any]) -> bool:
    return bool(payload.get("payment_method"))


def stock_guard(catalog: Catalog) -> Guard:
    """Build ``has_stock`` around a catalog lookup."""

    def has_stock(conversation: Conversation, payload: Mapping[str, Any]) -> bool:
        product_id = payload.get("product_id")
        if not product_id:
            return False
        try:
            quantity = int(payload.get("quantity") or 1)
            variant_id = int(payload["variant_id"]) if payload.get("variant_id") else None
            return catalog.has_stock(int(product_id), quantity, variant_id)
        except (TypeError, ValueError):
            return False

    return has_stock


class GuardRegistry:
    """Resolves guard names to predicates.

    Collaborators register extra guards, or replace a built-in one, through
    :meth:`register`. Names nobody registered resolve to ``unknown_policy``.
    """

    def __init__(
        self,
        catalog: Catalog,
        unknown_policy: Literal["allow", "deny"] = "allow",
    ) -> None:
        self.unknown_policy = unknown_policy
        self._guards: dict[str, Guard] = {
            "product_exists": product_exists,
            "has_stock": stock_guard(catalog),
            "cart_not_empty": cart_not_empty,
            "address_valid": address_valid,
            "payment_method_valid": payment_method_valid,
        }

    def register(self, name: str, guard: Guard) -> "GuardRegistry":
        self._guards[name] = guard
        return self

    def has(self, name: str) -> bool:
        return name in self._guards

    def names(self) -> list[str]:
        return list(self._guards)

    def evaluate(self, name: str, conversation: Conversation, payload: Mapping[str, Any]) -> bool:
        guard = self._guards.get(name)
        if guard is None:
            allowed = self.unknown_policy == "allow"
            logger.warning(
                "Unknown guard %s evaluated as %s",
                name,
                "pass" if allowed else "fail",
            )
            return allowed
        return bool(guard(conversation, payload))
