"""Catalog collaborator: product lookup, stock and unit prices."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

logger = logging.getLogger("shopbot.catalog")


@dataclass(slots=True, frozen=True)
class Variant:
    id: int
    name: str
    price: Decimal
    stock: int | None = None


@dataclass(slots=True, frozen=True)
class Product:
    """Catalog entry. ``stock`` of ``None`` means stock is not managed."""

    id: int
    name: str
    price: Decimal
    category: str = ""
    description: str = ""
    stock: int | None = None
    variants: tuple[Variant, ...] = field(default_factory=tuple)

    @property
    def is_variable(self) -> bool:
        return bool(self.variants)

    def variant(self, variant_id: int | None) -> Variant | None:
        if variant_id is None:
            return None
        for variant in self.variants:
            if variant.id == variant_id:
                return variant
        return None


class Catalog(ABC):
    """Read-only view of the product catalog."""

    @abstractmethod
    def get_product(self, product_id: int) -> Product | None:
        """Return the product or ``None`` if unknown."""

    @abstractmethod
    def categories(self) -> Sequence[str]:
        """Return category names in display order."""

    @abstractmethod
    def products_in_category(self, category: str) -> Sequence[Product]:
        """Return products that belong to ``category``."""

    @abstractmethod
    def search(self, query: str, limit: int = 10) -> Sequence[Product]:
        """Return products matching a free-text query."""

    def has_stock(self, product_id: int, quantity: int = 1, variant_id: int | None = None) -> bool:
        product = self.get_product(product_id)
        if product is None:
            return False
        stock = product.stock
        if variant_id is not None:
            variant = product.variant(variant_id)
            if variant is None:
                return False
            stock = variant.stock
        if stock is None:
            return True
        return stock >= quantity

    def unit_price(self, product_id: int, variant_id: int | None = None) -> Decimal | None:
        product = self.get_product(product_id)
        if product is None:
            return None
        if variant_id is not None:
            variant = product.variant(variant_id)
            return variant.price if variant else None
        return product.price

    def display_name(self, product_id: int, variant_id: int | None = None) -> str:
        product = self.get_product(product_id)
        if product is None:
            return f"Product #{product_id}"
        variant = product.variant(variant_id)
        return f"{product.name} ({variant.name})" if variant else product.name


class InMemoryCatalog(Catalog):
    """Dictionary-backed catalog, seeded from JSON in local and test setups."""

    def __init__(self, products: Iterable[Product] = ()) -> None:
        self._products: dict[int, Product] = {product.id: product for product in products}

    @classmethod
    def from_json(cls, path: Path) -> "InMemoryCatalog":
        path = Path(path)
        if not path.exists():
            logger.warning("Catalog file %s not found; starting with an empty catalog", path)
            return cls()
        data = json.loads(path.read_text(encoding="utf-8"))
        return cls(_product_from_dict(item) for item in data.get("products", []))

    def __len__(self) -> int:
        return len(self._products)

    def add(self, product: Product) -> None:
        self._products[product.id] = product

    def get_product(self, product_id: int) -> Product | None:
        try:
            return self._products.get(int(product_id))
        except (TypeError, ValueError):
            return None

    def categories(self) -> Sequence[str]:
        seen: dict[str, None] = {}
        for product in self._products.values():
            if product.category:
                seen.setdefault(product.category, None)
        return list(seen)

    def products_in_category(self, category: str) -> Sequence[Product]:
        wanted = category.strip().lower()
        return [p for p in self._products.values() if p.category.lower() == wanted]

    def search(self, query: str, limit: int = 10) -> Sequence[Product]:
        terms = [term for term in query.lower().split() if term]
        if not terms:
            return []
        matches = []
        for product in self._products.values():
            haystack = f"{product.name} {product.description} {product.category}".lower()
            if all(term in haystack for term in terms):
                matches.append(product)
        return matches[:limit]


def _product_from_dict(data: Mapping[str, Any]) -> Product:
    variants = tuple(
        Variant(
            id=int(variant["id"]),
            name=str(variant.get("name", "")),
            price=Decimal(str(variant.get("price", data.get("price", "0")))),
            stock=variant.get("stock"),
        )
        for variant in data.get("variants", [])
    )
    return Product(
        id=int(data["id"]),
        name=str(data.get("name", "")),
        price=Decimal(str(data.get("price", "0"))),
        category=str(data.get("category", "")),
        description=str(data.get("description", "")),
        stock=data.get("stock"),
        variants=variants,
    )
