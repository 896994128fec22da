"""Catalog browsing actions."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from shopbot.conversation.models import Conversation
from shopbot.services.catalog import Product

from .base import Action, ActionContext, ActionResult, payload_int


def product_rows(products: Sequence[Product], context: ActionContext) -> list[dict[str, Any]]:
    return [
        {
            "id": f"product_{product.id}",
            "title": product.name[:24],
            "description": f"{context.settings.currency} {product.price}",
        }
        for product in products
    ]


class ShowMainMenuAction(Action):
    """Greet the customer and list catalog categories."""

    name = "show_main_menu"

    def handle(
        self,
        conversation: Conversation,
        context: ActionContext,
        payload: Mapping[str, Any],
    ) -> ActionResult:
        categories = list(context.catalog.categories())
        builder = self.builder().header("Welcome!").text("What would you like to shop for today?")

        if categories:
            rows = [{"id": f"category_{name}", "title": name[:24]} for name in categories]
            builder.section("Categories", rows)
        else:
            builder.text("Search for a product by name to get started.")

        builder.footer("Type 'help' to talk to a person")
        return ActionResult.ok([builder.build()])


class ShowProductDetailsAction(Action):
    """Show a product card with add-to-cart and view-cart buttons."""

    name = "show_product_details"

    def handle(
        self,
        conversation: Conversation,
        context: ActionContext,
        payload: Mapping[str, Any],
    ) -> ActionResult:
        product_id = payload_int(payload, "product_id")
        product = context.catalog.get_product(product_id) if product_id is not None else None
        if product is None:
            return self.error("Sorry, we couldn't find that product.", "product_not_found")

        variant_id = payload_int(payload, "variant_id")
        variant = product.variant(variant_id)
        price = variant.price if variant else product.price
        stock = variant.stock if variant else product.stock

        builder = self.builder().header(context.catalog.display_name(product.id, variant_id))
        if product.description:
            builder.text(product.description)
        builder.text(f"Price: {self.format_price(price, context)}")

        if stock is not None:
            builder.text("In stock" if stock > 0 else "Out of stock")
        if product.is_variable and variant is None:
            names = ", ".join(option.name for option in product.variants)
            builder.text(f"Available options: {names}")

        if stock is None or stock > 0:
            builder.reply_button(f"add_{product.id}", "Add to cart")
        builder.reply_button("view_cart", "View cart")

        return ActionResult.ok(
            [builder.build()],
            context_delta={
                "selected_product_id": product.id,
                "selected_variant_id": variant.id if variant else None,
            },
        )


class ShowCategoryProductsAction(Action):
    """List the products of one category."""

    name = "show_category_products"

    def handle(
        self,
        conversation: Conversation,
        context: ActionContext,
        payload: Mapping[str, Any],
    ) -> ActionResult:
        category = str(payload.get("category") or "").strip()
        if not category:
            return self.error("Please pick a category.", "invalid_payload")

        products = list(context.catalog.products_in_category(category))
        if not products:
            message = self.builder().text(f"No products found in {category} yet.").build()
            return ActionResult.ok([message], context_delta={"selected_category": category})

        message = (
            self.builder()
            .header(category)
            .text(f"{len(products)} products available")
            .section(category, product_rows(products, context))
            .build()
        )
        return ActionResult.ok([message], context_delta={"selected_category": category})


class ShowSearchResultsAction(Action):
    name = "show_search_results"

    def handle(
        self,
        conversation: Conversation,
        context: ActionContext,
        payload: Mapping[str, Any],
    ) -> ActionResult:
        query = str(payload.get("query") or "").strip()
        results = list(context.catalog.search(query)) if query else []

        if not results:
            message = self.builder().text(f"I couldn't find anything matching '{query}'.").build()
            return ActionResult.ok([message], context_delta={"last_search": query})

        message = (
            self.builder()
            .text(f"Here is what I found for '{query}':")
            .section("Results", product_rows(results, context))
            .build()
        )
        return ActionResult.ok([message], context_delta={"last_search": query})
