"""Cart actions: showing, adding to and editing the customer's cart."""

from __future__ import annotations

from typing import Any, Mapping

from shopbot.cart.errors import CartError
from shopbot.cart.models import Cart
from shopbot.conversation.models import Conversation
from shopbot.core.db import datetime_to_iso

from .base import Action, ActionContext, ActionResult, payload_int


def cart_context(cart: Cart) -> dict[str, Any]:
    """Cart fields mirrored into conversation state data."""

    return {
        "cart_id": cart.id,
        "cart_items": [item.to_dict() for item in cart.items],
        "cart_item_count": cart.item_count,
        "cart_total": str(cart.total),
    }


class CartAction(Action):
    """Shared rendering for actions that end by showing the cart."""

    def render_cart(self, cart: Cart, context: ActionContext, intro: str | None = None) -> dict[str, Any]:
        builder = self.builder().header("Your cart")
        if intro:
            builder.text(intro)

        if cart.is_empty:
            builder.text("Your cart is empty.")
            builder.reply_button("browse", "Keep shopping")
            return builder.build()

        lines = []
        for item in cart.items:
            label = context.catalog.display_name(item.product_id, item.variant_id)
            price = context.catalog.unit_price(item.product_id, item.variant_id)
            if price is None:
                lines.append(f"{item.quantity} x {label} (unavailable)")
            else:
                lines.append(f"{item.quantity} x {label} @ {self.format_price(price, context)}")
        builder.text("\n".join(lines))
        builder.text(f"Total: {self.format_price(cart.total, context)}")
        builder.reply_button("checkout", "Checkout")
        builder.reply_button("browse", "Keep shopping")
        return builder.build()


class ShowCartAction(CartAction):
    name = "show_cart"

    def handle(
        self,
        conversation: Conversation,
        context: ActionContext,
        payload: Mapping[str, Any],
    ) -> ActionResult:
        cart = context.carts.get_cart(conversation.conversation_id)
        return ActionResult.ok([self.render_cart(cart, context)], context_delta=cart_context(cart))


class AddItemAndShowCartAction(CartAction):
    """Add the selected product to the cart and show the result."""

    name = "add_item_and_show_cart"

    def handle(
        self,
        conversation: Conversation,
        context: ActionContext,
        payload: Mapping[str, Any],
    ) -> ActionResult:
        product_id = payload_int(payload, "product_id")
        if product_id is None:
            return self.error("Please choose a product first.", "invalid_payload")

        variant_id = payload_int(payload, "variant_id")
        quantity = payload_int(payload, "quantity", 1)

        try:
            cart = context.carts.add_item(conversation.conversation_id, product_id, variant_id, quantity)
        except CartError as exc:
            self.log("add rejected for %s: %s", conversation.conversation_id, exc.message)
            return self.error(exc.message, exc.code)

        name = context.catalog.display_name(product_id, variant_id)
        message = self.render_cart(cart, context, intro=f"Added {quantity} x {name} to your cart.")
        return ActionResult.ok([message], context_delta=cart_context(cart))


class UpdateCartAndShowAction(CartAction):
    """Change a line quantity, remove a line or empty the cart.

    Payload is either ``item_key`` with ``quantity`` (0 or less removes the
    line) or ``clear: true``.
    """

    name = "update_cart_and_show"

    def handle(
        self,
        conversation: Conversation,
        context: ActionContext,
        payload: Mapping[str, Any],
    ) -> ActionResult:
        customer_id = conversation.conversation_id

        try:
            if payload.get("clear"):
                cart = context.carts.clear(customer_id)
                intro = "Your cart has been emptied."
            else:
                key = str(payload.get("item_key") or "")
                quantity = payload_int(payload, "quantity")
                if not key or quantity is None:
                    return self.error("Tell me which item to change and the new quantity.", "invalid_payload")
                cart = context.carts.update_quantity(customer_id, key, quantity)
                intro = "Item removed." if quantity <= 0 else "Cart updated."
        except CartError as exc:
            return self.error(exc.message, exc.code)

        return ActionResult.ok([self.render_cart(cart, context, intro=intro)], context_delta=cart_context(cart))


class PreserveCartAction(Action):
    """Timeout handler: the conversation goes idle, cart data stays."""

    name = "preserve_cart"

    def handle(
        self,
        conversation: Conversation,
        context: ActionContext,
        payload: Mapping[str, Any],
    ) -> ActionResult:
        builder = self.builder().text("We paused your session after a period of inactivity.")
        if conversation.state_data.get("cart_items"):
            builder.text("Don't worry, your cart has been saved for when you come back.")

        return ActionResult.ok(
            [builder.build()],
            context_delta={
                "timed_out_at": datetime_to_iso(context.now),
                "timed_out_from": context.from_state.value,
            },
        )
