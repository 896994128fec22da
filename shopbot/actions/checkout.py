"""Checkout actions: address capture, payment selection and order creation."""

from __future__ import annotations

from typing import Any, Mapping

from shopbot.conversation.models import Conversation, State

from .base import Action, ActionContext, ActionResult

REQUIRED_ADDRESS_FIELDS = ("street", "city", "postal_code", "country")

PAYMENT_METHODS = {
    "cod": "Cash on delivery",
    "card": "Credit / debit card",
    "upi": "UPI",
    "online": "Pay online",
}
OFFLINE_PAYMENT_METHODS = frozenset({"cod"})


def format_address(address: Mapping[str, Any]) -> str:
    parts = [address.get(field) for field in ("name", "street", "city", "state", "postal_code", "country")]
    return ", ".join(str(part) for part in parts if part)


class RequestAddressAction(Action):
    """Ask for a delivery address, offering saved ones when available."""

    name = "request_address"

    def handle(
        self,
        conversation: Conversation,
        context: ActionContext,
        payload: Mapping[str, Any],
    ) -> ActionResult:
        saved = [
            address
            for address in conversation.state_data.get("saved_addresses") or []
            if isinstance(address, Mapping)
        ]

        builder = self.builder().header("Delivery address")
        if saved:
            builder.text("Where should we deliver? Pick a saved address or send a new one.")
            rows = [
                {"id": f"address_{index}", "title": f"Address {index + 1}", "description": format_address(address)[:72]}
                for index, address in enumerate(saved)
            ]
            rows.append({"id": "new_address", "title": "New address"})
            builder.section("Saved addresses", rows)
        else:
            builder.text("Please send your delivery address: street, city, postal code and country.")

        return ActionResult.ok([builder.build()], context_delta={"awaiting_address": True})


class SaveAddressAndRequestPaymentAction(Action):
    name = "save_address_and_request_payment"

    def handle(
        self,
        conversation: Conversation,
        context: ActionContext,
        payload: Mapping[str, Any],
    ) -> ActionResult:
        address = payload.get("address")
        if not isinstance(address, Mapping):
            return self.error("Please send your delivery address.", "invalid_address")

        missing = [field for field in REQUIRED_ADDRESS_FIELDS if not str(address.get(field) or "").strip()]
        if missing:
            readable = ", ".join(field.replace("_", " ") for field in missing)
            return self.error(f"Your address is missing: {readable}.", "invalid_address")

        rows = [{"id": f"pay_{method}", "title": label} for method, label in PAYMENT_METHODS.items()]
        message = (
            self.builder()
            .text(f"Delivering to: {format_address(address)}")
            .text("How would you like to pay?")
            .section("Payment methods", rows)
            .build()
        )
        return ActionResult.ok(
            [message],
            context_delta={"shipping_address": dict(address), "awaiting_address": False},
        )


class ShowOrderSummaryAction(Action):
    """Summarise the order and, for online methods, attach a payment link.

    Payment links expire; the expiry is queued on the scheduler and executed
    elsewhere.
    """

    name = "show_order_summary"

    def handle(
        self,
        conversation: Conversation,
        context: ActionContext,
        payload: Mapping[str, Any],
    ) -> ActionResult:
        method = str(payload.get("payment_method") or "").strip().lower()
        if method not in PAYMENT_METHODS:
            return self.error("Please choose one of the listed payment methods.", "invalid_payment_method")

        customer_id = conversation.conversation_id
        cart = context.carts.get_cart(customer_id)
        if cart.is_empty:
            return self.error("Your cart is empty.", "empty_cart")

        total = context.carts.compute_total(cart)
        builder = self.builder().header("Order summary")
        for item in cart.items:
            builder.text(f"{item.quantity} x {context.catalog.display_name(item.product_id, item.variant_id)}")
        address = conversation.state_data.get("shipping_address")
        if isinstance(address, Mapping):
            builder.text(f"Ship to: {format_address(address)}")
        builder.text(f"Payment: {PAYMENT_METHODS[method]}")
        builder.text(f"Total: {self.format_price(total, context)}")

        delta: dict[str, Any] = {"payment_method": method, "order_total": str(total), "cart_id": cart.id}

        if method not in OFFLINE_PAYMENT_METHODS:
            link = context.services.payments.payment_link(customer_id, total, method)
            if not link:
                return self.error(
                    "Failed to generate payment link. Please try again or select a different payment method.",
                    "payment_link_failed",
                )
            context.services.scheduler.schedule_after(
                "payment_link_expiry",
                {"conversation_id": customer_id, "cart_id": cart.id, "payment_link": link},
                context.settings.payment_link_ttl_seconds,
            )
            builder.url_button("Pay now", link)
            delta["payment_link"] = link

        builder.reply_button("confirm_order", "Confirm order")
        return ActionResult.ok([builder.build()], context_delta=delta)


class CreateOrderAndConfirmAction(Action):
    """Create the order once per cart and confirm it.

    The order is looked up by the cart being checked out, so a retried
    confirmation re-sends the confirmation for the order it already created
    while a later checkout in the same conversation gets an order of its own.
    """

    name = "create_order_and_confirm"

    def handle(
        self,
        conversation: Conversation,
        context: ActionContext,
        payload: Mapping[str, Any],
    ) -> ActionResult:
        customer_id = conversation.conversation_id
        cart = context.carts.get_cart(customer_id)
        orders = context.services.orders

        # A cart completed by an earlier attempt is no longer active.
        cart_id = cart.id if cart.id is not None else conversation.state_data.get("cart_id")
        order_id = orders.find_by_cart(int(cart_id)) if cart_id is not None else None
        total: Any

        if order_id is not None:
            self.log("order %s already exists for cart %s", order_id, cart_id)
            if cart.is_empty:
                total = conversation.state_data.get("order_total")
            else:
                total = context.carts.compute_total(cart)
        else:
            if cart.is_empty:
                return self.error("Your cart is empty.", "empty_cart")
            address = conversation.state_data.get("shipping_address")
            if not isinstance(address, Mapping) or not address:
                return self.error("We still need your delivery address.", "missing_address")
            method = conversation.state_data.get("payment_method")
            if not method:
                return self.error("Please choose a payment method first.", "missing_payment_method")

            cart.total = context.carts.compute_total(cart)
            order_id = orders.create_order(customer_id, cart, address, str(method))
            total = cart.total
            self.log("created order %s for %s", order_id, customer_id)

        context.carts.complete(cart)

        result = self._confirmed(order_id, total, context)
        return result.with_context(
            {
                "cart_id": None,
                "cart_items": [],
                "cart_item_count": 0,
                "cart_total": "0.00",
            }
        )

    def _confirmed(self, order_id: int, total: Any, context: ActionContext) -> ActionResult:
        builder = self.builder().header("Order confirmed").text(f"Thank you! Your order #{order_id} has been placed.")
        if total:
            builder.text(f"Total: {self.format_price(total, context)}")
        builder.reply_button("start", "Shop again")
        return ActionResult.ok(
            [builder.build()],
            next_state=State.COMPLETED,
            context_delta={"order_id": order_id, "order_total": str(total) if total else None},
        )
