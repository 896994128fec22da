"""Declarative transition table."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .errors import ConfigurationError
from .models import ANY_STATE, Event, State, event_name


@dataclass(slots=True, frozen=True)
class TransitionRule:
    """``from_state`` is a concrete state or :data:`ANY_STATE`."""

    from_state: State | str
    event: str
    to_state: State
    guard: str | None = None
    action: str | None = None

    def __post_init__(self) -> None:
        if self.from_state != ANY_STATE:
            object.__setattr__(self, "from_state", State(self.from_state))
        object.__setattr__(self, "event", event_name(self.event))
        object.__setattr__(self, "to_state", State(self.to_state))

    @property
    def is_wildcard(self) -> bool:
        return self.from_state == ANY_STATE


class TransitionTable:
    """Rules indexed by state then event, plus a wildcard index by event.

    Exact-state rules always take precedence over wildcard rules for the same
    event. The table accepts registrations until :meth:`freeze` is called.
    """

    def __init__(self, rules: Iterable[TransitionRule] = ()) -> None:
        self._exact: dict[State, dict[str, TransitionRule]] = {}
        self._wildcard: dict[str, TransitionRule] = {}
        self._order: list[TransitionRule] = []
        self._frozen = False
        self.register_many(rules)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> "TransitionTable":
        self._frozen = True
        return self

    def register(self, rule: TransitionRule, replace: bool = False) -> "TransitionTable":
        if self._frozen:
            raise ConfigurationError("Transition table is frozen; register rules before first use")

        if rule.is_wildcard:
            bucket = self._wildcard
        else:
            bucket = self._exact.setdefault(rule.from_state, {})

        existing = bucket.get(rule.event)
        if existing is not None:
            if not replace:
                raise ConfigurationError(
                    f"Duplicate transition for ({rule.from_state}, {rule.event}); pass replace=True to override"
                )
            self._order.remove(existing)

        bucket[rule.event] = rule
        self._order.append(rule)
        return self

    def register_many(self, rules: Iterable[TransitionRule], replace: bool = False) -> "TransitionTable":
        for rule in rules:
            self.register(rule, replace=replace)
        return self

    def find(self, state: State, event: str | Event) -> TransitionRule | None:
        name = event_name(event)
        rule = self._exact.get(state, {}).get(name)
        if rule is not None:
            return rule
        return self._wildcard.get(name)

    def available_events(self, state: State) -> list[str]:
        """Events that have a rule from ``state``, exact ones first."""

        events = list(self._exact.get(state, {}))
        for name in self._wildcard:
            if name not in events:
                events.append(name)
        return events

    @property
    def rules(self) -> list[TransitionRule]:
        return list(self._order)

    def guard_names(self) -> set[str]:
        return {rule.guard for rule in self._order if rule.guard}

    def action_names(self) -> set[str]:
        return {rule.action for rule in self._order if rule.action}

    def __len__(self) -> int:
        return len(self._order)


def default_rules() -> list[TransitionRule]:
    S, E = State, Event
    return [
        TransitionRule(S.IDLE, E.START, S.BROWSING, action="show_main_menu"),
        TransitionRule(S.BROWSING, E.VIEW_PRODUCT, S.VIEWING_PRODUCT, "product_exists", "show_product_details"),
        TransitionRule(S.BROWSING, E.SELECT_CATEGORY, S.BROWSING, action="show_category_products"),
        TransitionRule(S.BROWSING, E.SEARCH, S.BROWSING, action="show_search_results"),
        TransitionRule(S.BROWSING, E.VIEW_CART, S.CART_MANAGEMENT, action="show_cart"),
        TransitionRule(S.VIEWING_PRODUCT, E.ADD_TO_CART, S.CART_MANAGEMENT, "has_stock", "add_item_and_show_cart"),
        TransitionRule(S.VIEWING_PRODUCT, E.VIEW_CART, S.CART_MANAGEMENT, action="show_cart"),
        TransitionRule(S.VIEWING_PRODUCT, E.SEARCH, S.BROWSING, action="show_search_results"),
        TransitionRule(S.CART_MANAGEMENT, E.START_CHECKOUT, S.CHECKOUT_ADDRESS, "cart_not_empty", "request_address"),
        TransitionRule(S.CART_MANAGEMENT, E.MODIFY_CART, S.CART_MANAGEMENT, action="update_cart_and_show"),
        TransitionRule(S.CART_MANAGEMENT, E.VIEW_PRODUCT, S.VIEWING_PRODUCT, "product_exists", "show_product_details"),
        TransitionRule(S.CART_MANAGEMENT, E.SEARCH, S.BROWSING, action="show_search_results"),
        TransitionRule(
            S.CHECKOUT_ADDRESS,
            E.ENTER_ADDRESS,
            S.CHECKOUT_PAYMENT,
            "address_valid",
            "save_address_and_request_payment",
        ),
        TransitionRule(
            S.CHECKOUT_PAYMENT,
            E.SELECT_PAYMENT,
            S.CHECKOUT_CONFIRM,
            "payment_method_valid",
            "show_order_summary",
        ),
        TransitionRule(S.CHECKOUT_CONFIRM, E.CONFIRM_ORDER, S.COMPLETED, action="create_order_and_confirm"),
        TransitionRule(S.COMPLETED, E.START, S.BROWSING, action="show_main_menu"),
        TransitionRule(ANY_STATE, E.REQUEST_HUMAN, S.AWAITING_HUMAN, action="notify_agent"),
        TransitionRule(S.AWAITING_HUMAN, E.AGENT_TAKEOVER, S.IDLE, action="transfer_to_agent"),
        TransitionRule(ANY_STATE, E.TIMEOUT, S.IDLE, action="preserve_cart"),
        TransitionRule(ANY_STATE, E.RESET, S.IDLE, action="clear_context"),
    ]
