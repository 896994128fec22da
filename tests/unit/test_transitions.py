import pytest

from shopbot.conversation.errors import ConfigurationError
from shopbot.conversation.models import ANY_STATE, Event, State
from shopbot.conversation.transitions import TransitionRule, TransitionTable, default_rules


@pytest.fixture()
def table():
    return TransitionTable(default_rules())


def test_default_table_has_every_rule(table):
    assert len(table) == 20
    assert table.action_names() >= {"show_main_menu", "add_item_and_show_cart", "preserve_cart"}
    assert table.guard_names() == {
        "product_exists",
        "has_stock",
        "cart_not_empty",
        "address_valid",
        "payment_method_valid",
    }


def test_exact_lookup(table):
    rule = table.find(State.VIEWING_PRODUCT, Event.ADD_TO_CART)

    assert rule.to_state == State.CART_MANAGEMENT
    assert rule.guard == "has_stock"
    assert rule.action == "add_item_and_show_cart"


def test_missing_rule_returns_none(table):
    assert table.find(State.IDLE, "ADD_TO_CART") is None
    assert table.find(State.BROWSING, "NOT_AN_EVENT") is None


@pytest.mark.parametrize("state", list(State))
def test_wildcard_rules_match_every_state(table, state):
    assert table.find(state, Event.REQUEST_HUMAN).to_state == State.AWAITING_HUMAN
    assert table.find(state, Event.RESET).action == "clear_context"
    assert table.find(state, Event.TIMEOUT).action == "preserve_cart"


def test_exact_rule_wins_over_wildcard():
    table = TransitionTable(default_rules())
    table.register(TransitionRule(State.CHECKOUT_CONFIRM, Event.RESET, State.CART_MANAGEMENT, action="show_cart"))

    assert table.find(State.CHECKOUT_CONFIRM, Event.RESET).to_state == State.CART_MANAGEMENT
    assert table.find(State.BROWSING, Event.RESET).to_state == State.IDLE


def test_wildcard_registered_first_still_loses_to_exact_rule():
    table = TransitionTable(
        [
            TransitionRule(ANY_STATE, "PING", State.IDLE),
            TransitionRule(State.BROWSING, "PING", State.BROWSING),
        ]
    )

    assert table.find(State.BROWSING, "PING").to_state == State.BROWSING
    assert table.find(State.COMPLETED, "PING").to_state == State.IDLE


def test_duplicate_rule_rejected_unless_replacing(table):
    rule = TransitionRule(State.IDLE, Event.START, State.BROWSING, action="custom_greeting")

    with pytest.raises(ConfigurationError):
        table.register(rule)

    table.register(rule, replace=True)
    assert table.find(State.IDLE, Event.START).action == "custom_greeting"
    assert len(table) == 20


def test_frozen_table_rejects_registration(table):
    table.freeze()

    with pytest.raises(ConfigurationError):
        table.register(TransitionRule(State.BROWSING, "APPLY_COUPON", State.BROWSING))


def test_custom_event_names_are_supported():
    table = TransitionTable([TransitionRule(State.BROWSING, "APPLY_COUPON", State.BROWSING, action="apply_coupon")])

    assert table.find(State.BROWSING, "APPLY_COUPON").action == "apply_coupon"


def test_available_events_lists_exact_then_wildcard(table):
    events = table.available_events(State.BROWSING)

    assert events[:4] == ["VIEW_PRODUCT", "SELECT_CATEGORY", "SEARCH", "VIEW_CART"]
    assert events[4:] == ["REQUEST_HUMAN", "TIMEOUT", "RESET"]
    assert len(events) == len(set(events))


def test_rule_rejects_unknown_state():
    with pytest.raises(ValueError):
        TransitionRule("NOWHERE", "START", State.IDLE)
