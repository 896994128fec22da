import logging
from decimal import Decimal

import pytest

from shopbot.actions import ActionRegistry, default_actions
from shopbot.actions.base import Action, ActionResult
from shopbot.conversation.errors import (
    ActionFailed,
    ConfigurationError,
    GuardFailed,
    InvalidTransition,
    PersistenceConflict,
)
from shopbot.conversation.models import Event, State
from shopbot.core.metrics import MetricsCollector


class StaticAction(Action):
    def __init__(self, name, result, priority=10):
        self.name = name
        self.priority = priority
        self._result = result

    def handle(self, conversation, context, payload):
        return self._result


class ExplodingAction(Action):
    name = "show_main_menu"
    priority = 100

    def handle(self, conversation, context, payload):
        raise RuntimeError("catalog offline")


@pytest.mark.parametrize(
    ("state", "event"),
    [
        (State.IDLE, "ADD_TO_CART"),
        (State.BROWSING, "CONFIRM_ORDER"),
        (State.CHECKOUT_PAYMENT, "START"),
        (State.COMPLETED, "NOT_AN_EVENT"),
    ],
)
def test_unmatched_event_leaves_stored_conversation_unchanged(engine, conversation_store, seed_conversation, state, event):
    seed_conversation("cust-1", state, {"note": "keep"})

    with pytest.raises(InvalidTransition) as excinfo:
        engine.transition("cust-1", event, {"product_id": 1})

    stored = conversation_store.load("cust-1")
    assert stored.current_state == state
    assert stored.state_data == {"note": "keep"}
    assert stored.version == 1
    assert excinfo.value.details == {"current_state": state.value, "event": event}


def test_rejected_event_on_new_conversation_is_not_persisted(engine, conversation_store):
    with pytest.raises(InvalidTransition):
        engine.transition("cust-new", Event.ADD_TO_CART, {})

    assert conversation_store.load("cust-new") is None


def test_checkout_with_empty_cart_fails_guard(engine, conversation_store, seed_conversation):
    seed_conversation("cust-1", State.CART_MANAGEMENT)

    with pytest.raises(GuardFailed) as excinfo:
        engine.transition("cust-1", Event.START_CHECKOUT, {})

    assert excinfo.value.guard == "cart_not_empty"
    assert excinfo.value.code == "guard_failed"
    assert conversation_store.load("cust-1").current_state == State.CART_MANAGEMENT


def test_add_to_cart_moves_to_cart_management(engine, cart_service, seed_conversation):
    seed_conversation("cust-1", State.VIEWING_PRODUCT)

    outcome = engine.transition("cust-1", Event.ADD_TO_CART, {"product_id": 7, "quantity": 2})

    assert outcome.from_state == State.VIEWING_PRODUCT
    assert outcome.to_state == State.CART_MANAGEMENT
    assert outcome.messages
    cart = cart_service.get_cart("cust-1")
    assert [(item.product_id, item.quantity) for item in cart.items] == [(7, 2)]
    assert cart.total == Decimal("8.50")
    assert outcome.conversation.state_data["cart_item_count"] == 1
    assert outcome.conversation.state_data["cart_total"] == "8.50"


def test_add_to_cart_without_stock_fails_guard(engine, cart_service, conversation_store, seed_conversation):
    seed_conversation("cust-1", State.VIEWING_PRODUCT)

    with pytest.raises(GuardFailed) as excinfo:
        engine.transition("cust-1", Event.ADD_TO_CART, {"product_id": 7, "quantity": 6})

    assert excinfo.value.guard == "has_stock"
    assert conversation_store.load("cust-1").current_state == State.VIEWING_PRODUCT
    assert cart_service.get_cart("cust-1").is_empty


def test_action_context_delta_wins_over_payload(engine, seed_conversation):
    seed_conversation("cust-1", State.VIEWING_PRODUCT, {"selected_product_id": 7})

    outcome = engine.transition(
        "cust-1",
        Event.ADD_TO_CART,
        {"product_id": 7, "quantity": 1, "cart_total": "bogus"},
    )

    data = outcome.conversation.state_data
    assert data["cart_total"] == "4.25"
    assert data["product_id"] == 7
    assert data["selected_product_id"] == 7


def test_history_keeps_most_recent_entries(engine, clock):
    engine.transition("cust-1", Event.START)
    for index in range(14):
        clock.advance(1)
        engine.transition("cust-1", Event.SEARCH, {"query": f"q{index}"})

    history = engine.load("cust-1").history

    assert len(history) == 10
    assert [entry.payload["query"] for entry in history] == [f"q{index}" for index in range(4, 14)]
    assert [entry.timestamp for entry in history] == sorted(entry.timestamp for entry in history)


@pytest.mark.parametrize("state", list(State))
def test_request_human_reaches_awaiting_human_from_any_state(engine, scheduler, seed_conversation, state):
    seed_conversation("cust-1", state)

    outcome = engine.transition("cust-1", Event.REQUEST_HUMAN, {"reason": "question"})

    assert outcome.to_state == State.AWAITING_HUMAN
    assert outcome.conversation.state_data["handoff_from_state"] == state.value
    assert [job.name for job in scheduler.jobs] == ["human_handoff_escalation"]


def test_failed_action_leaves_state_unchanged(engine, conversation_store, seed_conversation, shipping_address):
    seed_conversation("cust-1", State.CHECKOUT_ADDRESS)
    incomplete = {key: value for key, value in shipping_address.items() if key != "city"}

    with pytest.raises(ActionFailed) as excinfo:
        engine.transition("cust-1", Event.ENTER_ADDRESS, {"address": incomplete})

    assert excinfo.value.error_code == "invalid_address"
    assert "city" in excinfo.value.messages[0]["body"]
    stored = conversation_store.load("cust-1")
    assert stored.current_state == State.CHECKOUT_ADDRESS
    assert stored.version == 1
    assert "shipping_address" not in stored.state_data


def test_raising_action_becomes_action_failed(make_engine):
    actions = ActionRegistry(default_actions()).register(ExplodingAction())
    engine = make_engine(actions=actions)

    with pytest.raises(ActionFailed) as excinfo:
        engine.transition("cust-1", Event.START)

    assert excinfo.value.error_code == "internal_error"
    assert excinfo.value.messages


def test_higher_priority_action_and_next_state_override(make_engine, seed_conversation):
    override = StaticAction("show_cart", ActionResult.ok(next_state=State.BROWSING), priority=50)
    engine = make_engine(actions=ActionRegistry(default_actions()).register(override))
    seed_conversation("cust-1", State.BROWSING)

    outcome = engine.transition("cust-1", Event.VIEW_CART)

    assert outcome.rule.to_state == State.CART_MANAGEMENT
    assert outcome.to_state == State.BROWSING
    assert outcome.conversation.history[-1].to_state == State.BROWSING


def test_next_state_must_be_a_known_state(make_engine):
    bogus = StaticAction("show_main_menu", ActionResult.ok(next_state="NOWHERE"), priority=50)
    engine = make_engine(actions=ActionRegistry(default_actions()).register(bogus))

    with pytest.raises(ActionFailed):
        engine.transition("cust-1", Event.START)


def test_missing_action_handler_is_a_no_op(make_engine, caplog):
    engine = make_engine(actions=ActionRegistry())

    with caplog.at_level(logging.WARNING, logger="shopbot.engine"):
        outcome = engine.transition("cust-1", Event.START)

    assert outcome.to_state == State.BROWSING
    assert outcome.messages == []
    assert "show_main_menu" in caplog.text


def test_strict_registry_rejects_unregistered_actions(make_engine, settings):
    strict = settings.model_copy(update={"strict_registry": True})

    with pytest.raises(ConfigurationError):
        make_engine(settings=strict, actions=ActionRegistry())

    make_engine(settings=strict)


def test_engine_freezes_its_table(engine):
    assert engine.table.frozen


def test_reset_clears_state_data_but_keeps_cart(engine, cart_service, seed_conversation):
    seed_conversation("cust-1", State.VIEWING_PRODUCT)
    engine.transition("cust-1", Event.ADD_TO_CART, {"product_id": 1})

    outcome = engine.transition("cust-1", Event.RESET)

    assert outcome.to_state == State.IDLE
    assert outcome.conversation.state_data == {}
    assert cart_service.get_cart("cust-1").quantity_of(1) == 1


def test_conflicting_write_is_retried_from_fresh_state(make_engine, racing_store, seed_conversation):
    store = racing_store
    engine = make_engine(store=store)
    seed_conversation("cust-1", State.BROWSING, store=store)
    store.races = 1

    outcome = engine.transition("cust-1", Event.SEARCH, {"query": "mug"})

    assert outcome.attempts == 2
    stored = store.load("cust-1")
    assert stored.version == 3
    assert stored.state_data["touched_by"] == "other-writer"
    assert stored.state_data["last_search"] == "mug"


def test_persistent_conflict_surfaces_as_action_failed(make_engine, racing_store, settings, seed_conversation):
    store = racing_store
    engine = make_engine(store=store)
    seed_conversation("cust-1", State.BROWSING, store=store)
    store.races = settings.max_transition_attempts

    with pytest.raises(ActionFailed) as excinfo:
        engine.transition("cust-1", Event.SEARCH, {"query": "mug"})

    assert isinstance(excinfo.value.__cause__, PersistenceConflict)
    assert excinfo.value.details["cause"] == "persistence_conflict"
    assert "last_search" not in store.load("cust-1").state_data


def test_redelivered_event_is_not_applied_twice(engine, cart_service, seed_conversation):
    seed_conversation("cust-1", State.VIEWING_PRODUCT)
    payload = {"product_id": 1, "quantity": 2, "idempotency_key": "wamid-1"}

    first = engine.transition("cust-1", Event.ADD_TO_CART, payload)
    second = engine.transition("cust-1", Event.ADD_TO_CART, payload)

    assert not first.replayed
    assert second.replayed
    assert second.to_state == State.CART_MANAGEMENT
    assert cart_service.get_cart("cust-1").quantity_of(1) == 2


def test_observers_are_notified_and_failures_ignored(make_engine):
    metrics = MetricsCollector()

    def broken(outcome):
        raise RuntimeError("audit sink down")

    engine = make_engine(observers=[broken, metrics])

    outcome = engine.transition("cust-1", Event.START)

    assert outcome.to_state == State.BROWSING
    snapshot = metrics.snapshot()
    assert snapshot.events == {"START": 1}
    assert snapshot.target_states == {"BROWSING": 1}


def test_transition_is_logged_with_structured_fields(engine, caplog):
    with caplog.at_level(logging.INFO, logger="shopbot.engine"):
        engine.transition("cust-1", Event.START)

    record = next(record for record in caplog.records if record.getMessage().startswith("FSM transition"))
    assert record.conversation_id == "cust-1"
    assert record.from_state == "IDLE"
    assert record.to_state == "BROWSING"
    assert record.event == "START"


def test_available_events_follow_current_state(engine):
    engine.transition("cust-1", Event.START)

    events = engine.available_events("cust-1")

    assert "VIEW_PRODUCT" in events
    assert "CONFIRM_ORDER" not in events
