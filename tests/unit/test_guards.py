import logging

import pytest

from shopbot.conversation.guards import GuardRegistry
from shopbot.conversation.models import Conversation


@pytest.fixture()
def guards(catalog):
    return GuardRegistry(catalog)


@pytest.fixture()
def conversation():
    return Conversation(conversation_id="cust-1")


def test_product_exists(guards, conversation):
    assert guards.evaluate("product_exists", conversation, {"product_id": 1})
    assert not guards.evaluate("product_exists", conversation, {})


@pytest.mark.parametrize(
    ("payload", "expected"),
    [
        ({"product_id": 1, "quantity": 10}, True),
        ({"product_id": 1, "quantity": 11}, False),
        ({"product_id": 1}, True),
        ({"product_id": 5}, False),
        ({"product_id": 3, "quantity": 500}, True),
        ({"product_id": 4, "variant_id": 41, "quantity": 5}, True),
        ({"product_id": 4, "variant_id": 42}, False),
        ({"product_id": 999}, False),
        ({"product_id": 1, "quantity": "lots"}, False),
        ({}, False),
    ],
)
def test_has_stock(guards, conversation, payload, expected):
    assert guards.evaluate("has_stock", conversation, payload) is expected


def test_cart_not_empty_reads_state_data(guards):
    empty = Conversation(conversation_id="cust-1")
    filled = Conversation(conversation_id="cust-1", state_data={"cart_items": [{"key": "1", "quantity": 1}]})

    assert not guards.evaluate("cart_not_empty", empty, {})
    assert guards.evaluate("cart_not_empty", filled, {})


def test_address_and_payment_guards(guards, conversation, shipping_address):
    assert guards.evaluate("address_valid", conversation, {"address": shipping_address})
    assert not guards.evaluate("address_valid", conversation, {"address": "somewhere"})
    assert not guards.evaluate("address_valid", conversation, {"address": {}})
    assert guards.evaluate("payment_method_valid", conversation, {"payment_method": "cod"})
    assert not guards.evaluate("payment_method_valid", conversation, {})


def test_unknown_guard_allows_by_default(guards, conversation, caplog):
    with caplog.at_level(logging.WARNING, logger="shopbot.guards"):
        assert guards.evaluate("loyalty_member", conversation, {})

    assert "loyalty_member" in caplog.text


def test_unknown_guard_denied_when_configured(catalog, conversation):
    guards = GuardRegistry(catalog, unknown_policy="deny")

    assert not guards.evaluate("loyalty_member", conversation, {})


def test_registered_guard_overrides_builtin(guards, conversation):
    guards.register("has_stock", lambda conv, payload: True)

    assert guards.evaluate("has_stock", conversation, {"product_id": 5})
