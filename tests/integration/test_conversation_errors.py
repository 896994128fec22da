from fastapi.testclient import TestClient

from shopbot import main
from shopbot.main import app


client = TestClient(app, raise_server_exceptions=False)


def post_event(conversation_id, event, payload=None):
    return client.post(f"/conversations/{conversation_id}/events", json={"event": event, "payload": payload or {}})


def test_invalid_transition_maps_to_409():
    response = post_event("err-invalid", "ADD_TO_CART", {"product_id": 1})

    assert response.status_code == 409
    payload = response.json()
    assert payload["error"] == "invalid_transition"
    assert payload["details"] == {"current_state": "IDLE", "event": "ADD_TO_CART"}
    assert payload["message"] == "Invalid transition: no transition found from state IDLE with event ADD_TO_CART"


def test_guard_failure_maps_to_422():
    post_event("err-guard", "START")
    post_event("err-guard", "VIEW_CART")

    response = post_event("err-guard", "START_CHECKOUT")

    assert response.status_code == 422
    payload = response.json()
    assert payload["error"] == "guard_failed"
    assert payload["details"]["guard"] == "cart_not_empty"
    assert client.get("/conversations/err-guard").json()["current_state"] == "CART_MANAGEMENT"


def test_business_action_failure_maps_to_422_with_customer_messages():
    post_event("err-action", "START")

    response = post_event("err-action", "VIEW_PRODUCT", {"product_id": 999})

    assert response.status_code == 422
    payload = response.json()
    assert payload["error"] == "action_failed"
    assert payload["details"]["error_code"] == "product_not_found"
    assert payload["messages"][0]["body"] == "Sorry, we couldn't find that product."


def test_internal_action_failure_maps_to_500(monkeypatch):
    def broken_categories():
        raise RuntimeError("catalog offline")

    monkeypatch.setattr(main.catalog, "categories", broken_categories)

    response = post_event("err-internal", "START")

    assert response.status_code == 500
    payload = response.json()
    assert payload["error"] == "action_failed"
    assert payload["details"]["error_code"] == "internal_error"
    assert payload["messages"]


def test_persistent_conflict_maps_to_503(monkeypatch):
    monkeypatch.setattr(main.conversation_store, "compare_and_swap", lambda *args, **kwargs: False)

    response = post_event("err-conflict", "START")

    assert response.status_code == 503
    assert response.headers["Retry-After"] == "1"
    assert response.json()["details"]["cause"] == "persistence_conflict"


def test_missing_event_name_is_rejected():
    response = client.post("/conversations/err-validation/events", json={"payload": {}})

    assert response.status_code == 422
    assert "detail" in response.json()


def test_unhandled_errors_return_generic_500(monkeypatch):
    def broken_cart(customer_id):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(main.cart_service, "get_cart", broken_cart)

    response = client.get("/conversations/err-unhandled/cart")

    assert response.status_code == 500
    assert response.json() == {
        "error": "internal_error",
        "message": "Something unexpected happened. Please try again later.",
    }
