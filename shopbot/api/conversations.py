"""API routes for driving conversations and maintenance jobs."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel, Field

from shopbot.cart.service import CartService
from shopbot.conversation.engine import ConversationEngine
from shopbot.conversation.errors import TransitionError
from shopbot.conversation.sweeper import TimeoutSweeper
from shopbot.core.metrics import MetricsCollector


class EventRequest(BaseModel):
    event: str = Field(min_length=1, description="Event name, e.g. ADD_TO_CART.")
    payload: dict[str, Any] = Field(default_factory=dict, description="Event payload merged into state data.")


def create_conversations_router(
    engine: ConversationEngine,
    carts: CartService,
    metrics: MetricsCollector,
) -> APIRouter:
    router = APIRouter(prefix="/conversations", tags=["conversations"])

    @router.get("")
    def list_conversations() -> list[str]:
        """List known conversation identifiers (development helper)."""

        return list(engine.store.iter_conversations())

    @router.post("/{conversation_id}/events")
    def dispatch_event(conversation_id: str, request: EventRequest) -> dict[str, Any]:
        try:
            outcome = engine.transition(conversation_id, request.event, request.payload)
        except TransitionError as exc:
            metrics.record_failure(exc.code)
            raise

        return {
            "conversation_id": conversation_id,
            "from_state": outcome.from_state.value,
            "state": outcome.to_state.value,
            "messages": outcome.messages,
            "available_events": engine.table.available_events(outcome.conversation.current_state),
            "replayed": outcome.replayed,
        }

    @router.get("/{conversation_id}")
    def get_conversation(conversation_id: str) -> dict[str, Any]:
        conversation = engine.load(conversation_id)
        return conversation.to_dict() | {
            "available_events": engine.table.available_events(conversation.current_state),
        }

    @router.get("/{conversation_id}/events")
    def available_events(conversation_id: str) -> dict[str, Any]:
        conversation = engine.load(conversation_id)
        return {
            "conversation_id": conversation_id,
            "state": conversation.current_state.value,
            "available_events": engine.table.available_events(conversation.current_state),
        }

    @router.get("/{conversation_id}/cart")
    def get_cart(conversation_id: str) -> dict[str, Any]:
        return carts.get_cart(conversation_id).to_dict()

    return router


def create_maintenance_router(sweeper: TimeoutSweeper, carts: CartService) -> APIRouter:
    router = APIRouter(prefix="/maintenance", tags=["maintenance"])

    @router.post("/timeouts")
    def run_timeout_sweep() -> dict[str, Any]:
        """Run one timeout sweep immediately."""

        return sweeper.sweep().to_dict()

    @router.post("/carts/expire")
    def expire_carts(purge: bool = False) -> dict[str, int]:
        """Expire carts idle past the expiry window; optionally delete them."""

        return {"expired": carts.cleanup_expired(purge=purge)}

    return router
