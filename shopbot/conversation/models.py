"""Dataclasses representing conversation state and transition history."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from shopbot.core.db import datetime_from_iso, datetime_to_iso, utcnow

ANY_STATE = "*"


class State(str, Enum):
    """Conversation states."""

    IDLE = "IDLE"
    BROWSING = "BROWSING"
    VIEWING_PRODUCT = "VIEWING_PRODUCT"
    CART_MANAGEMENT = "CART_MANAGEMENT"
    CHECKOUT_ADDRESS = "CHECKOUT_ADDRESS"
    CHECKOUT_PAYMENT = "CHECKOUT_PAYMENT"
    CHECKOUT_CONFIRM = "CHECKOUT_CONFIRM"
    AWAITING_HUMAN = "AWAITING_HUMAN"
    COMPLETED = "COMPLETED"

    @classmethod
    def parse(cls, value: Any, default: "State | None" = None) -> "State | None":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            return default


class Event(str, Enum):
    """Built-in conversation events. Plugins may dispatch other event names."""

    START = "START"
    SELECT_CATEGORY = "SELECT_CATEGORY"
    SEARCH = "SEARCH"
    VIEW_PRODUCT = "VIEW_PRODUCT"
    ADD_TO_CART = "ADD_TO_CART"
    VIEW_CART = "VIEW_CART"
    MODIFY_CART = "MODIFY_CART"
    START_CHECKOUT = "START_CHECKOUT"
    ENTER_ADDRESS = "ENTER_ADDRESS"
    SELECT_PAYMENT = "SELECT_PAYMENT"
    CONFIRM_ORDER = "CONFIRM_ORDER"
    REQUEST_HUMAN = "REQUEST_HUMAN"
    AGENT_TAKEOVER = "AGENT_TAKEOVER"
    TIMEOUT = "TIMEOUT"
    RESET = "RESET"


TIMEOUT_EXEMPT_STATES = frozenset({State.IDLE, State.COMPLETED, State.AWAITING_HUMAN})


def event_name(event: str | Event) -> str:
    return event.value if isinstance(event, Event) else str(event)


@dataclass(slots=True, frozen=True)
class HistoryEntry:
    """One applied transition."""

    timestamp: datetime
    event: str
    from_state: State
    to_state: State
    payload: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": datetime_to_iso(self.timestamp),
            "event": self.event,
            "from_state": self.from_state.value,
            "to_state": self.to_state.value,
            "payload": dict(self.payload),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HistoryEntry":
        payload = data.get("payload")
        return cls(
            timestamp=datetime_from_iso(data.get("timestamp")) or utcnow(),
            event=str(data.get("event", "")),
            from_state=State.parse(data.get("from_state"), State.IDLE),
            to_state=State.parse(data.get("to_state"), State.IDLE),
            payload=dict(payload) if isinstance(payload, Mapping) else {},
        )


@dataclass(slots=True)
class Conversation:
    """Per-customer state machine instance.

    ``version`` is the optimistic concurrency token of the persisted row; a
    conversation that was never stored has version 0.
    """

    conversation_id: str
    current_state: State = State.IDLE
    state_data: dict[str, Any] = field(default_factory=dict)
    history: list[HistoryEntry] = field(default_factory=list)
    started_at: datetime = field(default_factory=utcnow)
    last_activity_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    version: int = 0

    @classmethod
    def new(cls, conversation_id: str, now: datetime | None = None) -> "Conversation":
        now = now or utcnow()
        return cls(
            conversation_id=conversation_id,
            started_at=now,
            last_activity_at=now,
            updated_at=now,
        )

    def get(self, key: str, default: Any = None) -> Any:
        return self.state_data.get(key, default)

    @property
    def last_history_entry(self) -> HistoryEntry | None:
        return self.history[-1] if self.history else None

    def inactive_seconds(self, now: datetime) -> float:
        return (now - self.last_activity_at).total_seconds()

    def is_timed_out(self, now: datetime, timeout_seconds: int) -> bool:
        if self.current_state in TIMEOUT_EXEMPT_STATES:
            return False
        return self.inactive_seconds(now) >= timeout_seconds

    def to_context(self) -> dict[str, Any]:
        """Serialisable context document persisted alongside the row."""

        return {
            "current_state": self.current_state.value,
            "state_data": self.state_data,
            "conversation_history": [entry.to_dict() for entry in self.history],
            "started_at": datetime_to_iso(self.started_at),
            "last_activity_at": datetime_to_iso(self.last_activity_at),
        }

    @classmethod
    def from_context(
        cls,
        conversation_id: str,
        context: Any,
        *,
        updated_at: datetime | None = None,
        version: int = 0,
    ) -> "Conversation":
        if not isinstance(context, Mapping):
            context = {}

        # Corrupt state values fall back to IDLE rather than failing the load.
        state = State.parse(context.get("current_state"), State.IDLE)
        state_data = context.get("state_data")
        raw_history = context.get("conversation_history")
        updated = updated_at or utcnow()

        history = [
            HistoryEntry.from_dict(item)
            for item in (raw_history if isinstance(raw_history, list) else [])
            if isinstance(item, Mapping)
        ]

        return cls(
            conversation_id=conversation_id,
            current_state=state,
            state_data=dict(state_data) if isinstance(state_data, Mapping) else {},
            history=history,
            started_at=datetime_from_iso(context.get("started_at")) or updated,
            last_activity_at=datetime_from_iso(context.get("last_activity_at")) or updated,
            updated_at=updated,
            version=version,
        )

    def to_dict(self) -> dict[str, Any]:
        data = self.to_context()
        data.update(
            {
                "conversation_id": self.conversation_id,
                "updated_at": datetime_to_iso(self.updated_at),
                "version": self.version,
            }
        )
        return data
