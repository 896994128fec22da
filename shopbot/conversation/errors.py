"""Typed failures returned by the conversation engine."""

from __future__ import annotations

from typing import Any, Sequence


class ConfigurationError(RuntimeError):
    """Raised when the transition table or registries are misconfigured."""


class TransitionError(Exception):
    """Base class for every failed transition attempt.

    ``messages`` holds outbound message specs the caller may deliver to the
    customer; ``details`` is a plain mapping for logs and API responses.
    """

    code = "transition_error"
    retryable = False

    def __init__(self, message: str, *, messages: Sequence[dict[str, Any]] = ()) -> None:
        super().__init__(message)
        self.message = message
        self.messages = list(messages)

    @property
    def details(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "messages": self.messages,
            "details": self.details,
        }


class InvalidTransition(TransitionError):
    code = "invalid_transition"

    def __init__(self, current_state: str, event: str) -> None:
        super().__init__(
            f"Invalid transition: no transition found from state {current_state} with event {event}"
        )
        self.current_state = current_state
        self.event = event

    @property
    def details(self) -> dict[str, Any]:
        return {"current_state": self.current_state, "event": self.event}


class GuardFailed(TransitionError):
    code = "guard_failed"

    def __init__(self, guard: str, from_state: str, to_state: str) -> None:
        super().__init__(
            f"Guard condition {guard} failed for transition from {from_state} to {to_state}"
        )
        self.guard = guard
        self.from_state = from_state
        self.to_state = to_state

    @property
    def details(self) -> dict[str, Any]:
        return {"guard": self.guard, "from_state": self.from_state, "to_state": self.to_state}


class ActionFailed(TransitionError):
    code = "action_failed"

    def __init__(
        self,
        action: str | None,
        reason: str,
        *,
        messages: Sequence[dict[str, Any]] = (),
        error_code: str | None = None,
    ) -> None:
        super().__init__(reason, messages=messages)
        self.action = action
        self.reason = reason
        self.error_code = error_code

    @property
    def details(self) -> dict[str, Any]:
        details: dict[str, Any] = {"action": self.action}
        if self.error_code:
            details["error_code"] = self.error_code
        if isinstance(self.__cause__, PersistenceConflict):
            details["cause"] = self.__cause__.code
        return details


class PersistenceConflict(TransitionError):
    code = "persistence_conflict"
    retryable = True

    def __init__(self, conversation_id: str, attempts: int) -> None:
        super().__init__(
            f"Conversation {conversation_id} changed concurrently; gave up after {attempts} attempts"
        )
        self.conversation_id = conversation_id
        self.attempts = attempts

    @property
    def details(self) -> dict[str, Any]:
        return {"conversation_id": self.conversation_id, "attempts": self.attempts}
