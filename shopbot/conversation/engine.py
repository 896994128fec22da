"""Conversation engine: applies events to per-customer state machines."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, cast

from shopbot.actions.base import GENERIC_APOLOGY, ActionContext, ActionResult, ActionServices
from shopbot.actions.messages import text_message
from shopbot.actions.registry import ActionRegistry
from shopbot.core.config import Settings
from shopbot.core.db import utcnow

from .errors import (
    ActionFailed,
    ConfigurationError,
    GuardFailed,
    InvalidTransition,
    PersistenceConflict,
)
from .guards import GuardRegistry
from .models import Conversation, Event, HistoryEntry, State, event_name
from .store import ConversationStore
from .transitions import TransitionRule, TransitionTable

logger = logging.getLogger("shopbot.engine")

IDEMPOTENCY_KEY = "idempotency_key"


@dataclass(slots=True)
class TransitionOutcome:
    """Result of a successful ``transition`` call."""

    conversation: Conversation
    event: str
    from_state: State
    to_state: State
    rule: TransitionRule | None
    result: ActionResult | None = None
    attempts: int = 1
    replayed: bool = False
    messages: list[dict[str, Any]] = field(default_factory=list)


TransitionObserver = Callable[[TransitionOutcome], None]
Precondition = Callable[[Conversation, datetime], bool]


class ConversationEngine:
    """Finds the rule for an event, checks its guard, runs its action and
    persists the merged result with a compare-and-swap write.

    A write that loses the race against another writer re-runs the whole
    transition from a fresh read, so guards and actions always see the state
    they are applied to.
    """

    def __init__(
        self,
        store: ConversationStore,
        table: TransitionTable,
        guards: GuardRegistry,
        actions: ActionRegistry,
        services: ActionServices,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
        observers: Iterable[TransitionObserver] = (),
    ) -> None:
        self.store = store
        self.table = table.freeze()
        self.guards = guards
        self.actions = actions
        self.services = services
        self.settings = settings
        self._clock = clock
        self._observers: list[TransitionObserver] = list(observers)
        self._validate_registries()

    def add_observer(self, observer: TransitionObserver) -> None:
        self._observers.append(observer)

    def load(self, conversation_id: str, now: datetime | None = None) -> Conversation:
        """Return the conversation, applying the inactivity timeout lazily."""

        if self.settings.lazy_timeout:
            outcome = self.expire_if_idle(conversation_id, now)
            if outcome is not None:
                return outcome.conversation
        return self._read(conversation_id, now or self._clock())

    def available_events(self, conversation_id: str) -> list[str]:
        return self.table.available_events(self.load(conversation_id).current_state)

    def transition(
        self,
        conversation_id: str,
        event: str | Event,
        payload: Mapping[str, Any] | None = None,
        *,
        now: datetime | None = None,
    ) -> TransitionOutcome:
        name = event_name(event)
        if self.settings.lazy_timeout and name != Event.TIMEOUT.value:
            self.expire_if_idle(conversation_id, now)

        # Without a precondition every path returns an outcome or raises.
        return cast(TransitionOutcome, self._transition(conversation_id, name, dict(payload or {}), now))

    def expire_if_idle(
        self,
        conversation_id: str,
        now: datetime | None = None,
    ) -> TransitionOutcome | None:
        """Apply the synthetic TIMEOUT event if the conversation went idle.

        The inactivity check is repeated on every attempt, so a customer event
        that lands first wins over the timeout.
        """

        timeout = self.settings.conversation_timeout_seconds

        def timed_out(conversation: Conversation, at: datetime) -> bool:
            return conversation.version > 0 and conversation.is_timed_out(at, timeout)

        return self._transition(conversation_id, Event.TIMEOUT.value, {}, now, precondition=timed_out)

    def _transition(
        self,
        conversation_id: str,
        event: str,
        payload: dict[str, Any],
        now: datetime | None,
        precondition: Precondition | None = None,
    ) -> TransitionOutcome | None:
        attempts = self.settings.max_transition_attempts

        for attempt in range(1, attempts + 1):
            at = now or self._clock()
            conversation = self._read(conversation_id, at)

            if precondition is not None and not precondition(conversation, at):
                return None

            replay = self._find_replay(conversation, event, payload)
            if replay is not None:
                return replay

            outcome = self._apply(conversation, event, payload, at)
            outcome.attempts = attempt

            if self.store.compare_and_swap(conversation_id, conversation.version, outcome.conversation):
                self._emit(outcome)
                return outcome

            logger.warning(
                "Conversation %s changed during %s (attempt %s/%s); retrying",
                conversation_id,
                event,
                attempt,
                attempts,
            )

        conflict = PersistenceConflict(conversation_id, attempts)
        logger.error("Giving up on %s for conversation %s: %s", event, conversation_id, conflict.message)
        raise ActionFailed(
            None,
            conflict.message,
            messages=[text_message(GENERIC_APOLOGY)],
            error_code=conflict.code,
        ) from conflict

    def _apply(
        self,
        conversation: Conversation,
        event: str,
        payload: dict[str, Any],
        now: datetime,
    ) -> TransitionOutcome:
        from_state = conversation.current_state
        rule = self.table.find(from_state, event)

        if rule is None:
            logger.info(
                "No transition from %s on %s for conversation %s",
                from_state.value,
                event,
                conversation.conversation_id,
            )
            raise InvalidTransition(from_state.value, event)

        if rule.guard and not self.guards.evaluate(rule.guard, conversation, payload):
            logger.info(
                "Guard %s rejected %s -> %s for conversation %s",
                rule.guard,
                from_state.value,
                rule.to_state.value,
                conversation.conversation_id,
            )
            raise GuardFailed(rule.guard, from_state.value, rule.to_state.value)

        result = self._run_action(rule, conversation, event, payload, now)

        to_state = rule.to_state
        if result is not None and result.next_state is not None:
            override = State.parse(result.next_state)
            if override is None:
                logger.error("Action %s requested unknown state %r", rule.action, result.next_state)
                raise ActionFailed(
                    rule.action,
                    f"Unknown next state {result.next_state!r}",
                    messages=[text_message(GENERIC_APOLOGY)],
                )
            to_state = override

        if result is not None and result.clear_state_data:
            state_data: dict[str, Any] = {}
        else:
            state_data = dict(conversation.state_data)
        state_data.update(payload)
        if result is not None:
            state_data.update(result.context_delta)

        entry = HistoryEntry(
            timestamp=now,
            event=event,
            from_state=from_state,
            to_state=to_state,
            payload=dict(payload),
        )
        history = [*conversation.history, entry][-self.settings.history_limit :]

        updated = Conversation(
            conversation_id=conversation.conversation_id,
            current_state=to_state,
            state_data=state_data,
            history=history,
            started_at=conversation.started_at,
            last_activity_at=now,
            updated_at=now,
            version=conversation.version,
        )

        return TransitionOutcome(
            conversation=updated,
            event=event,
            from_state=from_state,
            to_state=to_state,
            rule=rule,
            result=result,
            messages=list(result.messages) if result is not None else [],
        )

    def _run_action(
        self,
        rule: TransitionRule,
        conversation: Conversation,
        event: str,
        payload: Mapping[str, Any],
        now: datetime,
    ) -> ActionResult | None:
        if not rule.action:
            return None

        action = self.actions.get(rule.action)
        if action is None:
            logger.warning("No handler found for action %s", rule.action)
            return None

        context = ActionContext(
            event=event,
            from_state=conversation.current_state,
            to_state=rule.to_state,
            services=self.services,
            now=now,
        )

        try:
            result = action.execute(conversation, context, payload)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Action %s raised for conversation %s", rule.action, conversation.conversation_id)
            raise ActionFailed(
                rule.action,
                str(exc) or exc.__class__.__name__,
                messages=[text_message(GENERIC_APOLOGY)],
                error_code="internal_error",
            ) from exc

        if not isinstance(result, ActionResult):
            logger.error("Action %s returned %r instead of an ActionResult", rule.action, result)
            raise ActionFailed(rule.action, "Action returned no result", messages=[text_message(GENERIC_APOLOGY)])

        if not result.success:
            logger.error(
                "Action %s failed for conversation %s: %s",
                rule.action,
                conversation.conversation_id,
                result.error_message,
            )
            raise ActionFailed(
                rule.action,
                result.error_message or "Action failed",
                messages=result.messages,
                error_code=result.error_code,
            )

        return result

    def _find_replay(
        self,
        conversation: Conversation,
        event: str,
        payload: Mapping[str, Any],
    ) -> TransitionOutcome | None:
        """Recognise a redelivered event carrying an idempotency key already in history."""

        key = payload.get(IDEMPOTENCY_KEY)
        if not key:
            return None
        for entry in reversed(conversation.history):
            if entry.event == event and entry.payload.get(IDEMPOTENCY_KEY) == key:
                logger.info(
                    "Ignoring redelivered %s (key %s) for conversation %s",
                    event,
                    key,
                    conversation.conversation_id,
                )
                return TransitionOutcome(
                    conversation=conversation,
                    event=event,
                    from_state=entry.from_state,
                    to_state=entry.to_state,
                    rule=None,
                    replayed=True,
                )
        return None

    def _read(self, conversation_id: str, now: datetime) -> Conversation:
        return self.store.load(conversation_id) or Conversation.new(conversation_id, now)

    def _emit(self, outcome: TransitionOutcome) -> None:
        logger.info(
            "FSM transition: conversation %s %s -> %s (event: %s)",
            outcome.conversation.conversation_id,
            outcome.from_state.value,
            outcome.to_state.value,
            outcome.event,
            extra={
                "conversation_id": outcome.conversation.conversation_id,
                "from_state": outcome.from_state.value,
                "to_state": outcome.to_state.value,
                "event": outcome.event,
            },
        )

        for observer in self._observers:
            try:
                observer(outcome)
            except Exception:  # noqa: BLE001
                logger.warning("Transition observer %r failed", observer, exc_info=True)

    def _validate_registries(self) -> None:
        problems = [
            f"guard '{name}'" for name in sorted(self.table.guard_names()) if not self.guards.has(name)
        ]
        problems += [
            f"action '{name}'" for name in sorted(self.table.action_names()) if not self.actions.has(name)
        ]
        if not problems:
            return

        summary = ", ".join(problems)
        if self.settings.strict_registry:
            raise ConfigurationError(f"Transition rules reference unregistered {summary}")
        logger.warning("Transition rules reference unregistered %s", summary)
