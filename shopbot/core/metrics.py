"""Lightweight in-memory metrics collector."""

from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict

if TYPE_CHECKING:
    from shopbot.conversation.engine import TransitionOutcome


@dataclass
class MetricSnapshot:
    total_transitions: int
    events: Dict[str, int]
    target_states: Dict[str, int]
    failures: Dict[str, int]
    timeouts: int


class MetricsCollector:
    """Thread-safe counter storage for transition metrics.

    Instances are callable so they can be registered directly as engine
    observers.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total = 0
        self._timeouts = 0
        self._events: Counter[str] = Counter()
        self._states: Counter[str] = Counter()
        self._failures: Counter[str] = Counter()

    def __call__(self, outcome: "TransitionOutcome") -> None:
        self.record_transition(outcome.event, outcome.to_state.value)

    def record_transition(self, event: str, to_state: str) -> None:
        with self._lock:
            self._total += 1
            self._events[event] += 1
            self._states[to_state] += 1
            if event == "TIMEOUT":
                self._timeouts += 1

    def record_failure(self, code: str) -> None:
        with self._lock:
            self._failures[code] += 1

    def snapshot(self) -> MetricSnapshot:
        with self._lock:
            return MetricSnapshot(
                total_transitions=self._total,
                events=dict(self._events),
                target_states=dict(self._states),
                failures=dict(self._failures),
                timeouts=self._timeouts,
            )
