"""Registry mapping action names to action implementations."""

from __future__ import annotations

import logging
from typing import Iterable

from .base import Action

logger = logging.getLogger("shopbot.actions")


class ActionRegistry:
    """Resolve action names to handlers.

    Several handlers may register under one name; the one with the highest
    priority wins, ties going to the earliest registration.
    """

    def __init__(self, actions: Iterable[Action] = ()) -> None:
        self._handlers: dict[str, list[Action]] = {}
        self.register_many(actions)

    def register(self, action: Action) -> "ActionRegistry":
        handlers = self._handlers.setdefault(action.name, [])
        handlers.append(action)
        handlers.sort(key=lambda handler: handler.priority, reverse=True)
        return self

    def register_many(self, actions: Iterable[Action]) -> "ActionRegistry":
        for action in actions:
            self.register(action)
        return self

    def has(self, name: str) -> bool:
        return bool(self._handlers.get(name))

    def get(self, name: str) -> Action | None:
        handlers = self._handlers.get(name)
        return handlers[0] if handlers else None

    def handlers(self, name: str) -> list[Action]:
        return list(self._handlers.get(name, []))

    def remove(self, name: str) -> "ActionRegistry":
        self._handlers.pop(name, None)
        return self

    def names(self) -> list[str]:
        return list(self._handlers)

    def __len__(self) -> int:
        return sum(len(handlers) for handlers in self._handlers.values())
