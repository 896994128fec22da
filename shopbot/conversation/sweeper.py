"""Periodic sweep applying TIMEOUT to idle conversations."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from shopbot.core.config import Settings
from shopbot.core.db import utcnow

from .engine import ConversationEngine
from .errors import TransitionError
from .models import TIMEOUT_EXEMPT_STATES
from .store import ConversationStore

logger = logging.getLogger("shopbot.sweeper")


@dataclass(slots=True)
class SweepReport:
    checked: int = 0
    timed_out: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "checked": self.checked,
            "timed_out": list(self.timed_out),
            "failed": list(self.failed),
        }


class TimeoutSweeper:
    """Finds conversations past the inactivity threshold and times them out.

    Every candidate goes through :meth:`ConversationEngine.expire_if_idle`,
    the same path used when a conversation is loaded, so a swept and a lazily
    expired conversation end up identical.
    """

    def __init__(
        self,
        engine: ConversationEngine,
        store: ConversationStore,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.engine = engine
        self.store = store
        self.settings = settings
        self._clock = clock

    def sweep(self, now: datetime | None = None) -> SweepReport:
        now = now or self._clock()
        cutoff = now - timedelta(seconds=self.settings.conversation_timeout_seconds)
        report = SweepReport()

        for conversation_id in self.store.iter_timeout_candidates(cutoff, TIMEOUT_EXEMPT_STATES):
            report.checked += 1
            try:
                outcome = self.engine.expire_if_idle(conversation_id, now)
            except TransitionError as exc:
                logger.error("Timeout sweep failed for %s: %s", conversation_id, exc.message)
                report.failed.append(conversation_id)
                continue
            except Exception:  # noqa: BLE001
                logger.exception("Timeout sweep crashed for %s", conversation_id)
                report.failed.append(conversation_id)
                continue

            if outcome is not None:
                report.timed_out.append(conversation_id)

        if report.checked:
            logger.info(
                "Timeout sweep checked %s conversations, expired %s, failed %s",
                report.checked,
                len(report.timed_out),
                len(report.failed),
            )
        return report

    async def run_periodically(self, interval_seconds: float, stop: asyncio.Event) -> None:
        """Sweep every ``interval_seconds`` until ``stop`` is set."""

        logger.info("Timeout sweeper started (interval=%ss)", interval_seconds)
        while not stop.is_set():
            try:
                await asyncio.to_thread(self.sweep)
            except Exception:  # noqa: BLE001
                logger.exception("Timeout sweep iteration failed")
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                continue
        logger.info("Timeout sweeper stopped")
