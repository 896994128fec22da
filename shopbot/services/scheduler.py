"""Deferred job collaborator used by actions that need follow-up work."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from shopbot.core.db import utcnow

logger = logging.getLogger("shopbot.scheduler")


@dataclass(slots=True, frozen=True)
class ScheduledJob:
    name: str
    payload: dict[str, Any]
    run_at: datetime
    created_at: datetime = field(default_factory=utcnow)


class Scheduler(ABC):
    """Schedule this work after N seconds. Execution lives elsewhere."""

    @abstractmethod
    def schedule_after(self, job_name: str, payload: dict[str, Any], delay_seconds: int) -> ScheduledJob:
        """Queue ``job_name`` to run ``delay_seconds`` from now."""


class InMemoryScheduler(Scheduler):
    """Records queued jobs in process memory."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._jobs: list[ScheduledJob] = []

    def schedule_after(self, job_name: str, payload: dict[str, Any], delay_seconds: int) -> ScheduledJob:
        now = utcnow()
        job = ScheduledJob(
            name=job_name,
            payload=dict(payload),
            run_at=now + timedelta(seconds=delay_seconds),
            created_at=now,
        )
        with self._lock:
            self._jobs.append(job)
        logger.debug("Scheduled %s in %ss", job_name, delay_seconds)
        return job

    @property
    def jobs(self) -> list[ScheduledJob]:
        with self._lock:
            return list(self._jobs)

    def due(self, now: datetime | None = None) -> list[ScheduledJob]:
        now = now or utcnow()
        with self._lock:
            return [job for job in self._jobs if job.run_at <= now]
