"""Conversation store abstractions and SQLite implementation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Iterable

from shopbot.core.db import (
    datetime_from_iso,
    datetime_to_iso,
    json_dumps,
    json_loads,
    sqlite_connection,
)

from .models import Conversation, State


class ConversationStore(ABC):
    """Abstract interface for reading and writing conversation contexts."""

    @abstractmethod
    def load(self, conversation_id: str) -> Conversation | None:
        """Return the persisted conversation or ``None`` if never stored."""

    @abstractmethod
    def compare_and_swap(
        self,
        conversation_id: str,
        expected_version: int,
        conversation: Conversation,
    ) -> bool:
        """Persist ``conversation`` only if the stored version still matches.

        ``expected_version`` 0 means the row must not exist yet. On success the
        stored version becomes ``expected_version + 1``.
        """

    @abstractmethod
    def iter_conversations(self) -> Iterable[str]:
        """Iterate over known conversation identifiers."""

    @abstractmethod
    def iter_timeout_candidates(
        self,
        cutoff: datetime,
        exempt_states: Iterable[State],
    ) -> Iterable[str]:
        """Identifiers of non-exempt conversations inactive since ``cutoff``."""


class SQLiteConversationStore(ConversationStore):
    """SQLite-backed conversation store with a version column for CAS writes."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        """Create required tables if they do not exist."""

        with sqlite_connection(self.db_path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS conversations (
                    conversation_id TEXT PRIMARY KEY,
                    current_state TEXT NOT NULL,
                    context TEXT NOT NULL,
                    last_activity_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    version INTEGER NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_conversations_activity
                    ON conversations (current_state, last_activity_at)
                """
            )

    def load(self, conversation_id: str) -> Conversation | None:
        with sqlite_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT context, updated_at, version FROM conversations WHERE conversation_id = ?",
                (conversation_id,),
            ).fetchone()

        if row is None:
            return None

        return Conversation.from_context(
            conversation_id,
            json_loads(row["context"], {}),
            updated_at=datetime_from_iso(row["updated_at"]),
            version=row["version"],
        )

    def compare_and_swap(
        self,
        conversation_id: str,
        expected_version: int,
        conversation: Conversation,
    ) -> bool:
        new_version = expected_version + 1
        values = (
            conversation.current_state.value,
            json_dumps(conversation.to_context()),
            datetime_to_iso(conversation.last_activity_at),
            datetime_to_iso(conversation.updated_at),
            new_version,
        )

        with sqlite_connection(self.db_path, immediate=True) as conn:
            if expected_version == 0:
                cursor = conn.execute(
                    """
                    INSERT OR IGNORE INTO conversations
                        (current_state, context, last_activity_at, updated_at, version, conversation_id)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (*values, conversation_id),
                )
            else:
                cursor = conn.execute(
                    """
                    UPDATE conversations
                    SET current_state = ?, context = ?, last_activity_at = ?, updated_at = ?, version = ?
                    WHERE conversation_id = ? AND version = ?
                    """,
                    (*values, conversation_id, expected_version),
                )
            swapped = cursor.rowcount == 1

        if swapped:
            conversation.version = new_version
        return swapped

    def iter_conversations(self) -> Iterable[str]:
        with sqlite_connection(self.db_path) as conn:
            rows = conn.execute("SELECT conversation_id FROM conversations ORDER BY conversation_id")
            return [row["conversation_id"] for row in rows]

    def iter_timeout_candidates(
        self,
        cutoff: datetime,
        exempt_states: Iterable[State],
    ) -> Iterable[str]:
        exempt = [state.value for state in exempt_states]
        placeholders = ", ".join("?" for _ in exempt) or "''"
        with sqlite_connection(self.db_path) as conn:
            rows = conn.execute(
                f"""
                SELECT conversation_id, last_activity_at FROM conversations
                WHERE current_state NOT IN ({placeholders})
                ORDER BY last_activity_at ASC
                """,
                tuple(exempt),
            ).fetchall()

        # Timestamps are compared as datetimes since ISO strings with differing
        # offsets do not sort lexically.
        candidates: list[str] = []
        for row in rows:
            last_activity = datetime_from_iso(row["last_activity_at"])
            if last_activity is not None and last_activity <= cutoff:
                candidates.append(row["conversation_id"])
        return candidates
