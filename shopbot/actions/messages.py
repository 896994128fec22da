"""Builder for outbound message specs.

Specs are plain dicts; the transport collaborator decides how to render them.
"""

from __future__ import annotations

from typing import Any

MAX_REPLY_BUTTONS = 3
MAX_LIST_ROWS = 10


class MessageBuilder:
    def __init__(self) -> None:
        self._header: str | None = None
        self._body: list[str] = []
        self._footer: str | None = None
        self._buttons: list[dict[str, Any]] = []
        self._sections: list[dict[str, Any]] = []

    def text(self, value: str) -> "MessageBuilder":
        self._body.append(value)
        return self

    def body(self, value: str) -> "MessageBuilder":
        return self.text(value)

    def header(self, value: str) -> "MessageBuilder":
        self._header = value
        return self

    def footer(self, value: str) -> "MessageBuilder":
        self._footer = value
        return self

    def reply_button(self, button_id: str, title: str) -> "MessageBuilder":
        if len([b for b in self._buttons if b["type"] == "reply"]) >= MAX_REPLY_BUTTONS:
            raise ValueError(f"At most {MAX_REPLY_BUTTONS} reply buttons are allowed")
        self._buttons.append({"type": "reply", "id": button_id, "title": title})
        return self

    def url_button(self, title: str, url: str) -> "MessageBuilder":
        self._buttons.append({"type": "url", "title": title, "url": url})
        return self

    def section(self, title: str, rows: list[dict[str, Any]]) -> "MessageBuilder":
        self._sections.append({"title": title, "rows": list(rows)[:MAX_LIST_ROWS]})
        return self

    def build(self) -> dict[str, Any]:
        if self._sections:
            kind = "list"
        elif self._buttons:
            kind = "interactive"
        else:
            kind = "text"

        message: dict[str, Any] = {"type": kind, "body": "\n\n".join(self._body)}
        if self._header:
            message["header"] = self._header
        if self._footer:
            message["footer"] = self._footer
        if self._buttons:
            message["buttons"] = list(self._buttons)
        if self._sections:
            message["sections"] = list(self._sections)
        return message


def text_message(value: str) -> dict[str, Any]:
    return MessageBuilder().text(value).build()
