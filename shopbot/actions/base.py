"""Base classes and types for conversation actions."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Mapping, Sequence

from shopbot.cart.service import CartService
from shopbot.conversation.models import Conversation, State
from shopbot.core.config import Settings
from shopbot.services.catalog import Catalog
from shopbot.services.orders import OrderGateway, PaymentGateway
from shopbot.services.scheduler import Scheduler

from .messages import MessageBuilder, text_message

logger = logging.getLogger("shopbot.actions")

GENERIC_APOLOGY = "Sorry, something went wrong on our side. Please try again."


@dataclass(slots=True, frozen=True)
class ActionResult:
    """Outcome of one action invocation.

    ``next_state`` overrides the rule target when set. ``context_delta`` is
    merged into the conversation's state data after the event payload, so its
    keys win. ``clear_state_data`` drops accumulated data before merging.
    """

    success: bool = True
    messages: tuple[dict[str, Any], ...] = ()
    next_state: State | None = None
    context_delta: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    clear_state_data: bool = False
    error_message: str | None = None
    error_code: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "messages", tuple(self.messages))
        object.__setattr__(self, "context_delta", MappingProxyType(dict(self.context_delta)))

    @classmethod
    def ok(
        cls,
        messages: Sequence[dict[str, Any]] = (),
        next_state: State | None = None,
        context_delta: Mapping[str, Any] | None = None,
        *,
        clear_state_data: bool = False,
    ) -> "ActionResult":
        return cls(
            success=True,
            messages=tuple(messages),
            next_state=next_state,
            context_delta=context_delta or {},
            clear_state_data=clear_state_data,
        )

    @classmethod
    def failure(
        cls,
        error_message: str,
        messages: Sequence[dict[str, Any]] = (),
        error_code: str | None = None,
    ) -> "ActionResult":
        return cls(
            success=False,
            messages=tuple(messages),
            error_message=error_message,
            error_code=error_code,
        )

    @classmethod
    def transition_to(
        cls,
        next_state: State,
        messages: Sequence[dict[str, Any]] = (),
        context_delta: Mapping[str, Any] | None = None,
    ) -> "ActionResult":
        return cls.ok(messages, next_state, context_delta)

    def with_message(self, message: dict[str, Any]) -> "ActionResult":
        return replace(self, messages=(*self.messages, message))

    def with_next_state(self, state: State) -> "ActionResult":
        return replace(self, next_state=state)

    def with_context(self, delta: Mapping[str, Any]) -> "ActionResult":
        return replace(self, context_delta={**self.context_delta, **delta})

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "messages": list(self.messages),
            "next_state": self.next_state.value if self.next_state else None,
            "context_delta": dict(self.context_delta),
            "error_message": self.error_message,
            "error_code": self.error_code,
        }


@dataclass(slots=True)
class ActionServices:
    """Collaborators injected into every action."""

    carts: CartService
    catalog: Catalog
    scheduler: Scheduler
    orders: OrderGateway
    payments: PaymentGateway
    settings: Settings


@dataclass(slots=True)
class ActionContext:
    """Context provided to an action invocation."""

    event: str
    from_state: State
    to_state: State
    services: ActionServices
    now: datetime

    @property
    def carts(self) -> CartService:
        return self.services.carts

    @property
    def catalog(self) -> Catalog:
        return self.services.catalog

    @property
    def settings(self) -> Settings:
        return self.services.settings


class Action(ABC):
    """Business logic bound to a transition.

    Subclasses implement :meth:`handle`; callers use :meth:`execute`, which
    never raises and turns internal faults into a failure result.
    """

    name: str
    priority: int = 10
    failure_message: str = GENERIC_APOLOGY

    def execute(
        self,
        conversation: Conversation,
        context: ActionContext,
        payload: Mapping[str, Any],
    ) -> ActionResult:
        try:
            return self.handle(conversation, context, payload)
        except Exception as exc:  # noqa: BLE001
            logger.exception(
                "Action %s failed for conversation %s",
                self.name,
                conversation.conversation_id,
            )
            return ActionResult.failure(
                str(exc) or exc.__class__.__name__,
                [text_message(self.failure_message)],
                error_code="internal_error",
            )

    @abstractmethod
    def handle(
        self,
        conversation: Conversation,
        context: ActionContext,
        payload: Mapping[str, Any],
    ) -> ActionResult:
        """Run the action and describe its outcome."""

    def describe(self) -> str:
        """Return a human-readable description for observability dashboards."""

        return self.__doc__ or self.name

    def error(self, message: str, code: str | None = None) -> ActionResult:
        return ActionResult.failure(message, [text_message(message)], error_code=code)

    def builder(self) -> MessageBuilder:
        return MessageBuilder()

    def format_price(self, amount: Decimal | None, context: ActionContext) -> str:
        value = Decimal(amount or 0).quantize(Decimal("0.01"))
        return f"{context.settings.currency} {value}"

    def log(self, message: str, *args: Any, level: int = logging.INFO) -> None:
        logger.log(level, f"{self.__class__.__name__}: {message}", *args)


def payload_int(payload: Mapping[str, Any], key: str, default: int | None = None) -> int | None:
    value = payload.get(key)
    if value in (None, ""):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
