"""Human handoff and reset actions."""

from __future__ import annotations

from typing import Any, Mapping

from shopbot.conversation.models import Conversation
from shopbot.core.db import datetime_to_iso

from .base import Action, ActionContext, ActionResult


class NotifyAgentAction(Action):
    """Hand the conversation to a human and queue an escalation reminder."""

    name = "notify_agent"

    def handle(
        self,
        conversation: Conversation,
        context: ActionContext,
        payload: Mapping[str, Any],
    ) -> ActionResult:
        reason = str(payload.get("reason") or "").strip()
        context.services.scheduler.schedule_after(
            "human_handoff_escalation",
            {
                "conversation_id": conversation.conversation_id,
                "from_state": context.from_state.value,
                "reason": reason,
            },
            context.settings.handoff_escalation_seconds,
        )
        message = (
            self.builder()
            .text("I'm connecting you with a member of our team.")
            .text("Someone will reply here shortly.")
            .build()
        )
        return ActionResult.ok(
            [message],
            context_delta={
                "handoff_requested_at": datetime_to_iso(context.now),
                "handoff_from_state": context.from_state.value,
                "handoff_reason": reason or None,
            },
        )


class TransferToAgentAction(Action):
    name = "transfer_to_agent"

    def handle(
        self,
        conversation: Conversation,
        context: ActionContext,
        payload: Mapping[str, Any],
    ) -> ActionResult:
        agent = str(payload.get("agent_name") or "").strip()
        text = f"{agent} has joined the conversation." if agent else "An agent has joined the conversation."
        return ActionResult.ok(
            [self.builder().text(text).build()],
            context_delta={"agent_name": agent or None, "agent_joined_at": datetime_to_iso(context.now)},
        )


class ClearContextAction(Action):
    """Start over. Conversation data is dropped; the stored cart is kept."""

    name = "clear_context"

    def handle(
        self,
        conversation: Conversation,
        context: ActionContext,
        payload: Mapping[str, Any],
    ) -> ActionResult:
        message = self.builder().text("Let's start over. Say hi whenever you're ready.").build()
        return ActionResult.ok([message], clear_state_data=True)
