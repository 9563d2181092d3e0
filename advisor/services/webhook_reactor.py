"""Reacts to inbound integration events using the user's standing instructions.

The model is asked whether the instructions imply an action for the event.
It answers with the ``NO_ACTION`` sentinel or a JSON object whose
``toolCalls`` are run through the tool dispatcher. Nothing is reported
back to the user; failures are logged and dropped.
"""

import json
import logging
import re
import uuid
from typing import Any

from advisor.core.capabilities import CompletionProvider, Unavailable, is_available
from advisor.db.store import PersonalDataStore
from advisor.integrations.collaborators import Collaborators
from advisor.models.records import ToolInvocation
from advisor.services.tool_dispatcher import ToolDispatcher

logger = logging.getLogger(__name__)

NO_ACTION = "NO_ACTION"

REACTOR_SYSTEM_PROMPT = (
    "You are an AI assistant that processes webhook events and decides on "
    "actions based on ongoing instructions."
)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


def build_event_prompt(event_type: str, payload: Any, instructions: str) -> str:
    return (
        f"A webhook event occurred: {event_type}\n"
        f"Event data: {json.dumps(payload, indent=2, default=str)}\n\n"
        "Based on the ongoing instructions, should I take any action?\n"
        f"Ongoing Instructions: {instructions}\n\n"
        "Respond with either:\n"
        f'1. "{NO_ACTION}" if no action is needed\n'
        "2. A JSON object with the action to take, including tool calls if needed, "
        'e.g. {"toolCalls": [{"name": "send_email", "arguments": {...}}]}'
    )


def parse_action(content: str) -> list[ToolInvocation]:
    """Extract tool invocations from the model's JSON action.

    Accepts ``{"name", "arguments"}`` entries as well as OpenAI-style
    ``{"id", "function": {"name", "arguments"}}`` entries.

    Raises:
        ValueError: If the content is not a JSON object.
    """
    action = json.loads(_CODE_FENCE.sub("", content.strip()))
    if not isinstance(action, dict):
        raise ValueError("webhook action must be a JSON object")

    invocations = []
    for entry in action.get("toolCalls") or []:
        if not isinstance(entry, dict):
            continue
        func = entry.get("function") if isinstance(entry.get("function"), dict) else entry
        invocations.append(
            ToolInvocation(
                id=str(entry.get("id") or f"webhook-{uuid.uuid4().hex[:12]}"),
                name=str(func.get("name", "")),
                arguments=func.get("arguments") or {},
            )
        )
    return invocations


class WebhookReactor:
    """Fire-and-forget automation driven by standing instructions."""

    def __init__(
        self,
        store: PersonalDataStore,
        collaborators: Collaborators,
        completion: CompletionProvider | Unavailable,
    ) -> None:
        self._store = store
        self._collaborators = collaborators
        self._completion = completion

    async def on_event(self, user_id: str, event_type: str, payload: Any) -> None:
        """Decide and run any automatic action for one user. Never raises."""
        if not is_available(self._completion):
            logger.warning(
                "Completion provider unavailable, skipping webhook processing",
                extra={"user_id": user_id, "event_type": event_type},
            )
            return

        try:
            instructions = await self._store.get_instructions(user_id)
            if not instructions:
                return

            reply = await self._completion.complete([
                {"role": "system", "content": REACTOR_SYSTEM_PROMPT},
                {"role": "user", "content": build_event_prompt(event_type, payload, instructions)},
            ])
            content = (reply.text or "").strip()
            if not content or content == NO_ACTION:
                return

            try:
                invocations = parse_action(content)
            except ValueError as e:
                logger.error(
                    "Error parsing webhook action: %s",
                    e,
                    extra={"user_id": user_id, "event_type": event_type},
                )
                return

            dispatcher = ToolDispatcher(user_id, self._collaborators)
            for invocation in invocations:
                outcome = await dispatcher.execute(invocation)
                if not outcome.ok:
                    logger.warning(
                        "Webhook tool call failed: %s",
                        outcome.error,
                        extra={"user_id": user_id, "tool_name": invocation.name},
                    )
        except Exception:
            logger.exception(
                "Error processing webhook event",
                extra={"user_id": user_id, "event_type": event_type},
            )

    async def broadcast(self, event_type: str, payload: Any) -> int:
        """Run ``on_event`` for every user holding standing instructions.

        Returns:
            Number of users the event was offered to.
        """
        user_ids = await self._store.list_users_with_instructions()
        for user_id in user_ids:
            await self.on_event(user_id, event_type, payload)
        return len(user_ids)
