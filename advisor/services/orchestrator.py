"""Message orchestrator: turns one user utterance into a grounded reply.

Per-turn flow::

    START -> CONTEXT_GATHERED -> MODEL_INVOKED
          -> (TOOLS_PENDING <-> TOOL_EXECUTING)* -> FINALIZED

The model gets a single round of tools per turn. Tool calls run one at a
time in the order the model returned them; each produces one outcome and a
failing call does not stop the rest. A second model call then sees every
outcome and writes the final reply. When the language model is missing or
refuses the region, a deterministic templated reply is produced instead.
"""

import logging
from collections.abc import Sequence
from datetime import datetime
from enum import Enum
from typing import Any

from advisor.core.capabilities import CompletionProvider, Unavailable, is_available
from advisor.core.exceptions import CapabilityUnavailableError
from advisor.db.store import PersonalDataStore
from advisor.integrations.collaborators import Collaborators
from advisor.models.records import (
    AgentResponse,
    ConversationTurn,
    MeetingSummary,
    ToolOutcome,
)
from advisor.services.retrieval import ContextRetriever
from advisor.services.tool_definitions import TOOL_DEFINITIONS, ToolName
from advisor.services.tool_dispatcher import ToolDispatcher

logger = logging.getLogger(__name__)

ROLE_DESCRIPTION = (
    "You are an AI assistant for a Financial Advisor. You have access to their "
    "Gmail, Google Calendar, and HubSpot CRM.\n\n"
    "Your capabilities:\n"
    "- Answer questions about clients using information from emails and HubSpot\n"
    "- Schedule appointments and manage calendar\n"
    "- Send emails to clients\n"
    "- Create and update contacts in HubSpot\n"
    "- Create tasks that can be executed later\n"
    "- Be proactive based on ongoing instructions"
)

BEHAVIOUR_GUIDELINES = (
    "Always be helpful, professional, and proactive. When scheduling "
    "appointments, always check availability first and provide multiple time "
    "options. When creating contacts, include relevant notes about the interaction."
)

CAPABILITY_FOOTER = (
    "I can help you with:\n"
    "• Searching through your emails\n"
    "• Managing your contacts\n"
    "• Scheduling appointments\n"
    "• Sending emails"
)

DEGRADED_NOTICE = (
    "Note: AI-powered features are currently limited. "
    "Basic functionality is still available."
)

FALLBACK_FAILURE_TEXT = (
    "I'm sorry, I'm experiencing technical difficulties. "
    "Please try again later or contact support."
)


class TurnState(str, Enum):
    START = "start"
    CONTEXT_GATHERED = "context_gathered"
    MODEL_INVOKED = "model_invoked"
    TOOLS_PENDING = "tools_pending"
    TOOL_EXECUTING = "tool_executing"
    FINALIZED = "finalized"


def build_system_prompt(context: str, instructions: str | None) -> str:
    """Assemble the grounding instruction for one turn."""
    return (
        f"{ROLE_DESCRIPTION}\n\n"
        f"Ongoing Instructions: {instructions or 'None'}\n\n"
        f"Context from emails and contacts:\n{context}\n\n"
        f"{BEHAVIOUR_GUIDELINES}"
    )


def _event_start(event: dict[str, Any]) -> datetime | None:
    start = event.get("start") or {}
    raw = start.get("dateTime") or start.get("date") if isinstance(start, dict) else start
    if not raw:
        return None
    try:
        return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        return None


def _event_time(event: dict[str, Any], start: datetime | None) -> str:
    if start is None:
        return ""
    field = event.get("start")
    if isinstance(field, dict) and not field.get("dateTime"):
        return "All day"
    return f"{start:%I:%M %p}".lstrip("0")


def summarize_meetings(outcome: ToolOutcome) -> list[MeetingSummary] | None:
    """Project a successful calendar search into display cards."""
    if not outcome.ok or not isinstance(outcome.result, list):
        return None

    summaries = []
    for event in outcome.result:
        if not isinstance(event, dict):
            continue
        start = _event_start(event)
        attendees = [
            (attendee.get("email") or "").split("@")[0] or "Unknown"
            for attendee in event.get("attendees") or []
            if isinstance(attendee, dict)
        ]
        summaries.append(
            MeetingSummary(
                title=event.get("summary") or "Untitled Event",
                date=f"{start:%A, %B} {start.day}" if start else "Unknown date",
                time=_event_time(event, start),
                attendees=attendees,
            )
        )
    return summaries


class MessageOrchestrator:
    """Drives one chat turn through retrieval, the model and the tool loop."""

    def __init__(
        self,
        retriever: ContextRetriever,
        store: PersonalDataStore,
        collaborators: Collaborators,
        completion: CompletionProvider | Unavailable,
        context_limit: int = 10,
    ) -> None:
        self._retriever = retriever
        self._store = store
        self._collaborators = collaborators
        self._completion = completion
        self._context_limit = context_limit

    def _transition(self, user_id: str, state: TurnState) -> None:
        logger.debug("Chat turn state %s", state.value, extra={"user_id": user_id})

    async def process_message(
        self,
        user_id: str,
        message: str,
        history: Sequence[ConversationTurn] = (),
        session_token: str | None = None,
    ) -> AgentResponse:
        """Answer one user message.

        Args:
            user_id: Owner of all data touched by this turn.
            message: The new user utterance.
            history: Recent turns, oldest first, replayed verbatim.
            session_token: Optional short-lived email credential.

        Returns:
            AgentResponse; ``degraded`` is set when the model was bypassed.

        Raises:
            Exception: Any model or prompt-assembly failure that is not a
                degraded capability.
        """
        self._transition(user_id, TurnState.START)
        if not is_available(self._completion):
            return await self._fallback_response(user_id, message)

        context = await self._retriever.get_context(user_id, message, self._context_limit)
        instructions = await self._store.get_instructions(user_id)
        self._transition(user_id, TurnState.CONTEXT_GATHERED)

        messages: list[dict[str, Any]] = [
            {"role": "system", "content": build_system_prompt(context, instructions)},
            *(turn.to_message() for turn in history),
            {"role": "user", "content": message},
        ]

        try:
            reply = await self._completion.complete(messages, tools=TOOL_DEFINITIONS)
        except CapabilityUnavailableError as e:
            logger.warning(
                "Completion provider unavailable, using fallback response: %s",
                e.reason,
                extra={"user_id": user_id},
            )
            return await self._fallback_response(user_id, message)
        self._transition(user_id, TurnState.MODEL_INVOKED)

        if not reply.tool_calls:
            self._transition(user_id, TurnState.FINALIZED)
            return AgentResponse(content=reply.text)

        self._transition(user_id, TurnState.TOOLS_PENDING)
        dispatcher = ToolDispatcher(user_id, self._collaborators, session_token)
        outcomes: list[ToolOutcome] = []
        for invocation in reply.tool_calls:
            self._transition(user_id, TurnState.TOOL_EXECUTING)
            outcomes.append(await dispatcher.execute(invocation))
            self._transition(user_id, TurnState.TOOLS_PENDING)

        follow_up = [
            *messages,
            reply.to_assistant_message(),
            *(outcome.to_message() for outcome in outcomes),
        ]
        degraded = False
        try:
            final = await self._completion.complete(follow_up)
            text = final.text
        except CapabilityUnavailableError as e:
            logger.warning(
                "Completion provider unavailable after tool execution: %s",
                e.reason,
                extra={"user_id": user_id},
            )
            text = self._summarize_outcomes(outcomes)
            degraded = True

        meeting_data = None
        for invocation, outcome in zip(reply.tool_calls, outcomes, strict=True):
            if invocation.name == ToolName.SEARCH_CALENDAR_EVENTS.value:
                meeting_data = summarize_meetings(outcome)
                break

        self._transition(user_id, TurnState.FINALIZED)
        return AgentResponse(
            content=text,
            tool_calls=list(reply.tool_calls),
            tool_outcomes=outcomes,
            meeting_data=meeting_data,
            degraded=degraded,
        )

    async def _fallback_response(self, user_id: str, message: str) -> AgentResponse:
        """Templated reply used when the language model cannot be called."""
        try:
            context = await self._retriever.get_context(user_id, message, self._context_limit)
            instructions = await self._store.get_instructions(user_id)
        except Exception:
            logger.exception("Fallback response assembly failed", extra={"user_id": user_id})
            return AgentResponse(content=FALLBACK_FAILURE_TEXT, degraded=True)

        parts = [f"I understand you're asking about: {message}"]
        if context:
            parts.append(f"Based on your data, here's what I found:\n{context}")
        if instructions:
            parts.append(f"Your ongoing instructions: {instructions}")
        parts.append(CAPABILITY_FOOTER)
        parts.append(DEGRADED_NOTICE)

        self._transition(user_id, TurnState.FINALIZED)
        return AgentResponse(content="\n\n".join(parts), degraded=True)

    @staticmethod
    def _summarize_outcomes(outcomes: list[ToolOutcome]) -> str:
        lines = ["I carried out the following actions:"]
        for outcome in outcomes:
            status = "done" if outcome.ok else f"failed ({outcome.error})"
            lines.append(f"• {outcome.name.replace('_', ' ')}: {status}")
        lines.append(DEGRADED_NOTICE)
        return "\n".join(lines)
