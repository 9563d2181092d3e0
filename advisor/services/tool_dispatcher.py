"""Executes model-issued tool invocations against external collaborators.

Every invocation yields exactly one ToolOutcome. Unknown tool names,
malformed arguments and collaborator exceptions all become error outcomes
carrying a message string, so the caller's tool loop never loses a call.
"""

import json
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from advisor.core.exceptions import ToolArgumentError, UnknownToolError
from advisor.integrations.collaborators import Collaborators, EmailClient, resolve_email_client
from advisor.models.records import TaskStatus, ToolInvocation, ToolOutcome
from advisor.services.tool_definitions import (
    TOOL_ARGUMENT_MODELS,
    AddContactNoteArgs,
    CreateCalendarEventArgs,
    CreateContactArgs,
    CreateTaskArgs,
    GetAvailableSlotsArgs,
    SearchCalendarEventsArgs,
    SearchContactsArgs,
    SearchEmailsArgs,
    SendEmailArgs,
    ToolName,
    UpdateContactArgs,
    UpdateTaskArgs,
)

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[Any]]


def parse_arguments(tool: ToolName, arguments: dict[str, Any] | str | None) -> BaseModel:
    """Parse and validate a raw argument bag against the tool's schema.

    Raises:
        ToolArgumentError: If the arguments are not JSON or fail validation.
    """
    if isinstance(arguments, str):
        try:
            arguments = json.loads(arguments) if arguments.strip() else {}
        except json.JSONDecodeError as e:
            raise ToolArgumentError(tool.value, f"arguments are not valid JSON ({e.msg})") from e
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        raise ToolArgumentError(tool.value, "arguments must be a JSON object")

    try:
        return TOOL_ARGUMENT_MODELS[tool].model_validate(arguments)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
            for err in e.errors()
        )
        raise ToolArgumentError(tool.value, problems) from e


class ToolDispatcher:
    """Maps tool names to collaborator calls for a single user."""

    def __init__(
        self,
        user_id: str,
        collaborators: Collaborators,
        session_token: str | None = None,
    ) -> None:
        self._user_id = user_id
        self._collaborators = collaborators
        self._session_token = session_token
        self._handlers: dict[ToolName, Handler] = {
            ToolName.SEARCH_EMAILS: self._search_emails,
            ToolName.SEARCH_CONTACTS: self._search_contacts,
            ToolName.CREATE_CONTACT: self._create_contact,
            ToolName.UPDATE_CONTACT: self._update_contact,
            ToolName.ADD_CONTACT_NOTE: self._add_contact_note,
            ToolName.SEND_EMAIL: self._send_email,
            ToolName.GET_AVAILABLE_SLOTS: self._get_available_slots,
            ToolName.CREATE_CALENDAR_EVENT: self._create_calendar_event,
            ToolName.SEARCH_CALENDAR_EVENTS: self._search_calendar_events,
            ToolName.CREATE_TASK: self._create_task,
            ToolName.UPDATE_TASK: self._update_task,
        }

    async def execute(self, invocation: ToolInvocation) -> ToolOutcome:
        """Run one invocation and return its outcome. Never raises."""
        try:
            tool = ToolName(invocation.name)
        except ValueError:
            error = UnknownToolError(invocation.name)
            logger.warning(
                "Model requested unsupported tool",
                extra={"tool_name": invocation.name, "user_id": self._user_id},
            )
            return ToolOutcome(call_id=invocation.id, name=invocation.name, error=error.message)

        try:
            args = parse_arguments(tool, invocation.arguments)
            result = await self._handlers[tool](args)
        except Exception as e:
            logger.exception(
                "Tool execution failed",
                extra={"tool_name": tool.value, "user_id": self._user_id},
            )
            return ToolOutcome(
                call_id=invocation.id,
                name=tool.value,
                error=str(e) or type(e).__name__,
            )

        logger.info(
            "Tool executed",
            extra={"tool_name": tool.value, "user_id": self._user_id},
        )
        return ToolOutcome(call_id=invocation.id, name=tool.value, result=result)

    # ------------------------------------------------------------------
    # Email
    # ------------------------------------------------------------------

    async def _email_client(self) -> EmailClient:
        return await resolve_email_client(
            self._collaborators.email, self._user_id, self._session_token
        )

    async def _search_emails(self, args: SearchEmailsArgs) -> Any:
        client = await self._email_client()
        return await client.search(args.query, args.max_results)

    async def _send_email(self, args: SendEmailArgs) -> Any:
        client = await self._email_client()
        return await client.send(args.to, args.subject, args.body)

    # ------------------------------------------------------------------
    # CRM
    # ------------------------------------------------------------------

    async def _search_contacts(self, args: SearchContactsArgs) -> Any:
        crm = await self._collaborators.crm.for_user(self._user_id)
        return await crm.search(args.query)

    async def _create_contact(self, args: CreateContactArgs) -> Any:
        crm = await self._collaborators.crm.for_user(self._user_id)
        return await crm.create(args.model_dump(exclude_none=True))

    async def _update_contact(self, args: UpdateContactArgs) -> Any:
        crm = await self._collaborators.crm.for_user(self._user_id)
        return await crm.update(args.contact_id, args.properties)

    async def _add_contact_note(self, args: AddContactNoteArgs) -> Any:
        crm = await self._collaborators.crm.for_user(self._user_id)
        return await crm.add_note(args.contact_id, args.note)

    # ------------------------------------------------------------------
    # Calendar
    # ------------------------------------------------------------------

    async def _get_available_slots(self, args: GetAvailableSlotsArgs) -> Any:
        calendar = await self._collaborators.calendar.for_user(self._user_id)
        return await calendar.find_free_slots(
            args.start_date, args.end_date, args.duration_minutes
        )

    async def _create_calendar_event(self, args: CreateCalendarEventArgs) -> Any:
        calendar = await self._collaborators.calendar.for_user(self._user_id)
        return await calendar.create_event(
            summary=args.summary,
            start=args.start,
            end=args.end,
            description=args.description,
            attendees=args.attendees,
        )

    async def _search_calendar_events(self, args: SearchCalendarEventsArgs) -> Any:
        calendar = await self._collaborators.calendar.for_user(self._user_id)
        return await calendar.search(args.query, args.time_min, args.time_max)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def _create_task(self, args: CreateTaskArgs) -> Any:
        return await self._collaborators.store.create_task(
            self._user_id,
            {
                "title": args.title,
                "description": args.description,
                "priority": args.priority.value,
                "status": TaskStatus.PENDING.value,
                "tool_calls": args.tool_calls,
                "context": args.context,
            },
        )

    async def _update_task(self, args: UpdateTaskArgs) -> Any:
        fields: dict[str, Any] = {}
        if args.status is not None:
            fields["status"] = args.status.value
            if args.status is TaskStatus.COMPLETED:
                fields["completed_at"] = datetime.now(UTC).isoformat()
        if args.result is not None:
            fields["result"] = args.result
        if args.error is not None:
            fields["error"] = args.error
        return await self._collaborators.store.update_task(self._user_id, args.task_id, fields)
