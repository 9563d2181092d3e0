"""Tool definitions exposed to the language model.

Defines OpenAI function-calling schemas for the eleven tools the assistant
may invoke, plus the pydantic models the dispatcher validates arguments
against. Argument names keep the camelCase the model sees.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from advisor.models.records import TaskPriority, TaskStatus


class ToolName(str, Enum):
    """The closed set of tools the dispatcher can execute."""

    SEARCH_EMAILS = "search_emails"
    SEARCH_CONTACTS = "search_contacts"
    CREATE_CONTACT = "create_contact"
    UPDATE_CONTACT = "update_contact"
    ADD_CONTACT_NOTE = "add_contact_note"
    SEND_EMAIL = "send_email"
    GET_AVAILABLE_SLOTS = "get_available_slots"
    CREATE_CALENDAR_EVENT = "create_calendar_event"
    SEARCH_CALENDAR_EVENTS = "search_calendar_events"
    CREATE_TASK = "create_task"
    UPDATE_TASK = "update_task"


# ---------------------------------------------------------------------------
# Argument models
# ---------------------------------------------------------------------------


class _ToolArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SearchEmailsArgs(_ToolArgs):
    query: str
    max_results: int = Field(10, alias="maxResults", ge=1, le=100)


class SearchContactsArgs(_ToolArgs):
    query: str


class CreateContactArgs(_ToolArgs):
    email: str
    firstname: str | None = None
    lastname: str | None = None
    phone: str | None = None
    company: str | None = None


class UpdateContactArgs(_ToolArgs):
    contact_id: str = Field(alias="contactId")
    properties: dict[str, Any]


class AddContactNoteArgs(_ToolArgs):
    contact_id: str = Field(alias="contactId")
    note: str


class SendEmailArgs(_ToolArgs):
    to: str
    subject: str
    body: str


class GetAvailableSlotsArgs(_ToolArgs):
    start_date: datetime = Field(alias="startDate")
    end_date: datetime = Field(alias="endDate")
    duration_minutes: int = Field(60, alias="durationMinutes", ge=5, le=24 * 60)


class CreateCalendarEventArgs(_ToolArgs):
    summary: str
    start: str
    end: str
    description: str | None = None
    attendees: list[str] | None = None


class SearchCalendarEventsArgs(_ToolArgs):
    query: str
    time_min: datetime | None = Field(None, alias="timeMin")
    time_max: datetime | None = Field(None, alias="timeMax")


class CreateTaskArgs(_ToolArgs):
    title: str
    description: str
    priority: TaskPriority = TaskPriority.MEDIUM
    tool_calls: Any = Field(None, alias="toolCalls")
    context: Any = None


class UpdateTaskArgs(_ToolArgs):
    task_id: str = Field(alias="taskId")
    status: TaskStatus | None = None
    result: str | None = None
    error: str | None = None


TOOL_ARGUMENT_MODELS: dict[ToolName, type[_ToolArgs]] = {
    ToolName.SEARCH_EMAILS: SearchEmailsArgs,
    ToolName.SEARCH_CONTACTS: SearchContactsArgs,
    ToolName.CREATE_CONTACT: CreateContactArgs,
    ToolName.UPDATE_CONTACT: UpdateContactArgs,
    ToolName.ADD_CONTACT_NOTE: AddContactNoteArgs,
    ToolName.SEND_EMAIL: SendEmailArgs,
    ToolName.GET_AVAILABLE_SLOTS: GetAvailableSlotsArgs,
    ToolName.CREATE_CALENDAR_EVENT: CreateCalendarEventArgs,
    ToolName.SEARCH_CALENDAR_EVENTS: SearchCalendarEventsArgs,
    ToolName.CREATE_TASK: CreateTaskArgs,
    ToolName.UPDATE_TASK: UpdateTaskArgs,
}


# ---------------------------------------------------------------------------
# Tool schema helpers
# ---------------------------------------------------------------------------


def _tool(
    name: ToolName,
    description: str,
    properties: dict[str, Any],
    required: list[str],
) -> dict[str, Any]:
    """Build an OpenAI function-calling tool schema."""
    return {
        "type": "function",
        "function": {
            "name": name.value,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        },
    }


_STRING = {"type": "string"}
_DATETIME = {"type": "string", "format": "date-time"}

TOOL_DEFINITIONS: list[dict[str, Any]] = [
    _tool(
        ToolName.SEARCH_EMAILS,
        "Search through Gmail messages for specific information",
        {
            "query": {"type": "string", "description": "Search query for Gmail messages"},
            "maxResults": {
                "type": "number",
                "description": "Maximum number of results to return",
                "default": 10,
            },
        },
        ["query"],
    ),
    _tool(
        ToolName.SEARCH_CONTACTS,
        "Search through HubSpot contacts",
        {
            "query": {
                "type": "string",
                "description": "Search query for contacts (name, email, company)",
            },
        },
        ["query"],
    ),
    _tool(
        ToolName.CREATE_CONTACT,
        "Create a new contact in HubSpot",
        {
            "firstname": _STRING,
            "lastname": _STRING,
            "email": _STRING,
            "phone": _STRING,
            "company": _STRING,
        },
        ["email"],
    ),
    _tool(
        ToolName.UPDATE_CONTACT,
        "Update an existing contact in HubSpot",
        {
            "contactId": _STRING,
            "properties": {"type": "object", "description": "Properties to update"},
        },
        ["contactId", "properties"],
    ),
    _tool(
        ToolName.ADD_CONTACT_NOTE,
        "Add a note to a contact in HubSpot",
        {"contactId": _STRING, "note": _STRING},
        ["contactId", "note"],
    ),
    _tool(
        ToolName.SEND_EMAIL,
        "Send an email to someone",
        {"to": _STRING, "subject": _STRING, "body": _STRING},
        ["to", "subject", "body"],
    ),
    _tool(
        ToolName.GET_AVAILABLE_SLOTS,
        "Get available time slots for scheduling",
        {
            "startDate": _DATETIME,
            "endDate": _DATETIME,
            "durationMinutes": {"type": "number", "default": 60},
        },
        ["startDate", "endDate"],
    ),
    _tool(
        ToolName.CREATE_CALENDAR_EVENT,
        "Create a calendar event",
        {
            "summary": _STRING,
            "description": _STRING,
            "start": _DATETIME,
            "end": _DATETIME,
            "attendees": {"type": "array", "items": _STRING},
        },
        ["summary", "start", "end"],
    ),
    _tool(
        ToolName.SEARCH_CALENDAR_EVENTS,
        "Search calendar events",
        {"query": _STRING, "timeMin": _DATETIME, "timeMax": _DATETIME},
        ["query"],
    ),
    _tool(
        ToolName.CREATE_TASK,
        "Create a task for later execution",
        {
            "title": _STRING,
            "description": _STRING,
            "priority": {"type": "string", "enum": [p.value for p in TaskPriority]},
            "toolCalls": {"type": "object"},
            "context": {"type": "object"},
        },
        ["title", "description"],
    ),
    _tool(
        ToolName.UPDATE_TASK,
        "Update an existing task",
        {
            "taskId": _STRING,
            "status": {"type": "string", "enum": [s.value for s in TaskStatus]},
            "result": _STRING,
            "error": _STRING,
        },
        ["taskId"],
    ),
]
