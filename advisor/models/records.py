"""Domain records shared by the retriever, dispatcher and orchestrator.

Everything here is scoped to a single user id supplied by the caller.
"""

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class Corpus(str, Enum):
    """One of the two retrievable collections owned by a user."""

    MESSAGES = "messages"
    CONTACTS = "contacts"

    @property
    def table(self) -> str:
        """Supabase table backing this corpus."""
        return {
            Corpus.MESSAGES: "email_embeddings",
            Corpus.CONTACTS: "contact_embeddings",
        }[self]

    @property
    def label(self) -> str:
        """Prefix used when rendering hits into grounding text."""
        return {Corpus.MESSAGES: "Email", Corpus.CONTACTS: "Contact"}[self]


class Role(str, Enum):
    """Author of a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"


class TaskPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


def _parse_timestamp(value: Any) -> datetime | None:
    """Parse a stored timestamp into an aware datetime, or None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass
class MessageRecord:
    """An email imported into the messages corpus."""

    external_id: str
    subject: str = ""
    sender: str = ""
    recipient: str = ""
    body: str = ""
    sent_at: datetime | None = None
    embedding: list[float] | None = None

    def to_text(self) -> str:
        """Render the message as embedding input and grounding text."""
        return (
            f"Subject: {self.subject}\nFrom: {self.sender}\n"
            f"To: {self.recipient}\nBody: {self.body}"
        )

    def to_row(self, user_id: str) -> dict[str, Any]:
        return {
            "user_id": user_id,
            "external_id": self.external_id,
            "subject": self.subject,
            "sender": self.sender,
            "recipient": self.recipient,
            "body": self.body,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "embedding": self.embedding,
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "MessageRecord":
        return cls(
            external_id=str(row.get("external_id", "")),
            subject=row.get("subject") or "",
            sender=row.get("sender") or "",
            recipient=row.get("recipient") or "",
            body=row.get("body") or "",
            sent_at=_parse_timestamp(row.get("sent_at")),
            embedding=row.get("embedding"),
        )


@dataclass
class ContactRecord:
    """A CRM contact imported into the contacts corpus."""

    external_id: str
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    company: str = ""
    notes: str = ""
    lead_status: str = ""
    properties: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    embedding: list[float] | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_text(self) -> str:
        """Render the contact for embedding."""
        return "\n".join([
            f"Name: {self.full_name}",
            f"Email: {self.email}",
            f"Phone: {self.phone}",
            f"Company: {self.company}",
            f"Status: {self.lead_status}",
            f"Notes: {self.notes}",
        ])

    def to_grounding_text(self) -> str:
        """Render the contact as it appears in retrieved context."""
        return (
            f"Name: {self.full_name}\nEmail: {self.email}\n"
            f"Company: {self.company}\nNotes: {self.notes}"
        )

    def to_row(self, user_id: str) -> dict[str, Any]:
        return {
            "user_id": user_id,
            "external_id": self.external_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "company": self.company,
            "notes": self.notes,
            "properties": self.properties,
            "embedding": self.embedding,
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ContactRecord":
        return cls(
            external_id=str(row.get("external_id", "")),
            first_name=row.get("first_name") or "",
            last_name=row.get("last_name") or "",
            email=row.get("email") or "",
            phone=row.get("phone") or "",
            company=row.get("company") or "",
            notes=row.get("notes") or "",
            properties=row.get("properties") or {},
            created_at=_parse_timestamp(row.get("created_at")),
            embedding=row.get("embedding"),
        )

    @classmethod
    def from_crm(cls, contact: dict[str, Any]) -> "ContactRecord":
        """Build a record from a HubSpot contact object."""
        props = contact.get("properties") or {}
        return cls(
            external_id=str(contact.get("id", "")),
            first_name=props.get("firstname") or "",
            last_name=props.get("lastname") or "",
            email=props.get("email") or "",
            phone=props.get("phone") or "",
            company=props.get("company") or "",
            notes=props.get("notes_last_contacted") or "",
            lead_status=props.get("hs_lead_status") or "",
            properties=props,
        )


@dataclass
class Hit:
    """One ranked retrieval result.

    ``score`` is the similarity distance (lower is better) on the vector
    path and ``0`` when no semantic ranking was available.
    """

    content: str
    metadata: dict[str, Any]
    score: float


@dataclass
class RetrievalResult:
    message_hits: list[Hit] = field(default_factory=list)
    contact_hits: list[Hit] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.message_hits and not self.contact_hits


@dataclass
class ConversationTurn:
    """One stored chat turn, replayed verbatim into the model."""

    role: Role
    content: str
    tool_calls: list[dict[str, Any]] | None = None

    def to_message(self) -> dict[str, Any]:
        return {"role": self.role.value, "content": self.content}


@dataclass
class ToolInvocation:
    """A model-issued tool call. ``arguments`` may still be a JSON string."""

    id: str
    name: str
    arguments: dict[str, Any] | str = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": self.arguments}

    def to_openai(self) -> dict[str, Any]:
        """Serialise as an OpenAI ``tool_calls`` entry."""
        arguments = self.arguments
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments, default=str)
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": arguments},
        }


@dataclass
class ToolOutcome:
    """The single result recorded for a ToolInvocation."""

    call_id: str
    name: str
    result: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_payload(self) -> Any:
        return self.result if self.ok else {"error": self.error}

    def to_message(self) -> dict[str, Any]:
        """Serialise as an OpenAI ``tool`` role message."""
        return {
            "role": "tool",
            "tool_call_id": self.call_id,
            "content": json.dumps(self.to_payload(), default=str),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "call_id": self.call_id,
            "name": self.name,
            "result": self.result,
            "error": self.error,
        }


@dataclass
class MeetingSummary:
    """Display projection of one calendar event."""

    title: str
    date: str
    time: str
    attendees: list[str] = field(default_factory=list)


@dataclass
class AgentResponse:
    content: str | None
    tool_calls: list[ToolInvocation] = field(default_factory=list)
    tool_outcomes: list[ToolOutcome] = field(default_factory=list)
    meeting_data: list[MeetingSummary] | None = None
    degraded: bool = False


@dataclass
class ImportSummary:
    corpus: Corpus
    fetched: int = 0
    imported: int = 0
    skipped: int = 0
    without_embedding: int = 0
