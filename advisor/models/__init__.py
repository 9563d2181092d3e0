"""Models package for the advisor backend."""

from advisor.models.records import (
    AgentResponse,
    ContactRecord,
    ConversationTurn,
    Corpus,
    Hit,
    ImportSummary,
    MeetingSummary,
    MessageRecord,
    RetrievalResult,
    Role,
    TaskPriority,
    TaskStatus,
    ToolInvocation,
    ToolOutcome,
)

__all__ = [
    "AgentResponse",
    "ContactRecord",
    "ConversationTurn",
    "Corpus",
    "Hit",
    "ImportSummary",
    "MeetingSummary",
    "MessageRecord",
    "RetrievalResult",
    "Role",
    "TaskPriority",
    "TaskStatus",
    "ToolInvocation",
    "ToolOutcome",
]
