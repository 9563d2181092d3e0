"""Persistence for retrievable items, instructions, turns and tasks.

Vector similarity runs inside Postgres (pgvector). Each corpus exposes an
RPC with the signature::

    match_<table>(p_user_id uuid, p_query_embedding vector, p_match_count int)

returning the corpus columns plus ``distance`` (cosine ``<=>``), ordered
ascending and skipping rows whose embedding is null.
"""

import logging
import re
from datetime import UTC, datetime
from typing import Any, cast

from supabase import Client

from advisor.core.exceptions import DatabaseError, NotFoundError
from advisor.models.records import ConversationTurn, Corpus, Role

logger = logging.getLogger(__name__)

# Columns searched by the lexical fallback, and the recency column per corpus
TEXT_FIELDS: dict[Corpus, tuple[str, ...]] = {
    Corpus.MESSAGES: ("subject", "body", "sender"),
    Corpus.CONTACTS: ("first_name", "last_name", "email", "company", "notes"),
}
RECENCY_FIELD: dict[Corpus, str] = {
    Corpus.MESSAGES: "sent_at",
    Corpus.CONTACTS: "created_at",
}

# LIKE metacharacters; backslash is the default LIKE escape
_LIKE_SPECIAL = re.compile(r"([\\%_])")


def ilike_filter_value(token: str) -> str:
    """Quote a token as a PostgREST ``ilike`` operand matching it as a substring.

    LIKE wildcards in the token are escaped so it matches literally. PostgREST
    treats ``*`` as ``%`` in like patterns, so a literal ``*`` becomes the
    single-character wildcard ``_``; callers re-check rows in Python. The
    value is double-quoted so commas, dots and parentheses survive the
    ``or=(...)`` grammar.
    """
    pattern = "%" + _LIKE_SPECIAL.sub(r"\\\1", token).replace("*", "_") + "%"
    quoted = pattern.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{quoted}"'


class PersonalDataStore:
    """Supabase-backed store for one deployment's personal data."""

    def __init__(self, client: Client) -> None:
        self._db = client

    # ------------------------------------------------------------------
    # Retrievable items
    # ------------------------------------------------------------------

    async def find_item(
        self, corpus: Corpus, user_id: str, external_id: str
    ) -> dict[str, Any] | None:
        """Return the stored row for an external id, if imported."""
        try:
            response = (
                self._db.table(corpus.table)
                .select("id")
                .eq("user_id", user_id)
                .eq("external_id", external_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.exception("Error looking up item", extra={"corpus": corpus.value})
            raise DatabaseError(f"Failed to look up {corpus.value} item: {e}") from e
        return cast(dict[str, Any], response.data[0]) if response.data else None

    async def insert_item(self, corpus: Corpus, row: dict[str, Any]) -> None:
        """Insert a row; an existing (user_id, external_id) is left untouched."""
        try:
            (
                self._db.table(corpus.table)
                .upsert(row, on_conflict="user_id,external_id", ignore_duplicates=True)
                .execute()
            )
        except Exception as e:
            logger.exception("Error inserting item", extra={"corpus": corpus.value})
            raise DatabaseError(f"Failed to store {corpus.value} item: {e}") from e

    async def match_by_embedding(
        self, corpus: Corpus, user_id: str, vector: list[float], limit: int
    ) -> list[dict[str, Any]]:
        """Nearest rows by cosine distance. Errors propagate to the caller."""
        response = self._db.rpc(
            f"match_{corpus.table}",
            {
                "p_user_id": user_id,
                "p_query_embedding": vector,
                "p_match_count": limit,
            },
        ).execute()
        return cast(list[dict[str, Any]], response.data or [])

    async def search_text(
        self, corpus: Corpus, user_id: str, tokens: list[str], limit: int
    ) -> list[dict[str, Any]]:
        """Rows where any token appears (case-insensitively) in a text field."""
        if not tokens:
            return []
        clauses = ",".join(
            f"{column}.ilike.{ilike_filter_value(token)}"
            for token in tokens
            for column in TEXT_FIELDS[corpus]
        )
        response = (
            self._db.table(corpus.table)
            .select("*")
            .eq("user_id", user_id)
            .or_(clauses)
            .order(RECENCY_FIELD[corpus], desc=True)
            .limit(limit)
            .execute()
        )
        return cast(list[dict[str, Any]], response.data or [])

    # ------------------------------------------------------------------
    # Standing instructions
    # ------------------------------------------------------------------

    async def get_instructions(self, user_id: str) -> str | None:
        try:
            response = (
                self._db.table("user_profiles")
                .select("ongoing_instructions")
                .eq("id", user_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.exception("Error fetching instructions", extra={"user_id": user_id})
            raise DatabaseError(f"Failed to fetch instructions: {e}") from e
        if not response.data:
            return None
        return response.data[0].get("ongoing_instructions") or None

    async def set_instructions(self, user_id: str, instructions: str) -> None:
        """Overwrite the user's standing instructions (last write wins)."""
        try:
            response = (
                self._db.table("user_profiles")
                .update({"ongoing_instructions": instructions})
                .eq("id", user_id)
                .execute()
            )
        except Exception as e:
            logger.exception("Error updating instructions", extra={"user_id": user_id})
            raise DatabaseError(f"Failed to update instructions: {e}") from e
        if not response.data:
            raise NotFoundError("User", user_id)

    async def list_users_with_instructions(self) -> list[str]:
        try:
            response = (
                self._db.table("user_profiles")
                .select("id")
                .not_.is_("ongoing_instructions", "null")
                .execute()
            )
        except Exception as e:
            logger.exception("Error listing users with instructions")
            raise DatabaseError(f"Failed to list users: {e}") from e
        return [row["id"] for row in response.data or []]

    # ------------------------------------------------------------------
    # Conversation turns
    # ------------------------------------------------------------------

    async def get_recent_turns(
        self, user_id: str, conversation_id: str, limit: int
    ) -> list[ConversationTurn]:
        """The newest ``limit`` turns, returned oldest first."""
        try:
            response = (
                self._db.table("chat_messages")
                .select("role, content, tool_calls, created_at")
                .eq("user_id", user_id)
                .eq("conversation_id", conversation_id)
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            logger.exception("Error fetching chat history", extra={"user_id": user_id})
            raise DatabaseError(f"Failed to fetch chat history: {e}") from e
        rows = list(reversed(response.data or []))
        return [
            ConversationTurn(
                role=Role(row["role"]),
                content=row.get("content") or "",
                tool_calls=row.get("tool_calls"),
            )
            for row in rows
        ]

    async def append_turns(
        self, user_id: str, conversation_id: str, turns: list[ConversationTurn]
    ) -> None:
        rows = [
            {
                "user_id": user_id,
                "conversation_id": conversation_id,
                "role": turn.role.value,
                "content": turn.content,
                "tool_calls": turn.tool_calls,
            }
            for turn in turns
        ]
        try:
            self._db.table("chat_messages").insert(rows).execute()
        except Exception as e:
            logger.exception("Error saving chat turns", extra={"user_id": user_id})
            raise DatabaseError(f"Failed to save chat turns: {e}") from e

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def create_task(self, user_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        try:
            response = (
                self._db.table("tasks").insert({"user_id": user_id, **fields}).execute()
            )
        except Exception as e:
            logger.exception("Error creating task", extra={"user_id": user_id})
            raise DatabaseError(f"Failed to create task: {e}") from e
        if not response.data:
            raise DatabaseError("Failed to create task")
        return cast(dict[str, Any], response.data[0])

    async def update_task(
        self, user_id: str, task_id: str, fields: dict[str, Any]
    ) -> dict[str, Any]:
        try:
            response = (
                self._db.table("tasks")
                .update(fields)
                .eq("id", task_id)
                .eq("user_id", user_id)
                .execute()
            )
        except Exception as e:
            logger.exception("Error updating task", extra={"task_id": task_id})
            raise DatabaseError(f"Failed to update task: {e}") from e
        if not response.data:
            raise NotFoundError("Task", task_id)
        return cast(dict[str, Any], response.data[0])

    # ------------------------------------------------------------------
    # Webhook events
    # ------------------------------------------------------------------

    async def record_webhook_event(
        self, source: str, event_type: str, payload: Any
    ) -> str | None:
        try:
            response = (
                self._db.table("webhook_events")
                .insert({
                    "source": source,
                    "event_type": event_type,
                    "data": payload,
                    "processed": False,
                })
                .execute()
            )
        except Exception as e:
            logger.exception("Error recording webhook event", extra={"source": source})
            raise DatabaseError(f"Failed to record webhook event: {e}") from e
        return response.data[0]["id"] if response.data else None

    async def mark_webhook_processed(self, event_id: str) -> None:
        try:
            (
                self._db.table("webhook_events")
                .update({
                    "processed": True,
                    "processed_at": datetime.now(UTC).isoformat(),
                })
                .eq("id", event_id)
                .execute()
            )
        except Exception as e:
            logger.exception("Error marking webhook processed", extra={"event_id": event_id})
            raise DatabaseError(f"Failed to update webhook event: {e}") from e
