"""In-memory fakes for the store, the model and embeddings."""

import math
from typing import Any

from advisor.core.llm import LLMToolResponse
from advisor.db.store import RECENCY_FIELD
from advisor.models.records import ConversationTurn, Corpus, Role, ToolInvocation
from advisor.services.retrieval import lexical_match


def _cosine_distance(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b, strict=True))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return 1.0 - dot / norm if norm else 1.0


class FakeStore:
    """In-memory stand-in for PersonalDataStore with the same async surface."""

    def __init__(self) -> None:
        self.items: dict[Corpus, list[dict[str, Any]]] = {c: [] for c in Corpus}
        self.instructions: dict[str, str] = {}
        self.turns: list[dict[str, Any]] = []
        self.tasks: dict[str, dict[str, Any]] = {}
        self.webhook_events: dict[str, dict[str, Any]] = {}
        self.match_error: Exception | None = None
        self.text_error: Exception | None = None
        self.instructions_error: Exception | None = None

    def add(self, corpus: Corpus, row: dict[str, Any]) -> None:
        self.items[corpus].append(row)

    async def find_item(self, corpus: Corpus, user_id: str, external_id: str):
        for row in self.items[corpus]:
            if row["user_id"] == user_id and row["external_id"] == external_id:
                return row
        return None

    async def insert_item(self, corpus: Corpus, row: dict[str, Any]) -> None:
        if await self.find_item(corpus, row["user_id"], row["external_id"]) is None:
            self.items[corpus].append(dict(row))

    async def match_by_embedding(
        self, corpus: Corpus, user_id: str, vector: list[float], limit: int
    ) -> list[dict[str, Any]]:
        if self.match_error:
            raise self.match_error
        rows = [
            {**row, "distance": _cosine_distance(row["embedding"], vector)}
            for row in self.items[corpus]
            if row["user_id"] == user_id and row.get("embedding") is not None
        ]
        rows.sort(key=lambda r: r["distance"])
        return rows[:limit]

    async def search_text(
        self, corpus: Corpus, user_id: str, tokens: list[str], limit: int
    ) -> list[dict[str, Any]]:
        if self.text_error:
            raise self.text_error
        rows = [
            row
            for row in self.items[corpus]
            if row["user_id"] == user_id and lexical_match(corpus, row, tokens)
        ]
        rows.sort(key=lambda r: r.get(RECENCY_FIELD[corpus]) or "", reverse=True)
        return rows[:limit]

    async def get_instructions(self, user_id: str) -> str | None:
        if self.instructions_error:
            raise self.instructions_error
        return self.instructions.get(user_id)

    async def set_instructions(self, user_id: str, instructions: str) -> None:
        self.instructions[user_id] = instructions

    async def list_users_with_instructions(self) -> list[str]:
        return [user_id for user_id, text in self.instructions.items() if text]

    async def get_recent_turns(
        self, user_id: str, conversation_id: str, limit: int
    ) -> list[ConversationTurn]:
        rows = [
            t for t in self.turns
            if t["user_id"] == user_id and t["conversation_id"] == conversation_id
        ]
        return [
            ConversationTurn(role=Role(t["role"]), content=t["content"], tool_calls=t["tool_calls"])
            for t in rows[-limit:]
        ]

    async def append_turns(
        self, user_id: str, conversation_id: str, turns: list[ConversationTurn]
    ) -> None:
        for turn in turns:
            self.turns.append({
                "user_id": user_id,
                "conversation_id": conversation_id,
                "role": turn.role.value,
                "content": turn.content,
                "tool_calls": turn.tool_calls,
            })

    async def create_task(self, user_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        task = {"id": f"task-{len(self.tasks) + 1}", "user_id": user_id, **fields}
        self.tasks[task["id"]] = task
        return task

    async def update_task(
        self, user_id: str, task_id: str, fields: dict[str, Any]
    ) -> dict[str, Any]:
        self.tasks[task_id].update(fields)
        return self.tasks[task_id]

    async def record_webhook_event(self, source: str, event_type: str, payload: Any) -> str:
        event_id = f"evt-{len(self.webhook_events) + 1}"
        self.webhook_events[event_id] = {
            "source": source,
            "event_type": event_type,
            "data": payload,
            "processed": False,
        }
        return event_id

    async def mark_webhook_processed(self, event_id: str) -> None:
        self.webhook_events[event_id]["processed"] = True


class ScriptedCompletion:
    """Completion provider that replays canned replies (or raises canned errors)."""

    def __init__(self, *replies: LLMToolResponse | Exception) -> None:
        self._replies = list(replies)
        self.calls: list[dict[str, Any]] = []

    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> LLMToolResponse:
        self.calls.append({"messages": list(messages), "tools": tools})
        reply = self._replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class StaticEmbeddings:
    """Embedding provider mapping known texts to fixed vectors."""

    def __init__(self, vectors: dict[str, list[float]], default: list[float] | None = None):
        self._vectors = vectors
        self._default = default
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if text in self._vectors:
            return self._vectors[text]
        if self._default is None:
            raise RuntimeError("no vector for text")
        return self._default


class FailingEmbeddings:
    async def embed(self, text: str) -> list[float]:
        raise RuntimeError("embedding service down")


def tool_call(call_id: str, name: str, **arguments: Any) -> ToolInvocation:
    return ToolInvocation(id=call_id, name=name, arguments=arguments)

