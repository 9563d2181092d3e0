"""Capability-provider handles.

A handle is either a live client or an ``Unavailable`` sentinel. Handles
are built once at startup and passed through constructors, so a component
checks availability on the object it was given rather than on shared state.
"""

import logging
from dataclasses import dataclass
from typing import Any, Protocol, TypeGuard, TypeVar

from advisor.core.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Unavailable:
    """Marks a capability that could not be initialised."""

    capability: str
    reason: str

    def __bool__(self) -> bool:
        return False


class CompletionProvider(Protocol):
    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> Any: ...


class EmbeddingProvider(Protocol):
    async def embed(self, text: str) -> list[float]: ...


def is_available(handle: T | Unavailable) -> TypeGuard[T]:
    """True when ``handle`` is a live client."""
    return not isinstance(handle, Unavailable)


def build_completion_provider(settings: Settings) -> "CompletionProvider | Unavailable":
    """Create the language-model client, or an Unavailable sentinel."""
    if not settings.llm_configured:
        logger.warning("OPENAI_API_KEY not configured - AI reasoning DISABLED")
        return Unavailable("completion", "OPENAI_API_KEY not configured")
    try:
        from advisor.core.llm import LLMClient

        return LLMClient(
            model=settings.LLM_MODEL,
            api_key=settings.OPENAI_API_KEY.get_secret_value(),
            max_tokens=settings.LLM_MAX_TOKENS,
            temperature=settings.LLM_TEMPERATURE,
        )
    except Exception as e:
        logger.warning("Completion provider initialisation failed: %s", e)
        return Unavailable("completion", str(e))


def build_embedding_provider(settings: Settings) -> "EmbeddingProvider | Unavailable":
    """Create the embedding client, or an Unavailable sentinel."""
    if not settings.embeddings_configured:
        logger.warning("OPENAI_API_KEY not configured - semantic search DISABLED")
        return Unavailable("embedding", "OPENAI_API_KEY not configured")
    try:
        from advisor.core.embeddings import EmbeddingClient

        return EmbeddingClient(
            model=settings.EMBEDDING_MODEL,
            api_key=settings.OPENAI_API_KEY.get_secret_value(),
            dimensions=settings.EMBEDDING_DIMENSIONS,
        )
    except Exception as e:
        logger.warning("Embedding provider initialisation failed: %s", e)
        return Unavailable("embedding", str(e))
