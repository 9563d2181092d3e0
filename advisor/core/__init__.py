"""Core module for advisor configuration and capability providers."""

from advisor.core.capabilities import (
    CompletionProvider,
    EmbeddingProvider,
    Unavailable,
    is_available,
)

__all__ = [
    "CompletionProvider",
    "EmbeddingProvider",
    "Unavailable",
    "is_available",
]
