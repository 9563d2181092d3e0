"""Embedding client backed by the OpenAI embeddings API."""

import logging

from openai import AsyncOpenAI

logger = logging.getLogger(__name__)


class EmbeddingClient:
    """Produces fixed-dimension vectors for retrieval."""

    def __init__(self, model: str, api_key: str, dimensions: int = 1536) -> None:
        self._model = model
        self._dimensions = dimensions
        self._client = AsyncOpenAI(api_key=api_key)

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def embed(self, text: str) -> list[float]:
        """Embed one text. Raises on provider errors."""
        response = await self._client.embeddings.create(
            model=self._model,
            input=text[:8000],
        )
        return list(response.data[0].embedding)
