"""Context retrieval over the user's emails and CRM contacts.

Two ranking paths:

1. Vector: the query is embedded and each corpus is ranked by cosine
   distance (ascending). Items stored without an embedding never appear.
2. Lexical: used when embeddings are unavailable or the vector path fails.
   Any query token longer than two characters matching a text field
   (case-insensitive substring) qualifies an item; matches are ordered
   newest first and scored 0, meaning "no semantic ranking".

Retrieval never raises. A failure on both paths yields an empty result and
the chat turn continues without grounding.
"""

import asyncio
import logging
import math
from datetime import UTC, datetime
from typing import Any

from advisor.core.capabilities import EmbeddingProvider, Unavailable, is_available
from advisor.db.store import TEXT_FIELDS, PersonalDataStore
from advisor.models.records import ContactRecord, Corpus, Hit, MessageRecord, RetrievalResult

logger = logging.getLogger(__name__)

MIN_TOKEN_LENGTH = 3
_EPOCH = datetime.min.replace(tzinfo=UTC)


def tokenize(query: str) -> list[str]:
    """Lower-cased whitespace tokens longer than two characters."""
    return [tok for tok in query.lower().split() if len(tok) >= MIN_TOKEN_LENGTH]


def _validate_vector(vector: Any, dimensions: int | None) -> list[float]:
    """Reject empty, non-numeric or wrongly sized query vectors."""
    if not isinstance(vector, list | tuple) or not vector:
        raise ValueError("embedding provider returned an empty vector")
    values = [float(v) for v in vector]
    if not all(math.isfinite(v) for v in values):
        raise ValueError("embedding vector contains non-finite values")
    if dimensions and len(values) != dimensions:
        raise ValueError(f"expected {dimensions} dimensions, got {len(values)}")
    return values


def _message_hit(row: dict[str, Any], score: float) -> tuple[Hit, datetime, str]:
    record = MessageRecord.from_row(row)
    hit = Hit(
        content=record.to_text(),
        metadata={
            "external_id": record.external_id,
            "subject": record.subject,
            "from": record.sender,
            "date": record.sent_at.isoformat() if record.sent_at else None,
        },
        score=score,
    )
    return hit, record.sent_at or _EPOCH, record.external_id


def _contact_hit(row: dict[str, Any], score: float) -> tuple[Hit, datetime, str]:
    record = ContactRecord.from_row(row)
    hit = Hit(
        content=record.to_grounding_text(),
        metadata={
            "external_id": record.external_id,
            "name": record.full_name,
            "email": record.email,
            "company": record.company,
        },
        score=score,
    )
    return hit, record.created_at or _EPOCH, record.external_id


_HIT_BUILDERS = {Corpus.MESSAGES: _message_hit, Corpus.CONTACTS: _contact_hit}


def _lexical_fields(corpus: Corpus, row: dict[str, Any]) -> list[str]:
    return [str(row.get(key) or "").lower() for key in TEXT_FIELDS[corpus]]


def lexical_match(corpus: Corpus, row: dict[str, Any], tokens: list[str]) -> bool:
    """True when any token is a substring of any of the row's text fields."""
    fields = _lexical_fields(corpus, row)
    return any(token in value for token in tokens for value in fields)


class ContextRetriever:
    """Ranks a user's messages and contacts against a query."""

    def __init__(
        self,
        store: PersonalDataStore,
        embeddings: EmbeddingProvider | Unavailable,
        dimensions: int | None = None,
    ) -> None:
        self._store = store
        self._embeddings = embeddings
        self._dimensions = dimensions

    async def retrieve(self, user_id: str, query: str, limit: int = 5) -> RetrievalResult:
        """Return up to ``limit`` hits per corpus. Never raises."""
        try:
            if is_available(self._embeddings):
                try:
                    return await self._vector_search(user_id, query, limit)
                except Exception as e:
                    logger.warning(
                        "Vector search failed, falling back to text search: %s",
                        e,
                        extra={"user_id": user_id},
                    )
            return await self._lexical_search(user_id, query, limit)
        except Exception:
            logger.exception("Context retrieval failed", extra={"user_id": user_id})
            return RetrievalResult()

    async def get_context(self, user_id: str, question: str, limit: int = 10) -> str:
        """Render retrieved hits as a grounding block, emails first."""
        result = await self.retrieve(user_id, question, limit)
        blocks = [f"{Corpus.MESSAGES.label}: {hit.content}" for hit in result.message_hits]
        blocks += [f"{Corpus.CONTACTS.label}: {hit.content}" for hit in result.contact_hits]
        return "\n\n".join(blocks)

    async def _vector_search(self, user_id: str, query: str, limit: int) -> RetrievalResult:
        vector = _validate_vector(await self._embeddings.embed(query), self._dimensions)

        async def rank(corpus: Corpus) -> list[Hit]:
            rows = await self._store.match_by_embedding(corpus, user_id, vector, limit)
            ranked = []
            for row in rows:
                distance = row.get("distance")
                if distance is None:
                    continue
                hit, _, external_id = _HIT_BUILDERS[corpus](row, float(distance))
                ranked.append((hit.score, external_id, hit))
            ranked.sort(key=lambda item: (item[0], item[1]))
            return [hit for _, _, hit in ranked[:limit]]

        message_hits, contact_hits = await asyncio.gather(
            rank(Corpus.MESSAGES), rank(Corpus.CONTACTS)
        )
        return RetrievalResult(message_hits=message_hits, contact_hits=contact_hits)

    async def _lexical_search(self, user_id: str, query: str, limit: int) -> RetrievalResult:
        tokens = tokenize(query)
        if not tokens:
            return RetrievalResult()

        async def rank(corpus: Corpus) -> list[Hit]:
            rows = await self._store.search_text(corpus, user_id, tokens, limit)
            matches = []
            for row in rows:
                if not lexical_match(corpus, row, tokens):
                    continue
                hit, timestamp, external_id = _HIT_BUILDERS[corpus](row, 0.0)
                matches.append((timestamp, external_id, hit))
            # Newest first; external id breaks ties deterministically
            matches.sort(key=lambda item: item[1])
            matches.sort(key=lambda item: item[0], reverse=True)
            return [hit for _, _, hit in matches[:limit]]

        message_hits, contact_hits = await asyncio.gather(
            rank(Corpus.MESSAGES), rank(Corpus.CONTACTS)
        )
        return RetrievalResult(message_hits=message_hits, contact_hits=contact_hits)
