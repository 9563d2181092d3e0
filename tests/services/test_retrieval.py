"""Tests for ContextRetriever.

Covers both ranking paths, the fallback between them and the
never-raise guarantee.
"""

from datetime import UTC, datetime

import pytest

from advisor.core.capabilities import Unavailable
from advisor.models.records import ContactRecord, Corpus, MessageRecord
from advisor.services.retrieval import ContextRetriever, lexical_match, tokenize
from tests.fakes import FailingEmbeddings, FakeStore, StaticEmbeddings

USER = "user-1"


def _message(
    external_id: str,
    subject: str,
    body: str = "",
    sent_at: datetime | None = None,
    embedding: list[float] | None = None,
    user_id: str = USER,
) -> dict:
    return MessageRecord(
        external_id=external_id,
        subject=subject,
        sender="client@example.com",
        recipient="advisor@example.com",
        body=body,
        sent_at=sent_at,
        embedding=embedding,
    ).to_row(user_id)


def _contact(
    external_id: str,
    first_name: str,
    company: str = "",
    created_at: datetime | None = None,
    embedding: list[float] | None = None,
) -> dict:
    row = ContactRecord(
        external_id=external_id,
        first_name=first_name,
        last_name="Smith",
        email=f"{first_name.lower()}@example.com",
        company=company,
        embedding=embedding,
    ).to_row(USER)
    row["created_at"] = created_at.isoformat() if created_at else None
    return row


@pytest.fixture
def populated_store(store: FakeStore) -> FakeStore:
    store.add(Corpus.MESSAGES, _message(
        "m-near", "Portfolio rebalance", "Let's rebalance the bonds",
        sent_at=datetime(2025, 1, 10, tzinfo=UTC), embedding=[1.0, 0.0],
    ))
    store.add(Corpus.MESSAGES, _message(
        "m-far", "Baseball tickets", "My kid plays baseball on Saturdays",
        sent_at=datetime(2025, 3, 1, tzinfo=UTC), embedding=[0.0, 1.0],
    ))
    store.add(Corpus.MESSAGES, _message(
        "m-unembedded", "Baseball season", "Baseball again",
        sent_at=datetime(2025, 4, 1, tzinfo=UTC),
    ))
    store.add(Corpus.CONTACTS, _contact(
        "c-1", "Sara", company="Acme Baseball Club",
        created_at=datetime(2024, 6, 1, tzinfo=UTC), embedding=[0.6, 0.8],
    ))
    return store


class TestTokenize:
    def test_drops_short_tokens_and_lowercases(self):
        assert tokenize("Who is AJ at the Bank of America") == [
            "who", "the", "bank", "america",
        ]

    def test_empty_query(self):
        assert tokenize("   ") == []


class TestLexicalMatch:
    def test_substring_match_on_any_field(self):
        row = {"subject": "Quarterly review", "body": "", "sender": "x@y.com"}
        assert lexical_match(Corpus.MESSAGES, row, ["review"])

    def test_no_match(self):
        row = {"first_name": "Sara", "last_name": "Smith", "email": "", "company": "", "notes": ""}
        assert not lexical_match(Corpus.CONTACTS, row, ["baseball"])


class TestVectorPath:
    @pytest.mark.asyncio
    async def test_orders_by_ascending_distance(self, populated_store):
        retriever = ContextRetriever(
            populated_store, StaticEmbeddings({"bonds": [1.0, 0.0]}), dimensions=2
        )

        result = await retriever.retrieve(USER, "bonds", limit=5)

        scores = [hit.score for hit in result.message_hits]
        assert scores == sorted(scores)
        assert result.message_hits[0].metadata["external_id"] == "m-near"

    @pytest.mark.asyncio
    async def test_items_without_embedding_never_returned(self, populated_store):
        retriever = ContextRetriever(
            populated_store, StaticEmbeddings({"baseball": [0.0, 1.0]}), dimensions=2
        )

        result = await retriever.retrieve(USER, "baseball", limit=5)

        ids = [hit.metadata["external_id"] for hit in result.message_hits]
        assert "m-unembedded" not in ids
        assert ids == ["m-far", "m-near"]

    @pytest.mark.asyncio
    async def test_respects_limit_per_corpus(self, populated_store):
        retriever = ContextRetriever(
            populated_store, StaticEmbeddings({"q": [1.0, 0.0]}), dimensions=2
        )

        result = await retriever.retrieve(USER, "q", limit=1)

        assert len(result.message_hits) == 1
        assert len(result.contact_hits) == 1

    @pytest.mark.asyncio
    async def test_other_users_items_excluded(self, populated_store):
        populated_store.add(Corpus.MESSAGES, _message(
            "m-other", "Portfolio", embedding=[1.0, 0.0], user_id="user-2",
        ))
        retriever = ContextRetriever(
            populated_store, StaticEmbeddings({"q": [1.0, 0.0]}), dimensions=2
        )

        result = await retriever.retrieve(USER, "q", limit=10)

        assert "m-other" not in [h.metadata["external_id"] for h in result.message_hits]


class TestLexicalFallback:
    @pytest.mark.asyncio
    async def test_unavailable_embeddings_use_lexical_newest_first(self, populated_store):
        retriever = ContextRetriever(populated_store, Unavailable("embedding", "no key"))

        result = await retriever.retrieve(USER, "baseball", limit=5)

        ids = [hit.metadata["external_id"] for hit in result.message_hits]
        assert ids == ["m-unembedded", "m-far"]
        assert all(hit.score == 0 for hit in result.message_hits)
        assert [h.metadata["external_id"] for h in result.contact_hits] == ["c-1"]

    @pytest.mark.asyncio
    async def test_embedding_failure_falls_back(self, populated_store):
        retriever = ContextRetriever(populated_store, FailingEmbeddings())

        result = await retriever.retrieve(USER, "rebalance", limit=5)

        assert [h.metadata["external_id"] for h in result.message_hits] == ["m-near"]
        assert result.message_hits[0].score == 0

    @pytest.mark.asyncio
    async def test_wrong_dimension_vector_falls_back(self, populated_store):
        retriever = ContextRetriever(
            populated_store, StaticEmbeddings({}, default=[1.0, 0.0, 0.0]), dimensions=2
        )

        result = await retriever.retrieve(USER, "rebalance", limit=5)

        assert [h.metadata["external_id"] for h in result.message_hits] == ["m-near"]

    @pytest.mark.asyncio
    async def test_vector_store_failure_falls_back(self, populated_store):
        populated_store.match_error = RuntimeError("rpc missing")
        retriever = ContextRetriever(
            populated_store, StaticEmbeddings({}, default=[1.0, 0.0]), dimensions=2
        )

        result = await retriever.retrieve(USER, "baseball", limit=5)

        assert {h.score for h in result.message_hits} == {0}
        assert len(result.message_hits) == 2

    @pytest.mark.asyncio
    async def test_only_short_tokens_yield_nothing(self, populated_store):
        retriever = ContextRetriever(populated_store, Unavailable("embedding", "no key"))

        result = await retriever.retrieve(USER, "is a", limit=5)

        assert result.is_empty


class TestNeverRaises:
    @pytest.mark.asyncio
    async def test_empty_corpus(self, store):
        retriever = ContextRetriever(store, StaticEmbeddings({}, default=[1.0, 0.0]))

        result = await retriever.retrieve(USER, "anything at all", limit=5)

        assert result.is_empty

    @pytest.mark.asyncio
    async def test_both_paths_failing_returns_empty(self, populated_store):
        populated_store.match_error = RuntimeError("vector down")
        populated_store.text_error = RuntimeError("database down")
        retriever = ContextRetriever(populated_store, FailingEmbeddings())

        result = await retriever.retrieve(USER, "baseball", limit=5)

        assert result.is_empty


class TestGetContext:
    @pytest.mark.asyncio
    async def test_emails_then_contacts(self, populated_store):
        retriever = ContextRetriever(populated_store, Unavailable("embedding", "no key"))

        context = await retriever.get_context(USER, "baseball")

        blocks = context.split("\n\n")
        assert blocks[0].startswith("Email: Subject: Baseball season")
        assert blocks[-1].startswith("Contact: Name: Sara Smith")

    @pytest.mark.asyncio
    async def test_empty_context_is_empty_string(self, store):
        retriever = ContextRetriever(store, Unavailable("embedding", "no key"))

        assert await retriever.get_context(USER, "nothing here") == ""
