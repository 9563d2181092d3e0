"""Tests for DataImporter."""

from datetime import datetime

import pytest

from advisor.core.capabilities import Unavailable
from advisor.models.records import Corpus
from advisor.services.ingestion import DataImporter, message_from_email
from tests.fakes import FailingEmbeddings, StaticEmbeddings

USER = "user-1"

EMAILS = [
    {
        "id": "m1",
        "subject": "Rebalance",
        "from": "sara@example.com",
        "to": "advisor@example.com",
        "date": "Tue, 04 Mar 2025 10:15:00 -0500",
        "body": "Can we move to bonds?",
    },
    {
        "id": "m2",
        "subject": "Baseball",
        "from": "tom@example.com",
        "to": "advisor@example.com",
        "date": "",
        "body": "Game on Saturday",
    },
]

CONTACTS = [
    {
        "id": "501",
        "properties": {
            "firstname": "Sara",
            "lastname": "Smith",
            "email": "sara@example.com",
            "company": "Acme",
        },
    },
]


class TestMessageFromEmail:
    def test_parses_rfc2822_date(self):
        record = message_from_email(EMAILS[0])
        assert record.external_id == "m1"
        assert record.sender == "sara@example.com"
        assert record.sent_at == datetime.fromisoformat("2025-03-04T10:15:00-05:00")

    def test_missing_date(self):
        assert message_from_email(EMAILS[1]).sent_at is None


class TestImportEmails:
    @pytest.mark.asyncio
    async def test_import_is_idempotent(self, store, collaborators, email_client):
        email_client.list_recent.return_value = EMAILS
        importer = DataImporter(store, StaticEmbeddings({}, default=[0.1, 0.2]), collaborators)

        first = await importer.import_emails(USER)
        second = await importer.import_emails(USER)

        assert first.imported == 2
        assert second.imported == 0
        assert second.skipped == 2
        assert len(store.items[Corpus.MESSAGES]) == 2

    @pytest.mark.asyncio
    async def test_duplicates_within_batch_stored_once(self, store, collaborators, email_client):
        email_client.list_recent.return_value = [EMAILS[0], EMAILS[0]]
        importer = DataImporter(store, Unavailable("embedding", "no key"), collaborators)

        summary = await importer.import_emails(USER)

        assert summary.imported == 1
        assert summary.skipped == 1

    @pytest.mark.asyncio
    async def test_without_embeddings_items_still_stored(self, store, collaborators, email_client):
        email_client.list_recent.return_value = EMAILS
        importer = DataImporter(store, Unavailable("embedding", "no key"), collaborators)

        summary = await importer.import_emails(USER)

        assert summary.without_embedding == 2
        assert all(row["embedding"] is None for row in store.items[Corpus.MESSAGES])

    @pytest.mark.asyncio
    async def test_embedding_failure_stores_without_vector(
        self, store, collaborators, email_client
    ):
        email_client.list_recent.return_value = EMAILS[:1]
        importer = DataImporter(store, FailingEmbeddings(), collaborators)

        summary = await importer.import_emails(USER)

        assert summary.imported == 1
        assert summary.without_embedding == 1

    @pytest.mark.asyncio
    async def test_session_token_used_for_mailbox(self, store, collaborators, email_client):
        importer = DataImporter(store, Unavailable("embedding", "no key"), collaborators)

        await importer.import_emails(USER, session_token="tok", limit=25)

        collaborators.email.for_session.assert_awaited_once_with(USER, "tok")
        email_client.list_recent.assert_awaited_once_with(25)


class TestImportContacts:
    @pytest.mark.asyncio
    async def test_contacts_embedded_and_stored(self, store, collaborators, crm_client):
        crm_client.list_contacts.return_value = CONTACTS
        embeddings = StaticEmbeddings({}, default=[0.3, 0.4])
        importer = DataImporter(store, embeddings, collaborators)

        summary = await importer.import_contacts(USER)

        assert summary.imported == 1
        [row] = store.items[Corpus.CONTACTS]
        assert row["external_id"] == "501"
        assert row["first_name"] == "Sara"
        assert row["embedding"] == [0.3, 0.4]
        assert "Name: Sara Smith" in embeddings.calls[0]
