"""Imports emails and CRM contacts into the retrievable corpora.

Import is idempotent on the external id: anything already stored for the
user is skipped. Items are embedded when the embedding provider is up;
otherwise (or when embedding a single item fails) they are stored without
a vector and stay reachable through lexical search only.
"""

import logging
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Any

from advisor.core.capabilities import EmbeddingProvider, Unavailable, is_available
from advisor.db.store import PersonalDataStore
from advisor.integrations.collaborators import Collaborators, resolve_email_client
from advisor.models.records import ContactRecord, Corpus, ImportSummary, MessageRecord

logger = logging.getLogger(__name__)


def _parse_email_date(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if not value:
        return None
    try:
        return parsedate_to_datetime(str(value))
    except (TypeError, ValueError):
        try:
            return datetime.fromisoformat(str(value))
        except ValueError:
            return None


def message_from_email(message: dict[str, Any]) -> MessageRecord:
    """Build a record from the email client's message dict."""
    return MessageRecord(
        external_id=str(message.get("id", "")),
        subject=message.get("subject") or "",
        sender=message.get("from") or "",
        recipient=message.get("to") or "",
        body=message.get("body") or "",
        sent_at=_parse_email_date(message.get("date")),
    )


class DataImporter:
    """Pulls a user's mailbox and CRM into the store."""

    def __init__(
        self,
        store: PersonalDataStore,
        embeddings: EmbeddingProvider | Unavailable,
        collaborators: Collaborators,
    ) -> None:
        self._store = store
        self._embeddings = embeddings
        self._collaborators = collaborators

    async def _embed(self, text: str) -> list[float] | None:
        if not is_available(self._embeddings):
            return None
        try:
            return await self._embeddings.embed(text)
        except Exception as e:
            logger.warning("Failed to create embedding, storing without embedding: %s", e)
            return None

    async def _import(
        self,
        corpus: Corpus,
        user_id: str,
        records: list[MessageRecord] | list[ContactRecord],
    ) -> ImportSummary:
        summary = ImportSummary(corpus=corpus, fetched=len(records))
        seen: set[str] = set()
        for record in records:
            if not record.external_id or record.external_id in seen:
                summary.skipped += 1
                continue
            seen.add(record.external_id)
            if await self._store.find_item(corpus, user_id, record.external_id):
                summary.skipped += 1
                continue

            record.embedding = await self._embed(record.to_text())
            if record.embedding is None:
                summary.without_embedding += 1
            await self._store.insert_item(corpus, record.to_row(user_id))
            summary.imported += 1

        logger.info(
            "Imported %d %s for user %s%s",
            summary.imported,
            corpus.value,
            user_id,
            " (without embeddings)" if not is_available(self._embeddings) else "",
            extra={"user_id": user_id, "skipped": summary.skipped},
        )
        return summary

    async def import_emails(
        self, user_id: str, session_token: str | None = None, limit: int = 1000
    ) -> ImportSummary:
        client = await resolve_email_client(self._collaborators.email, user_id, session_token)
        messages = await client.list_recent(limit)
        records = [message_from_email(m) for m in messages]
        return await self._import(Corpus.MESSAGES, user_id, records)

    async def import_contacts(self, user_id: str, limit: int = 1000) -> ImportSummary:
        crm = await self._collaborators.crm.for_user(user_id)
        contacts = await crm.list_contacts(limit)
        records = [ContactRecord.from_crm(c) for c in contacts]
        return await self._import(Corpus.CONTACTS, user_id, records)
