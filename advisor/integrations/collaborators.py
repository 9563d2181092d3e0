"""Interfaces of the external services the assistant acts on.

The dispatcher and importer only see these protocols; concrete Gmail,
Google Calendar and HubSpot clients live alongside in this package.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from advisor.db.store import PersonalDataStore

logger = logging.getLogger(__name__)


class EmailClient(Protocol):
    async def search(self, query: str, limit: int = 10) -> list[dict[str, Any]]: ...

    async def list_recent(self, limit: int = 50) -> list[dict[str, Any]]: ...

    async def send(self, to: str, subject: str, body: str) -> dict[str, Any]: ...


class CalendarClient(Protocol):
    async def find_free_slots(
        self, start: datetime, end: datetime, duration_minutes: int = 60
    ) -> list[dict[str, Any]]: ...

    async def create_event(
        self,
        summary: str,
        start: str,
        end: str,
        description: str | None = None,
        attendees: list[str] | None = None,
    ) -> dict[str, Any]: ...

    async def search(
        self, query: str, time_min: datetime | None = None, time_max: datetime | None = None
    ) -> list[dict[str, Any]]: ...


class CrmClient(Protocol):
    async def search(self, query: str) -> dict[str, Any]: ...

    async def list_contacts(self, limit: int = 100) -> list[dict[str, Any]]: ...

    async def create(self, fields: dict[str, Any]) -> dict[str, Any]: ...

    async def update(self, contact_id: str, fields: dict[str, Any]) -> dict[str, Any]: ...

    async def add_note(self, contact_id: str, text: str) -> dict[str, Any]: ...


class EmailClientFactory(Protocol):
    async def for_session(self, user_id: str, session_token: str) -> EmailClient:
        """Client authorised by a short-lived per-request token."""
        ...

    async def for_user(self, user_id: str) -> EmailClient:
        """Client authorised by the user's stored token."""
        ...


class CalendarClientFactory(Protocol):
    async def for_user(self, user_id: str) -> CalendarClient: ...


class CrmClientFactory(Protocol):
    async def for_user(self, user_id: str) -> CrmClient: ...


@dataclass
class Collaborators:
    """Everything a tool call or import may touch on the user's behalf."""

    email: EmailClientFactory
    calendar: CalendarClientFactory
    crm: CrmClientFactory
    store: PersonalDataStore


async def resolve_email_client(
    factory: EmailClientFactory, user_id: str, session_token: str | None = None
) -> EmailClient:
    """Prefer the per-request token; fall back once to the stored token."""
    if session_token:
        try:
            return await factory.for_session(user_id, session_token)
        except Exception as e:
            logger.warning(
                "Session token rejected, falling back to stored token: %s",
                e,
                extra={"user_id": user_id},
            )
    return await factory.for_user(user_id)
