"""Shared fixtures: an in-memory store and mocked collaborators."""

import os
from unittest.mock import AsyncMock, MagicMock

# Use litellm's bundled model cost map instead of fetching it over the network
# at import time (the fetch fails offline and deadlocks under pytest).
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")

import pytest

from advisor.integrations.collaborators import Collaborators
from tests.fakes import FakeStore


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def email_client() -> MagicMock:
    client = MagicMock()
    client.search = AsyncMock(return_value=[])
    client.list_recent = AsyncMock(return_value=[])
    client.send = AsyncMock(return_value={"id": "sent-1"})
    return client


@pytest.fixture
def calendar_client() -> MagicMock:
    client = MagicMock()
    client.find_free_slots = AsyncMock(return_value=[])
    client.create_event = AsyncMock(return_value={"id": "evt-1"})
    client.search = AsyncMock(return_value=[])
    return client


@pytest.fixture
def crm_client() -> MagicMock:
    client = MagicMock()
    client.search = AsyncMock(return_value={"results": []})
    client.list_contacts = AsyncMock(return_value=[])
    client.create = AsyncMock(return_value={"id": "contact-1"})
    client.update = AsyncMock(return_value={"id": "contact-1"})
    client.add_note = AsyncMock(return_value={"id": "note-1"})
    return client


@pytest.fixture
def collaborators(
    store: FakeStore,
    email_client: MagicMock,
    calendar_client: MagicMock,
    crm_client: MagicMock,
) -> Collaborators:
    email = MagicMock()
    email.for_session = AsyncMock(return_value=email_client)
    email.for_user = AsyncMock(return_value=email_client)
    calendar = MagicMock()
    calendar.for_user = AsyncMock(return_value=calendar_client)
    crm = MagicMock()
    crm.for_user = AsyncMock(return_value=crm_client)
    return Collaborators(email=email, calendar=calendar, crm=crm, store=store)
