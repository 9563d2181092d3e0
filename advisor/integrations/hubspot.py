"""HubSpot CRM client over the v3 objects API."""

import logging
from datetime import UTC, datetime
from typing import Any

import httpx

from advisor.core.config import Settings
from advisor.core.exceptions import ExternalServiceError
from advisor.integrations.tokens import IntegrationTokenStore

logger = logging.getLogger(__name__)

CONTACT_PROPERTIES = [
    "firstname",
    "lastname",
    "email",
    "phone",
    "company",
    "hs_lead_status",
    "notes_last_contacted",
]
NOTE_TO_CONTACT_ASSOCIATION = 202
PAGE_SIZE = 100


class HubSpotClient:
    def __init__(self, access_token: str, base_url: str, timeout: float) -> None:
        self._headers = {"Authorization": f"Bearer {access_token}"}
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.request(
                method, f"{self._base_url}{path}", headers=self._headers, **kwargs
            )
        if response.status_code >= 400:
            raise ExternalServiceError(
                "hubspot",
                f"HubSpot API error (status {response.status_code}): {response.text[:200]}",
            )
        return response.json() if response.content else {}

    async def list_contacts(self, limit: int = 100) -> list[dict[str, Any]]:
        """Page through contacts until ``limit`` are collected."""
        contacts: list[dict[str, Any]] = []
        after: str | None = None
        while len(contacts) < limit:
            params: dict[str, Any] = {
                "limit": min(PAGE_SIZE, limit - len(contacts)),
                "properties": ",".join(CONTACT_PROPERTIES),
            }
            if after:
                params["after"] = after
            page = await self._request("GET", "/crm/v3/objects/contacts", params=params)
            contacts.extend(page.get("results") or [])
            after = ((page.get("paging") or {}).get("next") or {}).get("after")
            if not after:
                break
        return contacts

    async def search(self, query: str) -> dict[str, Any]:
        return await self._request(
            "POST",
            "/crm/v3/objects/contacts/search",
            json={
                "filterGroups": [
                    {"filters": [
                        {"propertyName": "email", "operator": "CONTAINS_TOKEN", "value": query}
                    ]}
                ],
                "properties": CONTACT_PROPERTIES[:5],
                "limit": 10,
            },
        )

    async def create(self, fields: dict[str, Any]) -> dict[str, Any]:
        return await self._request(
            "POST", "/crm/v3/objects/contacts", json={"properties": fields}
        )

    async def update(self, contact_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        return await self._request(
            "PATCH", f"/crm/v3/objects/contacts/{contact_id}", json={"properties": fields}
        )

    async def add_note(self, contact_id: str, text: str) -> dict[str, Any]:
        return await self._request(
            "POST",
            "/crm/v3/objects/notes",
            json={
                "properties": {
                    "hs_note_body": text,
                    "hs_timestamp": datetime.now(UTC).isoformat(),
                },
                "associations": [
                    {
                        "to": {"id": contact_id},
                        "types": [{
                            "associationCategory": "HUBSPOT_DEFINED",
                            "associationTypeId": NOTE_TO_CONTACT_ASSOCIATION,
                        }],
                    }
                ],
            },
        )


class HubSpotFactory:
    def __init__(self, tokens: IntegrationTokenStore, settings: Settings) -> None:
        self._tokens = tokens
        self._settings = settings

    async def for_user(self, user_id: str) -> HubSpotClient:
        token = await self._tokens.get_access_token(user_id, "hubspot")
        return HubSpotClient(
            token, self._settings.HUBSPOT_API_BASE_URL, self._settings.EXTERNAL_REQUEST_TIMEOUT
        )
