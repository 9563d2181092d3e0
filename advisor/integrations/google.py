"""Gmail and Google Calendar clients over the Google REST APIs."""

import base64
import logging
from datetime import datetime, timedelta
from typing import Any

import httpx

from advisor.core.config import Settings
from advisor.core.exceptions import ExternalServiceError
from advisor.integrations.tokens import IntegrationTokenStore

logger = logging.getLogger(__name__)

MAX_BODY_CHARS = 10_000
SLOT_STEP = timedelta(hours=1)


class _GoogleAPI:
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
                "google",
                f"Google API error (status {response.status_code}): {response.text[:200]}",
            )
        return response.json() if response.content else {}


def _decode_body(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")


def _extract_body(payload: dict[str, Any]) -> str:
    """Plain-text body of a Gmail message payload, walking multipart trees."""
    data = (payload.get("body") or {}).get("data")
    if data:
        return _decode_body(data)
    parts = []
    for part in payload.get("parts") or []:
        if part.get("mimeType") == "text/plain" and (part.get("body") or {}).get("data"):
            parts.append(_decode_body(part["body"]["data"]))
        elif part.get("parts"):
            parts.append(_extract_body(part))
    return "".join(parts)


class GmailClient(_GoogleAPI):
    """Read and send mail as the authenticated user."""

    async def verify(self) -> None:
        """Cheap authenticated call; raises if the token is not accepted."""
        await self._request("GET", "/gmail/v1/users/me/profile")

    async def _get_message(self, message_id: str) -> dict[str, Any] | None:
        try:
            message = await self._request(
                "GET", f"/gmail/v1/users/me/messages/{message_id}", params={"format": "full"}
            )
        except ExternalServiceError:
            logger.warning("Skipping unreadable Gmail message %s", message_id)
            return None

        payload = message.get("payload") or {}
        headers = {h["name"].lower(): h.get("value", "") for h in payload.get("headers") or []}
        body = _extract_body(payload).replace("\n", " ")[:MAX_BODY_CHARS]
        return {
            "id": message_id,
            "subject": headers.get("subject", ""),
            "from": headers.get("from", ""),
            "to": headers.get("to", ""),
            "date": headers.get("date", ""),
            "body": body,
        }

    async def search(self, query: str, limit: int = 10) -> list[dict[str, Any]]:
        listing = await self._request(
            "GET", "/gmail/v1/users/me/messages", params={"q": query, "maxResults": limit}
        )
        messages = []
        for ref in listing.get("messages") or []:
            message = await self._get_message(ref["id"])
            if message:
                messages.append(message)
        return messages

    async def list_recent(self, limit: int = 50) -> list[dict[str, Any]]:
        return await self.search("", limit)

    async def send(self, to: str, subject: str, body: str) -> dict[str, Any]:
        raw = "\n".join([f"To: {to}", f"Subject: {subject}", "", body])
        encoded = base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")
        return await self._request(
            "POST", "/gmail/v1/users/me/messages/send", json={"raw": encoded}
        )


def compute_free_slots(
    busy: list[tuple[datetime, datetime]],
    start: datetime,
    end: datetime,
    duration: timedelta,
    step: timedelta = SLOT_STEP,
) -> list[dict[str, str]]:
    """Candidate slots of ``duration`` every ``step`` that avoid all busy ranges."""
    slots = []
    current = start
    while current < end:
        slot_end = current + duration
        overlaps = any(current < b_end and slot_end > b_start for b_start, b_end in busy)
        if not overlaps and slot_end <= end:
            slots.append({"start": current.isoformat(), "end": slot_end.isoformat()})
        current += step
    return slots


def _event_bound(value: dict[str, Any] | None) -> datetime | None:
    if not value:
        return None
    raw = value.get("dateTime") or value.get("date")
    return datetime.fromisoformat(raw.replace("Z", "+00:00")) if raw else None


class GoogleCalendarClient(_GoogleAPI):
    """Primary-calendar access for the authenticated user."""

    def __init__(
        self, access_token: str, base_url: str, timeout: float, timezone: str
    ) -> None:
        super().__init__(access_token, base_url, timeout)
        self._timezone = timezone

    async def list_events(
        self,
        time_min: datetime | None = None,
        time_max: datetime | None = None,
        query: str | None = None,
        max_results: int = 50,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": max_results,
        }
        if time_min:
            params["timeMin"] = time_min.isoformat()
        if time_max:
            params["timeMax"] = time_max.isoformat()
        if query:
            params["q"] = query
        data = await self._request("GET", "/calendar/v3/calendars/primary/events", params=params)
        return list(data.get("items") or [])

    async def find_free_slots(
        self, start: datetime, end: datetime, duration_minutes: int = 60
    ) -> list[dict[str, Any]]:
        events = await self.list_events(start, end)
        busy = []
        for event in events:
            b_start, b_end = _event_bound(event.get("start")), _event_bound(event.get("end"))
            if b_start and b_end:
                # All-day events carry naive dates
                if b_start.tzinfo is None and start.tzinfo is not None:
                    b_start = b_start.replace(tzinfo=start.tzinfo)
                    b_end = b_end.replace(tzinfo=start.tzinfo)
                busy.append((b_start, b_end))
        return compute_free_slots(busy, start, end, timedelta(minutes=duration_minutes))

    async def create_event(
        self,
        summary: str,
        start: str,
        end: str,
        description: str | None = None,
        attendees: list[str] | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "summary": summary,
            "start": {"dateTime": start, "timeZone": self._timezone},
            "end": {"dateTime": end, "timeZone": self._timezone},
            "attendees": [{"email": email} for email in attendees or []],
        }
        if description:
            body["description"] = description
        return await self._request("POST", "/calendar/v3/calendars/primary/events", json=body)

    async def search(
        self, query: str, time_min: datetime | None = None, time_max: datetime | None = None
    ) -> list[dict[str, Any]]:
        return await self.list_events(time_min, time_max, query=query)


class GoogleEmailFactory:
    """Builds Gmail clients from a session token or the stored token."""

    def __init__(self, tokens: IntegrationTokenStore, settings: Settings) -> None:
        self._tokens = tokens
        self._settings = settings

    def _client(self, token: str) -> GmailClient:
        return GmailClient(
            token, self._settings.GOOGLE_API_BASE_URL, self._settings.EXTERNAL_REQUEST_TIMEOUT
        )

    async def for_session(self, user_id: str, session_token: str) -> GmailClient:
        client = self._client(session_token)
        await client.verify()
        return client

    async def for_user(self, user_id: str) -> GmailClient:
        return self._client(await self._tokens.get_access_token(user_id, "google"))


class GoogleCalendarFactory:
    def __init__(self, tokens: IntegrationTokenStore, settings: Settings) -> None:
        self._tokens = tokens
        self._settings = settings

    async def for_user(self, user_id: str) -> GoogleCalendarClient:
        token = await self._tokens.get_access_token(user_id, "google")
        return GoogleCalendarClient(
            token,
            self._settings.GOOGLE_API_BASE_URL,
            self._settings.EXTERNAL_REQUEST_TIMEOUT,
            self._settings.DEFAULT_TIMEZONE,
        )
