"""Inbound webhook endpoints.

HubSpot deliveries are recorded, offered to every user holding standing
instructions through the webhook reactor, then marked processed.
"""

import base64
import hashlib
import hmac
import json
import logging
import time
from typing import Any

from fastapi import APIRouter, Header, HTTPException, Request

from advisor.api.deps import Reactor, Store
from advisor.core.config import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

HUBSPOT_EVENT_TYPE = "hubspot_contact_updated"
# HubSpot rejects v3 signatures older than five minutes
MAX_SIGNATURE_AGE_MS = 5 * 60 * 1000


def verify_hubspot_signature(
    secret: str,
    signature: str,
    timestamp: str | None,
    method: str,
    uri: str,
    body: bytes,
) -> bool:
    """Check a ``X-HubSpot-Signature-v3`` header.

    The signature is base64(HMAC-SHA256(secret, method + uri + body + timestamp)).
    """
    if not timestamp:
        return False
    try:
        age = int(time.time() * 1000) - int(timestamp)
    except ValueError:
        return False
    if age > MAX_SIGNATURE_AGE_MS:
        return False

    source = method.encode() + uri.encode() + body + timestamp.encode()
    digest = hmac.new(secret.encode(), source, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode()
    return hmac.compare_digest(expected, signature)


@router.post("/hubspot")
async def handle_hubspot_webhook(
    request: Request,
    store: Store,
    reactor: Reactor,
    x_hubspot_signature_v3: str | None = Header(None, alias="X-HubSpot-Signature-v3"),
    x_hubspot_request_timestamp: str | None = Header(None, alias="X-HubSpot-Request-Timestamp"),
) -> dict[str, Any]:
    """Handle a HubSpot contact-change delivery.

    Raises:
        HTTPException: 401 if the signature is missing or invalid.
        HTTPException: 400 if the payload is not JSON.
    """
    if not x_hubspot_signature_v3:
        logger.warning("HubSpot webhook without signature", extra={"path": request.url.path})
        raise HTTPException(status_code=401, detail="Missing signature")

    body = await request.body()
    secret = settings.HUBSPOT_WEBHOOK_SECRET.get_secret_value()
    if secret and not verify_hubspot_signature(
        secret,
        x_hubspot_signature_v3,
        x_hubspot_request_timestamp,
        request.method,
        str(request.url),
        body,
    ):
        logger.warning("Invalid HubSpot webhook signature")
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload") from None

    event_id = await store.record_webhook_event("hubspot", HUBSPOT_EVENT_TYPE, payload)
    user_count = await reactor.broadcast(HUBSPOT_EVENT_TYPE, payload)
    if event_id:
        await store.mark_webhook_processed(event_id)

    logger.info(
        "Processed HubSpot webhook",
        extra={"event_id": event_id, "user_count": user_count},
    )
    return {"success": True}
