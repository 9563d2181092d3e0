"""Connection status for the services the assistant acts through."""

import logging

from fastapi import APIRouter
from pydantic import BaseModel

from advisor.api.deps import CurrentUser, Tokens

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/connections", tags=["connections"])


class ConnectionStatus(BaseModel):
    gmail: bool
    calendar: bool
    hubspot: bool


@router.get("/status", response_model=ConnectionStatus)
async def connection_status(current_user: CurrentUser, tokens: Tokens) -> ConnectionStatus:
    """Which integrations hold a stored token. Gmail and Calendar share the Google grant."""
    providers = await tokens.connected_providers(current_user.id)
    google = "google" in providers
    return ConnectionStatus(gmail=google, calendar=google, hubspot="hubspot" in providers)
