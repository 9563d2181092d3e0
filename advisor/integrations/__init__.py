"""Integrations with external services.

This package contains the Gmail, Google Calendar and HubSpot clients the
assistant acts through, and the protocols the services depend on.
"""

from advisor.integrations.collaborators import Collaborators, resolve_email_client
from advisor.integrations.google import (
    GmailClient,
    GoogleCalendarClient,
    GoogleCalendarFactory,
    GoogleEmailFactory,
)
from advisor.integrations.hubspot import HubSpotClient, HubSpotFactory
from advisor.integrations.tokens import IntegrationTokenStore

__all__ = [
    "Collaborators",
    "resolve_email_client",
    "GmailClient",
    "GoogleCalendarClient",
    "GoogleCalendarFactory",
    "GoogleEmailFactory",
    "HubSpotClient",
    "HubSpotFactory",
    "IntegrationTokenStore",
]
