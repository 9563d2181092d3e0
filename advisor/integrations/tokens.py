"""Stored OAuth access tokens for connected services.

Token acquisition and refresh happen elsewhere; this module only reads the
latest token saved in ``user_integrations``.
"""

import logging

from supabase import Client

from advisor.core.exceptions import DatabaseError, ExternalServiceError

logger = logging.getLogger(__name__)

_NOT_CONNECTED = {
    "google": "Google account not connected for this user. Please sign in with Google.",
    "hubspot": "HubSpot not connected for this user",
}


class IntegrationTokenStore:
    def __init__(self, client: Client) -> None:
        self._db = client

    async def get_access_token(self, user_id: str, provider: str) -> str:
        """Return the stored access token.

        Raises:
            ExternalServiceError: If the user never connected the provider.
            DatabaseError: If the lookup fails.
        """
        try:
            response = (
                self._db.table("user_integrations")
                .select("access_token")
                .eq("user_id", user_id)
                .eq("provider", provider)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.exception(
                "Error fetching integration token",
                extra={"user_id": user_id, "provider": provider},
            )
            raise DatabaseError(f"Failed to fetch {provider} token: {e}") from e

        token = response.data[0].get("access_token") if response.data else None
        if not token:
            raise ExternalServiceError(
                provider, _NOT_CONNECTED.get(provider, f"{provider} not connected")
            )
        return str(token)

    async def connected_providers(self, user_id: str) -> set[str]:
        """Providers for which the user has a stored access token."""
        try:
            response = (
                self._db.table("user_integrations")
                .select("provider, access_token")
                .eq("user_id", user_id)
                .execute()
            )
        except Exception as e:
            logger.exception("Error fetching integrations", extra={"user_id": user_id})
            raise DatabaseError(f"Failed to fetch integrations: {e}") from e
        return {
            row["provider"] for row in response.data or [] if row.get("access_token")
        }
