"""Supabase client module for database operations."""

import logging

from advisor.core.config import settings
from advisor.core.exceptions import DatabaseError
from supabase import Client, create_client

logger = logging.getLogger(__name__)


class SupabaseClient:
    """Singleton Supabase client for backend operations."""

    _client: Client | None = None

    @classmethod
    def get_client(cls) -> Client:
        """Get or create the Supabase client singleton.

        Returns:
            Initialized Supabase client.

        Raises:
            DatabaseError: If client initialization fails.
        """
        if cls._client is None:
            try:
                cls._client = create_client(
                    settings.SUPABASE_URL,
                    settings.SUPABASE_SERVICE_ROLE_KEY.get_secret_value(),
                )
                logger.info("Supabase client initialized successfully")
            except Exception as e:
                logger.exception("Failed to initialize Supabase client")
                raise DatabaseError(f"Failed to initialize database connection: {e}") from e
        return cls._client


# Convenience function for dependency injection
def get_supabase_client() -> Client:
    """Get Supabase client for FastAPI dependency injection."""
    return SupabaseClient.get_client()
