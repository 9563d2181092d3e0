"""Configuration management using Pydantic Settings."""

import logging
from functools import lru_cache
from typing import Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase Configuration
    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_ROLE_KEY: SecretStr = SecretStr("")

    # OpenAI (completions via LiteLLM, embeddings via the OpenAI SDK)
    OPENAI_API_KEY: SecretStr = SecretStr("")
    LLM_MODEL: str = "gpt-4o"
    LLM_MAX_TOKENS: int = 2048
    LLM_TEMPERATURE: float = 0.3
    EMBEDDING_MODEL: str = "text-embedding-ada-002"
    EMBEDDING_DIMENSIONS: int = 1536

    # Retrieval
    RETRIEVAL_LIMIT: int = 5
    CONTEXT_LIMIT: int = 10  # Hits per corpus injected into the system prompt
    HISTORY_WINDOW: int = 10  # Recent turns replayed into the model

    # Import
    IMPORT_EMAIL_LIMIT: int = 1000
    IMPORT_CONTACT_LIMIT: int = 1000

    # External services
    GOOGLE_API_BASE_URL: str = "https://www.googleapis.com"
    HUBSPOT_API_BASE_URL: str = "https://api.hubapi.com"
    HUBSPOT_WEBHOOK_SECRET: SecretStr = SecretStr("")
    DEFAULT_TIMEZONE: str = "America/New_York"
    EXTERNAL_REQUEST_TIMEOUT: float = 20.0

    # Application Settings
    APP_ENV: Literal["development", "staging", "production"] = "development"

    # Logging
    LOG_FORMAT: Literal["text", "json"] = "text"
    LOG_LEVEL: str = "INFO"

    # CORS Configuration
    CORS_ORIGINS: str = "http://localhost:3000"

    @field_validator("SUPABASE_URL")
    @classmethod
    def validate_supabase_url(cls, v: str) -> str:
        """Validate that SUPABASE_URL is a valid URL."""
        if v and not v.startswith(("http://", "https://")):
            raise ValueError("SUPABASE_URL must start with http:// or https://")
        return v.rstrip("/") if v else v

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def llm_configured(self) -> bool:
        """Check if a completion provider can be constructed."""
        return bool(self.OPENAI_API_KEY.get_secret_value() and self.LLM_MODEL)

    @property
    def embeddings_configured(self) -> bool:
        """Check if an embedding provider can be constructed."""
        return bool(self.OPENAI_API_KEY.get_secret_value() and self.EMBEDDING_MODEL)

    def validate_startup(self) -> None:
        """Validate that all required secrets are configured.

        The OpenAI key is deliberately not listed: without it the assistant
        runs in its degraded (lexical search, templated reply) mode.

        Raises:
            ValueError: If any required secret is missing or empty.
        """
        required_secrets = {
            "SUPABASE_URL": self.SUPABASE_URL,
            "SUPABASE_SERVICE_ROLE_KEY": self.SUPABASE_SERVICE_ROLE_KEY.get_secret_value(),
        }
        missing = [name for name, value in required_secrets.items() if not value]
        if missing:
            raise ValueError(f"Required secrets are missing or empty: {', '.join(missing)}")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings instance. Required secrets are checked at application
        startup via ``Settings.validate_startup``.
    """
    return Settings()


# Global settings instance - import this for easy access
settings = get_settings()
