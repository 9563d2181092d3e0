"""FastAPI dependencies for authentication and service wiring."""

import logging
from functools import lru_cache
from typing import Annotated, Any

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from advisor.core.capabilities import (
    CompletionProvider,
    EmbeddingProvider,
    Unavailable,
    build_completion_provider,
    build_embedding_provider,
)
from advisor.core.config import settings
from advisor.core.exceptions import AuthenticationError
from advisor.db.store import PersonalDataStore
from advisor.db.supabase import SupabaseClient, get_supabase_client
from advisor.integrations.collaborators import Collaborators
from advisor.integrations.google import GoogleCalendarFactory, GoogleEmailFactory
from advisor.integrations.hubspot import HubSpotFactory
from advisor.integrations.tokens import IntegrationTokenStore
from advisor.services.ingestion import DataImporter
from advisor.services.orchestrator import MessageOrchestrator
from advisor.services.retrieval import ContextRetriever
from advisor.services.webhook_reactor import WebhookReactor

logger = logging.getLogger(__name__)

# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> Any:
    """Extract and validate the current user from the bearer token.

    Raises:
        HTTPException: If authentication fails.
    """
    if credentials is None:
        logger.warning("AUTH: No credentials provided in request")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        client = SupabaseClient.get_client()
        response = client.auth.get_user(credentials.credentials)

        if response is None or response.user is None:
            raise AuthenticationError("Invalid authentication token")

        return response.user

    except AuthenticationError as e:
        logger.warning("AUTH: AuthenticationError - %s", str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
    except Exception as e:
        logger.exception("AUTH: Unexpected error during token validation: %s", str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


async def get_session_token(
    x_google_access_token: Annotated[str | None, Header(alias="X-Google-Access-Token")] = None,
) -> str | None:
    """Short-lived Google token forwarded by the client, if any."""
    return x_google_access_token or None


# Capability handles and services are built once per process

@lru_cache
def get_store() -> PersonalDataStore:
    return PersonalDataStore(get_supabase_client())


@lru_cache
def get_completion() -> CompletionProvider | Unavailable:
    return build_completion_provider(settings)


@lru_cache
def get_embeddings() -> EmbeddingProvider | Unavailable:
    return build_embedding_provider(settings)


@lru_cache
def get_token_store() -> IntegrationTokenStore:
    return IntegrationTokenStore(get_supabase_client())


@lru_cache
def get_collaborators() -> Collaborators:
    tokens = get_token_store()
    return Collaborators(
        email=GoogleEmailFactory(tokens, settings),
        calendar=GoogleCalendarFactory(tokens, settings),
        crm=HubSpotFactory(tokens, settings),
        store=get_store(),
    )


@lru_cache
def get_orchestrator() -> MessageOrchestrator:
    retriever = ContextRetriever(
        get_store(), get_embeddings(), dimensions=settings.EMBEDDING_DIMENSIONS
    )
    return MessageOrchestrator(
        retriever,
        get_store(),
        get_collaborators(),
        get_completion(),
        context_limit=settings.CONTEXT_LIMIT,
    )


@lru_cache
def get_reactor() -> WebhookReactor:
    return WebhookReactor(get_store(), get_collaborators(), get_completion())


@lru_cache
def get_importer() -> DataImporter:
    return DataImporter(get_store(), get_embeddings(), get_collaborators())


# Type aliases for common dependency patterns
CurrentUser = Annotated[Any, Depends(get_current_user)]
SessionToken = Annotated[str | None, Depends(get_session_token)]
Store = Annotated[PersonalDataStore, Depends(get_store)]
Tokens = Annotated[IntegrationTokenStore, Depends(get_token_store)]
Orchestrator = Annotated[MessageOrchestrator, Depends(get_orchestrator)]
Reactor = Annotated[WebhookReactor, Depends(get_reactor)]
Importer = Annotated[DataImporter, Depends(get_importer)]
