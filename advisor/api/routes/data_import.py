"""Data import route: pulls mailbox and CRM data into the searchable store."""

import logging
from typing import Literal

from fastapi import APIRouter
from pydantic import BaseModel

from advisor.api.deps import CurrentUser, Importer, SessionToken
from advisor.core.config import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/import", tags=["import"])


class ImportRequest(BaseModel):
    type: Literal["emails", "contacts", "all"] = "all"


class ImportCounts(BaseModel):
    fetched: int
    imported: int
    skipped: int
    without_embedding: int


class ImportResponse(BaseModel):
    message: str
    results: dict[str, ImportCounts]


_MESSAGES = {
    "emails": "Emails imported successfully",
    "contacts": "HubSpot contacts imported successfully",
    "all": "All data imported successfully",
}


@router.post("", response_model=ImportResponse)
async def import_data(
    current_user: CurrentUser,
    request: ImportRequest,
    importer: Importer,
    session_token: SessionToken,
) -> ImportResponse:
    """Import emails, contacts or both. Already imported items are skipped."""
    summaries = []
    if request.type in ("emails", "all"):
        summaries.append(
            await importer.import_emails(
                current_user.id, session_token, limit=settings.IMPORT_EMAIL_LIMIT
            )
        )
    if request.type in ("contacts", "all"):
        summaries.append(
            await importer.import_contacts(current_user.id, limit=settings.IMPORT_CONTACT_LIMIT)
        )

    return ImportResponse(
        message=_MESSAGES[request.type],
        results={
            s.corpus.value: ImportCounts(
                fetched=s.fetched,
                imported=s.imported,
                skipped=s.skipped,
                without_embedding=s.without_embedding,
            )
            for s in summaries
        },
    )
