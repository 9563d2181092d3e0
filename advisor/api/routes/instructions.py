"""Standing instructions routes."""

import logging

from fastapi import APIRouter
from pydantic import BaseModel, Field

from advisor.api.deps import CurrentUser, Store
from advisor.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/instructions", tags=["instructions"])


class InstructionsRequest(BaseModel):
    instructions: str = Field(..., description="Standing instructions for the assistant")


class InstructionsResponse(BaseModel):
    instructions: str


class UpdateResponse(BaseModel):
    message: str


@router.get("", response_model=InstructionsResponse)
async def get_instructions(current_user: CurrentUser, store: Store) -> InstructionsResponse:
    instructions = await store.get_instructions(current_user.id)
    return InstructionsResponse(instructions=instructions or "")


@router.post("", response_model=UpdateResponse)
async def update_instructions(
    current_user: CurrentUser,
    request: InstructionsRequest,
    store: Store,
) -> UpdateResponse:
    """Replace the user's standing instructions. The latest write wins."""
    if not request.instructions.strip():
        raise ValidationError("Instructions are required", field="instructions")

    await store.set_instructions(current_user.id, request.instructions)
    logger.info("Standing instructions updated", extra={"user_id": current_user.id})
    return UpdateResponse(message="Instructions updated successfully")
