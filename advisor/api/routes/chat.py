"""Chat API routes."""

import logging
import uuid
from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from advisor.api.deps import CurrentUser, Orchestrator, SessionToken, Store
from advisor.core.config import settings
from advisor.core.exceptions import sanitize_error
from advisor.models.records import ConversationTurn, Role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


class ChatRequest(BaseModel):
    """Request body for chat endpoint."""

    message: str = Field(..., min_length=1, description="User's message")
    conversation_id: str | None = Field(
        None, description="Conversation ID (generated if not provided)"
    )


class MeetingCard(BaseModel):
    title: str
    date: str
    time: str
    attendees: list[str] = []


class ChatResponse(BaseModel):
    """Response from chat endpoint."""

    content: str | None
    tool_calls: list[dict[str, Any]] = []
    tool_results: list[dict[str, Any]] = []
    meeting_data: list[MeetingCard] | None = None
    degraded: bool = False
    conversation_id: str


class HistoryMessage(BaseModel):
    role: str
    content: str
    tool_calls: list[dict[str, Any]] | None = None


class HistoryResponse(BaseModel):
    conversation_id: str
    messages: list[HistoryMessage]


@router.post("", response_model=ChatResponse)
async def chat(
    current_user: CurrentUser,
    request: ChatRequest,
    orchestrator: Orchestrator,
    store: Store,
    session_token: SessionToken,
) -> ChatResponse:
    """Send a message and receive a grounded, tool-using response.

    Both turns are persisted only once the reply is final.
    """
    conversation_id = request.conversation_id or f"conv_{uuid.uuid4().hex}"

    try:
        history = await store.get_recent_turns(
            current_user.id, conversation_id, settings.HISTORY_WINDOW
        )
        response = await orchestrator.process_message(
            user_id=current_user.id,
            message=request.message,
            history=history,
            session_token=session_token,
        )
        tool_calls = [call.to_dict() for call in response.tool_calls]
        await store.append_turns(
            current_user.id,
            conversation_id,
            [
                ConversationTurn(role=Role.USER, content=request.message),
                ConversationTurn(
                    role=Role.ASSISTANT,
                    content=response.content or "",
                    tool_calls=tool_calls or None,
                ),
            ],
        )
    except Exception as e:
        logger.exception(
            "Chat processing failed",
            extra={"user_id": current_user.id, "conversation_id": conversation_id},
        )
        raise HTTPException(status_code=500, detail=sanitize_error(e)) from None

    logger.info(
        "Chat message processed",
        extra={
            "user_id": current_user.id,
            "conversation_id": conversation_id,
            "tool_call_count": len(tool_calls),
            "degraded": response.degraded,
        },
    )

    return ChatResponse(
        content=response.content,
        tool_calls=tool_calls,
        tool_results=[outcome.to_dict() for outcome in response.tool_outcomes],
        meeting_data=[MeetingCard(**asdict(m)) for m in response.meeting_data]
        if response.meeting_data is not None
        else None,
        degraded=response.degraded,
        conversation_id=conversation_id,
    )


@router.get("/history", response_model=HistoryResponse)
async def chat_history(
    current_user: CurrentUser,
    store: Store,
    conversation_id: str = Query(..., min_length=1),
    limit: int = Query(100, ge=1, le=1000),
) -> HistoryResponse:
    """Stored turns of one conversation, oldest first."""
    turns = await store.get_recent_turns(current_user.id, conversation_id, limit)
    return HistoryResponse(
        conversation_id=conversation_id,
        messages=[
            HistoryMessage(role=t.role.value, content=t.content, tool_calls=t.tool_calls)
            for t in turns
        ],
    )
