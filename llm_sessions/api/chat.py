"""Chat API endpoints for multi-turn conversations."""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException

from llm_sessions.chat.manager import get_session_registry
from llm_sessions.chat.models import (
    CreateSessionResponse,
    SessionInfo,
    TurnRequest,
    TurnResponse,
)
from llm_sessions.errors import (
    MalformedProviderMessageError,
    ProviderCallFailedError,
    ProviderTimeoutError,
    SessionLimitError,
)
from llm_sessions.llm.models import ChatMessage

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/sessions", status_code=201)
async def create_session() -> CreateSessionResponse:
    """Create a new chat session seeded with the configured system prompt."""
    registry = get_session_registry()
    try:
        session = registry.create_session()
    except SessionLimitError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e

    return CreateSessionResponse(
        session_id=session.session_id,
        model=session.provider.model,
        created_at=session.created_at,
        messages=session.messages,
    )


@router.get("/sessions")
async def list_sessions() -> list[SessionInfo]:
    """List active chat sessions."""
    return get_session_registry().list_sessions()


@router.get("/sessions/{session_id}")
async def get_session(session_id: str) -> SessionInfo:
    """Get information about a specific chat session."""
    session = get_session_registry().get_session(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return session.info()


@router.get("/sessions/{session_id}/messages")
async def get_session_messages(session_id: str) -> list[ChatMessage]:
    """Get the full message history of a session."""
    session = get_session_registry().get_session(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return session.messages


@router.post("/sessions/{session_id}/messages")
async def send_message(session_id: str, request: TurnRequest) -> TurnResponse:
    """Run one conversation turn and return the assistant reply."""
    session = get_session_registry().get_session(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")

    try:
        response = await session.run_turn(request.content)
    except ProviderTimeoutError as e:
        logger.error(f"Provider timed out for session {session_id}: {e}")
        raise HTTPException(status_code=504, detail=str(e)) from e
    except (ProviderCallFailedError, MalformedProviderMessageError) as e:
        logger.error(f"Provider call failed for session {session_id}: {e}")
        raise HTTPException(status_code=502, detail=str(e)) from e

    return TurnResponse(
        session_id=session_id,
        reply=response.reply,
        usage=response.usage,
        token_usage=session.token_usage,
        dropped_messages=session.last_turn_dropped,
    )


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str) -> dict[str, str]:
    """Explicitly delete a chat session."""
    if not get_session_registry().delete_session(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return {"status": "deleted", "session_id": session_id}


# Admin endpoint for monitoring
@router.get("/chat/stats")
async def get_chat_stats() -> dict[str, Any]:
    """Get chat session statistics (admin endpoint)."""
    return get_session_registry().get_stats()
