"""Pydantic models for chat sessions."""

from datetime import datetime

from pydantic import BaseModel, Field

from llm_sessions.llm.models import ChatMessage, Usage


class SessionInfo(BaseModel):
    """Information about an active chat session."""

    session_id: str
    model: str
    created_at: datetime
    last_activity: datetime
    message_count: int
    token_usage: int
    turn_count: int
    is_processing: bool = False


class CreateSessionResponse(BaseModel):
    """Response after creating a chat session."""

    session_id: str
    model: str
    created_at: datetime
    messages: list[ChatMessage]


class TurnRequest(BaseModel):
    """Request to run one conversation turn."""

    content: str = Field(
        min_length=1,
        description="User message to send",
    )


class TurnResponse(BaseModel):
    """Result of one conversation turn."""

    session_id: str
    reply: ChatMessage
    usage: Usage
    token_usage: int = Field(description="Running total of tokens used by the session")
    dropped_messages: int = Field(
        default=0,
        description="Malformed entries discarded from the provider's returned history",
    )
