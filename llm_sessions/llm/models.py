"""Pydantic models for provider chat-completion requests and responses."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ChatRole(str, Enum):
    """Role of a chat message sender."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """A single role/content message. Immutable once created."""

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    role: ChatRole
    content: str


class Usage(BaseModel):
    """Token usage reported by the provider for one completion."""

    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)


class Choice(BaseModel):
    """One generated choice."""

    index: int = 0
    message: ChatMessage
    finish_reason: str | None = None


class CompletionRequest(BaseModel):
    """Request sent to the provider for one turn."""

    model: str
    temperature: float
    max_tokens: int
    request_id: str
    messages: list[ChatMessage]

    def to_payload(self) -> dict[str, Any]:
        """Render the request body sent over the wire."""
        return {
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "request_id": self.request_id,
            "messages": [m.model_dump() for m in self.messages],
        }


class CompletionResponse(BaseModel):
    """Response from the provider.

    ``messages`` is the conversation as echoed back by the transport. It is
    deliberately loosely typed: callers decode it before trusting it.
    """

    id: str | None = None
    request_id: str | None = None
    model: str | None = None
    choices: list[Choice] = Field(default_factory=list)
    usage: Usage = Field(default_factory=Usage)
    messages: list[Any] = Field(default_factory=list)

    @property
    def reply(self) -> ChatMessage | None:
        """The first choice's message, if any."""
        if not self.choices:
            return None
        return self.choices[0].message
