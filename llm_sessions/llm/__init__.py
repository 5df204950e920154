"""Provider integration: transport clients and per-session provider bindings."""

from llm_sessions.llm.client import ChatCompletionClient, ZhipuClient, create_client
from llm_sessions.llm.models import (
    ChatMessage,
    ChatRole,
    Choice,
    CompletionRequest,
    CompletionResponse,
    Usage,
)
from llm_sessions.llm.provider_session import ProviderSession, ProviderSessionFactory

__all__ = [
    # Transports
    "ChatCompletionClient",
    "ZhipuClient",
    "create_client",
    # Models
    "ChatMessage",
    "ChatRole",
    "Choice",
    "CompletionRequest",
    "CompletionResponse",
    "Usage",
    # Provider sessions
    "ProviderSession",
    "ProviderSessionFactory",
]
