"""Chat session infrastructure for multi-turn conversations.

This module provides the core abstractions for session-based chat:
- MessageHistory: Ordered history seeded with the system prompt
- ConversationSession: Runs turns and tracks token usage
- SessionRegistry: Manages session lifecycle
"""

from llm_sessions.chat.history import DecodedMessages, MessageHistory, decode_messages, merge_history
from llm_sessions.chat.manager import (
    SessionRegistry,
    get_session_registry,
    init_session_registry,
    shutdown_session_registry,
)
from llm_sessions.chat.models import (
    CreateSessionResponse,
    SessionInfo,
    TurnRequest,
    TurnResponse,
)
from llm_sessions.chat.session import ConversationSession

__all__ = [
    "ConversationSession",
    "CreateSessionResponse",
    "DecodedMessages",
    "MessageHistory",
    "SessionInfo",
    "SessionRegistry",
    "TurnRequest",
    "TurnResponse",
    "decode_messages",
    "get_session_registry",
    "init_session_registry",
    "merge_history",
    "shutdown_session_registry",
]
