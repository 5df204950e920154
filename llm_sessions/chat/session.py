"""ConversationSession runs turns against a ProviderSession."""

import asyncio
import logging
from datetime import datetime

from llm_sessions.chat.history import MessageHistory, decode_messages, merge_history
from llm_sessions.chat.models import SessionInfo
from llm_sessions.errors import (
    EmptyCompletionError,
    MalformedProviderMessageError,
    ProviderCallFailedError,
)
from llm_sessions.llm.models import ChatMessage, ChatRole, CompletionResponse
from llm_sessions.llm.provider_session import ProviderSession

logger = logging.getLogger(__name__)


class ConversationSession:
    """One conversation: history, provider binding and token usage.

    Turns on the same session are serialized by an internal lock. A turn
    that fails, times out or is cancelled keeps the user message it
    appended, and adds no usage.
    """

    def __init__(
        self,
        provider: ProviderSession,
        history: MessageHistory,
        strict_decode: bool = False,
    ):
        self.provider = provider
        self.history = history
        self.strict_decode = strict_decode
        self.token_usage = 0
        self.turn_count = 0
        self.dropped_message_count = 0
        self.last_turn_dropped = 0
        self.created_at = datetime.now()
        self.last_activity = datetime.now()
        self._lock = asyncio.Lock()
        self._is_processing = False

    @property
    def session_id(self) -> str:
        return self.provider.session_id

    @property
    def is_processing(self) -> bool:
        """Whether a turn is waiting on the provider."""
        return self._is_processing

    @property
    def messages(self) -> list[ChatMessage]:
        return list(self.history.snapshot())

    async def run_turn(self, content: str) -> CompletionResponse:
        """Send a user message and fold the provider's answer into the session.

        Args:
            content: The user message.

        Returns:
            The full provider response; the reply is its first choice.

        Raises:
            ProviderCallFailedError: If the provider call fails, times out or
                returns no choices.
            MalformedProviderMessageError: In strict mode, if the returned
                history had entries that could not be decoded.
        """
        async with self._lock:
            self._is_processing = True
            self.last_activity = datetime.now()
            try:
                # Retained even if the provider call below fails
                self.history.append(ChatRole.USER, content)
                sent = self.history.snapshot()

                response = await self.provider.complete(sent)
                self._merge(sent, response)
                return response
            finally:
                self._is_processing = False
                self.last_activity = datetime.now()

    def _merge(self, sent: tuple[ChatMessage, ...], response: CompletionResponse) -> None:
        reply = response.reply
        if reply is None:
            raise EmptyCompletionError(
                f"Provider returned no choices for session {self.session_id}"
            )
        if reply.role == ChatRole.SYSTEM:
            raise ProviderCallFailedError(
                f"Provider replied with a system message for session {self.session_id}"
            )

        decoded = decode_messages(response.messages)
        if decoded.dropped and self.strict_decode:
            raise MalformedProviderMessageError(
                f"{decoded.dropped} malformed message(s) in provider history",
                dropped=decoded.dropped,
            )

        self.history.replace(merge_history(sent, decoded.messages, reply))
        self.token_usage += response.usage.total_tokens
        self.turn_count += 1
        self.last_turn_dropped = decoded.dropped
        self.dropped_message_count += decoded.dropped
        logger.debug(
            f"Session {self.session_id} turn {self.turn_count}: "
            f"{response.usage.total_tokens} tokens (total {self.token_usage})"
        )

    def info(self) -> SessionInfo:
        """Get session information."""
        return SessionInfo(
            session_id=self.session_id,
            model=self.provider.model,
            created_at=self.created_at,
            last_activity=self.last_activity,
            message_count=len(self.history),
            token_usage=self.token_usage,
            turn_count=self.turn_count,
            is_processing=self.is_processing,
        )
