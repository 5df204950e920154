"""ProviderSession binds one conversation's parameters to a transport."""

import asyncio
import logging
import uuid
from collections.abc import Sequence

from llm_sessions.config import Settings
from llm_sessions.errors import ProviderTimeoutError
from llm_sessions.llm.client import ChatCompletionClient, create_client
from llm_sessions.llm.models import ChatMessage, ChatRole, CompletionRequest, CompletionResponse

logger = logging.getLogger(__name__)


class ProviderSession:
    """Fixed model parameters plus a session id, exposing ``complete``.

    Parameters cannot be changed once the session exists.
    """

    def __init__(
        self,
        client: ChatCompletionClient,
        session_id: str,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float | None = None,
    ):
        self._client = client
        self._session_id = session_id
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._timeout = timeout

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def model(self) -> str:
        return self._model

    @property
    def temperature(self) -> float:
        return self._temperature

    @property
    def max_tokens(self) -> int:
        return self._max_tokens

    @property
    def timeout(self) -> float | None:
        return self._timeout

    async def complete(self, messages: Sequence[ChatMessage]) -> CompletionResponse:
        """Send the full history to the provider.

        Args:
            messages: Ordered history; must start with the system message.

        Returns:
            The provider response.

        Raises:
            ValueError: If ``messages`` does not start with a system message.
            ProviderTimeoutError: If the provider misses the deadline.
            ProviderCallFailedError: If the transport fails.
        """
        if not messages or messages[0].role != ChatRole.SYSTEM:
            raise ValueError("messages must start with the system prompt")

        request = CompletionRequest(
            model=self._model,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
            request_id=self._session_id,
            messages=list(messages),
        )
        try:
            return await asyncio.wait_for(
                self._client.create_chat_completion(request), timeout=self._timeout
            )
        except asyncio.TimeoutError as e:
            logger.error(
                f"Provider call for session {self._session_id} exceeded {self._timeout}s"
            )
            raise ProviderTimeoutError(
                f"Provider call exceeded {self._timeout}s deadline",
                timeout=self._timeout,
                provider=self._client.provider,
            ) from e


class ProviderSessionFactory:
    """Builds ProviderSessions sharing one transport and one set of settings."""

    def __init__(
        self,
        client: ChatCompletionClient,
        model: str,
        temperature: float,
        max_tokens: int,
        system_prompt: str,
        timeout: float | None = None,
        strict_decode: bool = False,
    ):
        self.client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.system_prompt = system_prompt
        self.timeout = timeout
        self.strict_decode = strict_decode

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        client: ChatCompletionClient | None = None,
    ) -> "ProviderSessionFactory":
        """Build a factory from settings, creating the transport if not given."""
        return cls(
            client=client or create_client(settings),
            model=settings.llm.model,
            temperature=settings.llm.temperature,
            max_tokens=settings.llm.max_tokens,
            system_prompt=settings.prompt.prompt,
            timeout=settings.llm.timeout,
            strict_decode=settings.session.strict_decode,
        )

    def new_session(self) -> ProviderSession:
        """Create a ProviderSession with a freshly generated id."""
        return ProviderSession(
            client=self.client,
            session_id=str(uuid.uuid4()),
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            timeout=self.timeout,
        )

    async def aclose(self) -> None:
        """Close the shared transport."""
        await self.client.aclose()
