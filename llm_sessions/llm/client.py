"""Provider transport clients.

A transport sends one ``CompletionRequest`` to the remote model and returns a
``CompletionResponse``. Transports never retry: any failure surfaces to the
caller as a ``ProviderCallFailedError``.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx
from pydantic import ValidationError

from llm_sessions.config import Settings
from llm_sessions.errors import ConfigError, ProviderCallFailedError, ProviderTimeoutError
from llm_sessions.llm.models import CompletionRequest, CompletionResponse

logger = logging.getLogger(__name__)


class ChatCompletionClient(ABC):
    """Abstract base class for provider transports."""

    provider: str = "unknown"

    @abstractmethod
    async def create_chat_completion(self, request: CompletionRequest) -> CompletionResponse:
        """Send one chat-completion request.

        Raises:
            ProviderCallFailedError: On any transport or API failure.
        """
        ...

    async def aclose(self) -> None:
        """Release network resources held by the transport."""
        return None


class ZhipuClient(ChatCompletionClient):
    """Client for Zhipu's OpenAI-compatible chat-completions endpoint.

    Works with any endpoint that speaks the same ``/chat/completions`` shape.
    """

    provider = "zhipu"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://open.bigmodel.cn/api/paas/v4",
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize the client.

        Args:
            api_key: Provider API key.
            base_url: API base URL (without ``/chat/completions``).
            timeout: Transport-level timeout in seconds.
            http_client: Optional preconfigured httpx client (used in tests).
        """
        if not api_key:
            raise ValueError("API key required for ZhipuClient")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        logger.info(f"ZhipuClient initialized for {self.base_url}")

    async def create_chat_completion(self, request: CompletionRequest) -> CompletionResponse:
        url = f"{self.base_url}/chat/completions"
        logger.debug(
            f"Sending {len(request.messages)} messages to {request.model} "
            f"(request_id={request.request_id})"
        )
        try:
            resp = await self._client.post(
                url,
                json=request.to_payload(),
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.TimeoutException as e:
            logger.error(f"Provider request timed out: {e}")
            raise ProviderTimeoutError(
                f"Provider request timed out: {e}", provider=self.provider
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Provider transport error: {e}")
            raise ProviderCallFailedError(
                f"Provider transport error: {e}", provider=self.provider
            ) from e

        if resp.status_code >= 400:
            detail = _error_detail(resp)
            logger.error(f"Provider returned {resp.status_code}: {detail}")
            raise ProviderCallFailedError(
                f"Provider returned {resp.status_code}: {detail}",
                status_code=resp.status_code,
                provider=self.provider,
                retriable=resp.status_code == 429 or resp.status_code >= 500,
            )

        try:
            body = resp.json()
            response = CompletionResponse.model_validate(body)
        except (ValueError, ValidationError) as e:
            raise ProviderCallFailedError(
                f"Invalid response from provider: {e}",
                status_code=resp.status_code,
                provider=self.provider,
            ) from e

        # Echo the conversation back: what was sent, followed by the reply
        echoed: list[Any] = [m.model_dump() for m in request.messages]
        if response.reply is not None:
            echoed.append(response.reply.model_dump())
        return response.model_copy(update={"messages": echoed})

    async def aclose(self) -> None:
        await self._client.aclose()


def _error_detail(resp: httpx.Response) -> str:
    """Pull a readable message out of an error response."""
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:500]
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return str(body)[:500]


def create_client(settings: Settings) -> ChatCompletionClient:
    """Build the transport selected by ``settings.llm.provider``.

    Raises:
        ConfigError: If the provider is not supported.
    """
    llm = settings.llm
    provider = llm.provider.lower()
    if provider in ("zhipu", "openai"):
        return ZhipuClient(api_key=llm.api_key, base_url=llm.base_url, timeout=llm.timeout)
    if provider == "anthropic":
        from llm_sessions.llm.anthropic_client import AnthropicClient

        return AnthropicClient(api_key=llm.api_key, timeout=llm.timeout)
    raise ConfigError(f"Unsupported LLM provider: {llm.provider}")
