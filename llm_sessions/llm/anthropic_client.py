"""Anthropic transport for the chat-completion contract."""

import logging
from typing import Any

import anthropic

from llm_sessions.errors import ProviderCallFailedError, ProviderTimeoutError
from llm_sessions.llm.client import ChatCompletionClient
from llm_sessions.llm.models import (
    ChatMessage,
    ChatRole,
    Choice,
    CompletionRequest,
    CompletionResponse,
    Usage,
)

logger = logging.getLogger(__name__)


class AnthropicClient(ChatCompletionClient):
    """Wrapper around the async Anthropic client.

    Anthropic takes the system prompt as a separate parameter, so system
    messages are lifted out of the message list before sending.
    """

    provider = "anthropic"

    def __init__(
        self,
        api_key: str,
        timeout: float = 60.0,
        client: anthropic.AsyncAnthropic | None = None,
    ):
        """Initialize the client.

        Args:
            api_key: Anthropic API key.
            timeout: Transport-level timeout in seconds.
            client: Optional preconfigured SDK client (used in tests).
        """
        if not api_key and client is None:
            raise ValueError("Anthropic API key required")
        # SDK retries are off: failures surface to the caller on the first attempt
        self._client = client or anthropic.AsyncAnthropic(
            api_key=api_key, timeout=timeout, max_retries=0
        )
        logger.info("AnthropicClient initialized")

    async def create_chat_completion(self, request: CompletionRequest) -> CompletionResponse:
        system_parts = [m.content for m in request.messages if m.role == ChatRole.SYSTEM]
        kwargs: dict[str, Any] = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": [
                {"role": m.role, "content": m.content}
                for m in request.messages
                if m.role != ChatRole.SYSTEM
            ],
            "metadata": {"user_id": request.request_id},
        }
        if system_parts:
            kwargs["system"] = "\n\n".join(system_parts)

        try:
            message = await self._client.messages.create(**kwargs)
        except anthropic.APITimeoutError as e:
            logger.error(f"Anthropic request timed out: {e}")
            raise ProviderTimeoutError(
                f"Anthropic request timed out: {e}", provider=self.provider
            ) from e
        except anthropic.APIStatusError as e:
            logger.error(f"Anthropic API error {e.status_code}: {e}")
            raise ProviderCallFailedError(
                f"Anthropic API error: {e}",
                status_code=e.status_code,
                provider=self.provider,
                retriable=e.status_code == 429 or e.status_code >= 500,
            ) from e
        except anthropic.APIError as e:
            logger.error(f"Anthropic API error: {e}")
            raise ProviderCallFailedError(
                f"Anthropic API error: {e}", provider=self.provider
            ) from e

        text = "".join(
            block.text for block in message.content if getattr(block, "type", None) == "text"
        )
        reply = ChatMessage(role=ChatRole.ASSISTANT, content=text)
        input_tokens = message.usage.input_tokens or 0
        output_tokens = message.usage.output_tokens or 0

        return CompletionResponse(
            id=message.id,
            request_id=request.request_id,
            model=message.model,
            choices=[Choice(index=0, message=reply, finish_reason=message.stop_reason)],
            usage=Usage(
                prompt_tokens=input_tokens,
                completion_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
            ),
            messages=[m.model_dump() for m in request.messages] + [reply.model_dump()],
        )

    async def aclose(self) -> None:
        await self._client.close()
