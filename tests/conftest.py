"""Pytest configuration and fixtures."""

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from llm_sessions.chat.manager import SessionRegistry
from llm_sessions.llm.client import ChatCompletionClient
from llm_sessions.llm.models import (
    ChatMessage,
    ChatRole,
    Choice,
    CompletionRequest,
    CompletionResponse,
    Usage,
)
from llm_sessions.llm.provider_session import ProviderSessionFactory

SYSTEM_PROMPT = "You are a helpful assistant."


def make_response(
    messages: list[Any],
    total_tokens: int,
    reply: str | None = "Hi there",
) -> CompletionResponse:
    """Build a provider response with an optional assistant reply."""
    choices = []
    if reply is not None:
        choices = [Choice(index=0, message=ChatMessage(role=ChatRole.ASSISTANT, content=reply))]
    return CompletionResponse(
        id="resp-1",
        model="glm-4.5",
        choices=choices,
        usage=Usage(total_tokens=total_tokens),
        messages=messages,
    )


def echo_handler(reply: str, total_tokens: int) -> Callable[[CompletionRequest], CompletionResponse]:
    """Handler that echoes the request history followed by ``reply``."""

    def handler(request: CompletionRequest) -> CompletionResponse:
        echoed = [m.model_dump() for m in request.messages]
        echoed.append({"role": "assistant", "content": reply})
        return make_response(echoed, total_tokens, reply=reply)

    return handler


class StubClient(ChatCompletionClient):
    """In-memory transport driven by queued results or a handler."""

    provider = "stub"

    def __init__(
        self,
        results: list[CompletionResponse | Exception] | None = None,
        handler: Callable[[CompletionRequest], CompletionResponse] | None = None,
        delay: float = 0.0,
    ):
        self.results = list(results or [])
        self.handler = handler
        self.delay = delay
        self.requests: list[CompletionRequest] = []
        self.closed = False

    async def create_chat_completion(self, request: CompletionRequest) -> CompletionResponse:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.results:
            result = self.results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        if self.handler:
            return self.handler(request)
        raise AssertionError("StubClient has no response queued")

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def stub_client() -> StubClient:
    return StubClient()


@pytest.fixture
def factory(stub_client: StubClient) -> ProviderSessionFactory:
    return ProviderSessionFactory(
        client=stub_client,
        model="glm-4.5",
        temperature=0.7,
        max_tokens=1024,
        system_prompt=SYSTEM_PROMPT,
        timeout=5.0,
    )


@pytest.fixture
def registry(factory: ProviderSessionFactory) -> SessionRegistry:
    return SessionRegistry(factory=factory)
