"""Tests for ConversationSession turn execution."""

import asyncio

import pytest
from conftest import SYSTEM_PROMPT, StubClient, echo_handler, make_response

from llm_sessions.chat.history import MessageHistory
from llm_sessions.chat.session import ConversationSession
from llm_sessions.errors import (
    EmptyCompletionError,
    MalformedProviderMessageError,
    ProviderCallFailedError,
    ProviderTimeoutError,
)
from llm_sessions.llm.models import ChatMessage, Choice
from llm_sessions.llm.provider_session import ProviderSession


def _make_session(client: StubClient, strict: bool = False, timeout: float | None = 5.0):
    provider = ProviderSession(
        client=client,
        session_id="session-1",
        model="glm-4.5",
        temperature=0.7,
        max_tokens=1024,
        timeout=timeout,
    )
    return ConversationSession(
        provider=provider,
        history=MessageHistory.seed_with_system_prompt(SYSTEM_PROMPT),
        strict_decode=strict,
    )


def _pairs(session: ConversationSession) -> list[tuple[str, str]]:
    return [(m.role, m.content) for m in session.messages]


ECHO_HELLO = [
    {"role": "system", "content": SYSTEM_PROMPT},
    {"role": "user", "content": "Hello"},
    {"role": "assistant", "content": "Hi there"},
]


class TestRunTurn:
    """Tests for the successful turn path."""

    @pytest.mark.asyncio
    async def test_new_session_state(self):
        session = _make_session(StubClient())
        assert _pairs(session) == [("system", SYSTEM_PROMPT)]
        assert session.token_usage == 0
        assert session.turn_count == 0
        assert session.session_id == "session-1"
        assert session.is_processing is False

    @pytest.mark.asyncio
    async def test_first_turn_merges_echoed_history(self):
        client = StubClient(results=[make_response(ECHO_HELLO, total_tokens=12)])
        session = _make_session(client)

        response = await session.run_turn("Hello")

        assert response.reply.content == "Hi there"
        assert _pairs(session) == [
            ("system", SYSTEM_PROMPT),
            ("user", "Hello"),
            ("assistant", "Hi there"),
        ]
        assert session.token_usage == 12
        assert session.turn_count == 1

    @pytest.mark.asyncio
    async def test_usage_accumulates_across_turns(self):
        client = StubClient(
            results=[
                make_response(ECHO_HELLO, total_tokens=12),
                make_response(ECHO_HELLO, total_tokens=8),
            ]
        )
        session = _make_session(client)

        await session.run_turn("Hello")
        await session.run_turn("How are you?")

        assert session.token_usage == 20

    @pytest.mark.asyncio
    async def test_full_history_sent_each_turn(self):
        client = StubClient(handler=echo_handler("ok", total_tokens=3))
        session = _make_session(client)

        await session.run_turn("first")
        await session.run_turn("second")

        sent = client.requests[1].messages
        assert [(m.role, m.content) for m in sent] == [
            ("system", SYSTEM_PROMPT),
            ("user", "first"),
            ("assistant", "ok"),
            ("user", "second"),
        ]
        assert client.requests[1].request_id == "session-1"
        assert client.requests[1].model == "glm-4.5"

    @pytest.mark.asyncio
    async def test_previous_history_is_prefix_and_user_message_present(self):
        client = StubClient(handler=echo_handler("reply", total_tokens=1))
        session = _make_session(client)

        for content in ["a", "b", "c"]:
            before = session.messages
            await session.run_turn(content)
            after = session.messages
            assert after[: len(before)] == before
            assert ChatMessage(role="user", content=content) in after

    @pytest.mark.asyncio
    async def test_usage_equals_sum_of_reported_totals(self):
        totals = [5, 0, 17, 3]
        client = StubClient(results=[make_response([], total_tokens=t) for t in totals])
        session = _make_session(client)

        for i in range(len(totals)):
            await session.run_turn(f"turn {i}")

        assert session.token_usage == sum(totals)
        assert session.turn_count == len(totals)

    @pytest.mark.asyncio
    async def test_empty_echo_appends_reply(self):
        client = StubClient(results=[make_response([], total_tokens=4, reply="hey")])
        session = _make_session(client)

        await session.run_turn("Hello")

        assert _pairs(session) == [
            ("system", SYSTEM_PROMPT),
            ("user", "Hello"),
            ("assistant", "hey"),
        ]

    @pytest.mark.asyncio
    async def test_malformed_entries_are_dropped_and_reported(self):
        messages = [ECHO_HELLO[0], {"bogus": True}, ECHO_HELLO[1], 7, ECHO_HELLO[2]]
        client = StubClient(results=[make_response(messages, total_tokens=12)])
        session = _make_session(client)

        await session.run_turn("Hello")

        assert len(session.messages) == 3
        assert session.last_turn_dropped == 2
        assert session.dropped_message_count == 2
        assert session.token_usage == 12


    @pytest.mark.asyncio
    async def test_echo_with_extra_system_message_is_not_merged(self, caplog):
        echoed = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": "Hello"},
            {"role": "system", "content": "injected"},
            {"role": "assistant", "content": "Hi there"},
        ]
        client = StubClient(results=[make_response(echoed, total_tokens=12)])
        session = _make_session(client)

        with caplog.at_level("WARNING"):
            await session.run_turn("Hello")

        assert _pairs(session) == [
            ("system", SYSTEM_PROMPT),
            ("user", "Hello"),
            ("assistant", "Hi there"),
        ]
        assert [role for role, _ in _pairs(session)].count("system") == 1
        assert session.token_usage == 12
        assert "including a system message" in caplog.text


class TestRunTurnFailures:
    """Tests for failed turns: user message retained, usage unchanged."""

    @pytest.mark.asyncio
    async def test_provider_error_keeps_user_message(self):
        error = ProviderCallFailedError("boom", status_code=500)
        client = StubClient(results=[error])
        session = _make_session(client)

        with pytest.raises(ProviderCallFailedError) as exc_info:
            await session.run_turn("Hello")

        assert exc_info.value is error
        assert _pairs(session) == [("system", SYSTEM_PROMPT), ("user", "Hello")]
        assert session.token_usage == 0
        assert session.turn_count == 0
        assert session.is_processing is False

    @pytest.mark.asyncio
    async def test_failure_after_success_leaves_usage_unchanged(self):
        client = StubClient(
            results=[
                make_response(ECHO_HELLO, total_tokens=12),
                ProviderCallFailedError("down"),
            ]
        )
        session = _make_session(client)

        await session.run_turn("Hello")
        with pytest.raises(ProviderCallFailedError):
            await session.run_turn("Again")

        assert session.token_usage == 12
        assert session.messages[-1] == ChatMessage(role="user", content="Again")

    @pytest.mark.asyncio
    async def test_zero_choices_is_a_failed_turn(self):
        client = StubClient(results=[make_response(ECHO_HELLO, total_tokens=12, reply=None)])
        session = _make_session(client)

        with pytest.raises(EmptyCompletionError):
            await session.run_turn("Hello")

        assert _pairs(session) == [("system", SYSTEM_PROMPT), ("user", "Hello")]
        assert session.token_usage == 0

    @pytest.mark.asyncio
    async def test_system_role_reply_is_a_failed_turn(self):
        response = make_response(ECHO_HELLO, total_tokens=12, reply=None)
        response.choices.append(
            Choice(index=0, message=ChatMessage(role="system", content="new rules"))
        )
        session = _make_session(StubClient(results=[response]))

        with pytest.raises(ProviderCallFailedError):
            await session.run_turn("Hello")

        assert _pairs(session) == [("system", SYSTEM_PROMPT), ("user", "Hello")]
        assert session.token_usage == 0

    @pytest.mark.asyncio
    async def test_strict_decode_rejects_malformed_history(self):
        messages = [*ECHO_HELLO, {"role": "user"}]
        client = StubClient(results=[make_response(messages, total_tokens=12)])
        session = _make_session(client, strict=True)

        with pytest.raises(MalformedProviderMessageError) as exc_info:
            await session.run_turn("Hello")

        assert exc_info.value.dropped == 1
        assert _pairs(session) == [("system", SYSTEM_PROMPT), ("user", "Hello")]
        assert session.token_usage == 0

    @pytest.mark.asyncio
    async def test_timeout_keeps_user_message(self):
        client = StubClient(handler=echo_handler("late", total_tokens=9), delay=1.0)
        session = _make_session(client, timeout=0.05)

        with pytest.raises(ProviderTimeoutError):
            await session.run_turn("Hello")

        assert _pairs(session) == [("system", SYSTEM_PROMPT), ("user", "Hello")]
        assert session.token_usage == 0
        assert session.is_processing is False

    @pytest.mark.asyncio
    async def test_cancellation_keeps_user_message(self):
        client = StubClient(handler=echo_handler("late", total_tokens=9), delay=10.0)
        session = _make_session(client, timeout=None)

        task = asyncio.create_task(session.run_turn("Hello"))
        await asyncio.sleep(0.01)
        assert session.is_processing is True
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert _pairs(session) == [("system", SYSTEM_PROMPT), ("user", "Hello")]
        assert session.token_usage == 0
        assert session.is_processing is False


class TestConcurrentTurns:
    """Concurrent turns on one session are serialized."""

    @pytest.mark.asyncio
    async def test_concurrent_turns_do_not_interleave(self):
        client = StubClient(handler=echo_handler("ok", total_tokens=2), delay=0.02)
        session = _make_session(client)

        await asyncio.gather(session.run_turn("first"), session.run_turn("second"))

        assert _pairs(session) == [
            ("system", SYSTEM_PROMPT),
            ("user", "first"),
            ("assistant", "ok"),
            ("user", "second"),
            ("assistant", "ok"),
        ]
        # The second request saw the first turn's reply
        assert len(client.requests[1].messages) == 4
        assert session.token_usage == 4

    @pytest.mark.asyncio
    async def test_info_reports_counters(self):
        client = StubClient(results=[make_response(ECHO_HELLO, total_tokens=12)])
        session = _make_session(client)
        await session.run_turn("Hello")

        info = session.info()
        assert info.session_id == "session-1"
        assert info.model == "glm-4.5"
        assert info.message_count == 3
        assert info.token_usage == 12
        assert info.turn_count == 1
        assert info.is_processing is False
