"""Per-session message history and the decode/merge steps applied to it."""

import logging
from collections.abc import Iterator, Sequence
from typing import Any, NamedTuple

from pydantic import ValidationError

from llm_sessions.llm.models import ChatMessage, ChatRole

logger = logging.getLogger(__name__)


class MessageHistory:
    """Ordered, append-only list of messages belonging to one session.

    The first entry is always the system prompt the history was seeded with.
    """

    def __init__(self, messages: Sequence[ChatMessage]):
        if not messages or messages[0].role != ChatRole.SYSTEM:
            raise ValueError("history must start with a system message")
        if any(m.role == ChatRole.SYSTEM for m in messages[1:]):
            raise ValueError("history must hold exactly one system message")
        self._messages: list[ChatMessage] = list(messages)

    @classmethod
    def seed_with_system_prompt(cls, prompt: str) -> "MessageHistory":
        """Create a history holding only the system prompt."""
        return cls([ChatMessage(role=ChatRole.SYSTEM, content=prompt)])

    @property
    def system_prompt(self) -> str:
        return self._messages[0].content

    def append(self, role: ChatRole | str, content: str) -> ChatMessage:
        """Add one message at the end and return it.

        Raises:
            ValueError: If ``role`` is ``system``; only the seeded entry may be.
        """
        message = ChatMessage(role=role, content=content)
        if message.role == ChatRole.SYSTEM:
            raise ValueError("only the first history entry may be a system message")
        self._messages.append(message)
        return message

    def snapshot(self) -> tuple[ChatMessage, ...]:
        """Read-only view of the full ordered history."""
        return tuple(self._messages)

    def replace(self, messages: Sequence[ChatMessage]) -> None:
        """Overwrite the history with a merged sequence.

        Raises:
            ValueError: If the sequence does not start with the seeded system
                message, or holds another system message after it.
        """
        if not messages or messages[0] != self._messages[0]:
            raise ValueError("replacement history must keep the original system message")
        if any(m.role == ChatRole.SYSTEM for m in messages[1:]):
            raise ValueError("replacement history has more than one system message")
        self._messages = list(messages)

    def last(self) -> ChatMessage:
        return self._messages[-1]

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[ChatMessage]:
        return iter(self.snapshot())


class DecodedMessages(NamedTuple):
    """Result of decoding a provider-returned message list."""

    messages: list[ChatMessage]
    dropped: int


def _decode_one(entry: Any) -> ChatMessage | None:
    if isinstance(entry, ChatMessage):
        return entry
    if isinstance(entry, dict):
        candidate = entry
    elif hasattr(entry, "role") and hasattr(entry, "content"):
        candidate = {"role": entry.role, "content": entry.content}
    else:
        return None
    try:
        return ChatMessage.model_validate(candidate)
    except ValidationError:
        return None


def decode_messages(raw: Sequence[Any] | None) -> DecodedMessages:
    """Convert a loosely typed message list into ChatMessages.

    Entries that are not well-formed role/content messages are dropped and
    counted; the count is logged so truncation never goes unnoticed.
    """
    messages: list[ChatMessage] = []
    dropped = 0
    for entry in raw or []:
        message = _decode_one(entry)
        if message is None:
            dropped += 1
            continue
        messages.append(message)

    if dropped:
        logger.warning(f"Dropped {dropped} malformed message(s) from provider history")
    return DecodedMessages(messages=messages, dropped=dropped)


def merge_history(
    sent: Sequence[ChatMessage],
    returned: Sequence[ChatMessage],
    reply: ChatMessage,
) -> list[ChatMessage]:
    """Merge the provider's echoed history with what was sent.

    The echo wins only when it extends ``sent`` with non-system messages;
    otherwise the reply is appended to ``sent``. Either way ``sent`` is a
    prefix of the result and its system message stays the only one.
    """
    sent = list(sent)
    returned = list(returned)
    if not returned:
        return [*sent, reply]
    if returned[: len(sent)] == sent:
        added = returned[len(sent):]
        if not added:
            return [*sent, reply]
        if all(m.role != ChatRole.SYSTEM for m in added):
            return returned
        logger.warning(
            f"Provider history adds {len(added)} message(s) including a system "
            f"message; appending the reply instead"
        )
        return [*sent, reply]

    logger.warning(
        f"Provider history ({len(returned)} messages) does not extend the "
        f"{len(sent)} sent; appending the reply instead"
    )
    return [*sent, reply]
