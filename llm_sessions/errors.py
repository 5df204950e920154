"""Exceptions raised by the chat session service."""

from typing import Any


class ChatServiceError(Exception):
    """Base exception for chat service errors."""

    def __init__(self, message: str, provider: str | None = None, retriable: bool = False):
        super().__init__(message)
        self.provider = provider
        self.retriable = retriable


class ConfigError(ChatServiceError):
    """Configuration is missing or invalid."""

    pass


class ProviderCallFailedError(ChatServiceError):
    """The provider returned a transport or API error."""

    def __init__(self, message: str, status_code: int | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.status_code = status_code


class ProviderTimeoutError(ProviderCallFailedError):
    """The provider did not answer before the request deadline."""

    def __init__(self, message: str, timeout: float | None = None, **kwargs: Any):
        super().__init__(message, retriable=True, **kwargs)
        self.timeout = timeout


class EmptyCompletionError(ProviderCallFailedError):
    """The provider answered with zero choices."""

    pass


class MalformedProviderMessageError(ChatServiceError):
    """Returned history contained entries that are not role/content messages."""

    def __init__(self, message: str, dropped: int, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.dropped = dropped


class SessionLimitError(ChatServiceError):
    """The session registry is at capacity."""

    pass
