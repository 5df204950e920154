"""SessionRegistry handles session lifecycle and storage."""

import asyncio
import logging
import threading
from datetime import datetime, timedelta
from typing import Any

from llm_sessions.chat.history import MessageHistory
from llm_sessions.chat.models import SessionInfo
from llm_sessions.chat.session import ConversationSession
from llm_sessions.errors import SessionLimitError
from llm_sessions.llm.provider_session import ProviderSessionFactory

logger = logging.getLogger(__name__)

# Singleton registry instance
_registry: "SessionRegistry | None" = None


class SessionRegistry:
    """Owns every active ConversationSession, keyed by session id.

    Responsibilities:
    - Create sessions seeded with the configured system prompt
    - Store active sessions (in-memory, lock-guarded)
    - Get/delete sessions by ID
    - Evict sessions that have been idle too long
    """

    def __init__(
        self,
        factory: ProviderSessionFactory | None = None,
        idle_timeout_minutes: int = 30,
        cleanup_interval_seconds: float = 60,
        max_sessions: int | None = None,
    ):
        """Initialize the registry.

        Args:
            factory: Default factory used by ``create_session``.
            idle_timeout_minutes: Idle lifetime before eviction; 0 disables expiry.
            cleanup_interval_seconds: How often the cleanup task runs.
            max_sessions: Capacity limit; None means unbounded.
        """
        self._factory = factory
        self._sessions: dict[str, ConversationSession] = {}
        self._lock = threading.Lock()
        self._idle_timeout = (
            timedelta(minutes=idle_timeout_minutes) if idle_timeout_minutes > 0 else None
        )
        self._cleanup_interval = cleanup_interval_seconds
        self._max_sessions = max_sessions
        self._cleanup_task: asyncio.Task | None = None

    @property
    def active_session_count(self) -> int:
        """Number of active sessions."""
        with self._lock:
            return len(self._sessions)

    def create_session(self, factory: ProviderSessionFactory | None = None) -> ConversationSession:
        """Create and store a new session.

        Args:
            factory: Factory to build the provider binding; defaults to the
                registry's own factory.

        Returns:
            The new ConversationSession.

        Raises:
            SessionLimitError: If the registry is at capacity.
            RuntimeError: If no factory is available.
        """
        factory = factory or self._factory
        if factory is None:
            raise RuntimeError("No provider session factory configured")

        provider = factory.new_session()
        session = ConversationSession(
            provider=provider,
            history=MessageHistory.seed_with_system_prompt(factory.system_prompt),
            strict_decode=factory.strict_decode,
        )

        with self._lock:
            if self._max_sessions is not None and len(self._sessions) >= self._max_sessions:
                raise SessionLimitError(
                    f"Session limit reached ({self._max_sessions} active sessions)"
                )
            self._sessions[session.session_id] = session
            total = len(self._sessions)

        logger.info(f"Created chat session {session.session_id} (total sessions: {total})")
        return session

    def get_session(self, session_id: str) -> ConversationSession | None:
        """Get a session by ID.

        Args:
            session_id: The session ID to look up.

        Returns:
            The ConversationSession if found, None otherwise.
        """
        with self._lock:
            session = self._sessions.get(session_id)
        if session:
            # Update last activity for keepalive
            session.last_activity = datetime.now()
        return session

    def delete_session(self, session_id: str) -> bool:
        """Remove a session.

        Returns:
            True if the session was found and removed, False otherwise.
        """
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session:
            logger.info(f"Deleted chat session {session_id}")
            return True
        return False

    def list_sessions(self) -> list[SessionInfo]:
        """List all active sessions."""
        with self._lock:
            sessions = list(self._sessions.values())
        return [s.info() for s in sessions]

    def cleanup_expired(self) -> int:
        """Remove sessions that have been idle too long.

        Sessions with a turn in flight are kept.

        Returns:
            Number of sessions removed.
        """
        if self._idle_timeout is None:
            return 0

        now = datetime.now()
        with self._lock:
            expired_ids = [
                sid for sid, s in self._sessions.items()
                if not s.is_processing and now - s.last_activity > self._idle_timeout
            ]
            for session_id in expired_ids:
                del self._sessions[session_id]

        for session_id in expired_ids:
            logger.info(f"Cleaned up expired session {session_id}")
        if expired_ids:
            logger.info(f"Cleaned up {len(expired_ids)} expired chat session(s)")

        return len(expired_ids)

    async def start_cleanup_task(self) -> None:
        """Start the background cleanup task."""
        if self._idle_timeout is None:
            logger.info("Session expiry disabled; cleanup task not started")
            return
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())
            logger.info("Started chat session cleanup background task")

    async def stop_cleanup_task(self) -> None:
        """Stop the background cleanup task."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
            logger.info("Stopped chat session cleanup background task")

    async def _cleanup_loop(self) -> None:
        """Background loop that removes expired sessions."""
        while True:
            try:
                await asyncio.sleep(self._cleanup_interval)
                self.cleanup_expired()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception(f"Error in chat cleanup task: {e}")

    async def shutdown(self) -> None:
        """Stop background work, drop all sessions and close the transport."""
        await self.stop_cleanup_task()

        with self._lock:
            count = len(self._sessions)
            self._sessions.clear()

        if self._factory is not None:
            await self._factory.aclose()

        logger.info(f"Session registry shutdown complete ({count} session(s) dropped)")

    def get_stats(self) -> dict[str, Any]:
        """Get registry statistics."""
        now = datetime.now()
        with self._lock:
            sessions = list(self._sessions.values())
        return {
            "active_sessions": len(sessions),
            "processing_sessions": sum(1 for s in sessions if s.is_processing),
            "total_token_usage": sum(s.token_usage for s in sessions),
            "oldest_session_age_seconds": (
                (now - min(s.created_at for s in sessions)).total_seconds()
                if sessions else None
            ),
            "max_sessions": self._max_sessions,
            "cleanup_task_running": self._cleanup_task is not None,
        }


def get_session_registry() -> SessionRegistry:
    """Get the singleton registry instance.

    Raises:
        RuntimeError: If the registry has not been initialized.
    """
    if _registry is None:
        raise RuntimeError("Session registry not initialized")
    return _registry


async def init_session_registry(
    factory: ProviderSessionFactory,
    idle_timeout_minutes: int = 30,
    cleanup_interval_seconds: float = 60,
    max_sessions: int | None = None,
) -> SessionRegistry:
    """Initialize the singleton registry and start background tasks."""
    global _registry
    _registry = SessionRegistry(
        factory=factory,
        idle_timeout_minutes=idle_timeout_minutes,
        cleanup_interval_seconds=cleanup_interval_seconds,
        max_sessions=max_sessions,
    )
    await _registry.start_cleanup_task()
    return _registry


async def shutdown_session_registry() -> None:
    """Shutdown the singleton registry."""
    global _registry
    if _registry:
        await _registry.shutdown()
        _registry = None
