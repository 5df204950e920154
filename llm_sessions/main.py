"""FastAPI application entry point."""

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from llm_sessions.api import chat
from llm_sessions.chat.manager import init_session_registry, shutdown_session_registry
from llm_sessions.config import Settings, load_settings
from llm_sessions.llm.provider_session import ProviderSessionFactory

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application.

    Args:
        settings: Preloaded settings; loaded at startup when omitted.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler for startup and shutdown."""
        resolved = settings or load_settings()
        configure_logging(resolved.log_level)

        factory = ProviderSessionFactory.from_settings(resolved)
        await init_session_registry(
            factory,
            idle_timeout_minutes=resolved.session.idle_timeout_minutes,
            cleanup_interval_seconds=resolved.session.cleanup_interval_seconds,
            max_sessions=resolved.session.max_sessions,
        )
        logger.info(
            f"Chat service started (provider={resolved.llm.provider}, model={resolved.llm.model})"
        )

        yield

        await shutdown_session_registry()

    app = FastAPI(
        title="LLM Sessions",
        description="Multi-session chat service over a single LLM completion endpoint",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy"}

    app.include_router(chat.router, prefix="/api/v1", tags=["chat"])
    return app


app = create_app()
