"""Command-line entry point.

Usage:
    python -m llm_sessions demo --message "Hello, what is your name?" --config config.json
    python -m llm_sessions serve --port 8080
"""

import argparse
import asyncio
import sys

from llm_sessions.chat.manager import SessionRegistry
from llm_sessions.config import Settings, load_settings
from llm_sessions.errors import ChatServiceError, ConfigError
from llm_sessions.llm.provider_session import ProviderSessionFactory
from llm_sessions.main import configure_logging

DEFAULT_DEMO_MESSAGE = "Hello, what is your name?"


async def run_demo(settings: Settings, message: str) -> int:
    """Create one session, run one turn and print the result."""
    registry = SessionRegistry(
        factory=ProviderSessionFactory.from_settings(settings),
        idle_timeout_minutes=0,
    )
    try:
        session = registry.create_session()
        print(f"Session ID: {session.session_id}")

        try:
            response = await session.run_turn(message)
        except ChatServiceError as e:
            print(f"Chat completion failed: {e}", file=sys.stderr)
            return 1

        print(f"Response: {response.reply.content}")
        print(f"Token usage: {session.token_usage}")
        return 0
    finally:
        await registry.shutdown()


def run_server(settings: Settings, host: str | None, port: int | None) -> None:
    """Serve the HTTP API with uvicorn."""
    import uvicorn

    from llm_sessions.main import create_app

    uvicorn.run(
        create_app(settings),
        host=host or settings.server.host,
        port=port or settings.server.port,
        log_level=settings.log_level.lower(),
        timeout_keep_alive=settings.server.idle_timeout,
    )


def build_parser() -> argparse.ArgumentParser:
    config_help = "Path to JSON config file (default: config.json)"
    # Accepted after the subcommand too; SUPPRESS keeps the root value
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", default=argparse.SUPPRESS, help=config_help)

    parser = argparse.ArgumentParser(
        prog="llm_sessions",
        description="Multi-session chat service over a single LLM endpoint",
    )
    parser.add_argument("--config", help=config_help)
    subparsers = parser.add_subparsers(dest="command", required=True)

    demo = subparsers.add_parser("demo", parents=[common], help="Run one demonstration chat turn")
    demo.add_argument("--message", "-m", default=DEFAULT_DEMO_MESSAGE, help="User message to send")

    serve = subparsers.add_parser("serve", parents=[common], help="Run the HTTP API")
    serve.add_argument("--host", help="Bind address (default: from config)")
    serve.add_argument("--port", type=int, help="Port (default: from config)")

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        print(f"Failed to load config: {e}", file=sys.stderr)
        return 1

    configure_logging(settings.log_level)

    if args.command == "demo":
        return asyncio.run(run_demo(settings, args.message))

    run_server(settings, args.host, args.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
