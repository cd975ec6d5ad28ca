"""CLI entry point for chatwire."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import uvicorn

from .config import PROVIDERS, AppConfig, _get_config_path, load_config


def _print_setup_guide(config_path: Path) -> None:
    keys = ", ".join(f"{var} ({name})" for name, (_, var) in sorted(PROVIDERS.items()))
    print(
        f"\nTo get started, create {config_path} with:\n\n"
        "ai:\n"
        '  provider: "google"\n'
        '  api_key: "your-api-key"\n'
        '  model: "gemini-3-flash-preview"\n'
        "\nOr set environment variables:\n"
        "  AI_CHAT_PROVIDER=google\n"
        "  AI_CHAT_API_KEY=your-api-key\n"
        f"\nProvider keys are also read from: {keys}\n",
        file=sys.stderr,
    )


def _load_config_or_exit() -> tuple[Path, AppConfig]:
    config_path = _get_config_path()
    try:
        config = load_config()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        _print_setup_guide(config_path)
        sys.exit(1)
    return config_path, config


async def _validate_ai_connection(config: AppConfig) -> None:
    from .services.ai_service import AIService

    ai_service = AIService(config.ai)
    valid, message, models = await ai_service.validate_connection()
    if valid:
        print(f"AI connection: OK ({config.ai.provider}/{config.ai.model})")
        if models:
            print(f"  Available models: {', '.join(models[:5])}")
    else:
        print(f"AI connection: WARNING - {message}", file=sys.stderr)
        print("  The server will start, but streams may fail until the AI service is reachable.", file=sys.stderr)


async def _test_connection(config: AppConfig) -> None:
    from .services.ai_service import AIService

    ai_service = AIService(config.ai)

    print("Config:")
    print(f"  Provider: {config.ai.provider}")
    print(f"  Endpoint: {config.ai.base_url}")
    print(f"  Model:    {config.ai.model}")
    print(f"  SSL:      {'enabled' if config.ai.verify_ssl else 'disabled'}")

    print("\n1. Listing models...")
    valid, message, models = await ai_service.validate_connection()
    if not valid:
        print(f"   FAILED - {message}")
        sys.exit(1)
    print(f"   OK - {len(models)} model(s) available")
    for m in models[:10]:
        print(f"     - {m}")

    print(f"\n2. Streaming test prompt to {config.ai.model}...")
    reply: list[str] = []
    async for event in ai_service.stream_chat([{"role": "user", "content": "Say hello in one sentence."}]):
        if event["event"] == "token":
            reply.append(event["data"]["content"])
        elif event["event"] == "error":
            print(f"   FAILED - {event['data']['message']}")
            sys.exit(1)
    print(f"   OK - Response: {''.join(reply).strip() or '(empty response)'}")

    print("\nAll checks passed.")


def _run_server(config: AppConfig, config_path: Path) -> None:
    """Launch the API server."""
    print(f"Config: {config_path if config_path.exists() else 'environment'}")
    print(f"  Provider: {config.ai.provider} ({config.ai.base_url})")
    print(f"  Model: {config.ai.model}")
    print(f"  Data dir: {config.app.data_dir}")

    try:
        asyncio.run(_validate_ai_connection(config))
    except Exception:
        print("AI connection: Could not validate (will try on first request)", file=sys.stderr)

    from .app import create_app

    app = create_app(config)

    url = f"http://{config.app.host}:{config.app.port}"
    print(f"\nStarting chatwire at {url}")

    if config.app.host in ("0.0.0.0", "::"):
        print("  WARNING: Binding to all interfaces. The API is accessible from the network.", file=sys.stderr)

    uvicorn.run(app, host=config.app.host, port=config.app.port, log_level="info")


def _run_chat(config: AppConfig, prompt: str | None, thread_id: str | None, approve_all: bool) -> None:
    """Launch the CLI chat client."""
    from .cli.chat import run_cli

    asyncio.run(run_cli(config, prompt=prompt, thread_id=thread_id, approve_all=approve_all))


def main() -> None:
    parser = argparse.ArgumentParser(prog="chatwire", description="chatwire - streaming agent chat server")
    subparsers = parser.add_subparsers(dest="command")

    chat_parser = subparsers.add_parser("chat", help="Chat with a running server from the terminal")
    chat_parser.add_argument("prompt", nargs="?", default=None, help="One-shot prompt (omit for REPL)")
    chat_parser.add_argument("--thread", dest="thread_id", default=None, help="Thread ID to continue")
    chat_parser.add_argument("--approve-all", action="store_true", help="Run tools without asking")

    parser.add_argument("--test", action="store_true", help="Test connection settings and exit")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config_path, config = _load_config_or_exit()

    if args.test:
        asyncio.run(_test_connection(config))
        return

    if args.command == "chat":
        _run_chat(config, prompt=args.prompt, thread_id=args.thread_id, approve_all=args.approve_all)
    else:
        _run_server(config, config_path)


if __name__ == "__main__":
    main()
