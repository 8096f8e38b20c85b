"""CLI entry point for bugbuster."""

from __future__ import annotations

import argparse
import asyncio
import sys

from bugbuster.config import AppConfig, load_config
from bugbuster.log import setup_logging


def _add_config_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-c", "--config", default="config.yaml", help="Path to config file")
    parser.add_argument("-e", "--env", default=".env", help="Path to .env file")


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="bugbuster",
        description="Team chat debugging bot backed by Claude with log, SSH and Jira tools",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    start_parser = subparsers.add_parser("start", help="Start the webhook server")
    _add_config_args(start_parser)

    check_parser = subparsers.add_parser("config-check", help="Validate configuration")
    _add_config_args(check_parser)

    chat_parser = subparsers.add_parser("chat", help="Send one message locally and print the replies")
    _add_config_args(chat_parser)
    chat_parser.add_argument("message", help="Message text")
    chat_parser.add_argument("--channel", default="local-test", help="Channel id to use")

    args = parser.parse_args()

    if args.command is None:
        args.command = "start"
        args.config = "config.yaml"
        args.env = ".env"

    if args.command == "config-check":
        _check_config(args.config, args.env)
    elif args.command == "chat":
        _chat(args.config, args.env, args.channel, args.message)
    elif args.command == "start":
        _run(args.config, args.env)


def _load_or_exit(config_path: str, env_path: str) -> AppConfig:
    try:
        return load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Run 'python install.py' first or copy config.example.yaml to config.yaml")
        sys.exit(1)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


def _check_config(config_path: str, env_path: str) -> None:
    """Validate configuration and print summary."""
    config = _load_or_exit(config_path, env_path)
    print(f"Configuration valid: {config_path}")
    print(f"  Model       : {config.anthropic.model} (max_tokens={config.anthropic.max_tokens})")
    print(f"  Max turns   : {config.agent.max_turns}")
    print(f"  Idle timeout: {config.agent.idle_timeout_minutes} min")
    window = config.agent.history_window or "unbounded"
    print(f"  History     : {window}")
    print(f"  Tools       : {', '.join(config.agent.tools) or '(none)'}")
    print(f"  Cliq webhook: {'configured' if config.cliq.webhook_url else 'missing'}")
    print(f"  Jira        : {'configured' if config.jira else 'missing'}")
    print(f"  SSH servers : {', '.join(config.ssh.servers) or '(none)'}")
    print(f"  Listen      : {config.server.host}:{config.server.port}")


def _chat(config_path: str, env_path: str, channel_id: str, text: str) -> None:
    """Run one message through the full pipeline with console delivery."""
    from bugbuster.app import BugBusterApp
    from bugbuster.messenger.console import ConsoleDelivery
    from bugbuster.messenger.models import Payload

    config = _load_or_exit(config_path, env_path)
    setup_logging(config.log_level, config.json_logs)

    async def _async_chat() -> None:
        app = BugBusterApp(config, delivery=ConsoleDelivery())
        await app.start()
        try:
            await app.service.submit(channel_id, Payload(text=text))
            stats = app.service.get_stats(channel_id)
            print(f"--- cost ${stats.total_cost:.4f}, messages {stats.message_count}")
        finally:
            await app.stop()

    asyncio.run(_async_chat())


def _run(config_path: str, env_path: str) -> None:
    """Load config and serve the webhook app."""
    import uvicorn

    from bugbuster.app import BugBusterApp
    from bugbuster.server import create_app

    config = _load_or_exit(config_path, env_path)
    setup_logging(config.log_level, config.json_logs)

    app = create_app(BugBusterApp(config))
    uvicorn.run(app, host=config.server.host, port=config.server.port, log_level=config.log_level.lower())


if __name__ == "__main__":
    main()
