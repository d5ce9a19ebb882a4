"""CLI entry point for fanuc-bot."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

from fanuc_bot.app import FanucBotApp
from fanuc_bot.config import load_config
from fanuc_bot.log import setup_logging


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="fanuc-bot",
        description="Telegram console for Fanuc CNC fleets: Kafka telemetry and machine control",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # start command
    start_parser = subparsers.add_parser("start", help="Start the bot")
    start_parser.add_argument(
        "-c", "--config", default="config.yaml", help="Path to config file"
    )
    start_parser.add_argument(
        "-e", "--env", default=".env", help="Path to .env file"
    )

    # config-check command
    check_parser = subparsers.add_parser("config-check", help="Validate configuration")
    check_parser.add_argument(
        "-c", "--config", default="config.yaml", help="Path to config file"
    )
    check_parser.add_argument(
        "-e", "--env", default=".env", help="Path to .env file"
    )

    args = parser.parse_args()

    if args.command is None:
        # Default to start
        args.command = "start"
        args.config = "config.yaml"
        args.env = ".env"

    if args.command == "config-check":
        _check_config(args.config, args.env)
    elif args.command == "start":
        _run(args.config, args.env)


def _check_config(config_path: str, env_path: str) -> None:
    """Validate configuration and print summary."""
    try:
        config = load_config(config_path, env_path)
        print(f"Configuration valid: {config_path}")
        print(f"  Data directory: {config.data_dir}")
        print(f"  Storage: {config.storage.db_path}")
        print(f"  Telegram token: {_token_status(config.telegram.token)}")
        print(f"  Kafka: client_id={config.kafka.client_id} scan_window={config.kafka.scan_window}")
        print(f"  Fanuc API: prefix={config.fanuc.api_prefix} timeout={config.fanuc.timeout}s")
        print(
            f"  Live: every {config.live.refresh_interval}s, "
            f"fetch timeout {config.live.fetch_timeout}s"
        )
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


def _token_status(token: str) -> str:
    # an unresolved ${VAR} means the env var was never set
    if not token or token.startswith("${"):
        return "missing"
    return "set"


def _run(config_path: str, env_path: str) -> None:
    """Load config and start the application."""
    try:
        config = load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Run 'python install.py' first or copy config.example.yaml to config.yaml")
        sys.exit(1)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.log_level, config.log_json)

    async def _async_main() -> None:
        loop = asyncio.get_running_loop()
        stop_event = asyncio.Event()

        def _signal_handler() -> None:
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, _signal_handler)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                signal.signal(sig, lambda s, f: _signal_handler())

        app = FanucBotApp(config)
        try:
            await app.start()
            await stop_event.wait()
        finally:
            await app.stop()

    asyncio.run(_async_main())


if __name__ == "__main__":
    main()
