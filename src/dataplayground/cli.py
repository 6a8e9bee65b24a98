"""Command-line interface for dataplayground.

Provides the main entry point for running the session and static file
servers, or connecting to a running server from the terminal.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="dataplayground",
        description="Browser REPL bridge to per-connection R interpreter sessions",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: config/dataplayground.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the session server and static host")
    serve_parser.add_argument("--host", type=str, default=None, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=None, help="WebSocket session port")
    serve_parser.add_argument("--static-port", type=int, default=None, help="Static file port")
    serve_parser.add_argument(
        "--template-dir", type=Path, default=None,
        help="Directory copied into every session's run directory",
    )

    client_parser = subparsers.add_parser("client", help="Connect an interactive console client")
    client_parser.add_argument("--url", type=str, default=None, help="Session WebSocket URL")
    client_parser.add_argument(
        "--env", action="append", default=[], metavar="KEY=VALUE",
        help="Interpreter environment variable (repeatable)",
    )
    client_parser.add_argument(
        "--plot-dir", type=Path, default=None,
        help="Where received plots are written",
    )

    return parser.parse_args(argv)


def _parse_env(pairs: list[str]) -> dict[str, str]:
    env = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise SystemExit(f"Invalid --env value (expected KEY=VALUE): {pair}")
        env[key] = value
    return env


async def _run_client(settings, args) -> None:
    """Connect to the session server and run the console REPL."""
    from dataplayground.client.console import ConsoleClient, ConsoleRenderer, session_url

    url = session_url(args.url or settings.client.url, _parse_env(args.env))
    renderer = ConsoleRenderer(plot_dir=args.plot_dir or settings.client.plot_dir)
    client = ConsoleClient(url, renderer=renderer, history_size=settings.client.history_size)
    print(f"Connecting to {url} (:df NAME, :frames, :history, :quit)")
    await client.run()


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the dataplayground CLI."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])
        return

    from dataplayground.config.settings import load_settings
    from dataplayground.utils.logging import setup_logging

    settings = load_settings(args.config)

    if args.verbose:
        settings.logging.level = "DEBUG"

    setup_logging(settings.logging)

    if args.command == "serve":
        from dataplayground.server.app import serve

        srv = settings.server
        if args.host:
            srv.host = args.host
        if args.port:
            srv.port = args.port
        if args.static_port:
            srv.static_port = args.static_port
        if args.template_dir:
            settings.interpreter.template_dir = str(args.template_dir)
        logger.info("Starting servers")
        asyncio.run(serve(srv, settings.interpreter))

    elif args.command == "client":
        logger.info("Starting console client")
        try:
            asyncio.run(_run_client(settings, args))
        except KeyboardInterrupt:
            pass


if __name__ == "__main__":
    main()
