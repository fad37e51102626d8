"""
Client entry point.

Loads configuration, configures logging, and runs one session command
against the configured server.
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import json
import logging
import sys

import structlog

from .client import TaskManagerClient
from .config import ClientConfig, load_config
from .errors import ApiError, TokenExpired


def configure_logging(level: str = "info", fmt: str = "json") -> None:
    """Configure structlog with the specified level and format."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if fmt == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


async def _login(client: TaskManagerClient, args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass("Password: ")
    me = await client.tokens.login(args.email, password)
    print(f"Logged in as {me.user.full_name} <{me.user.email}>")
    return 0


async def _whoami(client: TaskManagerClient, args: argparse.Namespace) -> int:
    if not await client.tokens.initialize_from_storage():
        print("Not logged in", file=sys.stderr)
        return 1
    state = client.session.state
    print(json.dumps(
        {
            "user": state.user.model_dump(mode="json") if state.user else None,
            "roles": [r.model_dump(mode="json") for r in state.roles],
        },
        indent=2,
    ))
    return 0


async def _token(client: TaskManagerClient, args: argparse.Namespace) -> int:
    try:
        token = await client.tokens.require_fresh_token()
    except TokenExpired:
        if not await client.tokens.initialize_from_storage():
            print("Not logged in", file=sys.stderr)
            return 1
        token = await client.tokens.require_fresh_token()
    print(token)
    return 0


async def _logout(client: TaskManagerClient, args: argparse.Namespace) -> int:
    await client.tokens.logout()
    print("Logged out")
    return 0


COMMANDS = {
    "login": _login,
    "whoami": _whoami,
    "token": _token,
    "logout": _logout,
}


async def run_command(config: ClientConfig, args: argparse.Namespace) -> int:
    async with TaskManagerClient(config) as client:
        try:
            return await COMMANDS[args.command](client, args)
        except ApiError as exc:
            print(f"Error: {exc.message}", file=sys.stderr)
            return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Task Manager session client")
    parser.add_argument(
        "-c", "--config",
        default="tm-client.yaml",
        help="Path to configuration file (default: tm-client.yaml)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Log in and store the credential pair")
    login.add_argument("email")
    login.add_argument("--password", help="Password (prompted if omitted)")

    sub.add_parser("whoami", help="Restore the stored session and print the identity")
    sub.add_parser("token", help="Print a non-expired access token, refreshing if needed")
    sub.add_parser("logout", help="Forget the stored credential pair")
    return parser


def run() -> None:
    """CLI entry point for the client."""
    args = build_parser().parse_args()

    try:
        config = load_config(args.config)
    except FileNotFoundError:
        config = ClientConfig()
    except Exception as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(1)

    configure_logging(config.logging.level, config.logging.format)
    log = structlog.get_logger()
    log.debug("client.config_loaded", config_path=args.config, url=config.api.url)

    try:
        sys.exit(asyncio.run(run_command(config, args)))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    run()
