"""Portalbot process entry-point.

Usage:
    python -m portalbot run [--resume]
    python -m portalbot stop | disconnect | speed | status | list
    python -m portalbot add USERNAME [--password PASSWORD]
    python -m portalbot remove USERNAME
    python -m portalbot move USERNAME INDEX

``run`` keeps the login service in the foreground.  Every other command is a
one-shot against the shared state store: ``stop`` issued from a second shell
flips the persisted running flag, which the foreground service observes
before its next login attempt.

This module calls ``configure_logging()`` first so that every later import
has a working logger, then hands off to :mod:`portalbot.orchestrator`.
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import sys

from pydantic import ValidationError

from portalbot.core import configure_logging
from portalbot.core.exceptions import (
    CredentialNotFoundError,
    DuplicateCredentialError,
    PortalbotError,
)
from portalbot.core.models import Command, Credential, SpeedUpdate, StatusUpdate
from portalbot.core.settings import Settings

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="portalbot",
        description="Keep a captive-portal session alive by rotating stored credentials.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        metavar="LEVEL",
        help="Override LOG_LEVEL env var (DEBUG|INFO|WARNING|ERROR).",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        metavar="FORMAT",
        help="Override LOG_FORMAT env var (text|json).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Start the login service and keep it in the foreground.")
    run.add_argument(
        "--resume",
        action="store_true",
        help="Only continue a service that was running when the last process exited.",
    )
    sub.add_parser("stop", help="Stop the login service.")
    sub.add_parser("disconnect", help="Log out the active credential, then stop.")
    sub.add_parser("speed", help="Measure download speed.")
    sub.add_parser("status", help="Show the persisted service status.")
    sub.add_parser("list", help="List stored credentials in rotation order.")

    add = sub.add_parser("add", help="Append a credential to the rotation.")
    add.add_argument("username")
    add.add_argument(
        "--password",
        default=None,
        help="Password (prompted for when omitted).",
    )

    remove = sub.add_parser("remove", help="Remove a credential.")
    remove.add_argument("username")

    move = sub.add_parser("move", help="Move a credential to a new rotation position.")
    move.add_argument("username")
    move.add_argument("index", type=int, help="Zero-based target position.")

    return parser


def _print_event(event: StatusUpdate | SpeedUpdate) -> None:
    if isinstance(event, StatusUpdate):
        state = "running" if event.running else "stopped"
        print(f"[{state}] {event.status}")  # noqa: T201
    else:
        print(f"Speed: {event.speed}")  # noqa: T201


async def _main(args: argparse.Namespace, settings: Settings) -> int:
    # Lazy import keeps --help fast.
    from portalbot.orchestrator.runner import open_service, run_service  # noqa: PLC0415

    async with open_service(settings) as service:
        service.channel.subscribe(_print_event)
        store = service.store

        if args.command == "run":
            await run_service(service, resume=args.resume)
        elif args.command == "stop":
            await service.dispatch(Command.STOP)
        elif args.command == "disconnect":
            await service.dispatch(Command.DISCONNECT)
        elif args.command == "speed":
            await service.dispatch(Command.CHECK_SPEED)
        elif args.command == "status":
            state = await store.get_session_state()
            credentials = await store.get_credentials()
            print(f"Status:      {state.status}")  # noqa: T201
            print(f"Running:     {state.running}")  # noqa: T201
            print(f"Connected:   {state.connected}")  # noqa: T201
            print(f"Credentials: {len(credentials)}")  # noqa: T201
        elif args.command == "list":
            credentials = await store.get_credentials()
            if not credentials:
                print("No credentials stored.")  # noqa: T201
            for position, credential in enumerate(credentials):
                print(f"{position:>3}  {credential.username}")  # noqa: T201
        elif args.command == "add":
            password = args.password or getpass.getpass(f"Password for {args.username}: ")
            try:
                credential = Credential(username=args.username, password=password)
            except ValidationError:
                print("Username and password cannot be empty.", file=sys.stderr)  # noqa: T201
                return 1
            try:
                await store.add_credential(credential)
            except DuplicateCredentialError as exc:
                print(exc, file=sys.stderr)  # noqa: T201
                return 1
        elif args.command == "remove":
            await store.remove_credential(args.username)
        elif args.command == "move":
            try:
                await store.move_credential(args.username, args.index)
            except CredentialNotFoundError as exc:
                print(exc, file=sys.stderr)  # noqa: T201
                return 1
    return 0


def main() -> None:
    """CLI entry-point registered in ``pyproject.toml``."""
    args = _build_parser().parse_args()

    try:
        configure_logging(level=args.log_level, fmt=args.log_format)
    except ValueError as exc:
        print(f"portalbot: configuration error: {exc}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    try:
        settings = Settings()
    except ValidationError as exc:
        print(f"portalbot: configuration error: {exc}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    # Settings may carry a level from .env; the CLI flag still wins.
    if args.log_level is None and args.log_format is None:
        configure_logging(level=settings.log_level, fmt=settings.log_format, force=True)

    try:
        sys.exit(asyncio.run(_main(args, settings)))
    except PortalbotError as exc:
        logger.critical("%s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted — exiting; state kept for --resume.")
        sys.exit(0)


if __name__ == "__main__":
    main()
