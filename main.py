"""Command-line interface for the event registration service."""

from __future__ import annotations
import argparse
import logging
import sys
from typing import Sequence

from eventpass.config import Settings, load_settings
from eventpass.database import Database
from eventpass.errors import ConfigurationError

logger = logging.getLogger("eventpass.main")

KNOWN_COMMANDS = {"serve", "init-db", "add-staff", "list-staff"}


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Event registration and attendance service")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=3000,
        help="Port for the HTTP API (default: 3000)",
    )
    serve_parser.add_argument(
        "--log-level",
        default="info",
        choices=["critical", "error", "warning", "info", "debug"],
        help="Log level passed to uvicorn",
    )

    subparsers.add_parser("init-db", help="Create tables and seed the staff allow-list")

    add_staff_parser = subparsers.add_parser("add-staff", help="Allow a team member to use the scanner")
    add_staff_parser.add_argument("email", help="Google account email of the team member")
    add_staff_parser.add_argument("--name", default=None, help="Display name (filled in on first login otherwise)")

    subparsers.add_parser("list-staff", help="Print the staff allow-list")

    args_list = list(argv) if argv is not None else sys.argv[1:]

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in KNOWN_COMMANDS:
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _initialise_database(settings: Settings) -> Database:
    database = Database(settings.database_path)
    database.initialize()
    seeded = database.seed_staff(settings.staff)
    logger.info("Database initialised at %s (%s new staff member(s))", settings.database_path, seeded)
    return database


def _serve(settings: Settings, *, host: str, port: int, log_level: str) -> None:
    from eventpass.api import create_app
    import uvicorn

    logger.info("Starting registration API on http://%s:%s", host, port)
    app = create_app(settings=settings)
    uvicorn.run(app, host=host, port=port, log_level=log_level)


def _add_staff(database: Database, email: str, name: str | None) -> int:
    try:
        member = database.add_staff(email, name)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    print(f"Added staff member #{member.id}: {member.email}")
    return 0


def _list_staff(database: Database) -> int:
    members = database.list_staff()
    if not members:
        print("No staff members are allow-listed.")
        return 0
    for member in members:
        print(f"#{member.id:<4} {member.email:<40} {member.name or '-'}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    try:
        settings = load_settings()
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    if args.command == "serve":
        try:
            _serve(settings, host=args.host, port=args.port, log_level=args.log_level)
        except ConfigurationError as exc:
            print(f"Configuration error: {exc}", file=sys.stderr)
            return 2
        return 0

    database = _initialise_database(settings)
    if args.command == "add-staff":
        return _add_staff(database, args.email, args.name)
    if args.command == "list-staff":
        return _list_staff(database)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
