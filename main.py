"""Command-line interface for the task manager service."""

from __future__ import annotations
import argparse
import logging
import os
import sys
from getpass import getpass
from pathlib import Path
from typing import Sequence


def _running_in_virtualenv() -> bool:
    """Return ``True`` when the current interpreter is executing inside a venv."""

    base_prefix = getattr(sys, "base_prefix", sys.prefix)
    return sys.prefix != base_prefix


def _bootstrap_virtualenv() -> None:
    """Re-exec the script using the bundled virtualenv interpreter when available."""

    if _running_in_virtualenv():
        return

    root = Path(__file__).resolve().parent
    venv_dir = root / ".venv"
    if not venv_dir.is_dir():
        return

    candidates = (
        venv_dir / "bin" / "python",
        venv_dir / "bin" / "python3",
        venv_dir / "Scripts" / "python.exe",
        venv_dir / "Scripts" / "python",
    )

    script = str(Path(__file__).resolve())
    for candidate in candidates:
        if candidate.exists():
            os.execv(str(candidate), [str(candidate), script, *sys.argv[1:]])


if __name__ == "__main__":
    _bootstrap_virtualenv()

from taskmanager.config import Settings, load_settings, with_overrides
from taskmanager.database import Database
from taskmanager.errors import Conflict, ValidationFailed
from taskmanager.validation import validate_payload

logger = logging.getLogger("taskmanager.main")

KNOWN_COMMANDS = {"serve", "init-db", "create-user"}


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Task manager API utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")
    config_help = "Path to a YAML settings file (default: TASKMANAGER_CONFIG or config/settings.yaml)"
    parser.add_argument("--config", default=None, help=config_help)
    # --config is also accepted after the subcommand.
    config_parent = argparse.ArgumentParser(add_help=False)
    config_parent.add_argument("--config", default=argparse.SUPPRESS, help=config_help)

    subparsers.add_parser("init-db", parents=[config_parent], help="Create the database tables")

    serve_parser = subparsers.add_parser("serve", parents=[config_parent], help="Start the HTTP API")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: settings host)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port to listen on (default: 3000)")
    serve_parser.add_argument(
        "--memory",
        action="store_true",
        help="Keep users and tasks in memory instead of SQLite",
    )

    user_parser = subparsers.add_parser("create-user", parents=[config_parent], help="Register a user account")
    user_parser.add_argument("name", help="Display name for the user")
    user_parser.add_argument("email", help="Unique email address for login")

    args_list = list(argv) if argv is not None else sys.argv[1:]

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first == "--config" and len(args_list) >= 2:
            rest = args_list[2:]
            if not rest or rest[0] not in KNOWN_COMMANDS:
                args_list = [*args_list[:2], "serve", *rest]
        elif first not in KNOWN_COMMANDS:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _initialise_database(settings: Settings) -> Database:
    database = Database(settings.database_path)
    database.initialize()
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(settings: Settings) -> None:
    from taskmanager.api import create_app
    import uvicorn

    logger.info("Starting task manager API on http://%s:%s (%s store)", settings.host, settings.port, settings.store)
    app = create_app(settings=settings)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level="info")


def _prompt_for_password() -> str | None:
    for _ in range(3):
        password = getpass("Password (min 6 characters, one digit): ")
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.", file=sys.stderr)
            continue
        return password
    return None


def _create_user(settings: Settings, name: str, email: str) -> int:
    password = _prompt_for_password()
    if password is None:
        print("Failed to set password after three attempts.", file=sys.stderr)
        return 1

    try:
        payload = validate_payload("signup", {"name": name, "email": email, "password": password})
    except ValidationFailed as exc:
        for field, message in exc.violations:
            print(f"{field}: {message}", file=sys.stderr)
        return 1

    database = _initialise_database(settings)
    try:
        user = database.create_user(payload["email"], payload["password"], payload["name"])
    except Conflict as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1

    print(f"Created user {user.id}: {user.name} <{user.email}>")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    settings = load_settings(Path(args.config).expanduser() if args.config else None)

    if args.command == "serve":
        overrides = {}
        if args.host:
            overrides["host"] = args.host
        if args.port:
            overrides["port"] = args.port
        if args.memory:
            overrides["store"] = "memory"
        _serve(with_overrides(settings, **overrides))
    elif args.command == "init-db":
        _initialise_database(settings)
        print("Database initialisation complete.")
    elif args.command == "create-user":
        return _create_user(settings, args.name, args.email)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
