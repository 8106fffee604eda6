import argparse
import getpass
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from taskmanager.database import Database, resolve_database_path
from taskmanager.errors import Conflict, ValidationFailed
from taskmanager.validation import validate_payload


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a task manager user")
    parser.add_argument("name", help="Display name for the user")
    parser.add_argument("email", help="Unique email address for login")
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite database (defaults to TASKMANAGER_DB_PATH or data/tasks.sqlite3)",
    )
    return parser.parse_args()


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


def main() -> int:
    args = parse_args()
    password = prompt_for_password()

    try:
        payload = validate_payload("signup", {"name": args.name, "email": args.email, "password": password})
    except ValidationFailed as exc:
        for field, message in exc.violations:
            print(f"Error: {field}: {message}", file=sys.stderr)
        return 1

    db_env = args.db_path or os.getenv("TASKMANAGER_DB_PATH")
    database = Database(resolve_database_path(db_env))
    database.initialize()

    try:
        user = database.create_user(payload["email"], payload["password"], payload["name"])
    except Conflict as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1

    print(f"Created user {user.id}: {user.name} <{user.email}>")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
