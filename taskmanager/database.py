"""SQLite-backed persistence for users and their tasks."""
from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from passlib.context import CryptContext

from .errors import Conflict, Internal
from .models import DEFAULT_PRIORITY, Task, TaskPage, TaskQuery, User

_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
_dummy_hash: Optional[str] = None

# Maps the sortable task fields onto SQL expressions.
_SORT_COLUMNS: Dict[str, str] = {
    "created_at": "created_at",
    "updated_at": "updated_at",
    "title": "title COLLATE NOCASE",
    "priority": "CASE priority WHEN 'low' THEN 0 WHEN 'medium' THEN 1 ELSE 2 END",
    "due_date": "due_date",
    "completed": "completed",
}

_UPDATABLE_COLUMNS = ("title", "description", "priority", "due_date", "completed")
_NULLABLE_COLUMNS = {"description", "due_date"}
_SQLITE_MAX_INTEGER = 2**63 - 1


def _execute_returning(conn: sqlite3.Connection, sql: str, params: Sequence[object]) -> Optional[sqlite3.Row]:
    # Step the statement to completion before the connection commits.
    rows = conn.execute(sql, params).fetchall()
    return rows[0] if rows else None


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "tasks.sqlite3").resolve(strict=False)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def generate_id() -> str:
    return uuid.uuid4().hex


def normalize_email(email: str) -> str:
    return email.strip().lower()


def hash_password(password: str) -> str:
    if not password:
        raise ValueError("Password must not be empty")
    return _pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    """Check *password* against *hashed* using passlib's constant-time verify."""

    if not hashed:
        return False
    try:
        return _pwd_context.verify(password, hashed)
    except ValueError:
        return False


def burn_password_check(password: str) -> None:
    """Spend the same work as a real verification when no user matched."""

    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = _pwd_context.hash("dummy-password-0")
    _pwd_context.verify(password, _dummy_hash)


class Database:
    """Simple wrapper around SQLite for persisting users and tasks."""

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    title TEXT NOT NULL,
                    description TEXT,
                    priority TEXT NOT NULL DEFAULT 'medium',
                    completed INTEGER NOT NULL DEFAULT 0,
                    due_date TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_tasks_user_created ON tasks(user_id, created_at);
                CREATE INDEX IF NOT EXISTS idx_tasks_user_completed ON tasks(user_id, completed);
                """
            )

    def ping(self) -> Dict[str, object]:
        """Run a trivial query so health checks exercise the connection."""

        with self._connect() as conn:
            conn.execute("SELECT 1").fetchone()
        return {"status": "connected", "driver": "sqlite", "path": str(self._path)}

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def create_user(self, email: str, password: str, name: str) -> User:
        """Create a new user. Emails are unique after normalisation."""

        created_at = _current_timestamp()
        user_id = generate_id()
        normalized_email = normalize_email(email)
        normalized_name = name.strip()
        password_hash = hash_password(password)

        with self._connect() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO users (id, name, email, password_hash, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        user_id,
                        normalized_name,
                        normalized_email,
                        password_hash,
                        _serialize_datetime(created_at),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise Conflict("User with this email already exists") from exc

        return User(id=user_id, name=normalized_name, email=normalized_email, created_at=created_at)

    def get_user(self, user_id: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def get_user_by_email(self, email: str) -> Optional[Tuple[User, str]]:
        """Return the user together with its password hash, for login only."""

        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?",
                (normalize_email(email),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row), str(row["password_hash"])

    def authenticate_user(self, email: str, password: str) -> Optional[User]:
        found = self.get_user_by_email(email)
        if found is None:
            burn_password_check(password)
            return None
        user, stored_hash = found
        if not verify_password(password, stored_hash):
            return None
        return user

    # ------------------------------------------------------------------
    # Task management
    # ------------------------------------------------------------------
    def create_task(
        self,
        owner_id: str,
        *,
        title: str,
        description: Optional[str] = None,
        priority: str = DEFAULT_PRIORITY,
        due_date: Optional[datetime] = None,
    ) -> Task:
        task_id = generate_id()
        created_at = _serialize_datetime(_current_timestamp())
        with self._connect() as conn:
            row = _execute_returning(
                conn,
                """
                INSERT INTO tasks (
                    id, user_id, title, description, priority, completed, due_date, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, 0, ?, ?, ?)
                RETURNING *
                """,
                (
                    task_id,
                    owner_id,
                    title,
                    description,
                    priority,
                    _serialize_datetime(due_date) if due_date else None,
                    created_at,
                    created_at,
                ),
            )
        if row is None:
            raise Internal("Failed to load task after creation")
        return self._row_to_task(row)

    def get_task_for_user(self, owner_id: str, task_id: str) -> Optional[Task]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM tasks WHERE user_id = ? AND id = ?",
                (owner_id, task_id),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    def list_tasks_for_user(self, owner_id: str, query: TaskQuery) -> TaskPage:
        clauses = ["user_id = ?"]
        values: List[object] = [owner_id]
        if query.completed is not None:
            clauses.append("completed = ?")
            values.append(int(query.completed))
        if query.priority is not None:
            clauses.append("priority = ?")
            values.append(query.priority)
        where = " AND ".join(clauses)

        column = _SORT_COLUMNS.get(query.sort_by, "created_at")
        direction = "DESC" if query.descending else "ASC"

        with self._connect() as conn:
            total = conn.execute(f"SELECT COUNT(*) FROM tasks WHERE {where}", values).fetchone()[0]
            rows = conn.execute(
                f"""
                SELECT * FROM tasks
                 WHERE {where}
                 ORDER BY {column} {direction}, rowid {direction}
                 LIMIT ? OFFSET ?
                """,
                [*values, query.limit, min(query.offset, _SQLITE_MAX_INTEGER)],
            ).fetchall()

        return TaskPage(
            tasks=[self._row_to_task(row) for row in rows],
            total=int(total),
            page=query.page,
            limit=query.limit,
        )

    def update_task(self, owner_id: str, task_id: str, **fields: object) -> Optional[Task]:
        """Apply the supplied fields only. Returns ``None`` when nothing matched."""

        updates: List[str] = []
        values: List[object] = []
        for column in _UPDATABLE_COLUMNS:
            if column not in fields:
                continue
            value = fields[column]
            if value is None and column not in _NULLABLE_COLUMNS:
                continue
            if column == "completed":
                value = int(bool(value))
            if column == "due_date" and value is not None:
                value = _serialize_datetime(value)  # type: ignore[arg-type]
            updates.append(f"{column} = ?")
            values.append(value)

        updates.append("updated_at = ?")
        values.append(_serialize_datetime(_current_timestamp()))
        values.extend([owner_id, task_id])
        query = f"UPDATE tasks SET {', '.join(updates)} WHERE user_id = ? AND id = ? RETURNING *"

        with self._connect() as conn:
            row = _execute_returning(conn, query, values)
        if row is None:
            return None
        return self._row_to_task(row)

    def toggle_task(self, owner_id: str, task_id: str) -> Optional[Task]:
        with self._connect() as conn:
            row = _execute_returning(
                conn,
                """
                UPDATE tasks
                   SET completed = 1 - completed, updated_at = ?
                 WHERE user_id = ? AND id = ?
                RETURNING *
                """,
                (_serialize_datetime(_current_timestamp()), owner_id, task_id),
            )
        if row is None:
            return None
        return self._row_to_task(row)

    def delete_task(self, owner_id: str, task_id: str) -> Optional[Task]:
        """Find and delete in one statement, returning the removed task."""

        with self._connect() as conn:
            row = _execute_returning(
                conn,
                "DELETE FROM tasks WHERE user_id = ? AND id = ? RETURNING *",
                (owner_id, task_id),
            )
        if row is None:
            return None
        return self._row_to_task(row)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=str(row["id"]),
            name=str(row["name"]),
            email=str(row["email"]),
            created_at=_parse_datetime(str(row["created_at"])),
        )

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        due_date = row["due_date"]
        return Task(
            id=str(row["id"]),
            owner_id=str(row["user_id"]),
            title=str(row["title"]),
            description=row["description"],
            priority=str(row["priority"]),
            completed=bool(row["completed"]),
            due_date=_parse_datetime(str(due_date)) if due_date else None,
            created_at=_parse_datetime(str(row["created_at"])),
            updated_at=_parse_datetime(str(row["updated_at"])),
        )


__all__ = [
    "Database",
    "burn_password_check",
    "generate_id",
    "hash_password",
    "normalize_email",
    "resolve_database_path",
    "verify_password",
]
