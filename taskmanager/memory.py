"""In-memory user and task store for tests and throwaway deployments."""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Tuple

from .database import (
    burn_password_check,
    generate_id,
    hash_password,
    normalize_email,
    verify_password,
)
from .errors import Conflict
from .models import DEFAULT_PRIORITY, Task, TaskPage, TaskQuery, User

_PRIORITY_RANK = {"low": 0, "medium": 1, "high": 2}

_SORT_KEYS: Dict[str, Callable[[Task], object]] = {
    "created_at": lambda task: task.created_at,
    "updated_at": lambda task: task.updated_at,
    "title": lambda task: task.title.casefold(),
    "priority": lambda task: _PRIORITY_RANK.get(task.priority, 1),
    "due_date": lambda task: (task.due_date is not None, task.due_date or datetime.min.replace(tzinfo=timezone.utc)),
    "completed": lambda task: task.completed,
}

_UPDATABLE_FIELDS = ("title", "description", "priority", "due_date", "completed")
_NULLABLE_FIELDS = {"description", "due_date"}


@dataclass
class _UserRecord:
    user: User
    password_hash: str


@dataclass
class _TaskRecord:
    task: Task
    sequence: int


class MemoryDatabase:
    """Dictionary-backed store with the same interface as :class:`Database`.

    Tasks are keyed by ``(owner_id, task_id)`` so lookups cannot succeed
    without the owner.
    """

    def __init__(self) -> None:
        self._users: Dict[str, _UserRecord] = {}
        self._emails: Dict[str, str] = {}
        self._tasks: Dict[Tuple[str, str], _TaskRecord] = {}
        self._sequence = 0
        self._lock = threading.Lock()

    def initialize(self) -> None:
        return None

    def ping(self) -> Dict[str, object]:
        with self._lock:
            users = len(self._users)
            tasks = len(self._tasks)
        return {"status": "connected", "driver": "memory", "users": users, "tasks": tasks}

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def create_user(self, email: str, password: str, name: str) -> User:
        normalized_email = normalize_email(email)
        password_hash = hash_password(password)
        user = User(
            id=generate_id(),
            name=name.strip(),
            email=normalized_email,
            created_at=self._now(),
        )
        with self._lock:
            if normalized_email in self._emails:
                raise Conflict("User with this email already exists")
            self._emails[normalized_email] = user.id
            self._users[user.id] = _UserRecord(user=user, password_hash=password_hash)
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        with self._lock:
            record = self._users.get(user_id)
        return record.user if record else None

    def get_user_by_email(self, email: str) -> Optional[Tuple[User, str]]:
        with self._lock:
            user_id = self._emails.get(normalize_email(email))
            record = self._users.get(user_id) if user_id else None
        if record is None:
            return None
        return record.user, record.password_hash

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
        now = self._now()
        task = Task(
            id=generate_id(),
            owner_id=owner_id,
            title=title,
            description=description,
            priority=priority,
            completed=False,
            due_date=due_date,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._sequence += 1
            self._tasks[(owner_id, task.id)] = _TaskRecord(task=task, sequence=self._sequence)
        return task

    def get_task_for_user(self, owner_id: str, task_id: str) -> Optional[Task]:
        with self._lock:
            record = self._tasks.get((owner_id, task_id))
        return record.task if record else None

    def list_tasks_for_user(self, owner_id: str, query: TaskQuery) -> TaskPage:
        with self._lock:
            records = [
                record
                for (owner, _), record in self._tasks.items()
                if owner == owner_id
                and (query.completed is None or record.task.completed == query.completed)
                and (query.priority is None or record.task.priority == query.priority)
            ]

        sort_key = _SORT_KEYS.get(query.sort_by, _SORT_KEYS["created_at"])
        records.sort(key=lambda record: (sort_key(record.task), record.sequence), reverse=query.descending)
        window = records[query.offset:query.offset + query.limit]
        return TaskPage(
            tasks=[record.task for record in window],
            total=len(records),
            page=query.page,
            limit=query.limit,
        )

    def update_task(self, owner_id: str, task_id: str, **fields: object) -> Optional[Task]:
        changes: Dict[str, object] = {}
        for name in _UPDATABLE_FIELDS:
            if name not in fields:
                continue
            value = fields[name]
            if value is None and name not in _NULLABLE_FIELDS:
                continue
            changes[name] = bool(value) if name == "completed" else value
        return self._replace(owner_id, task_id, lambda task: replace(task, **changes))

    def toggle_task(self, owner_id: str, task_id: str) -> Optional[Task]:
        return self._replace(owner_id, task_id, lambda task: replace(task, completed=not task.completed))

    def delete_task(self, owner_id: str, task_id: str) -> Optional[Task]:
        with self._lock:
            record = self._tasks.pop((owner_id, task_id), None)
        return record.task if record else None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _replace(self, owner_id: str, task_id: str, change: Callable[[Task], Task]) -> Optional[Task]:
        key = (owner_id, task_id)
        with self._lock:
            record = self._tasks.get(key)
            if record is None:
                return None
            updated = replace(change(record.task), updated_at=self._now())
            record.task = updated
        return updated

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)


__all__ = ["MemoryDatabase"]
