"""Store interfaces the services depend on.

Both :class:`~taskmanager.database.Database` and
:class:`~taskmanager.memory.MemoryDatabase` satisfy these protocols
structurally. Every task method takes the owner id as part of the key so
that a caller can never address another user's rows.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional, Protocol, Tuple

from .models import Task, TaskPage, TaskQuery, User


class UserStore(Protocol):
    def create_user(self, email: str, password: str, name: str) -> User:
        ...

    def get_user(self, user_id: str) -> Optional[User]:
        ...

    def get_user_by_email(self, email: str) -> Optional[Tuple[User, str]]:
        ...

    def authenticate_user(self, email: str, password: str) -> Optional[User]:
        ...

    def ping(self) -> Dict[str, object]:
        ...


class TaskStore(Protocol):
    def create_task(
        self,
        owner_id: str,
        *,
        title: str,
        description: Optional[str] = None,
        priority: str = "medium",
        due_date: Optional[datetime] = None,
    ) -> Task:
        ...

    def get_task_for_user(self, owner_id: str, task_id: str) -> Optional[Task]:
        ...

    def list_tasks_for_user(self, owner_id: str, query: TaskQuery) -> TaskPage:
        ...

    def update_task(self, owner_id: str, task_id: str, **fields: object) -> Optional[Task]:
        ...

    def toggle_task(self, owner_id: str, task_id: str) -> Optional[Task]:
        ...

    def delete_task(self, owner_id: str, task_id: str) -> Optional[Task]:
        ...


__all__ = ["TaskStore", "UserStore"]
