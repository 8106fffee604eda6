"""Domain models for user accounts and their tasks."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional

PRIORITIES = ("low", "medium", "high")
DEFAULT_PRIORITY = "medium"


@dataclass(frozen=True)
class User:
    """Represents a user account. The password hash never leaves the store."""

    id: str
    name: str
    email: str
    created_at: datetime

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class Task:
    """A task owned by exactly one user."""

    id: str
    owner_id: str
    title: str
    description: Optional[str]
    priority: str
    completed: bool
    due_date: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    @property
    def status(self) -> str:
        return task_status(self)

    def to_dict(self, *, now: Optional[datetime] = None) -> Dict[str, object]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "completed": self.completed,
            "dueDate": self.due_date.isoformat() if self.due_date else None,
            "ownerId": self.owner_id,
            "status": task_status(self, now=now),
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


def task_status(task: Task, *, now: Optional[datetime] = None) -> str:
    """Return ``completed``, ``overdue`` or ``pending`` for *task*."""

    if task.completed:
        return "completed"
    if task.due_date is not None:
        current = now or datetime.now(timezone.utc)
        if current > task.due_date:
            return "overdue"
    return "pending"


@dataclass(frozen=True)
class TaskQuery:
    """Filters, ordering and paging for a task listing."""

    completed: Optional[bool] = None
    priority: Optional[str] = None
    sort_by: str = "created_at"
    descending: bool = True
    page: int = 1
    limit: int = 10

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass(frozen=True)
class TaskPage:
    """One page of tasks plus the arithmetic needed for pagination links."""

    tasks: list[Task]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.limit) if self.limit else 0

    @property
    def has_next(self) -> bool:
        return self.page * self.limit < self.total

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    def pagination(self) -> Dict[str, object]:
        return {
            "currentPage": self.page,
            "totalPages": self.total_pages,
            "totalTasks": self.total,
            "limit": self.limit,
            "hasNextPage": self.has_next,
            "hasPrevPage": self.has_prev,
        }


__all__ = [
    "DEFAULT_PRIORITY",
    "PRIORITIES",
    "Task",
    "TaskPage",
    "TaskQuery",
    "User",
    "task_status",
]
