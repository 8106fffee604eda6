"""Task operations on behalf of an authenticated user."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from .errors import NotFound
from .models import DEFAULT_PRIORITY, Task, TaskPage, TaskQuery, User
from .protocols import TaskStore

logger = logging.getLogger("taskmanager.tasks")

TASK_NOT_FOUND = "Task not found"


class TaskService:
    """Create, read, update, delete and toggle tasks owned by a user.

    The owner is always the authenticated caller and is passed to every
    store call as part of the lookup key. A task that does not exist and a
    task owned by somebody else both raise :class:`NotFound`.
    """

    def __init__(self, store: TaskStore) -> None:
        self._store = store

    def create(self, owner: User, payload: Mapping[str, Any]) -> Task:
        task = self._store.create_task(
            owner.id,
            title=payload["title"],
            description=payload.get("description"),
            priority=payload.get("priority") or DEFAULT_PRIORITY,
            due_date=payload.get("due_date"),
        )
        logger.info("User %s created task %s", owner.id, task.id)
        return task

    def list(self, owner: User, query: TaskQuery) -> TaskPage:
        return self._store.list_tasks_for_user(owner.id, query)

    def get(self, owner: User, task_id: str) -> Task:
        task = self._store.get_task_for_user(owner.id, task_id)
        if task is None:
            raise NotFound(TASK_NOT_FOUND)
        return task

    def update(self, owner: User, task_id: str, changes: Mapping[str, Any]) -> Task:
        fields = {key: value for key, value in changes.items() if key not in {"id", "owner_id"}}
        task = self._store.update_task(owner.id, task_id, **fields)
        if task is None:
            raise NotFound(TASK_NOT_FOUND)
        return task

    def delete(self, owner: User, task_id: str) -> Task:
        task = self._store.delete_task(owner.id, task_id)
        if task is None:
            raise NotFound(TASK_NOT_FOUND)
        logger.info("User %s deleted task %s", owner.id, task_id)
        return task

    def toggle(self, owner: User, task_id: str) -> Task:
        task = self._store.toggle_task(owner.id, task_id)
        if task is None:
            raise NotFound(TASK_NOT_FOUND)
        return task


__all__ = ["TASK_NOT_FOUND", "TaskService"]
