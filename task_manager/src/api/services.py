from __future__ import annotations

import logging
from typing import List

from .errors import EmptyTitleError, InvalidStatusError, NotFoundError, ValidationError
from .models import TITLE_MAX_LENGTH, TaskPatch, TaskStatus
from .repositories import TaskStore
from .schemas import TaskCreate, TaskOut, TaskStatsOut, TaskUpdate

logger = logging.getLogger(__name__)


def _clean_title(title: str) -> str:
    s = title.strip()
    if not s:
        raise EmptyTitleError(details={"field": "title"})
    if len(s) > TITLE_MAX_LENGTH:
        raise ValidationError(
            f"Title cannot exceed {TITLE_MAX_LENGTH} characters",
            details={"field": "title", "max_length": TITLE_MAX_LENGTH},
        )
    return s


def _parse_status(status: str) -> TaskStatus:
    try:
        return TaskStatus(status)
    except ValueError:
        raise InvalidStatusError(
            details={"field": "status", "allowed": [s.value for s in TaskStatus]}
        ) from None


# PUBLIC_INTERFACE
class TaskService:
    """
    Business rules for tasks on top of a TaskStore.

    - Titles are trimmed; empty results raise EmptyTitleError, overlong ones ValidationError.
    - Status must be a TaskStatus value (InvalidStatusError otherwise).
    - A missing record raises NotFoundError; InvalidIdError from the store propagates as is.
    - Updates validate every provided field before anything is written.
    """

    def __init__(self, store: TaskStore) -> None:
        self._store = store

    def list_tasks(self) -> List[TaskOut]:
        return [TaskOut.from_entity(t) for t in self._store.find_all()]

    def create_task(self, data: TaskCreate) -> TaskOut:
        title = _clean_title(data.title)
        task = self._store.create(title)
        logger.info("Created task %s", task["id"])
        return TaskOut.from_entity(task)

    def get_task(self, task_id: str) -> TaskOut:
        task = self._store.find_by_id(task_id)
        if task is None:
            raise NotFoundError(details={"id": task_id})
        return TaskOut.from_entity(task)

    def update_task(self, task_id: str, data: TaskUpdate) -> TaskOut:
        patch = TaskPatch(
            title=_clean_title(data.title) if data.title is not None else None,
            status=_parse_status(data.status) if data.status is not None else None,
        )
        if patch.is_empty():
            raise ValidationError("At least one of title or status must be provided")

        task = self._store.update_by_id(task_id, patch)
        if task is None:
            raise NotFoundError(details={"id": task_id})
        logger.info("Updated task %s", task_id)
        return TaskOut.from_entity(task)

    def delete_task(self, task_id: str) -> None:
        deleted = self._store.delete_by_id(task_id)
        if deleted is None:
            raise NotFoundError(details={"id": task_id})
        logger.info("Deleted task %s", task_id)

    def get_stats(self) -> List[TaskStatsOut]:
        counts = self._store.count_by_status()
        return [TaskStatsOut(status=s, count=counts.get(s, 0)) for s in TaskStatus]

    def count(self) -> int:
        return self._store.count()
