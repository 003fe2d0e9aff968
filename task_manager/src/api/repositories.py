from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from threading import RLock
from typing import Dict, List, Optional

from .errors import InvalidIdError, ValidationError
from .models import (
    TITLE_MAX_LENGTH,
    TITLE_MIN_LENGTH,
    TaskEntity,
    TaskPatch,
    TaskStatus,
    is_valid_task_id,
    new_task_id,
    next_updated_at,
    utc_now,
)
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)


def require_valid_id(task_id: str) -> str:
    """Return the normalized id or raise InvalidIdError when it is malformed."""
    if not is_valid_task_id(task_id):
        raise InvalidIdError(details={"id": task_id})
    return task_id.lower()


def validate_title(title: object) -> str:
    """Trim a title and enforce the 1..200 length rule at write time."""
    if not isinstance(title, str):
        raise ValidationError("Title must be a string", details={"field": "title"})
    s = title.strip()
    if len(s) < TITLE_MIN_LENGTH:
        raise ValidationError("Title cannot be empty", details={"field": "title"})
    if len(s) > TITLE_MAX_LENGTH:
        raise ValidationError(
            f"Title cannot exceed {TITLE_MAX_LENGTH} characters",
            details={"field": "title", "max_length": TITLE_MAX_LENGTH},
        )
    return s


def validate_status(status: object) -> TaskStatus:
    try:
        return TaskStatus(status)
    except ValueError:
        raise ValidationError(
            "Status must be either open or done",
            details={"field": "status", "allowed": [s.value for s in TaskStatus]},
        ) from None


# PUBLIC_INTERFACE
class TaskStore(ABC):
    """
    Abstract persistence contract for the task collection.

    Every write targets a single record and is atomic for that record.
    Malformed identifiers raise InvalidIdError; a well-formed id with no
    record yields None.
    """

    @abstractmethod
    def find_all(self) -> List[TaskEntity]:
        """Return every task, newest created_at first."""

    @abstractmethod
    def create(self, title: str) -> TaskEntity:
        """Create and return a new open task."""

    @abstractmethod
    def find_by_id(self, task_id: str) -> Optional[TaskEntity]:
        """Return a task by id, or None if not found."""

    @abstractmethod
    def update_by_id(self, task_id: str, patch: TaskPatch) -> Optional[TaskEntity]:
        """Apply the provided fields and refresh updated_at. Return the updated task or None."""

    @abstractmethod
    def delete_by_id(self, task_id: str) -> Optional[TaskEntity]:
        """Delete a task by id. Return the deleted task or None if not found."""

    @abstractmethod
    def count(self) -> int:
        """Total number of tasks."""

    @abstractmethod
    def count_by_status(self) -> Dict[TaskStatus, int]:
        """Number of tasks per status; every status is present, zero included."""

    def ping(self) -> bool:
        """Return True when the underlying storage is reachable."""
        return True

    def close(self) -> None:
        """Release the storage handle."""


class InMemoryTaskStore(TaskStore):
    """
    Thread-safe in-memory store suitable for testing and default runtime.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: Dict[str, TaskEntity] = {}

    def find_all(self) -> List[TaskEntity]:
        with self._lock:
            # newest inserted first among equal timestamps (sort is stable)
            items = list(reversed(list(self._items.values())))
            items_sorted = sorted(items, key=lambda t: t["created_at"], reverse=True)
            # Return copies to avoid external mutation
            return [t.copy() for t in items_sorted]

    def create(self, title: str) -> TaskEntity:
        clean = validate_title(title)
        now = utc_now()
        entity: TaskEntity = {
            "id": new_task_id(),
            "title": clean,
            "status": TaskStatus.OPEN,
            "created_at": now,
            "updated_at": now,
        }
        with self._lock:
            self._items[entity["id"]] = entity
        return entity.copy()

    def find_by_id(self, task_id: str) -> Optional[TaskEntity]:
        key = require_valid_id(task_id)
        with self._lock:
            item = self._items.get(key)
            return None if item is None else item.copy()

    def update_by_id(self, task_id: str, patch: TaskPatch) -> Optional[TaskEntity]:
        key = require_valid_id(task_id)
        # Validate everything before touching the record
        title = validate_title(patch.title) if patch.title is not None else None
        status = validate_status(patch.status) if patch.status is not None else None
        with self._lock:
            existing = self._items.get(key)
            if existing is None:
                return None

            updated = existing.copy()
            if title is not None:
                updated["title"] = title
            if status is not None:
                updated["status"] = status
            updated["updated_at"] = next_updated_at(existing["updated_at"])

            self._items[key] = updated
            return updated.copy()

    def delete_by_id(self, task_id: str) -> Optional[TaskEntity]:
        key = require_valid_id(task_id)
        with self._lock:
            return self._items.pop(key, None)

    def count(self) -> int:
        with self._lock:
            return len(self._items)

    def count_by_status(self) -> Dict[TaskStatus, int]:
        counts = {s: 0 for s in TaskStatus}
        with self._lock:
            for item in self._items.values():
                counts[item["status"]] += 1
        return counts

    def close(self) -> None:
        with self._lock:
            self._items.clear()


# PUBLIC_INTERFACE
def open_store(settings: Optional[Settings] = None) -> TaskStore:
    """
    Open the configured store. The caller owns the returned handle and must
    close() it at shutdown.
    - memory: InMemoryTaskStore
    - sqlite: SQLiteTaskStore at settings.sqlite_db_path
    """
    settings = settings or get_settings()
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteTaskStore

        logger.info("Opening SQLite task store at %s", settings.sqlite_db_path)
        return SQLiteTaskStore(settings.sqlite_db_path)
    logger.info("Opening in-memory task store")
    return InMemoryTaskStore()
