from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

TEMP_ID_PREFIX = "temp-"


class TaskStatus(str, Enum):
    OPEN = "open"
    DONE = "done"


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; a trailing 'Z' means UTC."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class Task:
    """
    Client-side view of a task as returned by the API.
    Provisional tasks created optimistically carry a 'temp-' id until reconciled.
    """

    id: str
    title: str
    status: TaskStatus
    created_at: datetime
    updated_at: datetime

    @property
    def is_provisional(self) -> bool:
        return self.id.startswith(TEMP_ID_PREFIX)

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "Task":
        return cls(
            id=str(data["id"]),
            title=str(data["title"]),
            status=TaskStatus(data["status"]),
            created_at=parse_timestamp(data["createdAt"]),
            updated_at=parse_timestamp(data["updatedAt"]),
        )


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class TaskStats:
    status: TaskStatus
    count: int

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "TaskStats":
        return cls(status=TaskStatus(data["status"]), count=int(data["count"]))
