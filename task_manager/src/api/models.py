from __future__ import annotations

import itertools
import os
import re
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, TypedDict

TITLE_MIN_LENGTH = 1
TITLE_MAX_LENGTH = 200

_ID_PATTERN = re.compile(r"[0-9a-fA-F]{24}")


# PUBLIC_INTERFACE
class TaskStatus(str, Enum):
    """Lifecycle status of a task. Declaration order is the reporting order for stats."""

    OPEN = "open"
    DONE = "done"


# PUBLIC_INTERFACE
class TaskEntity(TypedDict):
    """
    Storage-side representation of a Task.

    Fields:
    - id: 24-character hex identifier, server assigned, never reused
    - title: trimmed title (1..200 chars)
    - status: TaskStatus value
    - created_at: UTC creation timestamp, never mutated
    - updated_at: UTC timestamp refreshed by every successful mutation
    """

    id: str
    title: str
    status: TaskStatus
    created_at: datetime
    updated_at: datetime


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class TaskPatch:
    """
    Partial update applied by the store. Only non-None fields are written;
    no other field of a task is reachable through an update.
    """

    title: Optional[str] = None
    status: Optional[TaskStatus] = None

    def is_empty(self) -> bool:
        return self.title is None and self.status is None


def utc_now() -> datetime:
    """Current UTC time with timezone."""
    return datetime.now(timezone.utc)


def next_updated_at(previous: datetime) -> datetime:
    """Return a timestamp strictly later than ``previous``, normally just now."""
    now = utc_now()
    if now <= previous:
        return previous + timedelta(microseconds=1)
    return now


class _IdGenerator:
    """
    ObjectId-shaped identifiers: 4-byte epoch seconds, 5 random bytes chosen
    once per process, 3-byte counter. Unique within and across processes.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._process_bytes = os.urandom(5)
        self._counter = itertools.count(int.from_bytes(os.urandom(3), "big"))

    def __call__(self) -> str:
        with self._lock:
            counter = next(self._counter) % 0x1000000
        ts = int(time.time()) & 0xFFFFFFFF
        raw = ts.to_bytes(4, "big") + self._process_bytes + counter.to_bytes(3, "big")
        return raw.hex()


# PUBLIC_INTERFACE
new_task_id = _IdGenerator()


# PUBLIC_INTERFACE
def is_valid_task_id(value: object) -> bool:
    """True when ``value`` is a 24-character hex string."""
    return isinstance(value, str) and _ID_PATTERN.fullmatch(value) is not None
