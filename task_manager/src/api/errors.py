from __future__ import annotations

from typing import Any, Optional


class TaskError(Exception):
    """Base class for every domain error raised by the task store and service."""

    message: str = "Task operation failed"

    def __init__(self, message: Optional[str] = None, details: Any = None) -> None:
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)


# PUBLIC_INTERFACE
class ValidationError(TaskError):
    """A field value is missing, malformed or out of range."""

    message = "Validation failed"


class EmptyTitleError(ValidationError):
    """Title is empty once leading/trailing whitespace is removed."""

    message = "Title cannot be empty"


class InvalidStatusError(ValidationError):
    """Status is not one of the TaskStatus values."""

    message = "Status must be either open or done"


# PUBLIC_INTERFACE
class InvalidIdError(TaskError):
    """Identifier is not a well-formed task id (distinct from not found)."""

    message = "Invalid task ID format"


# PUBLIC_INTERFACE
class NotFoundError(TaskError):
    """Identifier is well formed but no live record matches it."""

    message = "Task not found"


class InternalError(TaskError):
    """Unexpected failure inside the persistence layer."""

    message = "Internal server error"
