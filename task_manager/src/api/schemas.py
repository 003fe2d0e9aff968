from __future__ import annotations

from datetime import datetime
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from .models import TaskEntity, TaskStatus

T = TypeVar("T")


# PUBLIC_INTERFACE
class TaskCreate(BaseModel):
    """
    Body of POST /api/tasks.

    Only the JSON shape is checked here; trimming and the 1..200 length rule
    are business rules applied by TaskService so that they yield domain errors.
    """

    model_config = ConfigDict(json_schema_extra={"example": {"title": "Buy milk"}})

    title: str = Field(..., description="Task title (1..200 characters after trimming)")


# PUBLIC_INTERFACE
class TaskUpdate(BaseModel):
    """
    Body of PATCH /api/tasks/{id}.
    Both fields are optional; at least one must be provided.
    """

    model_config = ConfigDict(
        json_schema_extra={"example": {"title": "Buy oat milk", "status": "done"}}
    )

    title: Optional[str] = Field(default=None, description="New title (1..200 characters after trimming)")
    status: Optional[str] = Field(default=None, description="New status: 'open' or 'done'")


# PUBLIC_INTERFACE
class TaskOut(BaseModel):
    """
    Task representation returned by the API.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "id": "66f1c2a9e4b0a1b2c3d4e5f6",
                "title": "Buy milk",
                "status": "open",
                "createdAt": "2025-01-25T10:15:30.123456Z",
                "updatedAt": "2025-01-25T10:15:30.123456Z",
            }
        },
    )

    id: str = Field(..., description="24-character hex identifier")
    title: str = Field(..., description="Task title")
    status: TaskStatus = Field(..., description="Task status")
    created_at: datetime = Field(..., alias="createdAt", description="Creation timestamp")
    updated_at: datetime = Field(..., alias="updatedAt", description="Last update timestamp")

    @classmethod
    def from_entity(cls, entity: TaskEntity) -> "TaskOut":
        return cls(
            id=entity["id"],
            title=entity["title"],
            status=entity["status"],
            created_at=entity["created_at"],
            updated_at=entity["updated_at"],
        )


# PUBLIC_INTERFACE
class TaskStatsOut(BaseModel):
    """Number of tasks currently in one status."""

    status: TaskStatus
    count: int = Field(..., ge=0)


# PUBLIC_INTERFACE
class Envelope(BaseModel, Generic[T]):
    """
    Uniform response wrapper used by every endpoint.
    Absent members are omitted from the JSON body.
    """

    success: bool = Field(..., description="True when the request succeeded")
    data: Optional[T] = Field(default=None, description="Payload on success")
    error: Optional[str] = Field(default=None, description="Human readable error message")
    details: Optional[Any] = Field(default=None, description="Additional error information")
