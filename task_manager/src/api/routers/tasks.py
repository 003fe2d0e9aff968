from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Request, Response, status

from ..repositories import TaskStore
from ..schemas import Envelope, TaskCreate, TaskOut, TaskStatsOut, TaskUpdate
from ..services import TaskService

router = APIRouter(
    prefix="/api/tasks",
    tags=["tasks"],
)

_ERROR_RESPONSES = {
    400: {"description": "Malformed task id or invalid field"},
    404: {"description": "Task not found"},
}


def get_store(request: Request) -> TaskStore:
    """
    Dependency returning the store handle opened for this application.
    """
    return request.app.state.store


def get_task_service(store: TaskStore = Depends(get_store)) -> TaskService:
    return TaskService(store)


# PUBLIC_INTERFACE
@router.get(
    "/stats",
    response_model=Envelope[List[TaskStatsOut]],
    response_model_exclude_none=True,
    summary="Task statistics",
    description="Number of tasks in each status. Every status is listed, zero counts included.",
)
def get_task_stats(service: TaskService = Depends(get_task_service)) -> Envelope[List[TaskStatsOut]]:
    return Envelope[List[TaskStatsOut]](success=True, data=service.get_stats())


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=Envelope[List[TaskOut]],
    response_model_exclude_none=True,
    summary="List Tasks",
    description="Return every task, newest first.",
)
def list_tasks(service: TaskService = Depends(get_task_service)) -> Envelope[List[TaskOut]]:
    return Envelope[List[TaskOut]](success=True, data=service.list_tasks())


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=Envelope[TaskOut],
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    summary="Create Task",
    description="Create a new open task. The title is trimmed and must be 1..200 characters.",
    responses={400: _ERROR_RESPONSES[400]},
)
def create_task(payload: TaskCreate, service: TaskService = Depends(get_task_service)) -> Envelope[TaskOut]:
    return Envelope[TaskOut](success=True, data=service.create_task(payload))


# PUBLIC_INTERFACE
@router.get(
    "/{task_id}",
    response_model=Envelope[TaskOut],
    response_model_exclude_none=True,
    summary="Get Task",
    description="Get a single task by ID.",
    responses=_ERROR_RESPONSES,
)
def get_task(task_id: str, service: TaskService = Depends(get_task_service)) -> Envelope[TaskOut]:
    return Envelope[TaskOut](success=True, data=service.get_task(task_id))


# PUBLIC_INTERFACE
@router.patch(
    "/{task_id}",
    response_model=Envelope[TaskOut],
    response_model_exclude_none=True,
    summary="Update Task",
    description="Change the title and/or status of a task. At least one field is required.",
    responses=_ERROR_RESPONSES,
)
def update_task(
    task_id: str, payload: TaskUpdate, service: TaskService = Depends(get_task_service)
) -> Envelope[TaskOut]:
    return Envelope[TaskOut](success=True, data=service.update_task(task_id, payload))


# PUBLIC_INTERFACE
@router.delete(
    "/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Delete Task",
    description="Delete a task by ID. Returns 204 with no body.",
    responses=_ERROR_RESPONSES,
)
def delete_task(task_id: str, service: TaskService = Depends(get_task_service)) -> Response:
    service.delete_task(task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
