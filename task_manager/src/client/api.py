from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional, TypeVar, Union
from urllib.parse import quote

import httpx

from .models import Task, TaskStats, TaskStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BASE_URL = "http://localhost:4000/api"


# PUBLIC_INTERFACE
class ApiError(Exception):
    """
    A request did not succeed.

    status_code is None when no HTTP response was received (connection error,
    timeout). message and details come from the response envelope when present.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details


# PUBLIC_INTERFACE
class TaskApiClient:
    """
    Thin async binding to the Task API: one HTTP call per method, envelope
    unwrapped into Task/TaskStats values, failures raised as ApiError.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.http = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Content-Type": "application/json"},
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def __aenter__(self) -> "TaskApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.http.aclose()

    async def _request(self, method: str, path: str, json: Optional[dict] = None) -> Any:
        logger.debug("API Request: %s %s", method, path)
        try:
            response = await self.http.request(method, path, json=json)
        except httpx.HTTPError as e:
            logger.error("API Request Error: %s %s: %s", method, path, e)
            raise ApiError(str(e) or e.__class__.__name__) from e

        logger.debug("API Response: %s %s", response.status_code, path)
        if response.status_code == 204:
            return None

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_error or not isinstance(body, dict) or not body.get("success"):
            envelope = body if isinstance(body, dict) else {}
            message = envelope.get("error") or f"Request failed with status {response.status_code}"
            logger.warning("API Response Error: %s %s -> %s %s", method, path, response.status_code, message)
            raise ApiError(message, response.status_code, envelope.get("details"))
        return body.get("data")

    @staticmethod
    def _decode(parse: Callable[[Any], T], data: Any) -> T:
        """Turn a 2xx payload into typed values; a malformed payload is an ApiError."""
        try:
            return parse(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.error("API Response Error: malformed payload: %r", e)
            raise ApiError(f"Malformed response: {e!r}") from e

    @staticmethod
    def _task_path(task_id: str) -> str:
        return f"/tasks/{quote(task_id, safe='')}"

    async def get_tasks(self) -> List[Task]:
        data = await self._request("GET", "/tasks")
        return self._decode(lambda d: [Task.from_wire(t) for t in d or []], data)

    async def get_task(self, task_id: str) -> Task:
        return self._decode(Task.from_wire, await self._request("GET", self._task_path(task_id)))

    async def create_task(self, title: str) -> Task:
        return self._decode(Task.from_wire, await self._request("POST", "/tasks", json={"title": title}))

    async def update_task(
        self,
        task_id: str,
        *,
        title: Optional[str] = None,
        status: Optional[Union[TaskStatus, str]] = None,
    ) -> Task:
        payload: dict = {}
        if title is not None:
            payload["title"] = title
        if status is not None:
            payload["status"] = TaskStatus(status).value if isinstance(status, TaskStatus) else status
        return self._decode(Task.from_wire, await self._request("PATCH", self._task_path(task_id), json=payload))

    async def delete_task(self, task_id: str) -> None:
        await self._request("DELETE", self._task_path(task_id))

    async def get_stats(self) -> List[TaskStats]:
        data = await self._request("GET", "/tasks/stats")
        return self._decode(lambda d: [TaskStats.from_wire(s) for s in d or []], data)
