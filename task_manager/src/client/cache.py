"""
Optimistic client-side cache of the task list and statistics.

Every mutation (create, update, delete) runs through the same steps:

1. issue      apply the predicted change to the snapshot synchronously and
              remember the pre-mutation state
2. in-flight  await the API call; readers see the optimistic snapshot
3. success    adopt the server's version of the task
4. failure    revert the change and re-raise the error (no retry); the
              entry goes back to the last state the server confirmed
5. settle     schedule a background refresh of list and stats

A mutation only writes its resolution to the cache while it is the most
recently issued mutation for its task id, so a slow earlier request cannot
overwrite a later one. The cache is meant to be used from a single asyncio
event loop.
"""
from __future__ import annotations

import asyncio
import itertools
import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Set, Tuple, Union

from .api import ApiError, TaskApiClient
from .models import TEMP_ID_PREFIX, Task, TaskStats, TaskStatus

logger = logging.getLogger(__name__)

Listener = Callable[[], None]
TaskList = Tuple[Task, ...]


@dataclass
class _Mutation:
    seq: int
    kind: str
    task_id: str
    snapshot: TaskList
    previous: Optional[Task]
    index: int
    version: int = 0


# PUBLIC_INTERFACE
class TaskCache:
    """
    In-memory mirror of the server's task list, updated optimistically.

    UI code reads `tasks`/`stats`, subscribes to change notifications and
    dispatches intents through create/update/toggle/delete. Only the cache
    writes its snapshot.
    """

    def __init__(self, api: TaskApiClient) -> None:
        self._api = api
        self._tasks: Optional[TaskList] = None
        self._stats: Optional[Tuple[TaskStats, ...]] = None
        self._seq = itertools.count(1)
        self._latest: Dict[str, int] = {}
        self._in_flight: Dict[int, _Mutation] = {}
        # server answers of superseded mutations, by task id
        self._settled: Dict[str, Optional[Task]] = {}
        # bumped on every issue and every resolution
        self._version = 0
        self._refreshes: Set["asyncio.Task[None]"] = set()
        self._listeners: List[Listener] = []
        self._closed = False
        self.last_error: Optional[Exception] = None

    # -- reads -----------------------------------------------------------

    @property
    def loaded(self) -> bool:
        return self._tasks is not None

    @property
    def tasks(self) -> TaskList:
        return self._tasks or ()

    @property
    def stats(self) -> Tuple[TaskStats, ...]:
        return self._stats or ()

    @property
    def pending(self) -> Set[str]:
        """Task ids with a mutation in flight."""
        return {m.task_id for m in self._in_flight.values()}

    def get(self, task_id: str) -> Optional[Task]:
        for t in self.tasks:
            if t.id == task_id:
                return t
        return None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call `listener` after every snapshot change. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -- authoritative state ---------------------------------------------

    async def load(self) -> None:
        """Initial fetch. Errors propagate to the caller."""
        await self.refresh()

    async def refresh(self) -> bool:
        """
        Fetch list and stats from the server and replace the snapshot.

        The result is discarded (returns False) when a mutation was issued or
        resolved while the fetch was running, or one is still in flight.
        """
        version = self._version
        tasks, stats = await asyncio.gather(self._api.get_tasks(), self._api.get_stats())
        if self._closed:
            return False
        if version != self._version or self._in_flight:
            logger.debug("Discarding refresh started at version %d (now %d)", version, self._version)
            return False
        self._stats = tuple(stats)
        self._set_tasks(tuple(tasks))
        return True

    async def wait_idle(self) -> None:
        """Wait until every scheduled background refresh has finished."""
        while self._refreshes:
            await asyncio.gather(*list(self._refreshes), return_exceptions=True)

    def close(self) -> None:
        """Stop writing to the cache: later resolutions are ignored, refreshes cancelled."""
        self._closed = True
        for task in list(self._refreshes):
            task.cancel()
        self._listeners.clear()

    # -- intents ---------------------------------------------------------

    async def create(self, title: str) -> Task:
        now = datetime.now(timezone.utc)
        provisional = Task(
            id=f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}",
            title=title.strip(),
            status=TaskStatus.OPEN,
            created_at=now,
            updated_at=now,
        )
        m = self._begin("create", provisional.id, previous=None, index=0)
        self._set_tasks((provisional,) + self.tasks)
        try:
            created = await self._api.create_task(title)
        except Exception as e:
            self._rollback(m, e)
            raise
        else:
            self._resolve(m, lambda tasks: tuple(created if t.id == provisional.id else t for t in tasks), created)
            return created
        finally:
            self._settle(m)

    async def update(
        self,
        task_id: str,
        *,
        title: Optional[str] = None,
        status: Optional[Union[TaskStatus, str]] = None,
    ) -> Task:
        if title is None and status is None:
            raise ValueError("update needs a title or a status")
        if status is not None:
            # raises ValueError before anything is recorded
            status = TaskStatus(status)

        previous, index = self._find(task_id)
        m = self._begin("update", task_id, previous=previous, index=index)
        if previous is not None:
            predicted = replace(
                previous,
                title=title.strip() if title is not None else previous.title,
                status=status if status is not None else previous.status,
                updated_at=datetime.now(timezone.utc),
            )
            self._set_tasks(tuple(predicted if t.id == task_id else t for t in self.tasks))
        try:
            updated = await self._api.update_task(task_id, title=title, status=status)
        except Exception as e:
            self._rollback(m, e)
            raise
        else:
            self._resolve(m, lambda tasks: tuple(updated if t.id == task_id else t for t in tasks), updated)
            return updated
        finally:
            self._settle(m)

    async def toggle(self, task_id: str) -> Task:
        """Flip a task between open and done."""
        current = self.get(task_id)
        if current is None:
            raise LookupError(f"Task {task_id} is not in the cache")
        new_status = TaskStatus.DONE if current.status == TaskStatus.OPEN else TaskStatus.OPEN
        return await self.update(task_id, status=new_status)

    async def delete(self, task_id: str) -> None:
        previous, index = self._find(task_id)
        m = self._begin("delete", task_id, previous=previous, index=index)
        if previous is not None:
            self._set_tasks(tuple(t for t in self.tasks if t.id != task_id))
        try:
            await self._api.delete_task(task_id)
        except Exception as e:
            self._rollback(m, e)
            raise
        else:
            self._resolve(m, lambda tasks: tuple(t for t in tasks if t.id != task_id), None)
        finally:
            self._settle(m)

    # -- state machine ---------------------------------------------------

    def _find(self, task_id: str) -> Tuple[Optional[Task], int]:
        for i, t in enumerate(self.tasks):
            if t.id == task_id:
                return t, i
        return None, -1

    def _begin(self, kind: str, task_id: str, *, previous: Optional[Task], index: int) -> _Mutation:
        m = _Mutation(
            seq=next(self._seq),
            kind=kind,
            task_id=task_id,
            snapshot=self.tasks,
            previous=previous,
            index=index,
        )
        self._latest[task_id] = m.seq
        self._in_flight[m.seq] = m
        self._version += 1
        m.version = self._version
        logger.debug("Issued %s #%d for %s", kind, m.seq, task_id)
        return m

    def _is_latest(self, m: _Mutation) -> bool:
        return not self._closed and self._latest.get(m.task_id) == m.seq

    def _resolve(
        self, m: _Mutation, apply: Callable[[TaskList], TaskList], server_task: Optional[Task]
    ) -> None:
        if self._closed:
            return
        self._version += 1
        if not self._is_latest(m):
            # a later mutation owns the entry; keep the server's answer in case it fails
            logger.debug("Ignoring stale %s #%d for %s", m.kind, m.seq, m.task_id)
            self._settled[m.task_id] = server_task
            return
        self._settled.pop(m.task_id, None)
        self._set_tasks(apply(self.tasks))

    def _rollback(self, m: _Mutation, error: Exception) -> None:
        self.last_error = error
        logger.warning("%s of %s failed: %s", m.kind.capitalize(), m.task_id, getattr(error, "message", error))
        if not self._is_latest(m):
            return

        if self._version == m.version:
            # nothing else happened since this mutation was issued
            self._version += 1
            self._set_tasks(m.snapshot)
            return

        self._version += 1
        # an earlier mutation on this id that already succeeded beats the pre-issue entry
        confirmed = m.task_id in self._settled
        restore = self._settled.pop(m.task_id) if confirmed else m.previous
        tasks = list(self.tasks)
        present = any(t.id == m.task_id for t in tasks)
        if m.kind == "create":
            tasks = [t for t in tasks if t.id != m.task_id]
        elif restore is None:
            if confirmed:
                # deleted on the server
                tasks = [t for t in tasks if t.id != m.task_id]
        elif present:
            tasks = [restore if t.id == m.task_id else t for t in tasks]
        elif m.kind == "delete" or confirmed:
            tasks.insert(min(max(m.index, 0), len(tasks)), restore)
        self._set_tasks(tuple(tasks))

    def _settle(self, m: _Mutation) -> None:
        self._in_flight.pop(m.seq, None)
        if all(other.task_id != m.task_id for other in self._in_flight.values()):
            self._settled.pop(m.task_id, None)
        self._version += 1
        if self._closed:
            return
        task = asyncio.get_running_loop().create_task(self._background_refresh())
        self._refreshes.add(task)
        task.add_done_callback(self._refreshes.discard)

    async def _background_refresh(self) -> None:
        try:
            await self.refresh()
        except ApiError as e:
            self.last_error = e
            logger.warning("Background refresh failed: %s", e.message)

    def _set_tasks(self, tasks: TaskList) -> None:
        self._tasks = tasks
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Task cache listener failed")
