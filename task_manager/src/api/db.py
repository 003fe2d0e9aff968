from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from threading import RLock
from typing import Dict, Generator, List, Optional

from .errors import InternalError
from .models import TITLE_MAX_LENGTH, TaskEntity, TaskPatch, TaskStatus, new_task_id, next_updated_at, utc_now
from .repositories import TaskStore, require_valid_id, validate_status, validate_title

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Cols:
    table: str = "tasks"
    id: str = "id"
    title: str = "title"
    status: str = "status"
    created_at: str = "created_at"
    updated_at: str = "updated_at"


_COLS = _Cols()


def _format_dt(value: datetime) -> str:
    # Fixed width so that text ordering matches time ordering
    return value.isoformat(timespec="microseconds")


class SQLiteTaskStore(TaskStore):
    """
    SQLite-backed task store.

    Holds one connection for the lifetime of the store; operations are
    serialized by a lock and each runs in its own transaction.
    """

    def __init__(self, db_path: str) -> None:
        if db_path != ":memory:":
            os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._lock = RLock()
        self._connection: Optional[sqlite3.Connection] = sqlite3.connect(db_path, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._init_db()

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        with self._lock:
            conn = self._connection
            if conn is None:
                raise InternalError("Task store is closed")
            try:
                yield conn
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                logger.exception("SQLite operation failed")
                raise InternalError(str(e)) from e
            except Exception:
                conn.rollback()
                raise

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_COLS.table} (
                    {_COLS.id} TEXT PRIMARY KEY,
                    {_COLS.title} TEXT NOT NULL
                        CHECK (length(trim({_COLS.title})) BETWEEN 1 AND {TITLE_MAX_LENGTH}),
                    {_COLS.status} TEXT NOT NULL DEFAULT 'open'
                        CHECK ({_COLS.status} IN ('open', 'done')),
                    {_COLS.created_at} TEXT NOT NULL,
                    {_COLS.updated_at} TEXT NOT NULL
                )
                """
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_created_at ON {_COLS.table}({_COLS.created_at} DESC)"
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_status ON {_COLS.table}({_COLS.status})"
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_status_created_at "
                f"ON {_COLS.table}({_COLS.status}, {_COLS.created_at} DESC)"
            )

    def _row_to_entity(self, row: sqlite3.Row) -> TaskEntity:
        return {
            "id": str(row[_COLS.id]),
            "title": str(row[_COLS.title]),
            "status": TaskStatus(row[_COLS.status]),
            "created_at": datetime.fromisoformat(row[_COLS.created_at]),
            "updated_at": datetime.fromisoformat(row[_COLS.updated_at]),
        }

    def _select(self, conn: sqlite3.Connection, task_id: str) -> Optional[sqlite3.Row]:
        return conn.execute(f"SELECT * FROM {_COLS.table} WHERE {_COLS.id} = ?", (task_id,)).fetchone()

    def find_all(self) -> List[TaskEntity]:
        with self._conn() as conn:
            rows = conn.execute(
                f"SELECT * FROM {_COLS.table} ORDER BY {_COLS.created_at} DESC, rowid DESC"
            ).fetchall()
            return [self._row_to_entity(r) for r in rows]

    def create(self, title: str) -> TaskEntity:
        clean = validate_title(title)
        now = _format_dt(utc_now())
        new_id = new_task_id()
        with self._conn() as conn:
            conn.execute(
                f"""
                INSERT INTO {_COLS.table} ({_COLS.id}, {_COLS.title}, {_COLS.status},
                    {_COLS.created_at}, {_COLS.updated_at})
                VALUES (?, ?, ?, ?, ?)
                """,
                (new_id, clean, TaskStatus.OPEN.value, now, now),
            )
            row = self._select(conn, new_id)
            assert row is not None
            return self._row_to_entity(row)

    def find_by_id(self, task_id: str) -> Optional[TaskEntity]:
        key = require_valid_id(task_id)
        with self._conn() as conn:
            row = self._select(conn, key)
            return self._row_to_entity(row) if row else None

    def update_by_id(self, task_id: str, patch: TaskPatch) -> Optional[TaskEntity]:
        key = require_valid_id(task_id)
        title = validate_title(patch.title) if patch.title is not None else None
        status = validate_status(patch.status) if patch.status is not None else None
        with self._conn() as conn:
            row = self._select(conn, key)
            if not row:
                return None
            current = self._row_to_entity(row)

            updated_at = next_updated_at(current["updated_at"])
            conn.execute(
                f"""
                UPDATE {_COLS.table}
                SET {_COLS.title} = ?, {_COLS.status} = ?, {_COLS.updated_at} = ?
                WHERE {_COLS.id} = ?
                """,
                (
                    title if title is not None else current["title"],
                    (status or current["status"]).value,
                    _format_dt(updated_at),
                    key,
                ),
            )
            row2 = self._select(conn, key)
            assert row2 is not None
            return self._row_to_entity(row2)

    def delete_by_id(self, task_id: str) -> Optional[TaskEntity]:
        key = require_valid_id(task_id)
        with self._conn() as conn:
            row = self._select(conn, key)
            if not row:
                return None
            conn.execute(f"DELETE FROM {_COLS.table} WHERE {_COLS.id} = ?", (key,))
            return self._row_to_entity(row)

    def count(self) -> int:
        with self._conn() as conn:
            count_row = conn.execute(f"SELECT COUNT(*) as cnt FROM {_COLS.table}").fetchone()
            return int(count_row["cnt"]) if count_row else 0

    def count_by_status(self) -> Dict[TaskStatus, int]:
        counts = {s: 0 for s in TaskStatus}
        with self._conn() as conn:
            rows = conn.execute(
                f"SELECT {_COLS.status} AS status, COUNT(*) AS cnt FROM {_COLS.table} GROUP BY {_COLS.status}"
            ).fetchall()
        for r in rows:
            counts[TaskStatus(r["status"])] = int(r["cnt"])
        return counts

    def ping(self) -> bool:
        try:
            with self._conn() as conn:
                conn.execute("SELECT 1").fetchone()
            return True
        except InternalError:
            return False

    def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
                logger.info("SQLite task store closed")
