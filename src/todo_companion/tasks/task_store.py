# src/todo_companion/tasks/task_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import threading
import time
from collections.abc import Callable, Iterator
from dataclasses import replace
from pathlib import Path

from ..errors import StorageError
from .task_models import Task, TaskChange, text_matches, validate_task

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

# Smallest step used to keep updated_at strictly increasing on coarse clocks.
_MIN_TICK = 1e-6

_ORDER_BY = "ORDER BY updated_at DESC, id ASC"


def _contains_ci(haystack: str | None, needle: str | None) -> int:
    if needle is None:
        return 0
    return 1 if text_matches(haystack, needle) else 0


class TaskStore:
    """
    SQLite task store.

    The schema is intentionally simple and migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each method opens its own SQLite connection
    - writes are serialized by a store-level lock (single writer)
    - reads are single SELECT statements, so each one sees a consistent snapshot
    """

    def __init__(
        self,
        db_path: str | Path = "tasks.sqlite3",
        *,
        timeout: float = 30.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._timeout = float(timeout)
        self._clock = clock
        self._write_lock = threading.Lock()
        self._last_ts = 0.0

        self._ensure_schema()
        self._last_ts = self._max_updated_at()
        total = self.count_tasks()
        logger.info("TaskStore ready db=%s total=%s", self._db_path, total)

    @property
    def db_path(self) -> Path:
        return self._db_path

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=self._timeout)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        conn.create_function("contains_ci", 2, _contains_ci, deterministic=True)

    @contextlib.contextmanager
    def _connect(self, op: str) -> Iterator[sqlite3.Connection]:
        """Open a short-lived connection; sqlite errors become StorageError."""
        conn: sqlite3.Connection | None = None
        try:
            conn = self._get_conn()
            yield conn
        except sqlite3.Error as exc:
            logger.exception("TaskStore %s failed db=%s", op, self._db_path)
            raise StorageError(f"{op} failed: {exc}") from exc
        finally:
            if conn is not None:
                conn.close()

    def _now(self) -> float:
        # Callers hold the write lock.
        now = float(self._clock())
        if now <= self._last_ts:
            now = self._last_ts + _MIN_TICK
        self._last_ts = now
        return now

    def _ensure_schema(self) -> None:
        with self._connect("ensure_schema") as conn:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    note TEXT NOT NULL DEFAULT '',
                    is_done INTEGER NOT NULL DEFAULT 0,
                    due_at REAL,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )

            # Migrations (safe): add missing columns, never drop or rewrite rows.
            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            add_col("title", "TEXT NOT NULL DEFAULT ''")
            add_col("note", "TEXT NOT NULL DEFAULT ''")
            add_col("is_done", "INTEGER NOT NULL DEFAULT 0")
            add_col("due_at", "REAL")
            add_col("created_at", "REAL NOT NULL DEFAULT 0")
            add_col("updated_at", "REAL NOT NULL DEFAULT 0")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_updated ON tasks(updated_at DESC, id)")
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_tasks_done_updated "
                "ON tasks(is_done, updated_at DESC, id)"
            )
            cur.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")

            conn.commit()

    def _max_updated_at(self) -> float:
        with self._connect("max_updated_at") as conn:
            (ts,) = conn.execute("SELECT MAX(updated_at) FROM tasks").fetchone()
            return float(ts or 0.0)

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=str(row["id"]),
            title=str(row["title"] or ""),
            note=str(row["note"] or ""),
            is_done=bool(row["is_done"]),
            due_at=float(row["due_at"]) if row["due_at"] is not None else None,
            created_at=float(row["created_at"] or 0.0),
            updated_at=float(row["updated_at"] or 0.0),
        )

    def _select(self, op: str, where: str = "", params: tuple = ()) -> list[Task]:
        sql = f"SELECT * FROM tasks {where} {_ORDER_BY}"
        with self._connect(op) as conn:
            rows = conn.execute(sql, params).fetchall()
            return [self._row_to_task(r) for r in rows]

    @staticmethod
    def _fetch_one(conn: sqlite3.Connection, task_id: str) -> Task | None:
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return TaskStore._row_to_task(row) if row else None

    # ---- public API: reads ----

    def count_tasks(self) -> int:
        with self._connect("count_tasks") as conn:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            return int(n)

    def list_tasks(self) -> list[Task]:
        return self._select("list_tasks")

    def list_tasks_by_status(self, is_done: bool) -> list[Task]:
        return self._select("list_tasks_by_status", "WHERE is_done = ?", (1 if is_done else 0,))

    def search_tasks(self, text: str) -> list[Task]:
        """
        Case-insensitive substring match on title OR note.

        The text is matched literally. Blank text is not special-cased here:
        the repository maps it to the full list.
        """
        return self._select(
            "search_tasks",
            "WHERE contains_ci(title, ?) OR contains_ci(note, ?)",
            (text, text),
        )

    def get_task(self, task_id: str) -> Task | None:
        with self._connect("get_task") as conn:
            return self._fetch_one(conn, str(task_id))

    # ---- public API: writes ----
    #
    # Every write runs inside BEGIN IMMEDIATE under the store lock and returns a
    # TaskChange (or None when nothing was changed) so callers can route
    # notifications.

    def upsert_task(self, task: Task) -> TaskChange:
        """
        Insert or replace a task by id.

        created_at/updated_at are always set by the store:
        - new id: created_at = updated_at = now
        - existing id: mutable fields replaced, created_at kept, updated_at = now
        """
        validate_task(task)
        # Title and note are persisted exactly as given; trimming is up to the caller.
        clean = replace(task, id=str(task.id), note=task.note or "")

        with self._write_lock, self._connect("upsert_task") as conn:
            conn.execute("BEGIN IMMEDIATE")
            before = self._fetch_one(conn, clean.id)
            now = self._now()
            conn.execute(
                """
                INSERT INTO tasks(id, title, note, is_done, due_at, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    note = excluded.note,
                    is_done = excluded.is_done,
                    due_at = excluded.due_at,
                    updated_at = excluded.updated_at
                """,
                (
                    clean.id,
                    clean.title,
                    clean.note,
                    1 if clean.is_done else 0,
                    float(clean.due_at) if clean.due_at is not None else None,
                    now,
                    now,
                ),
            )
            after = self._fetch_one(conn, clean.id)
            conn.commit()

        if after is None:
            raise StorageError(f"task {clean.id} vanished after upsert")
        logger.debug(
            "Task %s id=%s done=%s updated_at=%s",
            "updated" if before else "inserted",
            after.id,
            after.is_done,
            after.updated_at,
        )
        return TaskChange(before=before, after=after)

    def delete_task(self, task_id: str) -> TaskChange | None:
        """Delete by id. Absent ids are a no-op and return None."""
        with self._write_lock, self._connect("delete_task") as conn:
            conn.execute("BEGIN IMMEDIATE")
            before = self._fetch_one(conn, str(task_id))
            if before is None:
                conn.rollback()
                logger.debug("Delete ignored: no task id=%s", task_id)
                return None
            conn.execute("DELETE FROM tasks WHERE id = ?", (before.id,))
            conn.commit()

        logger.debug("Task deleted id=%s", before.id)
        return TaskChange(before=before, after=None)

    def toggle_task(self, task_id: str) -> TaskChange | None:
        """
        Flip is_done and refresh updated_at in a single UPDATE.

        Returns None if the id does not exist (no-op, mirrors an UPDATE
        that matched zero rows).
        """
        with self._write_lock, self._connect("toggle_task") as conn:
            conn.execute("BEGIN IMMEDIATE")
            before = self._fetch_one(conn, str(task_id))
            if before is None:
                conn.rollback()
                logger.debug("Toggle ignored: no task id=%s", task_id)
                return None
            conn.execute(
                "UPDATE tasks SET is_done = NOT is_done, updated_at = ? WHERE id = ?",
                (self._now(), before.id),
            )
            after = self._fetch_one(conn, before.id)
            conn.commit()

        logger.debug("Task toggled id=%s done=%s", before.id, after.is_done if after else None)
        return TaskChange(before=before, after=after)
