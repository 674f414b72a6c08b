# src/todo_companion/tasks/task_query_engine.py

"""
Live query engine.

Turns two independently changing criteria (search text, status filter) into
exactly one live task list:

- precedence: non-blank search -> search(text); otherwise the filter picks
  get_all / get_by_status(False) / get_by_status(True),
- switching criteria detaches the old underlying LiveQuery and attaches the new
  one in a single step under the engine lock; snapshots are tagged with the
  version of the criteria they were computed for, stale ones are dropped,
- the output is shared and lazy: the pump runs while someone observes, stops
  `stop_timeout` seconds after the last observer leaves, and a later observer
  gets a freshly computed snapshot instead of the stale cache,
- the output is deduplicated and conflated: equal consecutive snapshots are
  published once, a slow observer only sees the newest one.

State is only touched from the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..core.ports import LiveTaskList, TaskSource
from .task_models import Task, TaskFilter, TaskQuery

logger = logging.getLogger(__name__)

_UNSET: Any = object()

SourceKey = tuple[str, Any]


def source_key(query: TaskQuery) -> SourceKey:
    """Identify which store query a criteria pair resolves to."""
    q = query.normalized()
    if q.search:
        return ("search", q.search)
    if q.filter == TaskFilter.ACTIVE:
        return ("status", False)
    if q.filter == TaskFilter.DONE:
        return ("status", True)
    return ("all", None)


def resolve_source(source: TaskSource, query: TaskQuery) -> LiveTaskList:
    kind, arg = source_key(query)
    if kind == "search":
        return source.search(arg)
    if kind == "status":
        return source.get_by_status(arg)
    return source.get_all()


class TaskListStream:
    """One observer of a TaskQueryEngine (async iterator of snapshots)."""

    def __init__(self, engine: TaskQueryEngine) -> None:
        self._engine = engine
        self._wakeup = asyncio.Event()
        self._seen_seq = 0
        self._attached = False
        self._closed = False
        self._error: BaseException | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    def _notify(self) -> None:
        self._wakeup.set()

    def _fail(self, exc: BaseException) -> None:
        self._error = exc
        self._attached = False
        self._wakeup.set()

    def _terminate(self) -> None:
        self._closed = True
        self._attached = False
        self._wakeup.set()

    def __aiter__(self) -> TaskListStream:
        return self

    async def __anext__(self) -> list[Task]:
        if self._closed:
            raise StopAsyncIteration
        if not self._attached and self._error is None:
            self._attached = True
            await self._engine._attach(self)

        while True:
            if self._error is not None:
                exc, self._error = self._error, None
                self._closed = True
                raise exc
            if self._closed:
                raise StopAsyncIteration

            fresh = self._engine._take_fresh(self._seen_seq)
            if fresh is not None:
                self._seen_seq, snapshot = fresh
                return snapshot

            self._wakeup.clear()
            await self._wakeup.wait()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._wakeup.set()
        if self._attached:
            self._attached = False
            await self._engine._detach(self)

    async def __aenter__(self) -> TaskListStream:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()


class TaskQueryEngine:
    def __init__(
        self,
        source: TaskSource,
        query: TaskQuery | None = None,
        *,
        stop_timeout: float = 5.0,
    ) -> None:
        self._source = source
        self._query = (query or TaskQuery()).normalized()
        self._stop_timeout = max(0.0, float(stop_timeout))

        self._lock = asyncio.Lock()
        self._version = 0
        self._live: LiveTaskList | None = None
        self._pump: asyncio.Task[None] | None = None
        self._stop_timer: asyncio.Task[None] | None = None
        self._streams: set[TaskListStream] = set()

        self._latest: list[Task] | None = None
        self._latest_version = -1
        self._seq = 0
        self._closed = False

    # ---- introspection ----

    @property
    def current_query(self) -> TaskQuery:
        return self._query

    @property
    def is_running(self) -> bool:
        return self._pump is not None

    @property
    def subscriber_count(self) -> int:
        return len(self._streams)

    # ---- criteria ----

    async def set_search(self, text: str) -> bool:
        return await self.set_query(search=text)

    async def set_filter(self, task_filter: TaskFilter | str) -> bool:
        return await self.set_query(task_filter=task_filter)

    async def set_query(self, *, search: str = _UNSET, task_filter: TaskFilter | str = _UNSET) -> bool:
        """
        Update one or both criteria as a single step.

        Returns True if the underlying store query changed (and was switched
        if the engine is running).
        """
        async with self._lock:
            new_query = TaskQuery(
                search=self._query.search if search is _UNSET else (search or ""),
                filter=self._query.filter if task_filter is _UNSET else TaskFilter.parse(str(task_filter)),
            ).normalized()

            old_key = source_key(self._query)
            self._query = new_query
            if source_key(new_query) == old_key:
                return False

            logger.debug("Criteria changed %s -> %s", old_key, source_key(new_query))
            if self._pump is not None:
                await self._stop_pump_locked()
                self._start_pump_locked()
            return True

    # ---- observing ----

    def observe(self) -> TaskListStream:
        if self._closed:
            raise RuntimeError("TaskQueryEngine is closed")
        return TaskListStream(self)

    async def aclose(self) -> None:
        async with self._lock:
            self._closed = True
            self._cancel_stop_timer()
            await self._stop_pump_locked()
            for stream in list(self._streams):
                stream._terminate()
            self._streams.clear()

    # ---- stream bookkeeping (called by TaskListStream) ----

    async def _attach(self, stream: TaskListStream) -> None:
        async with self._lock:
            if self._closed:
                stream._terminate()
                return
            self._cancel_stop_timer()
            self._streams.add(stream)
            if self._pump is None:
                self._start_pump_locked()

    async def _detach(self, stream: TaskListStream) -> None:
        async with self._lock:
            self._streams.discard(stream)
            if self._streams or self._pump is None:
                return
            self._cancel_stop_timer()
            if self._stop_timeout <= 0:
                await self._stop_pump_locked()
            else:
                self._stop_timer = asyncio.create_task(self._stop_after_timeout())

    def _take_fresh(self, seen_seq: int) -> tuple[int, list[Task]] | None:
        if self._latest is None or self._latest_version != self._version:
            return None
        if self._seq <= seen_seq:
            return None
        return self._seq, list(self._latest)

    # ---- pump lifecycle (lock held) ----

    def _start_pump_locked(self) -> None:
        self._version += 1
        version = self._version
        self._live = resolve_source(self._source, self._query)
        self._pump = asyncio.create_task(self._run_pump(self._live, version))
        logger.debug("Query pump started v=%d key=%s", version, source_key(self._query))

    async def _stop_pump_locked(self) -> None:
        pump, live = self._pump, self._live
        self._pump = None
        self._live = None
        # Anything still in flight for the old version is dropped.
        self._version += 1
        if pump is not None:
            pump.cancel()
        if live is not None:
            await live.aclose()
        if not self._streams:
            self._latest = None

    def _cancel_stop_timer(self) -> None:
        if self._stop_timer is not None:
            self._stop_timer.cancel()
            self._stop_timer = None

    async def _stop_after_timeout(self) -> None:
        await asyncio.sleep(self._stop_timeout)
        async with self._lock:
            self._stop_timer = None
            if not self._streams and self._pump is not None:
                logger.debug("No observers for %.1fs, stopping query pump", self._stop_timeout)
                await self._stop_pump_locked()

    # ---- pump ----

    async def _run_pump(self, live: LiveTaskList, version: int) -> None:
        try:
            async for snapshot in live:
                self._publish(version, snapshot)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._fail(version, exc)

    def _publish(self, version: int, snapshot: list[Task]) -> None:
        if version != self._version:
            logger.debug("Dropping stale snapshot v=%d (current v=%d)", version, self._version)
            return
        if self._latest is not None and snapshot == self._latest:
            # Same content: only new observers (or a new version) need it.
            self._latest_version = version
        else:
            self._seq += 1
            self._latest = list(snapshot)
            self._latest_version = version
        for stream in list(self._streams):
            stream._notify()

    def _fail(self, version: int, exc: Exception) -> None:
        if version != self._version:
            return
        logger.warning("Query pump failed v=%d: %s", version, exc)
        streams = list(self._streams)
        self._streams.clear()
        self._pump = None
        self._live = None
        self._latest = None
        self._version += 1
        for stream in streams:
            stream._fail(exc)
