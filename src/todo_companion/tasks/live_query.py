# src/todo_companion/tasks/live_query.py

"""
Live task lists.

A LiveQuery is one subscription to a store query:
- the first pull registers it and returns the current snapshot,
- every later pull waits until a relevant change was committed, then
  returns a fully recomputed snapshot,
- several changes between two pulls collapse into one recomputation.

Closing it (aclose / leaving `async with`) unregisters it; after that no
snapshot is ever returned again.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Protocol

from ..errors import StorageError
from .task_models import Task, TaskChange

logger = logging.getLogger(__name__)

TaskPredicate = Callable[[Task], bool]


class ChangeNotifier(Protocol):
    def register(self, query: LiveQuery) -> None: ...
    def unregister(self, query: LiveQuery) -> None: ...


class LiveQuery:
    def __init__(
        self,
        notifier: ChangeNotifier,
        compute: Callable[[], list[Task]],
        *,
        predicate: TaskPredicate,
        label: str,
    ) -> None:
        self._notifier = notifier
        self._compute = compute
        self._predicate = predicate
        self.label = label

        self._wakeup = asyncio.Event()
        self._started = False
        self._closed = False

    def __repr__(self) -> str:
        return f"LiveQuery({self.label!r}, closed={self._closed})"

    @property
    def closed(self) -> bool:
        return self._closed

    def affected_by(self, change: TaskChange) -> bool:
        return any(t is not None and self._predicate(t) for t in (change.before, change.after))

    def invalidate(self) -> None:
        if not self._closed:
            self._wakeup.set()

    def __aiter__(self) -> LiveQuery:
        return self

    async def __anext__(self) -> list[Task]:
        if self._closed:
            raise StopAsyncIteration

        if not self._started:
            self._started = True
            # Register before the first read so no commit can slip in between.
            self._notifier.register(self)
        else:
            await self._wakeup.wait()
            if self._closed:
                raise StopAsyncIteration

        self._wakeup.clear()
        try:
            snapshot = await asyncio.to_thread(self._compute)
        except asyncio.CancelledError:
            # The snapshot was never delivered: recompute on the next pull.
            self.invalidate()
            raise
        except StorageError:
            logger.warning("LiveQuery %s terminated by storage failure", self.label)
            self.close()
            raise

        if self._closed:
            raise StopAsyncIteration
        return snapshot

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._started:
            self._notifier.unregister(self)
        # Wake a consumer parked in __anext__ so it can stop.
        self._wakeup.set()
        logger.debug("LiveQuery %s closed", self.label)

    async def aclose(self) -> None:
        self.close()

    async def __aenter__(self) -> LiveQuery:
        return self

    async def __aexit__(self, *exc: object) -> None:
        self.close()
