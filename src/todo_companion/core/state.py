# src/todo_companion/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field

from ..tasks.task_query_engine import TaskQueryEngine
from ..tasks.task_repository import TaskRepository
from ..tasks.task_store import TaskStore


@dataclass
class AppState:
    # Settings object (real Settings or a SimpleNamespace in tests).
    settings: object

    store: TaskStore
    repo: TaskRepository

    # The console's current live list (search + filter).
    engine: TaskQueryEngine

    # Short ids shown in the console -> full task ids.
    index: dict[str, str] = field(default_factory=dict)
