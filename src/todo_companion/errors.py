# src/todo_companion/errors.py

"""
Error types raised by the task core.

A missing task is not an error: lookups return None.
"""

from __future__ import annotations


class TodoError(Exception):
    """Base class for all todo_companion errors."""


class TaskValidationError(TodoError, ValueError):
    """A task (or query) was rejected before any storage access."""


class StorageError(TodoError, RuntimeError):
    """The SQLite layer failed (I/O, corruption, locked database, ...)."""
