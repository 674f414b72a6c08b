# src/todo_companion/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import replace
from datetime import datetime
from typing import cast

from ..core.state import AppState
from ..errors import TaskValidationError, TodoError
from ..tasks import task_api
from ..tasks.task_models import Task, TaskFilter
from ..tasks.task_query_engine import resolve_source

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], Awaitable[str]]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], Awaitable[str]]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.

        TodoError raised by a handler is turned into a reply; nothing was
        written in that case.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        try:
            if nparams >= 3:
                h3 = cast(CommandHandler3, handler)
                return await h3(state, args, emit)
            h2 = cast(CommandHandler2, handler)
            return await h2(state, args)
        except TaskValidationError as e:
            return f"Invalid input: {e}"
        except TodoError as e:
            logger.warning("Command /%s failed: %s", name, e)
            return f"Failed: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _fmt_ts(ts: float | None) -> str:
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts).astimezone().strftime("%Y-%m-%d %H:%M")


def _parse_due(raw: str) -> float | None:
    if raw.lower() in ("none", "-", "clear"):
        return None
    for fmt in ("%Y-%m-%d %H:%M", "%Y-%m-%d"):
        try:
            return datetime.strptime(raw, fmt).timestamp()
        except ValueError:
            continue
    raise TaskValidationError(f"bad due date {raw!r}; use YYYY-MM-DD [HH:MM] or none")


def format_task_line(pos: int, task: Task) -> str:
    mark = "x" if task.is_done else " "
    due = f" (due {_fmt_ts(task.due_at)})" if task.due_at is not None else ""
    note = f" - {task.note}" if task.note else ""
    return f"{pos:>3}. [{mark}] {task.title}{due}{note}"


def format_task_list(state: AppState, tasks: list[Task]) -> str:
    """Render a numbered list and remember which number points at which task."""
    state.index = {str(i): t.id for i, t in enumerate(tasks, start=1)}
    if not tasks:
        return "  (no tasks)"
    return "\n".join(format_task_line(i, t) for i, t in enumerate(tasks, start=1))


async def _resolve(state: AppState, ref: str) -> Task:
    """Find a task by list number, full id or unique id prefix."""
    task_id = state.index.get(ref)
    if task_id is None:
        matches = [tid for tid in state.index.values() if tid.startswith(ref)]
        if len(matches) == 1:
            task_id = matches[0]
        else:
            task_id = ref

    task = await task_api.get_task(state.repo, task_id)
    if task is None:
        raise TaskValidationError(f"no such task: {ref}")
    return task


async def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


async def cmd_add(state: AppState, args: list[str]) -> str:
    """
    /add <title>              -> new task
    /add <title> | <note>     -> new task with a note
    """
    title, _, note = " ".join(args).partition("|")
    task = await task_api.save_task(state.repo, task_api.create_task(title, note))
    return f"Added: {task.title}"


async def cmd_edit(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /edit <n> <new title>"
    task = await _resolve(state, args[0])
    saved = await task_api.save_task(state.repo, replace(task, title=" ".join(args[1:])))
    return f"Renamed: {saved.title}"


async def cmd_note(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /note <n> [text]  (no text clears the note)"
    task = await _resolve(state, args[0])
    await task_api.save_task(state.repo, replace(task, note=" ".join(args[1:])))
    return f"Note updated: {task.title}"


async def cmd_due(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /due <n> <YYYY-MM-DD [HH:MM]|none>"
    task = await _resolve(state, args[0])
    due_at = _parse_due(" ".join(args[1:]))
    saved = await task_api.save_task(state.repo, replace(task, due_at=due_at))
    return f"Due {_fmt_ts(saved.due_at)}: {saved.title}"


async def cmd_done(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /done <n>"
    task = await _resolve(state, args[0])
    toggled = await task_api.toggle_task(state.repo, task.id)
    if toggled is None:
        return f"Task disappeared: {task.title}"
    return f"{'Done' if toggled.is_done else 'Reopened'}: {toggled.title}"


async def cmd_rm(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /rm <n>"
    task = await _resolve(state, args[0])
    removed = await task_api.delete_task(state.repo, task)
    return f"Deleted: {task.title}" if removed else f"Already gone: {task.title}"


async def cmd_show(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /show <n>"
    task = await _resolve(state, args[0])
    return (
        f"{task.title}\n"
        f"  id: {task.id}\n"
        f"  done: {'yes' if task.is_done else 'no'}\n"
        f"  note: {task.note or '-'}\n"
        f"  due: {_fmt_ts(task.due_at)}\n"
        f"  created: {_fmt_ts(task.created_at)}\n"
        f"  updated: {_fmt_ts(task.updated_at)}"
    )


async def cmd_search(state: AppState, args: list[str]) -> str:
    """
    /search <text>  -> show only tasks matching text (filter is ignored)
    /search         -> clear the search
    """
    text = " ".join(args)
    await state.engine.set_search(text)
    q = state.engine.current_query
    return f"Searching for {q.search!r}." if q.search else f"Search cleared (filter: {q.filter})."


async def cmd_filter(state: AppState, args: list[str]) -> str:
    if not args:
        return f"Filter is {state.engine.current_query.filter}. Use /filter all|active|done."
    task_filter = TaskFilter.parse(args[0])
    await state.engine.set_filter(task_filter)
    suffix = " (search still active)" if state.engine.current_query.is_search else ""
    return f"Filter: {task_filter}{suffix}."


async def cmd_list(state: AppState, args: list[str]) -> str:
    """One-off snapshot for the current criteria."""
    live = resolve_source(state.repo, state.engine.current_query)
    try:
        tasks = await anext(live)
    finally:
        await live.aclose()
    return format_task_list(state, tasks)


async def cmd_status(state: AppState, args: list[str]) -> str:
    q = state.engine.current_query
    total = await state.repo.count()
    return (
        "Status:\n"
        f"  Database: {state.store.db_path}\n"
        f"  Tasks: {total}\n"
        f"  Search: {q.search or '-'}\n"
        f"  Filter: {q.filter}"
    )


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("add", cmd_add, help_text="Add a task: /add <title> [| note].", aliases=["a"])
registry.register("edit", cmd_edit, help_text="Rename a task: /edit <n> <title>.")
registry.register("note", cmd_note, help_text="Set or clear a note: /note <n> [text].")
registry.register("due", cmd_due, help_text="Set a due date: /due <n> <YYYY-MM-DD [HH:MM]|none>.")
registry.register("done", cmd_done, help_text="Toggle completion: /done <n>.", aliases=["x"])
registry.register("rm", cmd_rm, help_text="Delete a task: /rm <n>.", aliases=["del"])
registry.register("show", cmd_show, help_text="Show task details: /show <n>.")
registry.register("search", cmd_search, help_text="Search title/note: /search [text] (empty clears).", aliases=["s"])
registry.register("filter", cmd_filter, help_text="Filter by status: /filter all|active|done.", aliases=["f"])
registry.register("list", cmd_list, help_text="Print the current list.", aliases=["ls"])
registry.register("status", cmd_status, help_text="Show database path, counts and criteria.")
