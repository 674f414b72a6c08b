# src/todo_companion/connectors/console_connector.py

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime

from ..cli.commands import format_task_list
from ..cli.commands import registry as command_registry
from ..core.state import AppState
from ..errors import TodoError

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def _header(state: AppState) -> str:
    q = state.engine.current_query
    if q.search:
        return f"Tasks matching {q.search!r}:"
    return f"Tasks ({q.filter}):"


async def watch_task_list(state: AppState) -> None:
    """
    Print the live list every time it changes.

    A storage failure ends the stream; the watcher reports it and subscribes
    again (a new subscription starts from a fresh snapshot).
    """
    while True:
        stream = state.engine.observe()
        try:
            async for tasks in stream:
                _print_ts(f"{_header(state)}\n{format_task_list(state, tasks)}")
            return
        except TodoError as e:
            logger.warning("Live task list failed: %s", e)
            _print_ts(f"[STORE] Live list failed: {e}. Re-subscribing...")
            await asyncio.sleep(1.0)
        finally:
            await stream.aclose()


async def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started (db=%s).", state.store.db_path)
    _print_ts("[CONSOLE] Use /help for commands, /exit to quit.\n")

    def emit(text: str) -> None:
        _print_ts(text)

    watcher = asyncio.create_task(watch_task_list(state))
    try:
        while True:
            try:
                user_input = (await asyncio.to_thread(input, "todo> ")).strip()
            except EOFError:
                logger.info("Console EOF received, exiting.")
                break
            except KeyboardInterrupt:
                logger.info("Console KeyboardInterrupt, exiting.")
                print()
                break

            if not user_input:
                continue

            if user_input.lower() in ("/exit", "/quit"):
                logger.info("Console exit command received.")
                break

            if not user_input.startswith("/"):
                # Plain text is a shortcut for /add.
                user_input = f"/add {user_input}"

            try:
                cmd_response = await command_registry.handle(state, user_input, emit=emit)
            except Exception:
                logger.exception("Command handler crashed.")
                cmd_response = "Internal error while handling a command."

            if cmd_response is not None:
                _print_ts(cmd_response)
    finally:
        watcher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await watcher

    logger.info("Console connector finished.")
