# src/todo_companion/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then runs the console loop on an
asyncio event loop.
"""

from __future__ import annotations

import asyncio
import logging

from ..cli.bootstrap import create_initial_state, prepare_state, shutdown_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..core.state import AppState
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def _run(state: AppState) -> None:
    try:
        await prepare_state(state)
        await run_console_loop(state)
    finally:
        await shutdown_state(state)


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    log_dir = getattr(settings, "log_dir", ".local/todo")
    setup_logging(log_dir=log_dir, console_level=console_level)

    logger.info("Starting %s...", getattr(settings, "app_name", "todo-companion"))

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)

    try:
        asyncio.run(_run(state))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down...")

    logger.info("Bye.")


if __name__ == "__main__":
    main()
