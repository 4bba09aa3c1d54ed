# src/taskpad/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, restores the session, then runs the
console REPL on an asyncio loop. With the Supabase gateway a background
watcher follows sign-ins/outs made by other taskpad processes.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..core.state import AppState
from ..gateway.session_watch import watch_session_file
from ..gateway.supabase import SupabaseGateway
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)

DRAIN_TIMEOUT_SECONDS = 5.0


async def _shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        await state.drain(timeout=DRAIN_TIMEOUT_SECONDS)
    except Exception:
        logger.exception("Failed to drain in-flight changes.")

    try:
        aclose = getattr(state.gateway, "aclose", None)
        if aclose is not None:
            await aclose()
    except Exception:
        logger.debug("Gateway close failed.", exc_info=True)


async def run_app(settings) -> None:
    state = create_initial_state(settings=settings)
    watcher: asyncio.Task[None] | None = None

    try:
        async with state.session:
            interval = float(getattr(settings, "session_watch_seconds", 0.0))
            if isinstance(state.gateway, SupabaseGateway) and interval > 0:
                watcher = asyncio.create_task(
                    watch_session_file(state.gateway, interval_seconds=interval),
                    name="session-watch",
                )

            await run_console_loop(state)
            # Let in-flight changes settle while the session subscription is still live.
            await state.drain(timeout=DRAIN_TIMEOUT_SECONDS)
    finally:
        if watcher is not None:
            watcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await watcher
        await _shutdown(state)


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "WARNING")).upper()
    console_level = getattr(logging, level_name, logging.WARNING)

    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logger.info("Starting %s...", getattr(settings, "app_name", "taskpad"))

    try:
        asyncio.run(run_app(settings))
    except KeyboardInterrupt:
        logger.info("KeyboardInterrupt, exiting.")
        print()

    logger.info("Bye.")


if __name__ == "__main__":
    main()
