# src/taskpad/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState
from ..tasks.task_models import Mutation, MutationState

logger = logging.getLogger(__name__)

_EOF = None


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def _start_stdin_reader(loop: asyncio.AbstractEventLoop, queue: asyncio.Queue[str | None]) -> threading.Thread:
    """Read stdin lines in a daemon thread and hand them to the event loop; None marks EOF."""

    def _reader() -> None:
        try:
            for line in sys.stdin:
                loop.call_soon_threadsafe(queue.put_nowait, line.rstrip("\n"))
        except Exception:
            logger.debug("stdin reader stopped.", exc_info=True)
        finally:
            try:
                loop.call_soon_threadsafe(queue.put_nowait, _EOF)
            except RuntimeError:
                # Loop already closed.
                pass

    thread = threading.Thread(target=_reader, name="stdin-reader", daemon=True)
    thread.start()
    return thread


def _describe_revert(mutation: Mutation) -> str:
    what = {
        "add": "Could not save the new task",
        "toggle": "Could not update the task",
        "remove": "Could not delete the task",
    }.get(mutation.kind.value, "Change failed")
    return f"[sync] {what}: {mutation.error}. Change reverted."


def _prompt(state: AppState) -> str:
    who = state.session.email
    return f"{who}> " if who else "taskpad> "


async def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started.")
    app_name = str(getattr(getattr(state, "settings", None), "app_name", "taskpad"))
    _print_ts(f"[{app_name}] Type /help for commands, /exit to quit.")

    def emit(text: str) -> None:
        # Immediate user-visible feedback for slow operations (auth round trips)
        _print_ts(text)

    def on_mutation(mutation: Mutation) -> None:
        # Only failures are news; confirmations leave the screen as it already is.
        if mutation.state is MutationState.REVERTED and mutation.applied:
            _print_ts(_describe_revert(mutation))

    state.tasks.add_listener(on_mutation)

    if state.session.signed_in:
        _print_ts(f"Signed in as {state.session.email}.")
        print(await command_registry.handle(state, "/list"), flush=True)
    else:
        _print_ts("Sign in to save your tasks. Use /signin <email> <password> or /signup.")

    queue: asyncio.Queue[str | None] = asyncio.Queue()
    _start_stdin_reader(asyncio.get_running_loop(), queue)

    while True:
        print(_prompt(state), end="", flush=True)
        line = await queue.get()
        if line is _EOF:
            logger.info("Console EOF received, exiting.")
            print()
            break

        user_input = line.strip()
        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        if not user_input.startswith("/"):
            # The add form: plain text is a new task title.
            user_input = f"/add {user_input}"

        try:
            response = await command_registry.handle(state, user_input, emit=emit)
        except Exception:
            logger.exception("Command handler crashed.")
            response = "Internal error while handling a command."

        if response:
            print(response, flush=True)

    logger.info("Console connector finished.")
