# src/taskpad/core/state.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import Any

from ..session.session_store import SessionStore
from ..tasks.reconciler import TaskListReconciler
from .ports import Gateway

logger = logging.getLogger(__name__)


@dataclass
class AppState:
    # Settings object (taskpad.config.Settings or a test stand-in).
    settings: Any

    gateway: Gateway
    session: SessionStore
    tasks: TaskListReconciler

    # Mutations started by the view and not finished yet.
    background: set[asyncio.Task[Any]] = field(default_factory=set)

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task[Any]:
        """Run `coro` in the background, keeping a reference until it finishes."""
        task = asyncio.create_task(coro, name=name)
        self.background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task[Any]) -> None:
        self.background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task %s failed", task.get_name(), exc_info=exc)

    async def drain(self, timeout: float = 5.0) -> None:
        """Wait for in-flight mutations; cancel whatever is still running after `timeout`."""
        pending = set(self.background)
        if not pending:
            return
        logger.info("Waiting for %d in-flight change(s)...", len(pending))
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            logger.warning("Cancelled %d change(s) that did not finish in %.1fs", len(still_running), timeout)
            await asyncio.gather(*still_running, return_exceptions=True)


def build_state(settings: Any, gateway: Gateway) -> AppState:
    """Wire the session store and the reconciler around one gateway."""
    session = SessionStore(gateway)
    tasks = TaskListReconciler(gateway)
    session.add_listener(tasks.on_session_changed)
    return AppState(settings=settings, gateway=gateway, session=session, tasks=tasks)
