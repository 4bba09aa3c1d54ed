# src/taskpad/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The session store and the reconciler depend on these Protocols instead of a
concrete backend. This keeps the Supabase gateway swappable (offline gateway,
test fakes) and makes the optimistic logic testable without a network.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from ..tasks.task_models import Identity, Task, TaskId

logger = logging.getLogger(__name__)

SessionCallback = Callable[[Identity | None], Awaitable[None]]
# Awaited by the gateway whenever the authenticated identity changes.


class Subscription(Protocol):
    def cancel(self) -> None: ...


class AuthGateway(Protocol):
    """Authentication capabilities. Failures raise AuthError."""

    async def get_current_user(self) -> Identity | None: ...

    def on_session_change(self, callback: SessionCallback) -> Subscription: ...

    async def sign_up(self, email: str, password: str) -> Identity | None: ...

    async def sign_in_with_password(self, email: str, password: str) -> Identity: ...

    async def sign_out(self) -> None: ...


class TaskGateway(Protocol):
    """CRUD over the task collection. Failures raise DataError."""

    async def list_tasks(self, owner: Identity) -> list[Task]: ...

    async def create_task(self, owner: Identity, title: str) -> Task: ...

    async def update_task(self, task_id: TaskId, fields: dict[str, Any]) -> None: ...

    async def delete_task(self, task_id: TaskId) -> None: ...


class Gateway(AuthGateway, TaskGateway, Protocol):
    """Full capability set consumed by the session store and the reconciler."""


class CallbackSubscription:
    """
    Subscription handle shared by the gateway implementations.

    cancel() removes the callback from the owning listener list; calling it
    more than once is harmless.
    """

    def __init__(self, listeners: list[SessionCallback], callback: SessionCallback) -> None:
        self._listeners = listeners
        self._callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        try:
            self._listeners.remove(self._callback)
        except ValueError:
            pass


async def notify_session_listeners(listeners: list[SessionCallback], identity: Identity | None) -> None:
    # Copy: a callback may cancel its own subscription while we iterate.
    for callback in list(listeners):
        try:
            await callback(identity)
        except Exception:
            logger.exception("session listener %r failed", callback)
