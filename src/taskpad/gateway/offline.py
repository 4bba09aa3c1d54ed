# src/taskpad/gateway/offline.py

from __future__ import annotations

import asyncio
import hmac
import itertools
import uuid
from dataclasses import replace
from typing import Any

from ..core.errors import AuthError, DataError
from ..core.ports import CallbackSubscription, SessionCallback, notify_session_listeners
from ..tasks.task_models import Identity, Task, TaskId, sort_newest_first, utc_now

MIN_PASSWORD_LENGTH = 6
_UPDATABLE_FIELDS = frozenset({"title", "done"})


class OfflineGateway:
    """
    In-memory gateway used for demos when no Supabase project is configured.

    Behavior mirrors the remote one closely enough for the console:
    - accounts live only as long as the process,
    - sign-up signs the user in immediately (no email confirmation),
    - task ids are sequential ints, listed newest first,
    - unknown task ids raise DataError.

    `latency_seconds` delays every call so optimistic updates are observable.
    """

    def __init__(self, *, latency_seconds: float = 0.0) -> None:
        self.latency_seconds = max(0.0, float(latency_seconds))
        self._accounts: dict[str, tuple[str, Identity]] = {}
        self._tasks: dict[int, Task] = {}
        self._ids = itertools.count(1)
        self._current: Identity | None = None
        self._listeners: list[SessionCallback] = []

    async def _tick(self) -> None:
        await asyncio.sleep(self.latency_seconds)

    # ---- auth ----

    def on_session_change(self, callback: SessionCallback) -> CallbackSubscription:
        self._listeners.append(callback)
        return CallbackSubscription(self._listeners, callback)

    async def broadcast(self, identity: Identity | None) -> None:
        """Simulate a session change made elsewhere (another console)."""
        self._current = identity
        await notify_session_listeners(self._listeners, identity)

    async def _switch(self, identity: Identity | None) -> None:
        if identity == self._current:
            return
        await self.broadcast(identity)

    async def get_current_user(self) -> Identity | None:
        await self._tick()
        return self._current

    async def sign_up(self, email: str, password: str) -> Identity | None:
        await self._tick()
        email = (email or "").strip().lower()
        if "@" not in email:
            raise AuthError("Unable to validate email address: invalid format", status=400)
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise AuthError(f"Password should be at least {MIN_PASSWORD_LENGTH} characters.", status=422)
        if email in self._accounts:
            raise AuthError("User already registered", status=422)

        identity = Identity(id=str(uuid.uuid4()), email=email)
        self._accounts[email] = (password, identity)
        await self._switch(identity)
        return identity

    async def sign_in_with_password(self, email: str, password: str) -> Identity:
        await self._tick()
        account = self._accounts.get((email or "").strip().lower())
        if account is None or not hmac.compare_digest(account[0], password or ""):
            raise AuthError("Invalid login credentials", status=400)
        identity = account[1]
        await self._switch(identity)
        return identity

    async def sign_out(self) -> None:
        await self._tick()
        await self._switch(None)

    # ---- tasks ----

    def _require_session(self) -> Identity:
        if self._current is None:
            raise DataError("Not signed in", status=401)
        return self._current

    def _owned(self, task_id: TaskId) -> Task:
        owner = self._require_session()
        task = self._tasks.get(task_id) if isinstance(task_id, int) else None
        if task is None or task.user_id != owner.id:
            raise DataError(f"Task {task_id} not found", status=404)
        return task

    async def list_tasks(self, owner: Identity) -> list[Task]:
        await self._tick()
        self._require_session()
        return sort_newest_first([t for t in self._tasks.values() if t.user_id == owner.id])

    async def create_task(self, owner: Identity, title: str) -> Task:
        await self._tick()
        self._require_session()
        title = (title or "").strip()
        if not title:
            raise DataError("title must not be empty", status=400)
        task = Task(id=next(self._ids), title=title, done=False, created_at=utc_now(), user_id=owner.id)
        self._tasks[task.id] = task
        return task

    async def update_task(self, task_id: TaskId, fields: dict[str, Any]) -> None:
        await self._tick()
        task = self._owned(task_id)
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise DataError(f"Unknown fields: {', '.join(sorted(unknown))}", status=400)
        changes: dict[str, Any] = {}
        if "done" in fields:
            changes["done"] = bool(fields["done"])
        if "title" in fields:
            changes["title"] = str(fields["title"]).strip()
        self._tasks[task.id] = replace(task, **changes)

    async def delete_task(self, task_id: TaskId) -> None:
        await self._tick()
        task = self._owned(task_id)
        del self._tasks[task.id]
