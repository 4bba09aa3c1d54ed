# src/taskpad/tasks/reconciler.py

"""
Task list reconciler.

Owns the in-memory task list of the signed-in user and applies every mutation
optimistically:

- the local edit is applied first (mutation enters PENDING),
- the gateway request is awaited,
- on success the mutation is CONFIRMED (add swaps the provisional id for the
  gateway-issued one), on failure the local edit is inverted and the mutation
  is REVERTED.

No retries. A reverted mutation is reported to listeners and recorded in
`last_error`; the user re-initiates it.

Known gaps kept as-is:
- operations on the same task id are not serialized; with two toggles in
  flight the last response to arrive decides the final state,
- remove() rolls back by restoring the whole pre-removal list, so a mutation
  that completed while the delete was in flight is undone as well.

Responses that arrive after the session changed are dropped (session epoch).
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections import deque
from collections.abc import Callable

from ..core.errors import DataError
from ..core.ports import TaskGateway
from .task_models import (
    Identity,
    Mutation,
    MutationKind,
    Task,
    TaskId,
    is_provisional,
    new_provisional_id,
    sort_newest_first,
    utc_now,
)

logger = logging.getLogger(__name__)

MutationListener = Callable[[Mutation], None]


class TaskListReconciler:
    def __init__(self, gateway: TaskGateway, *, history_limit: int = 100) -> None:
        self._gateway = gateway
        self._tasks: list[Task] = []
        self._listeners: list[MutationListener] = []
        self._seq = itertools.count(1)
        self._epoch = 0

        self.identity: Identity | None = None
        self.loading = False
        self.load_error: str | None = None
        self.last_error: str | None = None
        self.in_flight: dict[int, Mutation] = {}
        self.history: deque[Mutation] = deque(maxlen=max(1, int(history_limit)))

    # ---- read side ----

    @property
    def tasks(self) -> list[Task]:
        return list(self._tasks)

    def get(self, task_id: TaskId) -> Task | None:
        for task in self._tasks:
            if task.id == task_id:
                return task
        return None

    def pending_for(self, task_id: TaskId) -> list[Mutation]:
        return [m for m in self.in_flight.values() if m.task_id == task_id]

    def add_listener(self, listener: MutationListener) -> None:
        """Register a callback invoked on every CONFIRMED/REVERTED transition."""
        self._listeners.append(listener)

    # ---- session lifecycle ----

    def reset(self) -> None:
        """Forget everything tied to the current session."""
        self._epoch += 1
        self._tasks = []
        self.identity = None
        self.loading = False
        self.load_error = None
        self.last_error = None

    async def on_session_changed(self, identity: Identity | None) -> None:
        """Session store listener: clear on sign-out, reload on a new identity."""
        self.reset()
        if identity is not None:
            await self.load(identity)

    async def load(self, identity: Identity | None = None) -> None:
        """
        Fetch all tasks of `identity` (defaults to the current one), newest first.

        On failure the list stays empty and `load_error` is set. Never raises.
        """
        if identity is None:
            identity = self.identity
        if identity is None:
            self.reset()
            return

        if identity != self.identity:
            self.reset()
            self.identity = identity

        epoch = self._epoch
        self.loading = True
        self.load_error = None
        try:
            tasks = await self._gateway.list_tasks(identity)
        except Exception as e:
            if epoch != self._epoch:
                logger.debug("Dropping stale load failure for user=%s", identity.id)
                return
            if isinstance(e, DataError):
                logger.error("Error loading tasks user=%s: %s", identity.id, e)
            else:
                logger.exception("Unexpected error loading tasks user=%s", identity.id)
            self._tasks = []
            self.load_error = str(e)
            self.loading = False
            return

        if epoch != self._epoch:
            logger.debug("Dropping stale task list for user=%s", identity.id)
            return

        self._tasks = sort_newest_first(list(tasks))
        self.loading = False
        logger.info("Loaded %d tasks for user=%s", len(self._tasks), identity.id)

    # ---- mutations ----

    async def add(self, title: str) -> Mutation | None:
        owner = self.identity
        trimmed = (title or "").strip()
        if owner is None or not trimmed:
            return None

        provisional = Task(
            id=new_provisional_id(),
            title=trimmed,
            done=False,
            created_at=utc_now(),
            user_id=owner.id,
        )
        mutation = self._begin(MutationKind.ADD, provisional.id)
        epoch = self._epoch
        self._tasks = [provisional, *self._tasks]

        try:
            created = await self._gateway.create_task(owner, trimmed)
        except asyncio.CancelledError:
            self._revert(mutation, epoch, "cancelled", lambda: self._drop(provisional.id))
            raise
        except Exception as e:
            self._revert(mutation, epoch, self._describe("insert", e), lambda: self._drop(provisional.id))
            return mutation

        def swap() -> None:
            # A load that raced the insert may already hold the created row.
            self._tasks = [created, *(t for t in self._tasks if t.id not in (provisional.id, created.id))]

        mutation.task_id = created.id
        self._confirm(mutation, epoch, swap)
        return mutation

    async def toggle_done(self, task: Task) -> Mutation | None:
        if self.identity is None:
            return None
        if is_provisional(task.id):
            logger.warning("Ignoring toggle on unsaved task %s", task.id)
            return None

        prior = task.done
        new_done = not prior
        mutation = self._begin(MutationKind.TOGGLE, task.id)
        epoch = self._epoch
        self._set_done(task.id, new_done)

        try:
            await self._gateway.update_task(task.id, {"done": new_done})
        except asyncio.CancelledError:
            self._revert(mutation, epoch, "cancelled", lambda: self._set_done(task.id, prior))
            raise
        except Exception as e:
            self._revert(mutation, epoch, self._describe("update", e), lambda: self._set_done(task.id, prior))
            return mutation

        self._confirm(mutation, epoch)
        return mutation

    async def remove(self, task_id: TaskId) -> Mutation | None:
        if self.identity is None:
            return None
        if is_provisional(task_id):
            logger.warning("Ignoring delete of unsaved task %s", task_id)
            return None

        snapshot = list(self._tasks)
        mutation = self._begin(MutationKind.REMOVE, task_id)
        epoch = self._epoch
        self._drop(task_id)

        def restore() -> None:
            self._tasks = snapshot

        try:
            await self._gateway.delete_task(task_id)
        except asyncio.CancelledError:
            self._revert(mutation, epoch, "cancelled", restore)
            raise
        except Exception as e:
            self._revert(mutation, epoch, self._describe("delete", e), restore)
            return mutation

        self._confirm(mutation, epoch)
        return mutation

    # ---- helpers ----

    def _drop(self, task_id: TaskId) -> None:
        self._tasks = [t for t in self._tasks if t.id != task_id]

    def _set_done(self, task_id: TaskId, done: bool) -> None:
        self._tasks = [t.with_done(done) if t.id == task_id else t for t in self._tasks]

    @staticmethod
    def _describe(action: str, exc: Exception) -> str:
        if isinstance(exc, DataError):
            logger.warning("Error on task %s: %s", action, exc)
        else:
            logger.exception("Unexpected error on task %s", action)
        return str(exc) or exc.__class__.__name__

    def _begin(self, kind: MutationKind, task_id: TaskId) -> Mutation:
        mutation = Mutation(seq=next(self._seq), kind=kind, task_id=task_id)
        self.in_flight[mutation.seq] = mutation
        logger.debug("Mutation %s %s task=%s pending", mutation.seq, kind.value, task_id)
        return mutation

    def _confirm(self, mutation: Mutation, epoch: int, apply: Callable[[], None] | None = None) -> None:
        if epoch != self._epoch:
            mutation.applied = False
        elif apply is not None:
            apply()
        mutation.confirm()
        self._close(mutation)

    def _revert(self, mutation: Mutation, epoch: int, error: str, undo: Callable[[], None]) -> None:
        if epoch != self._epoch:
            mutation.applied = False
        else:
            undo()
            self.last_error = error
        mutation.revert(error)
        self._close(mutation)

    def _close(self, mutation: Mutation) -> None:
        self.in_flight.pop(mutation.seq, None)
        self.history.append(mutation)
        if not mutation.applied:
            logger.debug(
                "Mutation %s %s task=%s %s after session change; local state untouched",
                mutation.seq,
                mutation.kind.value,
                mutation.task_id,
                mutation.state.value,
            )
        else:
            logger.debug("Mutation %s %s task=%s %s", mutation.seq, mutation.kind.value, mutation.task_id, mutation.state.value)

        for listener in list(self._listeners):
            try:
                listener(mutation)
            except Exception:
                logger.exception("Mutation listener failed seq=%s", mutation.seq)
