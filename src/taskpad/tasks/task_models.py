# src/taskpad/tasks/task_models.py

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

TaskId = int | str
# Gateway-issued ids are ints; provisional ids are "tmp-..." strings.

PROVISIONAL_PREFIX = "tmp-"


def new_provisional_id() -> str:
    return f"{PROVISIONAL_PREFIX}{uuid.uuid4().hex}"


def is_provisional(task_id: TaskId) -> bool:
    return isinstance(task_id, str) and task_id.startswith(PROVISIONAL_PREFIX)


def utc_now() -> datetime:
    return datetime.now(UTC)


def parse_timestamp(raw: Any) -> datetime:
    """
    Parse a PostgREST timestamptz value.

    Naive values are assumed to be UTC. Missing/garbage values fall back to
    the epoch so that such rows sort last instead of breaking the load.
    """
    if isinstance(raw, datetime):
        ts = raw
    else:
        try:
            ts = datetime.fromisoformat(str(raw))
        except (TypeError, ValueError):
            return datetime.fromtimestamp(0, UTC)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts


@dataclass(frozen=True, slots=True)
class Identity:
    id: str
    email: str | None = None

    @classmethod
    def from_user(cls, user: dict[str, Any]) -> Identity:
        """Build from a GoTrue user object ({"id": ..., "email": ...})."""
        user_id = user.get("id")
        if not user_id:
            raise ValueError("user object has no id")
        email = user.get("email")
        return cls(id=str(user_id), email=str(email) if email else None)


@dataclass(frozen=True, slots=True)
class Task:
    id: TaskId
    title: str
    done: bool
    created_at: datetime
    user_id: str | None = None

    @property
    def provisional(self) -> bool:
        return is_provisional(self.id)

    def with_done(self, done: bool) -> Task:
        return replace(self, done=done)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Task:
        raw_id = row.get("id")
        if raw_id is None:
            raise ValueError("task row has no id")
        task_id: TaskId = raw_id if isinstance(raw_id, int) else str(raw_id)
        if isinstance(task_id, str) and task_id.isdigit():
            task_id = int(task_id)
        user_id = row.get("user_id")
        return cls(
            id=task_id,
            title=str(row.get("title") or ""),
            done=bool(row.get("done", False)),
            created_at=parse_timestamp(row.get("created_at")),
            user_id=str(user_id) if user_id else None,
        )


def sort_newest_first(tasks: list[Task]) -> list[Task]:
    return sorted(tasks, key=lambda t: t.created_at, reverse=True)


class MutationKind(StrEnum):
    ADD = "add"
    TOGGLE = "toggle"
    REMOVE = "remove"


class MutationState(StrEnum):
    """
    Lifecycle of one optimistic mutation.

    PENDING is entered as soon as the local edit is applied; CONFIRMED and
    REVERTED are terminal.
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    REVERTED = "reverted"

    @property
    def terminal(self) -> bool:
        return self is not MutationState.PENDING


@dataclass(slots=True)
class Mutation:
    seq: int
    kind: MutationKind
    task_id: TaskId
    state: MutationState = MutationState.PENDING
    error: str | None = None
    # False when the response arrived after the session changed and was dropped.
    applied: bool = True

    def confirm(self) -> None:
        self._finish(MutationState.CONFIRMED)

    def revert(self, error: str) -> None:
        self.error = error
        self._finish(MutationState.REVERTED)

    def _finish(self, new_state: MutationState) -> None:
        if self.state.terminal:
            raise RuntimeError(f"mutation {self.seq} already {self.state.value}")
        self.state = new_state
