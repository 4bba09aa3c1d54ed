# tests/test_reconciler.py

from __future__ import annotations

import asyncio

import pytest

from taskpad.core.errors import DataError
from taskpad.tasks.reconciler import TaskListReconciler
from taskpad.tasks.task_models import Identity, MutationKind, MutationState, is_provisional

from .fakes import FakeGateway, Step, make_task


def ids(rec: TaskListReconciler) -> list:
    return [t.id for t in rec.tasks]


async def loaded(rec: TaskListReconciler, who: Identity) -> TaskListReconciler:
    await rec.load(who)
    return rec


# ---- load ----


@pytest.mark.asyncio
async def test_load_returns_own_tasks_newest_first(reconciler, alice) -> None:
    await reconciler.load(alice)

    assert ids(reconciler) == [3, 2, 1]
    stamps = [t.created_at for t in reconciler.tasks]
    assert stamps == sorted(stamps, reverse=True)
    assert reconciler.loading is False
    assert reconciler.load_error is None


@pytest.mark.asyncio
async def test_load_sorts_even_if_gateway_order_is_wrong(alice) -> None:
    class Unordered(FakeGateway):
        async def list_tasks(self, owner):
            return [make_task(1, "a", minutes=0), make_task(2, "b", minutes=9), make_task(3, "c", minutes=3)]

    rec = TaskListReconciler(Unordered())
    await rec.load(alice)
    assert ids(rec) == [2, 3, 1]


@pytest.mark.asyncio
async def test_load_failure_leaves_empty_list_and_error_flag(reconciler, gateway, alice) -> None:
    gateway.fail["list_tasks"] = DataError("relation todos does not exist")

    await reconciler.load(alice)

    assert reconciler.tasks == []
    assert reconciler.load_error == "relation todos does not exist"
    assert reconciler.loading is False


@pytest.mark.asyncio
async def test_load_without_identity_is_a_reset(reconciler, gateway) -> None:
    await reconciler.load(None)
    assert reconciler.tasks == []
    assert gateway.ops() == []


# ---- add ----


@pytest.mark.asyncio
@pytest.mark.parametrize("title", ["x", "  spaced title  ", "ünïcode ✓"])
async def test_add_success_leaves_exactly_one_confirmed_task(reconciler, gateway, alice, title) -> None:
    await reconciler.load(alice)

    mutation = await reconciler.add(title)

    assert mutation is not None
    assert mutation.kind is MutationKind.ADD
    assert mutation.state is MutationState.CONFIRMED
    matching = [t for t in reconciler.tasks if t.title == title.strip()]
    assert len(matching) == 1
    assert not is_provisional(matching[0].id)
    assert reconciler.tasks[0] == matching[0]
    assert mutation.task_id == matching[0].id
    assert reconciler.in_flight == {}


@pytest.mark.asyncio
async def test_add_is_prepended_while_pending_then_swapped(reconciler, gateway, alice) -> None:
    await reconciler.load(alice)
    gate = asyncio.Event()
    gateway.script("create_task", Step(gate=gate))

    running = asyncio.create_task(reconciler.add("draft"))
    await asyncio.sleep(0)

    head = reconciler.tasks[0]
    assert head.title == "draft"
    assert head.done is False
    assert is_provisional(head.id)
    assert ids(reconciler)[1:] == [3, 2, 1]
    assert [m.state for m in reconciler.in_flight.values()] == [MutationState.PENDING]

    gate.set()
    mutation = await running

    assert mutation.state is MutationState.CONFIRMED
    assert not any(is_provisional(i) for i in ids(reconciler))
    assert reconciler.tasks[0].title == "draft"
    assert len(reconciler.tasks) == 4


@pytest.mark.asyncio
async def test_add_confirmed_after_reload_keeps_one_copy(alice) -> None:
    class CommitsBeforeReplying(FakeGateway):
        """Stores the row, then holds the create response until `reply` is set."""

        def __init__(self, **kwargs) -> None:
            super().__init__(**kwargs)
            self.reply = asyncio.Event()

        async def create_task(self, owner, title):
            task = await super().create_task(owner, title)
            await self.reply.wait()
            return task

    gateway = CommitsBeforeReplying(current=alice, rows=[make_task(1, "buy milk")])
    rec = TaskListReconciler(gateway)
    await rec.load(alice)

    running = asyncio.create_task(rec.add("dup"))
    await asyncio.sleep(0.01)
    await rec.load()
    gateway.reply.set()
    mutation = await running

    assert mutation.state is MutationState.CONFIRMED
    titles = [t.title for t in rec.tasks]
    assert titles.count("dup") == 1
    assert len(set(ids(rec))) == len(ids(rec))
    assert not any(is_provisional(i) for i in ids(rec))


@pytest.mark.asyncio
async def test_add_failure_removes_provisional_entry(reconciler, gateway, alice) -> None:
    await reconciler.load(alice)
    before = reconciler.tasks
    gateway.fail["create_task"] = DataError("insert denied")

    mutation = await reconciler.add("x")

    assert mutation.state is MutationState.REVERTED
    assert mutation.error == "insert denied"
    assert [t for t in reconciler.tasks if t.title == "x"] == []
    assert reconciler.tasks == before
    assert reconciler.last_error == "insert denied"


@pytest.mark.asyncio
@pytest.mark.parametrize("title", ["", "   ", "\t\n"])
async def test_add_blank_title_is_a_noop(reconciler, gateway, alice, title) -> None:
    await reconciler.load(alice)
    before = reconciler.tasks
    gateway.calls.clear()

    assert await reconciler.add(title) is None
    assert reconciler.tasks == before
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_add_without_session_is_a_noop(reconciler, gateway) -> None:
    assert await reconciler.add("x") is None
    assert reconciler.tasks == []
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_add_sends_trimmed_title(reconciler, gateway, alice) -> None:
    await reconciler.load(alice)
    await reconciler.add("  milk  ")
    assert ("create_task", ("u1", "milk")) in gateway.calls


# ---- toggle ----


@pytest.mark.asyncio
async def test_toggle_success_keeps_flipped_value(reconciler, gateway, alice) -> None:
    await reconciler.load(alice)
    task = reconciler.get(1)

    mutation = await reconciler.toggle_done(task)

    assert mutation.state is MutationState.CONFIRMED
    assert reconciler.get(1).done is True
    assert ("update_task", (1, {"done": True})) in gateway.calls


@pytest.mark.asyncio
async def test_toggle_failure_restores_prior_value(reconciler, gateway, alice) -> None:
    await reconciler.load(alice)
    gate = asyncio.Event()
    gateway.script("update_task", Step(error=DataError("timeout"), gate=gate))
    task = reconciler.get(2)
    assert task.done is True

    running = asyncio.create_task(reconciler.toggle_done(task))
    await asyncio.sleep(0)
    assert reconciler.get(2).done is False

    gate.set()
    mutation = await running

    assert mutation.state is MutationState.REVERTED
    assert reconciler.get(2).done is True
    assert ids(reconciler) == [3, 2, 1]


@pytest.mark.asyncio
async def test_toggle_is_ignored_for_provisional_task(reconciler, gateway, alice) -> None:
    await reconciler.load(alice)
    gate = asyncio.Event()
    gateway.script("create_task", Step(gate=gate))
    running = asyncio.create_task(reconciler.add("draft"))
    await asyncio.sleep(0)

    assert await reconciler.toggle_done(reconciler.tasks[0]) is None
    assert "update_task" not in gateway.ops()

    gate.set()
    await running


@pytest.mark.asyncio
async def test_toggle_rollback_is_a_point_rollback(reconciler, gateway, alice) -> None:
    await reconciler.load(alice)
    gate = asyncio.Event()
    gateway.script("update_task", Step(error=DataError("boom"), gate=gate))

    running = asyncio.create_task(reconciler.toggle_done(reconciler.get(1)))
    await asyncio.sleep(0)
    await reconciler.add("meanwhile")
    gate.set()
    await running

    assert reconciler.get(1).done is False
    assert reconciler.tasks[0].title == "meanwhile"


# ---- remove ----


@pytest.mark.asyncio
async def test_remove_success(reconciler, gateway, alice) -> None:
    await reconciler.load(alice)

    mutation = await reconciler.remove(2)

    assert mutation.state is MutationState.CONFIRMED
    assert ids(reconciler) == [3, 1]
    assert all(t.id != 2 for t in gateway.rows)


@pytest.mark.asyncio
async def test_remove_failure_restores_identical_list(reconciler, gateway, alice) -> None:
    await reconciler.load(alice)
    before = reconciler.tasks
    gate = asyncio.Event()
    gateway.script("delete_task", Step(error=DataError("network down"), gate=gate))

    running = asyncio.create_task(reconciler.remove(2))
    await asyncio.sleep(0)
    assert ids(reconciler) == [3, 1]

    gate.set()
    mutation = await running

    assert mutation.state is MutationState.REVERTED
    assert reconciler.tasks == before


@pytest.mark.asyncio
async def test_remove_rollback_undoes_changes_completed_meanwhile(reconciler, gateway, alice) -> None:
    """Full-list rollback: a toggle confirmed during the delete is undone locally."""
    await reconciler.load(alice)
    gate = asyncio.Event()
    gateway.script("delete_task", Step(error=DataError("boom"), gate=gate))

    running = asyncio.create_task(reconciler.remove(3))
    await asyncio.sleep(0)
    toggled = await reconciler.toggle_done(reconciler.get(1))
    assert toggled.state is MutationState.CONFIRMED
    assert reconciler.get(1).done is True

    gate.set()
    await running

    assert ids(reconciler) == [3, 2, 1]
    assert reconciler.get(1).done is False
    # ...while the server kept the toggle.
    assert next(t for t in gateway.rows if t.id == 1).done is True


# ---- interleaving and session changes ----


@pytest.mark.asyncio
async def test_double_toggle_on_same_id_is_not_deduplicated(reconciler, gateway, alice) -> None:
    """Two toggles from the same stale task: the late failure wins locally."""
    await reconciler.load(alice)
    stale = reconciler.get(1)
    first, second = asyncio.Event(), asyncio.Event()
    gateway.script("update_task", Step(error=DataError("boom"), gate=first), Step(gate=second))

    t1 = asyncio.create_task(reconciler.toggle_done(stale))
    t2 = asyncio.create_task(reconciler.toggle_done(stale))
    await asyncio.sleep(0)
    assert len(reconciler.pending_for(1)) == 2

    second.set()
    assert (await t2).state is MutationState.CONFIRMED
    first.set()
    assert (await t1).state is MutationState.REVERTED

    assert reconciler.get(1).done is False
    assert next(t for t in gateway.rows if t.id == 1).done is True


@pytest.mark.asyncio
async def test_reset_clears_everything(reconciler, alice) -> None:
    await reconciler.load(alice)
    reconciler.reset()
    assert reconciler.tasks == []
    assert reconciler.identity is None


@pytest.mark.asyncio
async def test_response_after_session_change_is_ignored(reconciler, gateway, alice) -> None:
    await reconciler.load(alice)
    gate = asyncio.Event()
    gateway.script("delete_task", Step(error=DataError("late"), gate=gate))

    running = asyncio.create_task(reconciler.remove(1))
    await asyncio.sleep(0)
    await reconciler.on_session_changed(None)

    gate.set()
    mutation = await running

    assert mutation.state is MutationState.REVERTED
    assert mutation.applied is False
    assert reconciler.tasks == []
    assert reconciler.last_error is None


@pytest.mark.asyncio
async def test_stale_load_does_not_overwrite_new_session(gateway, alice) -> None:
    bob = Identity(id="u2", email="bob@example.com")
    rec = TaskListReconciler(gateway)
    gate = asyncio.Event()
    gateway.script("list_tasks", Step(gate=gate))

    slow = asyncio.create_task(rec.load(alice))
    await asyncio.sleep(0)
    await rec.on_session_changed(bob)
    gate.set()
    await slow

    assert rec.identity == bob
    assert ids(rec) == [9]


@pytest.mark.asyncio
async def test_listeners_see_terminal_transitions(reconciler, gateway, alice) -> None:
    await reconciler.load(alice)
    seen = []
    reconciler.add_listener(lambda m: seen.append((m.kind, m.state)))
    gateway.fail["delete_task"] = DataError("nope")

    await reconciler.add("a")
    await reconciler.remove(1)

    assert seen == [
        (MutationKind.ADD, MutationState.CONFIRMED),
        (MutationKind.REMOVE, MutationState.REVERTED),
    ]
    assert [m.state for m in reconciler.history] == [MutationState.CONFIRMED, MutationState.REVERTED]


@pytest.mark.asyncio
async def test_unexpected_gateway_exception_is_contained(reconciler, gateway, alice) -> None:
    await reconciler.load(alice)
    gateway.fail["update_task"] = RuntimeError("bug in gateway")

    mutation = await reconciler.toggle_done(reconciler.get(1))

    assert mutation.state is MutationState.REVERTED
    assert reconciler.get(1).done is False


@pytest.mark.asyncio
async def test_cancelled_add_does_not_leave_provisional_task(reconciler, gateway, alice) -> None:
    await reconciler.load(alice)
    gateway.script("create_task", Step(gate=asyncio.Event()))

    running = asyncio.create_task(reconciler.add("never"))
    await asyncio.sleep(0)
    running.cancel()
    with pytest.raises(asyncio.CancelledError):
        await running

    assert ids(reconciler) == [3, 2, 1]
    assert reconciler.in_flight == {}
