# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from taskpad.core.state import AppState, build_state
from taskpad.session.session_store import SessionStore
from taskpad.tasks.reconciler import TaskListReconciler
from taskpad.tasks.task_models import Identity

from .fakes import FakeGateway, make_task


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the gateways.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="taskpad-test",
        log_level="DEBUG",
        console_color=False,
        offline=True,
        offline_latency_seconds=0.0,
        remote_configured=False,
        supabase_url="https://project.supabase.test",
        supabase_anon_key="anon-key",
        tasks_table="todos",
        http_timeout_seconds=5.0,
        session_watch_seconds=0.0,
        data_dir=tmp_path,
        session_path=tmp_path / "session.json",
    )


@pytest.fixture()
def alice() -> Identity:
    return Identity(id="u1", email="alice@example.com")


@pytest.fixture()
def gateway(alice: Identity) -> FakeGateway:
    """Fake gateway with alice registered and three stored tasks (ids 1..3, 3 newest)."""
    gw = FakeGateway(
        rows=[
            make_task(1, "buy milk", minutes=0),
            make_task(2, "write report", minutes=5, done=True),
            make_task(3, "call bob", minutes=10),
            make_task(9, "not alice's", minutes=20, user_id="u2"),
        ],
    )
    gw.accounts[alice.email or ""] = ("pw", alice)
    return gw


@pytest.fixture()
def reconciler(gateway: FakeGateway) -> TaskListReconciler:
    return TaskListReconciler(gateway)


@pytest.fixture()
def session_store(gateway: FakeGateway) -> SessionStore:
    return SessionStore(gateway)


@pytest.fixture()
def state(settings: SimpleNamespace, gateway: FakeGateway) -> AppState:
    """AppState wired around the fake gateway (session store -> reconciler cascade)."""
    return build_state(settings, gateway)
