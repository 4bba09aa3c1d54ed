# src/taskpad/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time: without Supabase credentials the app
  falls back to the offline gateway.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

ENV_PREFIX = "TASKPAD"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv  # type: ignore
    except Exception:
        return
    load_dotenv(override=False)


_load_dotenv_if_available()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Console view ----
    console_color: bool

    # ---- Remote (Supabase) ----
    offline: bool
    offline_latency_seconds: float
    supabase_url: str
    supabase_anon_key: str | None
    tasks_table: str
    http_timeout_seconds: float
    session_watch_seconds: float

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    session_path: Path

    @property
    def remote_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_anon_key)

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "taskpad").strip() or "taskpad"
        log_level = _env(_k("LOG_LEVEL"), "WARNING")

        console_color = _env_bool(_k("CONSOLE_COLOR"), True)

        offline = _env_bool(_k("OFFLINE"), False)
        offline_latency_seconds = max(0.0, _env_float(_k("OFFLINE_LATENCY_SECONDS"), 0.0))
        # Accept the plain SUPABASE_* names used by the Supabase tooling as well.
        supabase_url = (_first_env(_k("SUPABASE_URL"), "SUPABASE_URL", default="") or "").strip().rstrip("/")
        supabase_anon_key = _first_env(_k("SUPABASE_ANON_KEY"), "SUPABASE_ANON_KEY", default=None)
        tasks_table = _env(_k("TASKS_TABLE"), "todos").strip() or "todos"
        http_timeout_seconds = max(1.0, _env_float(_k("HTTP_TIMEOUT_SECONDS"), 10.0))
        session_watch_seconds = _env_float(_k("SESSION_WATCH_SECONDS"), 2.0)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskpad"))
        session_path = _env_path(_k("SESSION_PATH"), data_dir / "session.json")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_color=console_color,
            offline=offline,
            offline_latency_seconds=offline_latency_seconds,
            supabase_url=supabase_url,
            supabase_anon_key=supabase_anon_key.strip() if supabase_anon_key else None,
            tasks_table=tasks_table,
            http_timeout_seconds=http_timeout_seconds,
            session_watch_seconds=session_watch_seconds,
            data_dir=data_dir,
            session_path=session_path,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
