# src/taskpad/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- picks the gateway (Supabase, or the offline one when not configured),
- wires session store + reconciler into AppState.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.ports import Gateway
from ..core.state import AppState, build_state
from ..gateway.offline import OfflineGateway
from ..gateway.supabase import SupabaseGateway

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.session_path.parent.mkdir(parents=True, exist_ok=True)


def _offline_gateway(settings) -> OfflineGateway:
    return OfflineGateway(latency_seconds=float(getattr(settings, "offline_latency_seconds", 0.0)))


def create_gateway(settings) -> Gateway:
    if getattr(settings, "offline", False):
        logger.info("Offline mode forced; tasks live in memory only.")
        return _offline_gateway(settings)

    try:
        return SupabaseGateway(settings)
    except RuntimeError as e:
        # Fallback for demos / local runs without a Supabase project.
        logger.warning("%s Falling back to offline mode.", e)
        return _offline_gateway(settings)


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)
    return build_state(settings, create_gateway(settings))
