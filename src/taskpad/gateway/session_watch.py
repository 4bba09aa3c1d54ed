# src/taskpad/gateway/session_watch.py

from __future__ import annotations

"""
Session file watcher.

A small polling loop that notices when another taskpad process signs in or
out (it rewrites or removes the shared session file) and lets the gateway
notify its session listeners. This is what keeps two consoles in sync the way
two browser tabs are.

To stop the watcher, cancel the coroutine/task.
"""

import asyncio
import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class SessionFileSource(Protocol):
    async def check_session_file(self) -> bool: ...


async def watch_session_file(gateway: SessionFileSource, *, interval_seconds: float = 2.0) -> None:
    sleep_s = max(0.05, float(interval_seconds))
    logger.debug("Session watcher started (interval=%.2fs)", sleep_s)

    while True:
        try:
            changed = await gateway.check_session_file()
        except Exception:
            logger.exception("check_session_file failed")
            changed = False

        if changed:
            logger.info("Session change picked up from another process")

        await asyncio.sleep(sleep_s)
