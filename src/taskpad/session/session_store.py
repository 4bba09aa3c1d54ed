# src/taskpad/session/session_store.py

from __future__ import annotations

"""
Session store: the single source of truth for "who is logged in".

The store owns the gateway's session-change subscription. Use it as an async
context manager so the subscription is released when the owning context ends:

    async with SessionStore(gateway) as session:
        session.add_listener(reconciler.on_session_changed)
        ...

Listeners are awaited on every identity change, which is how sign-out clears
the task list and a new sign-in reloads it.
"""

import logging
from types import TracebackType

from ..core.errors import AuthError
from ..core.ports import AuthGateway, SessionCallback, Subscription, notify_session_listeners
from ..tasks.task_models import Identity

logger = logging.getLogger(__name__)


class SessionStore:
    def __init__(self, gateway: AuthGateway) -> None:
        self._gateway = gateway
        self._listeners: list[SessionCallback] = []
        self._subscription: Subscription | None = None

        self.identity: Identity | None = None
        self.auth_error: str | None = None
        self.loading = False

    async def __aenter__(self) -> SessionStore:
        await self.initialize()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def signed_in(self) -> bool:
        return self.identity is not None

    @property
    def email(self) -> str | None:
        return self.identity.email if self.identity else None

    def add_listener(self, callback: SessionCallback) -> None:
        self._listeners.append(callback)

    async def initialize(self) -> None:
        """Subscribe to external session changes and restore an existing session."""
        if self._subscription is None:
            self._subscription = self._gateway.on_session_change(self._on_external_change)

        try:
            identity = await self._gateway.get_current_user()
        except AuthError as e:
            logger.warning("Error getting user: %s", e)
            identity = None
        except Exception:
            logger.exception("Unexpected error getting user")
            identity = None

        await self._set_identity(identity)

    def close(self) -> None:
        """Release the gateway subscription. Idempotent."""
        sub, self._subscription = self._subscription, None
        if sub is not None:
            sub.cancel()
            logger.debug("Session subscription released")

    async def sign_up(self, email: str, password: str) -> bool:
        """
        Register a new account.

        The provider may require email confirmation, in which case it returns
        no identity and the store stays signed out. That is a success.
        """
        self.auth_error = None
        self.loading = True
        try:
            identity = await self._gateway.sign_up(email, password)
        except AuthError as e:
            self.auth_error = e.message
            logger.info("Sign-up failed email=%s: %s", email, e)
            return False
        finally:
            self.loading = False

        if identity is None:
            logger.info("Sign-up accepted email=%s; confirmation required", email)
        await self._set_identity(identity)
        return True

    async def sign_in(self, email: str, password: str) -> bool:
        self.auth_error = None
        self.loading = True
        try:
            identity = await self._gateway.sign_in_with_password(email, password)
        except AuthError as e:
            self.auth_error = e.message
            logger.info("Sign-in failed email=%s: %s", email, e)
            return False
        finally:
            self.loading = False

        await self._set_identity(identity)
        return True

    async def sign_out(self) -> None:
        """Sign out remotely (best-effort) and always clear local state."""
        try:
            await self._gateway.sign_out()
        except AuthError as e:
            logger.warning("Remote sign-out failed, clearing local session anyway: %s", e)
        except Exception:
            logger.exception("Unexpected error during sign-out, clearing local session anyway")

        self.auth_error = None
        await self._set_identity(None)

    async def _on_external_change(self, identity: Identity | None) -> None:
        if identity != self.identity:
            logger.info("Session changed externally: %s", identity.id if identity else "signed out")
        await self._set_identity(identity)

    async def _set_identity(self, identity: Identity | None) -> None:
        if identity == self.identity:
            return
        self.identity = identity
        await notify_session_listeners(self._listeners, identity)
