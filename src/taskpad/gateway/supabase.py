# src/taskpad/gateway/supabase.py

from __future__ import annotations

import contextlib
import json
import logging
import os
from pathlib import Path
from typing import Any

import httpx

from ..core.errors import AuthError, DataError, GatewayError
from ..core.ports import CallbackSubscription, SessionCallback, notify_session_listeners
from ..tasks.task_models import Identity, Task, TaskId

logger = logging.getLogger(__name__)

AUTH_PREFIX = "/auth/v1"
REST_PREFIX = "/rest/v1"


def _load_json(path: Path) -> dict[str, Any]:
    raw = path.read_text("utf-8")
    val = json.loads(raw)
    if isinstance(val, dict):
        return val
    raise ValueError("Expected JSON object")


def _atomic_write_json(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    with contextlib.suppress(FileNotFoundError):
        tmp.unlink()
    # The file holds a refresh token: owner-only from the first byte.
    fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False)
    os.replace(tmp, path)


def _file_stamp(path: Path) -> int | None:
    try:
        return path.stat().st_mtime_ns
    except OSError:
        return None


def _error_message(resp: httpx.Response) -> str:
    """Pick the human-readable message out of a GoTrue/PostgREST error body."""
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("msg", "message", "error_description", "error"):
            val = body.get(key)
            if isinstance(val, str) and val.strip():
                return val.strip()
    text = (resp.text or "").strip()
    return text[:200] if text else (resp.reason_phrase or "Request failed")


def _identity_of(session: dict[str, Any] | None) -> Identity | None:
    if not session:
        return None
    user = session.get("user")
    if not isinstance(user, dict):
        return None
    try:
        return Identity.from_user(user)
    except ValueError:
        return None


class SupabaseGateway:
    """
    Gateway backed by a Supabase project (GoTrue auth + PostgREST table).

    The auth session (tokens + user) is kept in a JSON file so that a restart
    restores it, the same way a browser client keeps it in local storage.
    Other processes sharing that file are picked up by `check_session_file()`
    (see session_watch.watch_session_file).
    """

    def __init__(self, settings, *, client: httpx.AsyncClient | None = None) -> None:
        base_url = (getattr(settings, "supabase_url", "") or "").strip().rstrip("/")
        anon_key = (getattr(settings, "supabase_anon_key", "") or "").strip()
        if not base_url or not anon_key:
            raise RuntimeError(
                "Supabase is not configured: set TASKPAD_SUPABASE_URL and TASKPAD_SUPABASE_ANON_KEY in your .env."
            )

        self._anon_key = anon_key
        self._table = str(getattr(settings, "tasks_table", "todos") or "todos")
        self._session_path = Path(getattr(settings, "session_path", Path(".local/taskpad/session.json")))
        self._listeners: list[SessionCallback] = []

        self._owns_client = client is None
        if client is None:
            timeout_s = float(getattr(settings, "http_timeout_seconds", 10.0))
            client = httpx.AsyncClient(
                base_url=base_url,
                timeout=httpx.Timeout(timeout_s, connect=min(5.0, timeout_s)),
            )
        self._client = client

        self._session: dict[str, Any] | None = None
        self._session_stamp: int | None = None
        self._reload_session()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ---- session persistence ----

    @property
    def identity(self) -> Identity | None:
        return _identity_of(self._session)

    def _reload_session(self) -> None:
        self._session_stamp = _file_stamp(self._session_path)
        if self._session_stamp is None:
            self._session = None
            return
        try:
            data = _load_json(self._session_path)
            if not data.get("access_token"):
                raise ValueError("session file is missing access_token")
            self._session = data
        except Exception as e:
            logger.warning("Ignoring unreadable session file %s: %r", self._session_path, e)
            self._session = None

    def _store_session(self, session: dict[str, Any] | None) -> None:
        self._session = session
        try:
            if session is None:
                self._session_path.unlink(missing_ok=True)
            else:
                _atomic_write_json(self._session_path, session)
        except OSError as e:
            logger.error("Failed to persist session file %s: %r", self._session_path, e)
        self._session_stamp = _file_stamp(self._session_path)

    async def _set_session(self, session: dict[str, Any] | None) -> None:
        before = self.identity
        self._store_session(session)
        after = self.identity
        if before != after:
            await notify_session_listeners(self._listeners, after)

    async def check_session_file(self) -> bool:
        """
        Reload the session file if another process changed it.

        Returns True when the signed-in identity changed (listeners notified).
        """
        if _file_stamp(self._session_path) == self._session_stamp:
            return False
        before = self.identity
        self._reload_session()
        after = self.identity
        if before == after:
            return False
        logger.info("Session file changed: %s", after.id if after else "signed out")
        await notify_session_listeners(self._listeners, after)
        return True

    # ---- HTTP ----

    def _access_token(self) -> str | None:
        if not self._session:
            return None
        token = self._session.get("access_token")
        return str(token) if token else None

    async def _request(
        self,
        method: str,
        path: str,
        *,
        error_cls: type[GatewayError],
        params: dict[str, str] | None = None,
        json_body: Any = None,
        bearer: str | None = None,
        prefer: str | None = None,
    ) -> httpx.Response:
        headers = {
            "apikey": self._anon_key,
            "Authorization": f"Bearer {bearer or self._anon_key}",
        }
        if prefer:
            headers["Prefer"] = prefer

        try:
            resp = await self._client.request(method, path, params=params, json=json_body, headers=headers)
        except httpx.HTTPError as e:
            raise error_cls(f"Network error: {e.__class__.__name__}: {e}") from e

        if resp.status_code >= 400:
            raise error_cls(_error_message(resp), status=resp.status_code)
        return resp

    @staticmethod
    def _json(resp: httpx.Response, error_cls: type[GatewayError]) -> Any:
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise error_cls("Malformed response from server", status=resp.status_code) from e

    # ---- auth ----

    def on_session_change(self, callback: SessionCallback) -> CallbackSubscription:
        self._listeners.append(callback)
        return CallbackSubscription(self._listeners, callback)

    async def get_current_user(self) -> Identity | None:
        token = self._access_token()
        if token is None:
            return None

        try:
            resp = await self._request("GET", f"{AUTH_PREFIX}/user", error_cls=AuthError, bearer=token)
        except AuthError as e:
            if e.status != 401 or not (self._session or {}).get("refresh_token"):
                raise
            logger.info("Access token rejected, refreshing session")
            await self._refresh()
            resp = await self._request(
                "GET", f"{AUTH_PREFIX}/user", error_cls=AuthError, bearer=self._access_token()
            )

        user = self._json(resp, AuthError)
        if not isinstance(user, dict):
            raise AuthError("Malformed user response")
        try:
            return Identity.from_user(user)
        except ValueError as e:
            raise AuthError(str(e)) from e

    async def _refresh(self) -> None:
        refresh_token = (self._session or {}).get("refresh_token")
        try:
            resp = await self._request(
                "POST",
                f"{AUTH_PREFIX}/token",
                error_cls=AuthError,
                params={"grant_type": "refresh_token"},
                json_body={"refresh_token": refresh_token},
            )
        except AuthError:
            # Dead refresh token: drop the local session; the caller reports the error.
            self._store_session(None)
            raise
        session = self._json(resp, AuthError)
        if not isinstance(session, dict) or not session.get("access_token"):
            self._store_session(None)
            raise AuthError("Malformed token refresh response")
        self._store_session(session)

    async def sign_up(self, email: str, password: str) -> Identity | None:
        resp = await self._request(
            "POST",
            f"{AUTH_PREFIX}/signup",
            error_cls=AuthError,
            json_body={"email": email, "password": password},
        )
        body = self._json(resp, AuthError)
        if not isinstance(body, dict):
            raise AuthError("Malformed sign-up response")

        # With email confirmation enabled GoTrue returns the bare user and no session.
        if not body.get("access_token"):
            return None

        await self._set_session(body)
        return self.identity

    async def sign_in_with_password(self, email: str, password: str) -> Identity:
        resp = await self._request(
            "POST",
            f"{AUTH_PREFIX}/token",
            error_cls=AuthError,
            params={"grant_type": "password"},
            json_body={"email": email, "password": password},
        )
        body = self._json(resp, AuthError)
        identity = _identity_of(body if isinstance(body, dict) else None)
        if identity is None or not body.get("access_token"):
            raise AuthError("Malformed sign-in response")

        await self._set_session(body)
        return identity

    async def sign_out(self) -> None:
        token = self._access_token()
        try:
            if token is not None:
                await self._request("POST", f"{AUTH_PREFIX}/logout", error_cls=AuthError, bearer=token)
        finally:
            await self._set_session(None)

    # ---- tasks ----

    def _data_token(self) -> str:
        token = self._access_token()
        if token is None:
            raise DataError("Not signed in")
        return token

    def _rows(self, resp: httpx.Response) -> list[dict[str, Any]]:
        body = self._json(resp, DataError)
        if body is None:
            return []
        if not isinstance(body, list) or not all(isinstance(r, dict) for r in body):
            raise DataError("Malformed rows in response")
        return body

    @staticmethod
    def _task(row: dict[str, Any]) -> Task:
        try:
            return Task.from_row(row)
        except ValueError as e:
            raise DataError(f"Malformed task row: {e}") from e

    async def list_tasks(self, owner: Identity) -> list[Task]:
        resp = await self._request(
            "GET",
            f"{REST_PREFIX}/{self._table}",
            error_cls=DataError,
            params={"select": "*", "user_id": f"eq.{owner.id}", "order": "created_at.desc"},
            bearer=self._data_token(),
        )
        return [self._task(row) for row in self._rows(resp)]

    async def create_task(self, owner: Identity, title: str) -> Task:
        resp = await self._request(
            "POST",
            f"{REST_PREFIX}/{self._table}",
            error_cls=DataError,
            json_body={"title": title, "user_id": owner.id},
            bearer=self._data_token(),
            prefer="return=representation",
        )
        rows = self._rows(resp)
        if len(rows) != 1:
            raise DataError(f"Expected one inserted row, got {len(rows)}")
        return self._task(rows[0])

    async def update_task(self, task_id: TaskId, fields: dict[str, Any]) -> None:
        resp = await self._request(
            "PATCH",
            f"{REST_PREFIX}/{self._table}",
            error_cls=DataError,
            params={"id": f"eq.{task_id}"},
            json_body=dict(fields),
            bearer=self._data_token(),
            prefer="return=representation",
        )
        # Row level security filters silently: zero rows means nothing was written.
        if not self._rows(resp):
            raise DataError(f"Task {task_id} not found")

    async def delete_task(self, task_id: TaskId) -> None:
        resp = await self._request(
            "DELETE",
            f"{REST_PREFIX}/{self._table}",
            error_cls=DataError,
            params={"id": f"eq.{task_id}"},
            bearer=self._data_token(),
            prefer="return=representation",
        )
        if not self._rows(resp):
            raise DataError(f"Task {task_id} not found")
