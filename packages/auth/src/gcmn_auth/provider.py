"""Supabase Auth (GoTrue) provider client.

Wraps the provider's REST endpoints and plays the role the browser SDK plays
in the original portal:

  - Persists the current session through SessionStorage and restores it on
    get_session(), refreshing it first when it has expired.
  - Emits auth-state events (SIGNED_IN, SIGNED_OUT, TOKEN_REFRESHED, ...) to
    registered listeners, in the order the transitions happen.
  - Serializes its own operations with an asyncio.Lock and emits events while
    holding it. A listener that awaited another provider call inline would
    deadlock on that lock, which is why the Session Store defers any
    dependent work to a later loop turn.

Error handling: the provider reports expected failures (bad credentials,
duplicate email, expired refresh token) as AuthProviderError with the
provider's human-readable message. Only failures to connect are retried (via
tenacity): every auth call is a POST, and a sign-up or token exchange that
timed out after reaching the server must not be sent again. A logout that
cannot reach the network still clears the local session.

Each client persists under its own storage key, derived from the project and
a client id, so two portals sharing a Redis never read each other's session.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import os
import uuid
from collections.abc import Callable
from urllib.parse import urlsplit
from datetime import UTC, datetime
from typing import Any

import httpx
import jwt as pyjwt
from gcmn_shared.auth_models import AuthEvent, Identity, Session
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from gcmn_auth.jwt import read_claims
from gcmn_auth.storage import SessionStorage, get_storage

logger = logging.getLogger(__name__)

# Failures raised before the request reached the server
CONNECT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout)

AuthListener = Callable[[AuthEvent, Session | None], None]


class AuthProviderError(Exception):
    """The identity provider rejected an auth operation."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


class AuthSubscription:
    """Handle for one registered auth-state listener."""

    def __init__(self, provider: SupabaseAuth, key: int, callback: AuthListener) -> None:
        self._provider = provider
        self.key = key
        self.callback = callback

    def unsubscribe(self) -> None:
        self._provider._listeners.pop(self.key, None)


def _now() -> int:
    return int(datetime.now(UTC).timestamp())


def storage_key_for(base_url: str, client_id: str) -> str:
    """Storage key for one client's session: sb-<project ref>-auth-token:<client id>."""
    host = urlsplit(base_url).hostname or "local"
    project_ref = host.split(".")[0]
    return f"sb-{project_ref}-auth-token:{client_id}"


class SupabaseAuth:
    """Async client for Supabase Auth with session persistence and events."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        storage: SessionStorage,
        *,
        timeout: float = 30.0,
        refresh_leeway: int = 60,
        refresh_check_interval: float = 30.0,
        client_id: str | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.storage = storage
        self.timeout = timeout
        self.refresh_leeway = refresh_leeway
        self.refresh_check_interval = refresh_check_interval
        self.client_id = client_id or uuid.uuid4().hex
        self.storage_key = storage_key_for(self.base_url, self.client_id)
        self._client: httpx.AsyncClient | None = None
        self._session: Session | None = None
        self._restored = False
        self._lock = asyncio.Lock()
        self._listeners: dict[int, AuthListener] = {}
        self._keys = itertools.count()
        self._refresh_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on_auth_state_change(self, callback: AuthListener) -> AuthSubscription:
        """Register a listener for auth-state transitions."""
        key = next(self._keys)
        self._listeners[key] = callback
        return AuthSubscription(self, key, callback)

    def _emit(self, event: AuthEvent, session: Session | None) -> None:
        logger.debug(f"Auth event {event} (listeners={len(self._listeners)})")
        for callback in list(self._listeners.values()):
            try:
                callback(event, session)
            except Exception:
                logger.exception(f"Auth listener failed while handling {event}")

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=f"{self.base_url}/auth/v1/",
                headers={"apikey": self.api_key},
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Stop auto-refresh and close the underlying HTTP client."""
        await self.stop_auto_refresh()
        if self._client:
            await self._client.aclose()
            self._client = None

    @retry(
        retry=retry_if_exception_type(CONNECT_ERRORS),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    async def _post(
        self,
        url: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
        token: str | None = None,
    ) -> dict[str, Any]:
        client = await self._get_client()
        headers = {"Authorization": f"Bearer {token}"} if token else None
        response = await client.post(url, json=json, params=params, headers=headers)
        if response.is_error:
            raise AuthProviderError(self._error_message(response), response.status_code)
        if not response.content:
            return {}
        return response.json()

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Pull the human-readable message out of a GoTrue error body.

        GoTrue has used several shapes over time: {"msg": ...},
        {"message": ...} and {"error": ..., "error_description": ...}.
        """
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            for key in ("msg", "message", "error_description", "error"):
                value = body.get(key)
                if isinstance(value, str) and value:
                    return value
        return f"Authentication request failed ({response.status_code})"

    @staticmethod
    def _identity_from_user(user: dict[str, Any]) -> Identity:
        return Identity(id=user["id"], email=user.get("email") or "")

    def _session_from_payload(self, payload: dict[str, Any]) -> Session:
        access_token = payload["access_token"]
        expires_at = payload.get("expires_at")
        if not expires_at:
            try:
                expires_at = read_claims(access_token).exp
            except (pyjwt.PyJWTError, KeyError):
                expires_at = _now() + int(payload.get("expires_in", 3600))
        return Session(
            identity=self._identity_from_user(payload["user"]),
            access_token=access_token,
            refresh_token=payload.get("refresh_token", ""),
            expires_at=int(expires_at),
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _save(self, session: Session) -> None:
        self._session = session
        await self.storage.set_item(self.storage_key, session.model_dump_json())

    async def _clear(self) -> None:
        self._session = None
        await self.storage.remove_item(self.storage_key)

    async def _restore(self) -> Session | None:
        raw = await self.storage.get_item(self.storage_key)
        if not raw:
            return None
        try:
            return Session.model_validate_json(raw)
        except ValueError:
            logger.warning("Discarding unreadable persisted session")
            await self.storage.remove_item(self.storage_key)
            return None

    async def _refresh(self, session: Session) -> Session | None:
        """Exchange the refresh token. Caller holds the lock."""
        try:
            payload = await self._post(
                "token",
                params={"grant_type": "refresh_token"},
                json={"refresh_token": session.refresh_token},
            )
        except AuthProviderError as e:
            logger.warning(f"Session refresh rejected: {e.message}")
            await self._clear()
            self._emit(AuthEvent.SIGNED_OUT, None)
            return None
        refreshed = self._session_from_payload(payload)
        await self._save(refreshed)
        self._emit(AuthEvent.TOKEN_REFRESHED, refreshed)
        return refreshed

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    @property
    def current_session(self) -> Session | None:
        """The in-memory session, without touching storage or the network."""
        return self._session

    async def get_session(self) -> Session | None:
        """Return the current session, restoring and refreshing as needed."""
        async with self._lock:
            if not self._restored:
                self._restored = True
                self._session = await self._restore()
            session = self._session
            if session is not None and session.is_expired(self.refresh_leeway):
                session = await self._refresh(session)
            return session

    async def refresh_session(self) -> Session | None:
        """Force a token refresh for the current session."""
        async with self._lock:
            if self._session is None:
                return None
            return await self._refresh(self._session)

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        """Verify credentials and start a session. Emits SIGNED_IN."""
        async with self._lock:
            payload = await self._post(
                "token",
                params={"grant_type": "password"},
                json={"email": email, "password": password},
            )
            session = self._session_from_payload(payload)
            self._restored = True
            await self._save(session)
            self._emit(AuthEvent.SIGNED_IN, session)
            return session

    async def sign_up(
        self, email: str, password: str, metadata: dict[str, str] | None = None
    ) -> tuple[Identity, Session | None]:
        """Create an account. When the project does not require email
        confirmation the response carries a session and SIGNED_IN is emitted."""
        async with self._lock:
            payload = await self._post(
                "signup",
                json={"email": email, "password": password, "data": metadata or {}},
            )
            if payload.get("access_token"):
                session = self._session_from_payload(payload)
                self._restored = True
                await self._save(session)
                self._emit(AuthEvent.SIGNED_IN, session)
                return session.identity, session

            user = payload.get("user") or payload
            return self._identity_from_user(user), None

    async def sign_out(self) -> None:
        """End the session upstream, then always clear it locally. Emits SIGNED_OUT."""
        async with self._lock:
            session = self._session
            try:
                if session is not None:
                    await self._post("logout", token=session.access_token)
            except (AuthProviderError, httpx.HTTPError) as e:
                logger.warning(f"Upstream sign-out failed, clearing local session anyway: {e}")
            finally:
                self._restored = True
                await self._clear()
                self._emit(AuthEvent.SIGNED_OUT, None)

    # ------------------------------------------------------------------
    # Auto refresh
    # ------------------------------------------------------------------

    def start_auto_refresh(self) -> None:
        """Refresh the access token shortly before it expires, in the background."""
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.create_task(self._auto_refresh_loop())

    async def stop_auto_refresh(self) -> None:
        task, self._refresh_task = self._refresh_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _auto_refresh_loop(self) -> None:
        while True:
            session = self._session
            delay = self.refresh_check_interval
            if session is not None and session.expires_at:
                delay = min(delay, max(session.expires_at - self.refresh_leeway - _now(), 0))
            await asyncio.sleep(delay)

            session = self._session
            if session is None or not session.is_expired(self.refresh_leeway):
                continue
            try:
                await self.refresh_session()
            except Exception:
                logger.exception("Background token refresh failed, will retry")
                await asyncio.sleep(self.refresh_check_interval)


# ============================================================================
# Singleton management
# ============================================================================

_auth: SupabaseAuth | None = None


def get_auth() -> SupabaseAuth:
    """Return a lazily-initialized SupabaseAuth singleton.

    Reads SUPABASE_URL and SUPABASE_ANON_KEY from the environment; sessions
    persist through get_storage(). Set GCMN_CLIENT_ID to keep a stable storage
    key across restarts; without it each process starts with a fresh key.
    """
    global _auth
    if _auth is not None:
        return _auth

    url = os.environ.get("SUPABASE_URL", "")
    key = os.environ.get("SUPABASE_ANON_KEY", "")
    if not url or not key:
        raise RuntimeError(
            "SUPABASE_URL and SUPABASE_ANON_KEY environment variables must be set. "
            "Both are shown in the Supabase dashboard under Settings → API."
        )
    client_id = os.environ.get("GCMN_CLIENT_ID") or None
    _auth = SupabaseAuth(url, key, get_storage(), client_id=client_id)
    return _auth


def reset_auth() -> None:
    """Reset the provider singleton — used in tests to inject mocks."""
    global _auth
    _auth = None
