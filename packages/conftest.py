"""Shared test fixtures for the portal packages.

Provides:
  - MockTransport: queued httpx responses for the provider and data clients
  - FakeRest: in-memory stand-in for RestClient, with failure injection and
    change notifications after every write
  - FakeAuthProvider: the SupabaseAuth listener/operation surface without HTTP
  - Realistic GCMN Library rows: students, borrow records, card applications

Test modules cannot import from here (importlib import mode), so everything
is reached through fixtures.
"""

from __future__ import annotations

import asyncio
import itertools
import time
import uuid
from collections import defaultdict, deque
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
import jwt as pyjwt
import pytest
from fakeredis import FakeServer
from fakeredis.aioredis import FakeRedis
from gcmn_auth.provider import AuthProviderError, SupabaseAuth
from gcmn_auth.storage import SessionStorage
from gcmn_data_access.errors import DataAccessError
from gcmn_data_access.rest import RestClient
from gcmn_realtime.feed import ChangeFeed
from gcmn_shared import relations
from gcmn_shared.auth_models import AuthEvent, Identity, Session
from gcmn_shared.models import ChangeNotification

SUPABASE_URL = "https://gcmn-test.supabase.co"
ANON_KEY = "test-anon-key"
JWT_SECRET = "super-secret-jwt-token-for-testing-only"

# ============================================================================
# Mock HTTP transport
# ============================================================================


class MockTransport(httpx.AsyncBaseTransport):
    """Mock HTTP transport that returns preconfigured responses.

    Each call to handle_async_request pops the next response from the list.
    A queued exception is raised instead of answered, which is how tests feed
    timeouts and refused connections. If the list is exhausted, returns a 500.
    """

    def __init__(self, responses: list[httpx.Response | Exception] | None = None) -> None:
        self.responses = list(responses or [])
        self.requests: list[httpx.Request] = []

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.responses:
            response = self.responses.pop(0)
            if isinstance(response, Exception):
                raise response
            response.stream = httpx.ByteStream(response.content)
            return response
        return httpx.Response(500, json={"message": "No more mock responses"})


def make_token(
    sub: str = "user-123",
    email: str = "student@gcmn.edu.pk",
    exp: int | None = None,
) -> str:
    payload = {
        "sub": sub,
        "email": email,
        "role": "authenticated",
        "exp": exp or int(time.time()) + 3600,
        "aud": "authenticated",
    }
    return pyjwt.encode(payload, JWT_SECRET, algorithm="HS256")


def token_payload(
    user_id: str = "user-123",
    email: str = "student@gcmn.edu.pk",
    expires_at: int | None = None,
    refresh_token: str = "refresh-1",
) -> dict[str, Any]:
    """A GoTrue token response body."""
    exp = expires_at or int(time.time()) + 3600
    return {
        "access_token": make_token(user_id, email, exp),
        "token_type": "bearer",
        "expires_in": 3600,
        "expires_at": exp,
        "refresh_token": refresh_token,
        "user": {"id": user_id, "email": email},
    }


@pytest.fixture
def transport() -> MockTransport:
    return MockTransport()


@pytest.fixture
def storage() -> SessionStorage:
    return SessionStorage(FakeRedis(server=FakeServer(), decode_responses=True))


@pytest.fixture
async def auth_client(transport, storage):
    auth = SupabaseAuth(SUPABASE_URL, ANON_KEY, storage)
    auth._client = httpx.AsyncClient(
        transport=transport,
        base_url=f"{SUPABASE_URL}/auth/v1/",
        headers={"apikey": ANON_KEY},
    )
    yield auth
    await auth.close()


@pytest.fixture
async def rest_client(transport):
    rest = RestClient(SUPABASE_URL, ANON_KEY)
    rest._client = httpx.AsyncClient(transport=transport, base_url=f"{SUPABASE_URL}/rest/v1/")
    yield rest
    await rest.close()


@pytest.fixture
def token_response() -> Callable[..., dict[str, Any]]:
    return token_payload


@pytest.fixture
def jwt_factory() -> Callable[..., str]:
    return make_token


# ============================================================================
# FakeRest — in-memory RestClient
# ============================================================================


def _matches(row: Mapping[str, Any], filters: Mapping[str, Any]) -> bool:
    for column, expected in filters.items():
        actual = row.get(column)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


class FakeRest:
    """Mirrors the RestClient interface over in-memory tables.

    - failures[(method, relation)] makes that call raise the given exception
    - hold(relation) makes the next select on relation wait for an event; the
      rows it returns are captured when the call starts
    - with a feed attached, every successful write dispatches a
      ChangeNotification, the way the database trigger would
    """

    def __init__(self, feed: ChangeFeed | None = None) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self.failures: dict[tuple[str, str], Exception] = {}
        self.calls: list[tuple[str, str]] = []
        self.feed = feed
        self.token_provider: Callable[[], str | None] | None = None
        self.tokens_seen: list[str | None] = []
        self._holds: dict[str, deque[asyncio.Event]] = defaultdict(deque)
        self._card_numbers = itertools.count(1)

    def seed(self, relation: str, *rows: dict[str, Any]) -> None:
        self.tables[relation].extend(dict(r) for r in rows)

    def hold(self, relation: str) -> asyncio.Event:
        event = asyncio.Event()
        self._holds[relation].append(event)
        return event

    def fail(self, method: str, relation: str, error: Exception | None = None) -> None:
        self.failures[(method, relation)] = error or DataAccessError(
            f"{method} {relation} returned 500", status=500, relation=relation
        )

    def deny(self, method: str, relation: str) -> None:
        self.failures[(method, relation)] = DataAccessError(
            "permission denied",
            status=403,
            code="42501",
            relation=relation,
        )

    def _check(self, method: str, relation: str) -> None:
        self.calls.append((method, relation))
        self.tokens_seen.append(self.token_provider() if self.token_provider else None)
        error = self.failures.get((method, relation))
        if error is not None:
            raise error

    def _changed(self, relation: str, event: str) -> None:
        if self.feed is not None:
            self.feed.dispatch(ChangeNotification(relation=relation, event=event))

    async def select(
        self,
        relation: str,
        *,
        columns: str = "*",
        filters: Mapping[str, Any] | None = None,
        order: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        self._check("GET", relation)
        rows = [dict(r) for r in self.tables[relation] if _matches(r, filters or {})]
        if order:
            rows.sort(key=lambda r: str(r.get(order) or ""), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        if self._holds[relation]:
            await self._holds[relation].popleft().wait()
        else:
            await asyncio.sleep(0)
        return rows

    async def select_one(
        self,
        relation: str,
        *,
        columns: str = "*",
        filters: Mapping[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        rows = await self.select(relation, columns=columns, filters=filters, limit=1)
        return rows[0] if rows else None

    async def insert(
        self,
        relation: str,
        values: Mapping[str, Any],
        *,
        returning: str | None = None,
    ) -> dict[str, Any] | None:
        self._check("POST", relation)
        row = {"id": str(uuid.uuid4()), "created_at": datetime.now(UTC).isoformat(), **values}
        if relation == relations.LIBRARY_CARD_APPLICATIONS:
            row.setdefault("card_number", f"GCMN-{next(self._card_numbers):04d}")
            row.setdefault("status", "pending")
        self.tables[relation].append(row)
        self._changed(relation, "INSERT")
        if returning:
            return {c: row.get(c) for c in returning.split(",")}
        return None

    async def update(self, relation: str, record_id: str, values: Mapping[str, Any]) -> None:
        self._check("PATCH", relation)
        for row in self.tables[relation]:
            if row["id"] == record_id:
                row.update(values)
        self._changed(relation, "UPDATE")

    async def delete(self, relation: str, record_id: str) -> None:
        self._check("DELETE", relation)
        self.tables[relation] = [r for r in self.tables[relation] if r["id"] != record_id]
        self._changed(relation, "DELETE")

    async def close(self) -> None:
        pass


@pytest.fixture
def feed() -> ChangeFeed:
    return ChangeFeed()


@pytest.fixture
def fake_rest(feed) -> FakeRest:
    return FakeRest(feed)


# ============================================================================
# FakeAuthProvider — SupabaseAuth surface without HTTP
# ============================================================================


class _Subscription:
    def __init__(self, provider: FakeAuthProvider, key: int) -> None:
        self._provider = provider
        self.key = key

    def unsubscribe(self) -> None:
        self._provider.listeners.pop(self.key, None)


class FakeAuthProvider:
    """Accounts in a dict, events emitted synchronously like the real client.

    restore_gate, when set, makes get_session() wait so tests can land a
    transition while the initial read is in flight.
    """

    def __init__(self) -> None:
        self.accounts: dict[str, tuple[str, Identity]] = {}
        self.persisted: Session | None = None
        self.listeners: dict[int, Callable[[AuthEvent, Session | None], None]] = {}
        self.restore_gate: asyncio.Event | None = None
        self.sign_out_error: Exception | None = None
        self.sign_in_error: Exception | None = None
        self.auto_refresh = False
        self.closed = False
        self._keys = itertools.count()

    def add_account(self, email: str, password: str, user_id: str | None = None) -> Identity:
        identity = Identity(id=user_id or str(uuid.uuid4()), email=email)
        self.accounts[email] = (password, identity)
        return identity

    def session_for(self, identity: Identity) -> Session:
        return Session(
            identity=identity,
            access_token=make_token(identity.id, identity.email),
            refresh_token="refresh",
            expires_at=int(time.time()) + 3600,
        )

    def on_auth_state_change(self, callback) -> _Subscription:
        key = next(self._keys)
        self.listeners[key] = callback
        return _Subscription(self, key)

    def emit(self, event: AuthEvent, session: Session | None) -> None:
        for callback in list(self.listeners.values()):
            callback(event, session)

    async def get_session(self) -> Session | None:
        if self.restore_gate is not None:
            await self.restore_gate.wait()
        return self.persisted

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        await asyncio.sleep(0)
        if self.sign_in_error is not None:
            raise self.sign_in_error
        account = self.accounts.get(email)
        if account is None or account[0] != password:
            raise AuthProviderError("Invalid login credentials", 400)
        session = self.session_for(account[1])
        self.persisted = session
        self.emit(AuthEvent.SIGNED_IN, session)
        return session

    async def sign_up(
        self, email: str, password: str, metadata: dict[str, str] | None = None
    ) -> tuple[Identity, Session | None]:
        await asyncio.sleep(0)
        if email in self.accounts:
            raise AuthProviderError("User already registered", 422)
        identity = self.add_account(email, password)
        session = self.session_for(identity)
        self.persisted = session
        self.emit(AuthEvent.SIGNED_IN, session)
        return identity, session

    async def sign_out(self) -> None:
        await asyncio.sleep(0)
        if self.sign_out_error is not None:
            raise self.sign_out_error
        self.persisted = None
        self.emit(AuthEvent.SIGNED_OUT, None)

    def start_auto_refresh(self) -> None:
        self.auto_refresh = True

    async def stop_auto_refresh(self) -> None:
        self.auto_refresh = False

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_auth() -> FakeAuthProvider:
    return FakeAuthProvider()


# ============================================================================
# Sample rows
# ============================================================================


def _ts(days_ago: float) -> str:
    return (datetime.now(UTC) - timedelta(days=days_ago)).isoformat()


@pytest.fixture
def borrow_rows() -> list[dict[str, Any]]:
    return [
        {
            "id": "b-1",
            "user_id": "u-ayesha",
            "book_id": "cs-101",
            "book_title": "Introduction to Algorithms",
            "borrow_date": _ts(20),
            "due_date": _ts(6),
            "return_date": None,
            "status": "borrowed",
            "created_at": _ts(20),
        },
        {
            "id": "b-2",
            "user_id": "u-bilal",
            "book_id": "ur-12",
            "book_title": "Aag Ka Darya",
            "borrow_date": _ts(10),
            "due_date": _ts(-4),
            "return_date": None,
            "status": "borrowed",
            "created_at": _ts(10),
        },
        {
            "id": "b-3",
            "user_id": "u-ayesha",
            "book_id": "ph-7",
            "book_title": "Concepts of Physics",
            "borrow_date": _ts(30),
            "due_date": _ts(16),
            "return_date": _ts(17),
            "status": "returned",
            "created_at": _ts(30),
        },
    ]


@pytest.fixture
def card_rows() -> list[dict[str, Any]]:
    base = {
        "user_id": None,
        "roll_no": "1123",
        "phone": "0300-1234567",
        "address_street": "Mall Road",
        "address_city": "Multan",
        "address_state": "Punjab",
        "address_zip": "60000",
    }
    return [
        {
            **base,
            "id": "c-1",
            "first_name": "Ayesha",
            "last_name": "Khan",
            "class": "BSC I",
            "email": "ayesha@example.com",
            "card_number": "GCMN-0001",
            "status": "pending",
            "created_at": _ts(3),
        },
        {
            **base,
            "id": "c-2",
            "first_name": "Bilal",
            "last_name": "Ahmed",
            "class": "Class 12",
            "email": "bilal@example.com",
            "card_number": "GCMN-0002",
            "status": "approved",
            "created_at": _ts(5),
        },
    ]


@pytest.fixture
def message_rows() -> list[dict[str, Any]]:
    return [
        {
            "id": "m-1",
            "name": "Hamza",
            "email": "hamza@example.com",
            "subject": "Opening hours",
            "message": "Is the library open on Saturdays?",
            "is_seen": False,
            "created_at": _ts(1),
        },
        {
            "id": "m-2",
            "name": "Sana",
            "email": "sana@example.com",
            "subject": "Lost card",
            "message": "I lost my library card.",
            "is_seen": True,
            "created_at": _ts(2),
        },
    ]
