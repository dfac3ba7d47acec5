"""PostgREST client for the Supabase data API.

Every request carries the project's anon key plus the signed-in user's access
token (when there is one), so the backend's row-level security policies
decide what each call may read or write. The client never assumes a write is
allowed because the UI offered it: a denied write comes back as a
DataAccessError with is_authorization_denied set.

Transport failures are retried with exponential backoff via tenacity, but
only where a repeat cannot duplicate a write. GET, and PATCH/DELETE by id,
retry on any transport error. POST retries only when the connection was
never made (ConnectError, ConnectTimeout): a read timeout on an insert may
mean the row exists already, so it surfaces as a DataAccessError instead.
HTTP error responses are not retried — PostgREST errors are deterministic —
and are converted to DataAccessError with the PostgREST code and message
attached.

Usage:
    from gcmn_data_access.rest import get_rest_client

    rest = get_rest_client()
    rows = await rest.select("book_borrows", order="created_at", descending=True)
    await rest.update("book_borrows", record_id, {"status": "returned"})
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from gcmn_data_access.errors import DataAccessError

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], str | None]

IDEMPOTENT_METHODS = frozenset({"GET", "PATCH", "DELETE"})

# Failures raised before the request reached the server
CONNECT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout)
TRANSPORT_ERRORS = (httpx.TransportError, httpx.TimeoutException)


def retryable_errors(method: str) -> tuple[type[Exception], ...]:
    return TRANSPORT_ERRORS if method.upper() in IDEMPOTENT_METHODS else CONNECT_ERRORS


def _filter_value(value: Any) -> str:
    """Render a Python value as a PostgREST filter expression."""
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    if isinstance(value, (list, tuple, set, frozenset)):
        items = ",".join(f'"{v}"' for v in value)
        return f"in.({items})"
    return f"eq.{value}"


class RestClient:
    """Async PostgREST client scoped to one Supabase project."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        token_provider: TokenProvider | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.token_provider = token_provider
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None
        self.request_count: int = 0
        self.retry_wait = wait_exponential(multiplier=1, min=1, max=10)

    def _auth_headers(self) -> dict[str, str]:
        token = self.token_provider() if self.token_provider else None
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {token or self.api_key}",
        }

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=f"{self.base_url}/rest/v1/",
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _send(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(retryable_errors(method)),
            wait=self.retry_wait,
            stop=stop_after_attempt(3),
            reraise=True,
        ):
            with attempt:
                self.request_count += 1
                return await client.request(method, url, **kwargs)
        raise AssertionError("unreachable")

    async def _request(
        self,
        method: str,
        relation: str,
        *,
        params: Mapping[str, str] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> Any:
        headers = self._auth_headers()
        if prefer:
            headers["Prefer"] = prefer

        client = await self._get_client()
        try:
            response = await self._send(
                client, method, relation, params=params, json=json, headers=headers
            )
        except httpx.HTTPError as e:
            raise DataAccessError(
                f"{method} {relation} failed: {e}", relation=relation
            ) from e

        if response.is_error:
            error = self._error_from_response(response, method, relation)
            logger.warning(f"PostgREST error: {error.message}")
            raise error

        if not response.content:
            return None
        return response.json()

    @staticmethod
    def _error_from_response(
        response: httpx.Response, method: str, relation: str
    ) -> DataAccessError:
        code: str | None = None
        detail = response.text
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            code = body.get("code")
            detail = body.get("message") or detail
        return DataAccessError(
            f"{method} {relation} returned {response.status_code}: {detail}",
            status=response.status_code,
            code=code,
            relation=relation,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

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
        """Read rows. Filter values may be scalars (eq), None (is null) or
        collections (in)."""
        params: dict[str, str] = {"select": columns}
        for column, value in (filters or {}).items():
            params[column] = _filter_value(value)
        if order:
            params["order"] = f"{order}.{'desc' if descending else 'asc'}"
        if limit is not None:
            params["limit"] = str(limit)
        rows = await self._request("GET", relation, params=params)
        return rows or []

    async def select_one(
        self,
        relation: str,
        *,
        columns: str = "*",
        filters: Mapping[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Read at most one row; None when nothing matches."""
        rows = await self.select(relation, columns=columns, filters=filters, limit=1)
        return rows[0] if rows else None

    async def insert(
        self,
        relation: str,
        values: Mapping[str, Any],
        *,
        returning: str | None = None,
    ) -> dict[str, Any] | None:
        """Insert one row. With `returning`, the named columns of the new row
        are returned."""
        params = {"select": returning} if returning else None
        prefer = "return=representation" if returning else "return=minimal"
        rows = await self._request(
            "POST", relation, params=params, json=dict(values), prefer=prefer
        )
        if returning and rows:
            return rows[0]
        return None

    async def update(
        self, relation: str, record_id: str, values: Mapping[str, Any]
    ) -> None:
        """Update one row by primary key."""
        await self._request(
            "PATCH",
            relation,
            params={"id": _filter_value(record_id)},
            json=dict(values),
            prefer="return=minimal",
        )

    async def delete(self, relation: str, record_id: str) -> None:
        """Delete one row by primary key."""
        await self._request(
            "DELETE",
            relation,
            params={"id": _filter_value(record_id)},
            prefer="return=minimal",
        )


# ============================================================================
# Singleton management
# ============================================================================

_rest_client: RestClient | None = None


def get_rest_client(token_provider: TokenProvider | None = None) -> RestClient:
    """Return a lazily-initialized RestClient singleton.

    Reads SUPABASE_URL and SUPABASE_ANON_KEY from the environment. A token
    provider passed on a later call replaces the current one, so the
    application root can bind the client to its session after creation.
    """
    global _rest_client
    if _rest_client is None:
        url = os.environ.get("SUPABASE_URL", "")
        key = os.environ.get("SUPABASE_ANON_KEY", "")
        if not url or not key:
            raise RuntimeError(
                "SUPABASE_URL and SUPABASE_ANON_KEY environment variables must be set. "
                "Both are shown in the Supabase dashboard under Settings → API."
            )
        _rest_client = RestClient(url, key)
    if token_provider is not None:
        _rest_client.token_provider = token_provider
    return _rest_client


def reset_rest_client() -> None:
    """Reset the client singleton — used in tests to inject mocks."""
    global _rest_client
    _rest_client = None
