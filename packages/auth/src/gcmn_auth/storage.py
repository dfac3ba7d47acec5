"""Session persistence for the provider client.

The provider client persists the current session as an opaque JSON string
under its own key, the way the browser SDK uses localStorage. Backing store:
  - UPSTASH_REDIS_REST_URL set → Upstash SDK (deployed environments)
  - Otherwise → fakeredis (local dev and tests, in-memory)

Known limit: fakeredis lives in process memory, so without Upstash a session
is never restored after a restart. Restoring across restarts also needs a
stable GCMN_CLIENT_ID, since the key includes the client id.

Both clients expose async get/set/delete with string values, so the adapter
only has to normalize byte responses.

Usage:
    from gcmn_auth.storage import get_storage

    storage = get_storage()
    await storage.set_item(auth.storage_key, session_json)
"""

from __future__ import annotations

import os
from typing import Any


class SessionStorage:
    """Key-value store for the persisted session."""

    def __init__(self, raw_client: Any) -> None:
        self._client = raw_client

    async def get_item(self, key: str) -> str | None:
        value = await self._client.get(key)
        if value is None or isinstance(value, str):
            return value
        return value.decode()

    async def set_item(self, key: str, value: str) -> None:
        await self._client.set(key, value)

    async def remove_item(self, key: str) -> None:
        await self._client.delete(key)


# ============================================================================
# Singleton management
# ============================================================================

_storage: SessionStorage | None = None


def get_storage() -> SessionStorage:
    """Return a lazily-initialized SessionStorage singleton."""
    global _storage
    if _storage is not None:
        return _storage

    if os.environ.get("UPSTASH_REDIS_REST_URL"):
        from upstash_redis.asyncio import Redis

        _storage = SessionStorage(Redis.from_env())
    else:
        from fakeredis.aioredis import FakeRedis

        _storage = SessionStorage(FakeRedis(decode_responses=True))

    return _storage


def reset_storage() -> None:
    """Reset the storage singleton — used in tests to inject mocks."""
    global _storage
    _storage = None


def set_storage(storage: SessionStorage) -> None:
    """Inject a storage — used in tests."""
    global _storage
    _storage = storage
