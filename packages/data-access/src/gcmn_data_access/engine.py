"""Direct Postgres connection for the change feed.

The change feed is the only component that talks to Postgres directly; rows
are always read through PostgREST. It needs a single long-lived server
session to hold its LISTEN, so the URL must be Supabase's direct connection
(port 5432). Transaction-mode pooling (port 6543) hands each statement to
whichever backend is free, and notifications for the LISTEN never arrive.

Usage:
    from gcmn_data_access.engine import get_engine

    conn = await get_engine().connect()
    raw = await conn.get_raw_connection()
    await raw.driver_connection.add_listener("gcmn_changes", on_notify)
"""

from __future__ import annotations

import logging
import os

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

logger = logging.getLogger(__name__)

POOLER_PORT = 6543

_engine: AsyncEngine | None = None


def async_database_url(url: str) -> str:
    """Rewrite a postgres:// or postgresql:// URL to use the asyncpg driver."""
    for scheme in ("postgresql://", "postgres://"):
        if url.startswith(scheme):
            return "postgresql+asyncpg://" + url[len(scheme):]
    return url


def get_engine() -> AsyncEngine:
    """Return the engine singleton, created from SUPABASE_DB_URL on first use."""
    global _engine
    if _engine is not None:
        return _engine

    raw_url = os.environ.get("SUPABASE_DB_URL", "")
    if not raw_url:
        raise RuntimeError(
            "SUPABASE_DB_URL is not set. Use the direct connection string "
            "(Settings → Database, port 5432); the change feed cannot LISTEN "
            "through the transaction pooler."
        )

    url = async_database_url(raw_url)
    if make_url(url).port == POOLER_PORT:
        logger.warning(
            "SUPABASE_DB_URL points at the transaction pooler; change notifications will not arrive"
        )

    # One connection holds the LISTEN, one is left for installing triggers.
    _engine = create_async_engine(url, pool_size=2, max_overflow=0, pool_pre_ping=True)
    return _engine


def reset_engine() -> None:
    """Drop the engine singleton — used in tests."""
    global _engine
    _engine = None
