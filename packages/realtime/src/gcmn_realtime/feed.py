"""Change feed — Postgres LISTEN/NOTIFY fanned out per relation.

Every mirrored table carries an AFTER INSERT/UPDATE/DELETE trigger that
publishes {"table": ..., "type": ...} on the gcmn_changes channel. The feed
holds one dedicated asyncpg connection with a LISTEN on that channel and
dispatches each notification to the subscriptions registered for the table.

Notifications deliberately carry no row data. A subscriber learns only that
something changed and re-reads the relation through PostgREST, where
row-level security applies — the direct database connection used here is
never used to read rows.

Reconnection after a dropped connection is left to the caller (stop() then
start()); there is no retry or backoff here.
"""

from __future__ import annotations

import itertools
import json
import logging
from collections.abc import Callable, Iterable
from typing import Any

from gcmn_data_access.engine import get_engine
from gcmn_data_access.tables import MIRRORED_TABLES
from gcmn_shared.models import ChangeNotification
from gcmn_shared.relations import CHANGE_CHANNEL
from sqlalchemy import Table
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[ChangeNotification], None]

ALL_EVENTS = frozenset({"INSERT", "UPDATE", "DELETE"})

NOTIFY_FUNCTION = "gcmn_notify_change"


def notify_function_ddl(channel: str = CHANGE_CHANNEL) -> str:
    """The trigger function every mirrored table shares."""
    return f"""
CREATE OR REPLACE FUNCTION public.{NOTIFY_FUNCTION}() RETURNS trigger
LANGUAGE plpgsql AS $$
BEGIN
  PERFORM pg_notify(
    '{channel}',
    json_build_object('table', TG_TABLE_NAME, 'type', TG_OP)::text
  );
  RETURN NULL;
END;
$$"""


def change_trigger_ddl(table: Table) -> list[str]:
    """Statements that (re)create the change trigger on one table."""
    return [
        f"DROP TRIGGER IF EXISTS {NOTIFY_FUNCTION} ON {table.fullname}",
        f"CREATE TRIGGER {NOTIFY_FUNCTION} "
        f"AFTER INSERT OR UPDATE OR DELETE ON {table.fullname} "
        f"FOR EACH ROW EXECUTE FUNCTION public.{NOTIFY_FUNCTION}()",
    ]


class ChangeSubscription:
    """Handle for one relation subscription. Release it with unsubscribe()."""

    def __init__(
        self,
        feed: ChangeFeed,
        key: int,
        relation: str,
        events: frozenset[str],
        callback: ChangeCallback,
    ) -> None:
        self._feed = feed
        self.key = key
        self.relation = relation
        self.events = events
        self.callback = callback

    @property
    def active(self) -> bool:
        return self.key in self._feed._subscriptions

    def unsubscribe(self) -> None:
        self._feed._subscriptions.pop(self.key, None)


class ChangeFeed:
    """Per-relation fan-out of backend change notifications."""

    def __init__(
        self, engine: AsyncEngine | None = None, channel: str = CHANGE_CHANNEL
    ) -> None:
        self._engine = engine
        self.channel = channel
        self._subscriptions: dict[int, ChangeSubscription] = {}
        self._keys = itertools.count()
        self._conn: AsyncConnection | None = None
        self._driver: Any = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = get_engine()
        return self._engine

    @property
    def listening(self) -> bool:
        return self._driver is not None

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(
        self,
        relation: str,
        callback: ChangeCallback,
        events: Iterable[str] = ALL_EVENTS,
    ) -> ChangeSubscription:
        """Call `callback` for every matching change on `relation`."""
        key = next(self._keys)
        subscription = ChangeSubscription(
            self, key, relation, frozenset(e.upper() for e in events), callback
        )
        self._subscriptions[key] = subscription
        logger.debug(f"Subscribed to {relation} changes ({self.subscription_count(relation)} active)")
        return subscription

    def subscription_count(self, relation: str | None = None) -> int:
        if relation is None:
            return len(self._subscriptions)
        return sum(1 for s in self._subscriptions.values() if s.relation == relation)

    def dispatch(self, notification: ChangeNotification) -> None:
        """Deliver one notification to every matching subscription."""
        for subscription in list(self._subscriptions.values()):
            if subscription.relation != notification.relation:
                continue
            if notification.event != "*" and notification.event not in subscription.events:
                continue
            try:
                subscription.callback(notification)
            except Exception:
                logger.exception(f"Change callback failed for {notification.relation}")

    def _on_notify(self, connection: Any, pid: int, channel: str, payload: str) -> None:
        try:
            data = json.loads(payload)
            notification = ChangeNotification(relation=data["table"], event=data.get("type", "*"))
        except (ValueError, KeyError, TypeError):
            logger.warning(f"Ignoring malformed change notification on {channel}: {payload!r}")
            return
        self.dispatch(notification)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Open the listening connection."""
        if self._driver is not None:
            return
        self._conn = await self.engine.connect()
        raw = await self._conn.get_raw_connection()
        self._driver = raw.driver_connection
        await self._driver.add_listener(self.channel, self._on_notify)
        logger.info(f"Listening for changes on '{self.channel}'")

    async def stop(self) -> None:
        """Close the listening connection. Subscriptions are kept."""
        driver, self._driver = self._driver, None
        conn, self._conn = self._conn, None
        if driver is not None:
            try:
                await driver.remove_listener(self.channel, self._on_notify)
            except Exception:
                logger.warning(f"Could not remove listener on '{self.channel}'", exc_info=True)
        if conn is not None:
            await conn.close()

    async def install_triggers(self, tables: Iterable[Table] = MIRRORED_TABLES) -> int:
        """Create the notify function and a change trigger on each table.

        Needs a role that may create functions and triggers (the database
        owner). Returns the number of tables wired up.
        """
        count = 0
        async with self.engine.begin() as conn:
            await conn.exec_driver_sql(notify_function_ddl(self.channel))
            for table in tables:
                for statement in change_trigger_ddl(table):
                    await conn.exec_driver_sql(statement)
                count += 1
        logger.info(f"Installed change triggers on {count} tables")
        return count
