"""Realtime Table Mirror — a local copy of one relation for an admin view.

The mirror is a point-in-time cache; the backend stays authoritative.

  - load() reads the whole relation, newest first, and replaces the local
    list in one assignment. A failed read leaves the previous list in place.
  - subscribe() registers one change subscription. Every notification
    triggers a fresh load(); nothing is patched or diffed.
  - Row actions perform one write and never touch the local list. The
    notification that write causes is what refreshes the view.

Overlapping loads are full replaces, so whichever result is applied is a
complete list. Results are applied in issue order: a load whose result
arrives after a newer load's result has been applied is discarded.

close() is the unmount: it releases the subscription, and any load still in
flight finishes without touching the disposed mirror.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Awaitable, Callable
from typing import Any, ClassVar, Generic, TypeVar

from gcmn_data_access.errors import DataAccessError
from gcmn_data_access.rest import RestClient
from gcmn_shared.models import ChangeNotification, Notice, PortalResult
from pydantic import BaseModel

from gcmn_realtime.feed import ChangeFeed, ChangeSubscription

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)

Notifier = Callable[[Notice], None]
MirrorListener = Callable[["TableMirror[Any]"], None]


def log_notice(notice: Notice) -> None:
    """Default notifier: write the notice to the log."""
    if notice.variant == "destructive":
        logger.warning(f"{notice.title}: {notice.description}")
    else:
        logger.info(f"{notice.title}: {notice.description}")


class TableMirror(Generic[RecordT]):
    """Base class for the per-relation admin mirrors.

    Subclasses set `relation`, `record_model` and `label`, and add the row
    actions their view offers.
    """

    relation: ClassVar[str]
    record_model: ClassVar[type[BaseModel]]
    label: ClassVar[str] = "records"
    order_by: ClassVar[str] = "created_at"

    def __init__(
        self,
        rest: RestClient,
        feed: ChangeFeed,
        notifier: Notifier | None = None,
    ) -> None:
        self.rest = rest
        self.feed = feed
        self.notifier = notifier or log_notice
        self.records: list[RecordT] = []
        self.is_loading = True
        self._subscription: ChangeSubscription | None = None
        self._closed = False
        self._issued = 0
        self._applied = 0
        self._pending: set[asyncio.Task[None]] = set()
        self._listeners: dict[int, MirrorListener] = {}
        self._keys = itertools.count()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None

    def add_listener(self, listener: MirrorListener) -> Callable[[], None]:
        """Call `listener` whenever records or the loading flag change."""
        key = next(self._keys)
        self._listeners[key] = listener
        return lambda: self._listeners.pop(key, None)

    def _changed(self) -> None:
        for listener in list(self._listeners.values()):
            try:
                listener(self)
            except Exception:
                logger.exception(f"Listener failed for {self.relation} mirror")

    def _notify_user(self, notice: Notice) -> None:
        try:
            self.notifier(notice)
        except Exception:
            logger.exception("Notifier failed")

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def parse_row(self, row: dict[str, Any]) -> RecordT:
        return self.record_model.model_validate(row)  # type: ignore[return-value]

    async def fetch(self) -> list[RecordT]:
        """Read the full relation, newest first."""
        rows = await self.rest.select(self.relation, order=self.order_by, descending=True)
        return [self.parse_row(row) for row in rows]

    async def load(self) -> None:
        """Re-read the relation and replace the local list wholesale."""
        self._issued += 1
        seq = self._issued
        try:
            records: list[RecordT] | None = await self.fetch()
        except Exception:
            logger.exception(f"Failed to load {self.relation}")
            records = None

        if self._closed:
            logger.debug(f"Discarding {self.relation} load for a closed mirror")
            return
        self.is_loading = False

        if records is None:
            self._notify_user(
                Notice(title="Error", description=f"Failed to load {self.label}", variant="destructive")
            )
            self._changed()
            return
        if seq < self._applied:
            logger.debug(f"Discarding stale {self.relation} load #{seq}")
            return

        self._applied = seq
        self.records = records
        self._changed()

    # ------------------------------------------------------------------
    # Subscription lifecycle
    # ------------------------------------------------------------------

    def subscribe(self) -> None:
        """Register this mirror's change subscription (once)."""
        if self._closed or self._subscription is not None:
            return
        self._subscription = self.feed.subscribe(self.relation, self._on_change)

    def _on_change(self, notification: ChangeNotification) -> None:
        if self._closed:
            return
        logger.debug(f"{notification.event} on {notification.relation}, reloading")
        task = asyncio.get_running_loop().create_task(self.load())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def mount(self) -> None:
        """Subscribe, then load — the view's mount effect."""
        self.subscribe()
        await self.load()

    async def wait_idle(self) -> None:
        """Wait for every notification-triggered load to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def close(self) -> None:
        """Release the subscription and stop applying results."""
        self._closed = True
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._listeners.clear()

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    async def _write(
        self,
        action: Callable[[], Awaitable[None]],
        *,
        success: Notice,
        failure: str,
    ) -> PortalResult:
        """Run one backend write and report it. The list itself is refreshed
        by the change notification, not here."""
        try:
            await action()
        except DataAccessError as e:
            logger.error(f"Write to {self.relation} failed: {e!r}")
            description = e.user_message if e.is_authorization_denied else failure
            self._notify_user(Notice(title="Error", description=description, variant="destructive"))
            return PortalResult(success=False, message=description)
        except Exception:
            logger.exception(f"Write to {self.relation} failed")
            self._notify_user(Notice(title="Error", description=failure, variant="destructive"))
            return PortalResult(success=False, message=failure)

        self._notify_user(success)
        return PortalResult(success=True, message=success.description)

    async def delete_record(self, record_id: str) -> PortalResult:
        return await self._write(
            lambda: self.rest.delete(self.relation, record_id),
            success=Notice(title="Deleted", description=f"Record deleted from {self.label}."),
            failure="Failed to delete record.",
        )
