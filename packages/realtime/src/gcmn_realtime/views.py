"""Admin view mirrors — one TableMirror subclass per admin page.

Each class names its relation and record model and adds the row actions and
read-only summaries its page shows. Summaries are computed from the current
snapshot on every call; they hold no state of their own.

Adding an admin view:
  1. Subclass TableMirror here
  2. Add one entry to ADMIN_VIEWS below
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from gcmn_shared import relations
from gcmn_shared.models import Notice, PortalResult
from gcmn_shared.record_models import (
    BookBorrow,
    BorrowerProfile,
    CardApplication,
    ContactMessage,
    Donation,
    NonStudent,
    Student,
)

from gcmn_realtime.mirror import TableMirror

logger = logging.getLogger(__name__)

CARD_STATUSES = ("pending", "approved", "rejected")


class MessagesMirror(TableMirror[ContactMessage]):
    relation = relations.CONTACT_MESSAGES
    record_model = ContactMessage
    label = "messages"

    @property
    def seen_count(self) -> int:
        return sum(1 for m in self.records if m.is_seen)

    @property
    def new_count(self) -> int:
        return sum(1 for m in self.records if not m.is_seen)

    async def toggle_seen(self, record_id: str, currently_seen: bool) -> PortalResult:
        state = "not seen" if currently_seen else "seen"
        return await self._write(
            lambda: self.rest.update(self.relation, record_id, {"is_seen": not currently_seen}),
            success=Notice(title="Updated", description=f"Message marked as {state}"),
            failure="Failed to update message",
        )


class BorrowsMirror(TableMirror[BookBorrow]):
    relation = relations.BOOK_BORROWS
    record_model = BookBorrow
    label = "borrow records"

    async def fetch(self) -> list[BookBorrow]:
        borrows = await super().fetch()
        user_ids = sorted({b.user_id for b in borrows})
        if not user_ids:
            return borrows

        # Borrower details are decoration: without them the table still renders.
        try:
            rows = await self.rest.select(
                relations.PROFILES,
                columns="user_id,full_name,department,roll_number,phone",
                filters={"user_id": user_ids},
            )
        except Exception:
            logger.warning("Could not load borrower profiles", exc_info=True)
            return borrows

        by_user = {row["user_id"]: BorrowerProfile.model_validate(row) for row in rows}
        return [b.model_copy(update={"profile": by_user.get(b.user_id)}) for b in borrows]

    def counts(self, now: datetime | None = None) -> dict[str, int]:
        now = now or datetime.now(UTC)
        return {
            "borrowed": sum(1 for b in self.records if b.status == "borrowed"),
            "returned": sum(1 for b in self.records if b.status == "returned"),
            "overdue": sum(1 for b in self.records if b.is_overdue(now)),
        }

    async def mark_returned(self, record_id: str) -> PortalResult:
        values = {"status": "returned", "return_date": datetime.now(UTC).isoformat()}
        return await self._write(
            lambda: self.rest.update(self.relation, record_id, values),
            success=Notice(title="Success", description="Book marked as returned"),
            failure="Failed to update record",
        )


class CardApplicationsMirror(TableMirror[CardApplication]):
    relation = relations.LIBRARY_CARD_APPLICATIONS
    record_model = CardApplication
    label = "applications"

    def parse_row(self, row: dict[str, Any]) -> CardApplication:
        return CardApplication.from_row(row)

    def status_counts(self) -> dict[str, int]:
        counts = dict.fromkeys(CARD_STATUSES, 0)
        for application in self.records:
            counts[application.status] = counts.get(application.status, 0) + 1
        return counts

    async def update_status(self, record_id: str, status: str) -> PortalResult:
        if status not in CARD_STATUSES:
            return PortalResult(success=False, message=f"Unknown status '{status}'")
        return await self._write(
            lambda: self.rest.update(self.relation, record_id, {"status": status}),
            success=Notice(
                title="Status Updated",
                description=f"Application status changed to {status}.",
            ),
            failure="Failed to update status.",
        )


class DonationsMirror(TableMirror[Donation]):
    relation = relations.DONATIONS
    record_model = Donation
    label = "donations"

    @property
    def total_amount(self) -> float:
        return sum(d.amount for d in self.records)

    @property
    def average_amount(self) -> int:
        if not self.records:
            return 0
        return round(self.total_amount / len(self.records))


def _matches(query: str, *fields: str | None) -> bool:
    needle = query.strip().lower()
    if not needle:
        return True
    return any(needle in (f or "").lower() for f in fields)


class StudentsMirror(TableMirror[Student]):
    relation = relations.STUDENTS
    record_model = Student
    label = "students"

    def parse_row(self, row: dict[str, Any]) -> Student:
        return Student.from_row(row)

    def search(self, query: str) -> list[Student]:
        return [
            s for s in self.records
            if _matches(query, s.name, s.card_id, s.roll_no, s.student_class, s.field)
        ]


class NonStudentsMirror(TableMirror[NonStudent]):
    relation = relations.NON_STUDENTS
    record_model = NonStudent
    label = "users"

    def search(self, query: str) -> list[NonStudent]:
        return [n for n in self.records if _matches(query, n.name, n.role, n.phone)]


ADMIN_VIEWS: dict[str, type[TableMirror[Any]]] = {
    "messages": MessagesMirror,
    "borrows": BorrowsMirror,
    "library-cards": CardApplicationsMirror,
    "donations": DonationsMirror,
    "students": StudentsMirror,
    "non-students": NonStudentsMirror,
}


def get_view_class(name: str) -> type[TableMirror[Any]]:
    """Look up the mirror class for an admin view name."""
    cls = ADMIN_VIEWS.get(name)
    if cls is None:
        supported = ", ".join(sorted(ADMIN_VIEWS.keys()))
        raise ValueError(f"Unknown admin view '{name}'. Supported: {supported}")
    return cls
