"""Row models for the relations the portal reads and writes.

Each model is a point-in-time snapshot of one backend row. Mirrors replace
whole lists of these on every change notification; nothing patches a field
locally. Unknown columns are ignored so a backend migration that adds a column
does not break the client.

Status fields stay plain strings — the backend owns the vocabulary. The
values the admin views act on are listed beside each field.
"""

from datetime import datetime

from pydantic import BaseModel


class RoleAssignment(BaseModel):
    """A user_roles row."""

    id: str
    user_id: str
    role: str  # admin, moderator, user
    created_at: datetime | None = None


class ProfileAttributes(BaseModel):
    """A profiles row — the editable attributes behind a Profile."""

    id: str | None = None
    user_id: str
    full_name: str
    department: str | None = None
    phone: str | None = None
    roll_number: str | None = None
    student_class: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ContactMessage(BaseModel):
    """A contact_messages row."""

    id: str
    name: str
    email: str
    subject: str
    message: str
    is_seen: bool = False
    created_at: datetime


class BorrowerProfile(BaseModel):
    """The slice of a borrower's profile shown next to a borrow record."""

    full_name: str
    department: str | None = None
    roll_number: str | None = None
    phone: str | None = None


class BookBorrow(BaseModel):
    """A book_borrows row, optionally enriched with the borrower's profile."""

    id: str
    user_id: str
    book_id: str
    book_title: str
    borrow_date: datetime | None = None
    due_date: datetime | None = None
    return_date: datetime | None = None
    status: str = "borrowed"  # borrowed, returned, overdue
    created_at: datetime
    profile: BorrowerProfile | None = None

    def is_overdue(self, now: datetime) -> bool:
        if self.status == "overdue":
            return True
        return self.status == "borrowed" and self.due_date is not None and self.due_date < now


class CardApplication(BaseModel):
    """A library_card_applications row."""

    id: str
    user_id: str | None = None
    first_name: str
    last_name: str
    student_class: str = ""  # the "class" column, see from_row
    roll_no: str
    email: str
    phone: str
    address_street: str
    address_city: str
    address_state: str
    address_zip: str
    card_number: str | None = None
    status: str = "pending"  # pending, approved, rejected
    father_name: str | None = None
    field: str | None = None
    dob: str | None = None
    student_id: str | None = None
    issue_date: str | None = None
    valid_through: str | None = None
    created_at: datetime
    updated_at: datetime | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @classmethod
    def from_row(cls, row: dict) -> "CardApplication":
        data = dict(row)
        if "class" in data:
            data["student_class"] = data.pop("class")
        return cls.model_validate(data)


class Donation(BaseModel):
    """A donations row."""

    id: str
    amount: float
    method: str  # jazzcash, easypaisa, bank_transfer, cash
    name: str | None = None
    email: str | None = None
    message: str | None = None
    created_at: datetime


class Student(BaseModel):
    """A students row — a registered user holding a student card."""

    id: str
    user_id: str
    card_id: str
    name: str
    student_class: str | None = None
    field: str | None = None
    roll_no: str | None = None
    created_at: datetime

    @classmethod
    def from_row(cls, row: dict) -> "Student":
        data = dict(row)
        if "class" in data:
            data["student_class"] = data.pop("class")
        return cls.model_validate(data)


class NonStudent(BaseModel):
    """A non_students row — staff and other registered visitors."""

    id: str
    user_id: str
    name: str
    role: str  # teacher, staff, visitor
    phone: str | None = None
    created_at: datetime
