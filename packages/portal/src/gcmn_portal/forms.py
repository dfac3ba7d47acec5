"""Form models and validation for the public portal pages.

Validation returns the first user-facing error message, or None when the
form is acceptable. Messages match what the pages show.
"""

from __future__ import annotations

import re

from gcmn_shared.auth_models import RegistrationData
from pydantic import BaseModel

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 6

MISSING_FIELDS = "Please fill in all required fields"
INVALID_EMAIL = "Please enter a valid email address."

DEPARTMENTS = (
    "Computer Science",
    "Commerce",
    "Arts",
    "Science",
    "Economics",
    "Mathematics",
    "Physics",
    "Chemistry",
    "English",
    "Urdu",
    "Islamic Studies",
)

CARD_CLASSES = ("Class 11", "Class 12", "ADA I", "ADA II", "BSC I", "BSC II")

DONATION_METHODS = ("jazzcash", "easypaisa", "bank_transfer", "cash")


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email))


def _blank(*values: str | None) -> bool:
    return any(not (v or "").strip() for v in values)


class RegistrationForm(BaseModel):
    """The Register page's fields."""

    full_name: str = ""
    email: str = ""
    password: str = ""
    confirm_password: str = ""
    phone: str | None = None
    department: str | None = None

    def validate_form(self) -> str | None:
        if _blank(self.full_name, self.email, self.password, self.confirm_password):
            return MISSING_FIELDS
        if self.password != self.confirm_password:
            return "Passwords do not match"
        if len(self.password) < MIN_PASSWORD_LENGTH:
            return f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        if self.department and self.department not in DEPARTMENTS:
            return "Please choose a valid department"
        return None

    def to_registration(self) -> RegistrationData:
        return RegistrationData(
            email=self.email.strip(),
            password=self.password,
            full_name=self.full_name.strip(),
            phone=self.phone or None,
            department=self.department or None,
        )


def validate_login(email: str, password: str) -> str | None:
    if _blank(email, password):
        return "Please enter your email and password"
    return None


class ContactForm(BaseModel):
    """A message sent from the Contact page."""

    name: str = ""
    email: str = ""
    subject: str = ""
    message: str = ""

    def validate_form(self) -> str | None:
        if _blank(self.name, self.email, self.subject, self.message):
            return MISSING_FIELDS
        if not is_valid_email(self.email):
            return INVALID_EMAIL
        return None


class DonationForm(BaseModel):
    """A pledge from the Donate page. Donor details are optional."""

    amount: float = 0
    method: str = ""
    name: str | None = None
    email: str | None = None
    message: str | None = None

    def validate_form(self) -> str | None:
        if self.amount <= 0:
            return "Please enter a donation amount greater than zero"
        if self.method not in DONATION_METHODS:
            return "Please choose a payment method"
        if self.email and not is_valid_email(self.email):
            return INVALID_EMAIL
        return None


class CardApplicationForm(BaseModel):
    """The library card application, filled across three wizard steps."""

    first_name: str = ""
    last_name: str = ""
    student_class: str = ""
    roll_no: str = ""
    email: str = ""
    phone: str = ""
    address_street: str = ""
    address_city: str = ""
    address_state: str = ""
    address_zip: str = ""
