"""Auth domain models — the contract between the provider client, the
Session Store and everything that reads the current user.

Design choices:
  - Identity and Session are immutable snapshots. Every auth transition
    replaces them wholesale; nothing mutates a field in place.
  - Profile is derived data. It is rebuilt from the role and profile
    relations on every identity change and is never written back.
  - The password only ever appears in RegistrationData on its way to the
    provider; no model that is stored or emitted carries it.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict

from gcmn_shared.models import PortalResult

Role = Literal["admin", "user"]


class AuthEvent(StrEnum):
    """Auth-state transitions pushed by the provider client, in emission order."""

    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"


class Identity(BaseModel):
    """The authenticated principal as issued by the identity provider."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str

    @property
    def email_local_part(self) -> str:
        return self.email.split("@", 1)[0]


class Session(BaseModel):
    """A live credential binding this client to an Identity."""

    model_config = ConfigDict(frozen=True)

    identity: Identity
    access_token: str
    refresh_token: str = ""
    expires_at: int = 0  # unix seconds

    def is_expired(self, leeway: int = 0) -> bool:
        if not self.expires_at:
            return False
        now = int(datetime.now(UTC).timestamp())
        return self.expires_at - leeway <= now


class Profile(BaseModel):
    """Display and role metadata about an Identity, derived from two relations."""

    model_config = ConfigDict(frozen=True)

    identity_id: str
    email: str
    full_name: str
    role: Role = "user"
    department: str | None = None
    phone: str | None = None
    roll_number: str | None = None
    student_class: str | None = None


class RegistrationData(BaseModel):
    """Sign-up payload. full_name falls back to the email's local part."""

    email: str
    password: str
    full_name: str | None = None
    phone: str | None = None
    department: str | None = None
    roll_number: str | None = None
    student_class: str | None = None

    def metadata(self) -> dict[str, str]:
        """User metadata sent to the provider alongside the credentials."""
        fields = {
            "full_name": self.full_name,
            "phone": self.phone,
            "department": self.department,
            "roll_number": self.roll_number,
            "student_class": self.student_class,
        }
        return {k: v for k, v in fields.items() if v}


class AuthState(BaseModel):
    """Snapshot of the session triple handed to state subscribers."""

    model_config = ConfigDict(frozen=True)

    identity: Identity | None = None
    session: Session | None = None
    profile: Profile | None = None
    is_admin: bool = False
    auth_loading: bool = True


class AuthResult(PortalResult):
    """Result of sign_in / sign_up / sign_out.

    On failure `error` carries the user-readable reason; `message` mirrors it
    so callers that only know PortalResult still see something useful.
    """

    error: str | None = None
    identity: Identity | None = None


class AccessTokenClaims(BaseModel):
    """Claims read from a Supabase access token."""

    user_id: str
    email: str = ""
    role: str = "authenticated"
    exp: int = 0
