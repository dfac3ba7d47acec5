"""Error types raised by the data access layer.

Callers at the UI boundary catch these and turn them into notices. The
message on the exception is technical; `user_message` is what a person sees.
"""

from __future__ import annotations

# Postgres SQLSTATE for insufficient_privilege, which PostgREST returns when a
# row-level security policy rejects a write.
INSUFFICIENT_PRIVILEGE = "42501"


class DataAccessError(Exception):
    """A PostgREST request failed."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        code: str | None = None,
        relation: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code
        self.relation = relation

    @property
    def is_authorization_denied(self) -> bool:
        return self.status in (401, 403) or self.code == INSUFFICIENT_PRIVILEGE

    @property
    def user_message(self) -> str:
        if self.is_authorization_denied:
            return "You are not authorized to perform this action."
        return "Something went wrong. Please try again."

    def __repr__(self) -> str:
        return (
            f"DataAccessError({self.message!r}, status={self.status}, "
            f"code={self.code!r}, relation={self.relation!r})"
        )
