"""Pydantic base models shared across components.

Every operation the UI can invoke returns a result envelope instead of
raising. Views check `success` and show `message`; technical detail stays in
the log.
"""

from typing import Literal

from pydantic import BaseModel


class PortalResult(BaseModel):
    """Standard result envelope returned by portal operations.

    Expected failures (bad credentials, a denied write, a validation error)
    come back as success=False with a short, user-readable message.
    """

    success: bool
    message: str = ""


class SubmissionResult(PortalResult):
    """Result of a public form submission (card application, contact, donation)."""

    record_id: str | None = None
    card_number: str | None = None


class Notice(BaseModel):
    """A transient, non-blocking notification for the user (a toast)."""

    title: str
    description: str = ""
    variant: Literal["default", "destructive"] = "default"


class ChangeNotification(BaseModel):
    """A content-free "this relation changed" signal from the change feed.

    Carries the relation and the kind of write, never the row itself.
    Consumers re-read the relation.
    """

    relation: str
    event: str = "*"  # INSERT, UPDATE, DELETE
