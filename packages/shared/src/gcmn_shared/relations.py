"""Relation name constants for the hosted backend.

These are the single source of truth for table names. The REST client, the
change feed and the table mirrors all reference these constants, so a rename
in the backend schema is a one-line change here.
"""

# Identity-derived relations, read by the Profile Resolver
USER_ROLES = "user_roles"
PROFILES = "profiles"

# Admin-managed relations, each mirrored by one admin view
CONTACT_MESSAGES = "contact_messages"
BOOK_BORROWS = "book_borrows"
LIBRARY_CARD_APPLICATIONS = "library_card_applications"
DONATIONS = "donations"
STUDENTS = "students"
NON_STUDENTS = "non_students"

MIRRORED_RELATIONS = (
    CONTACT_MESSAGES,
    BOOK_BORROWS,
    LIBRARY_CARD_APPLICATIONS,
    DONATIONS,
    STUDENTS,
    NON_STUDENTS,
)

# Postgres NOTIFY channel the change triggers publish on
CHANGE_CHANNEL = "gcmn_changes"
