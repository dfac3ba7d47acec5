"""SQLAlchemy Core table definitions — Python-side mirror of the Supabase schema.

These Table objects are not used to query rows (reads and writes go through
PostgREST so row-level security applies). They exist so the change feed can
generate its trigger DDL from real table names, and so tests can check that
the row models and the schema have not drifted apart.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    MetaData,
    Numeric,
    Table,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID

from gcmn_shared import relations

metadata = MetaData(schema="public")

app_role = Enum("admin", "moderator", "user", name="app_role", create_type=False)

# ============================================================================
# Identity-derived tables
# ============================================================================

user_roles = Table(
    relations.USER_ROLES,
    metadata,
    Column("id", UUID, primary_key=True, server_default=text("gen_random_uuid()")),
    Column("user_id", UUID, nullable=False),
    Column("role", app_role, nullable=False),
    Column("created_at", DateTime(timezone=True), server_default=text("now()")),
    UniqueConstraint("user_id", "role"),
)

profiles = Table(
    relations.PROFILES,
    metadata,
    Column("id", UUID, primary_key=True, server_default=text("gen_random_uuid()")),
    Column("user_id", UUID, unique=True, nullable=False),
    Column("full_name", Text, nullable=False),
    Column("department", Text),
    Column("phone", Text),
    Column("roll_number", Text),
    Column("student_class", Text),
    Column("created_at", DateTime(timezone=True), server_default=text("now()")),
    Column("updated_at", DateTime(timezone=True), server_default=text("now()")),
)

# ============================================================================
# Admin-managed tables
# ============================================================================

contact_messages = Table(
    relations.CONTACT_MESSAGES,
    metadata,
    Column("id", UUID, primary_key=True, server_default=text("gen_random_uuid()")),
    Column("name", Text, nullable=False),
    Column("email", Text, nullable=False),
    Column("subject", Text, nullable=False),
    Column("message", Text, nullable=False),
    Column("is_seen", Boolean, nullable=False, server_default=text("false")),
    Column("created_at", DateTime(timezone=True), server_default=text("now()")),
)

book_borrows = Table(
    relations.BOOK_BORROWS,
    metadata,
    Column("id", UUID, primary_key=True, server_default=text("gen_random_uuid()")),
    Column("user_id", UUID, nullable=False),
    Column("book_id", Text, nullable=False),
    Column("book_title", Text, nullable=False),
    Column("borrow_date", DateTime(timezone=True), server_default=text("now()")),
    Column("due_date", DateTime(timezone=True), server_default=text("now() + interval '14 days'")),
    Column("return_date", DateTime(timezone=True)),
    Column("status", Text, nullable=False, server_default=text("'borrowed'")),
    Column("created_at", DateTime(timezone=True), server_default=text("now()")),
)

library_card_applications = Table(
    relations.LIBRARY_CARD_APPLICATIONS,
    metadata,
    Column("id", UUID, primary_key=True, server_default=text("gen_random_uuid()")),
    Column("user_id", UUID),
    Column("first_name", Text, nullable=False),
    Column("last_name", Text, nullable=False),
    Column("class", Text, nullable=False),
    Column("roll_no", Text, nullable=False),
    Column("email", Text, nullable=False),
    Column("phone", Text, nullable=False),
    Column("address_street", Text, nullable=False),
    Column("address_city", Text, nullable=False),
    Column("address_state", Text, nullable=False),
    Column("address_zip", Text, nullable=False),
    Column("card_number", Text),
    Column("status", Text, nullable=False, server_default=text("'pending'")),
    Column("father_name", Text),
    Column("field", Text),
    Column("dob", Text),
    Column("student_id", Text),
    Column("issue_date", Text),
    Column("valid_through", Text),
    Column("created_at", DateTime(timezone=True), server_default=text("now()")),
    Column("updated_at", DateTime(timezone=True), server_default=text("now()")),
)

donations = Table(
    relations.DONATIONS,
    metadata,
    Column("id", UUID, primary_key=True, server_default=text("gen_random_uuid()")),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("method", Text, nullable=False),
    Column("name", Text),
    Column("email", Text),
    Column("message", Text),
    Column("created_at", DateTime(timezone=True), server_default=text("now()")),
)

students = Table(
    relations.STUDENTS,
    metadata,
    Column("id", UUID, primary_key=True, server_default=text("gen_random_uuid()")),
    Column("user_id", UUID, nullable=False),
    Column("card_id", Text, nullable=False),
    Column("name", Text, nullable=False),
    Column("class", Text),
    Column("field", Text),
    Column("roll_no", Text),
    Column("created_at", DateTime(timezone=True), server_default=text("now()")),
)

non_students = Table(
    relations.NON_STUDENTS,
    metadata,
    Column("id", UUID, primary_key=True, server_default=text("gen_random_uuid()")),
    Column("user_id", UUID, nullable=False),
    Column("name", Text, nullable=False),
    Column("role", Text, nullable=False),
    Column("phone", Text),
    Column("created_at", DateTime(timezone=True), server_default=text("now()")),
)

MIRRORED_TABLES: tuple[Table, ...] = (
    contact_messages,
    book_borrows,
    library_card_applications,
    donations,
    students,
    non_students,
)
