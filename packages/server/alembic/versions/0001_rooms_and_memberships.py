"""Rooms, memberships and audit log.

Revision ID: 0001_rooms
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001_rooms"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# ---------------------------------------------------------------------------
# Enum types (names match SQLAlchemy's defaults for the shared enums)
# ---------------------------------------------------------------------------

user_role = postgresql.ENUM("ADMIN", "USER", "DEMO_OBSERVER", name="userrole", create_type=False)
department = postgresql.ENUM("IT_SUPPORT", "BILLING", "PRODUCT", "DESIGN", name="department", create_type=False)
room_type = postgresql.ENUM("PUBLIC", "PRIVATE", "TICKET", "DM", name="roomtype", create_type=False)
room_role = postgresql.ENUM("OWNER", "MODERATOR", "MEMBER", name="roomrole", create_type=False)
ticket_status = postgresql.ENUM("OPEN", "WAITING", "RESOLVED", name="ticketstatus", create_type=False)

ENUM_TYPES = [user_role, department, room_type, room_role, ticket_status]


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ENUM_TYPES:
        enum_type.create(bind, checkfirst=True)

    # users (read-only to the access engine)
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.Text(), nullable=True, unique=True),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("role", user_role, nullable=False, server_default="USER"),
        sa.Column("department", department, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("idx_users_email", "users", ["email"], unique=True)
    op.create_index("idx_users_department", "users", ["department"])

    # rooms
    op.create_table(
        "rooms",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("type", room_type, nullable=False, server_default="PUBLIC"),
        sa.Column("is_private", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("department", department, nullable=True),
        sa.Column("ticket_department", department, nullable=True),
        sa.Column("status", ticket_status, nullable=True),
        sa.Column("creator_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("idx_rooms_name", "rooms", ["name"], unique=True)
    op.create_index("idx_rooms_type", "rooms", ["type"])
    op.create_index("idx_rooms_department", "rooms", ["department"])

    # room_members: one row per (user, room)
    op.create_table(
        "room_members",
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), primary_key=True),
        sa.Column("room_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("rooms.id"), primary_key=True),
        sa.Column("role", room_role, nullable=False, server_default="MEMBER"),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("idx_room_members_room", "room_members", ["room_id"])
    op.create_index("idx_room_members_room_role", "room_members", ["room_id", "role"])

    # audit_logs (append-only)
    op.create_table(
        "audit_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("target_type", sa.Text(), nullable=True),
        sa.Column("target_id", sa.Text(), nullable=True),
        sa.Column("payload", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("idx_audit_logs_action", "audit_logs", ["action"])
    op.create_index("idx_audit_logs_actor", "audit_logs", ["actor_id"])
    op.create_index("idx_audit_logs_target", "audit_logs", ["target_id"])

    # Audit entries are immutable once written
    op.execute("""
        CREATE OR REPLACE FUNCTION prevent_audit_mutation() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'audit_logs are append-only';
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TRIGGER audit_logs_immutable
        BEFORE UPDATE OR DELETE ON audit_logs
        FOR EACH ROW EXECUTE FUNCTION prevent_audit_mutation();
    """)


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS audit_logs_immutable ON audit_logs")
    op.execute("DROP FUNCTION IF EXISTS prevent_audit_mutation()")

    # Reverse dependency order
    op.drop_table("audit_logs")
    op.drop_table("room_members")
    op.drop_table("rooms")
    op.drop_table("users")

    bind = op.get_bind()
    for enum_type in reversed(ENUM_TYPES):
        enum_type.drop(bind, checkfirst=True)
