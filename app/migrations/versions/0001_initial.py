"""Profiles, staff activity and defaulter log

Revision ID: 0001_initial
Revises:
Create Date: 2026-02-06 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

activity_status = postgresql.ENUM(
    "In Progress",
    "Interested",
    "Pending",
    "Overdue",
    "Converted",
    "Closed",
    "Completed",
    name="activity_status",
    create_type=False,
)
audit_actor_type = postgresql.ENUM(
    "ADMIN",
    "STAFF",
    "SYSTEM",
    name="audit_actor_type",
    create_type=False,
)


def upgrade() -> None:
    bind = op.get_bind()
    activity_status.create(bind, checkfirst=True)
    audit_actor_type.create(bind, checkfirst=True)

    op.create_table(
        "profiles",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=10), nullable=False),
        sa.Column("role", sa.String(length=64), nullable=False, server_default=sa.text("'Staff'")),
        sa.Column("team", sa.String(length=64), nullable=False),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("phone", name="uq_profiles_phone"),
    )
    op.create_index("ix_profiles_team", "profiles", ["team"], unique=False)

    op.create_table(
        "staff_activity",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("team", sa.String(length=64), nullable=True),
        sa.Column("role", sa.String(length=64), nullable=True),
        sa.Column("assigned_by", sa.String(length=255), nullable=True),
        sa.Column("client_name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=10), nullable=True),
        sa.Column("activity_type", sa.String(length=64), nullable=False),
        sa.Column("customer_type", sa.String(length=64), nullable=True),
        sa.Column("customer_activity", sa.String(length=255), nullable=True),
        sa.Column("status", activity_status, nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("location", sa.String(length=1024), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column(
            "gallery",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("image_url", sa.String(length=1024), nullable=True),
        sa.Column("follow_up_date", sa.Date(), nullable=True),
        sa.Column("follow_up_time", sa.Time(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_staff_activity_user_id", "staff_activity", ["user_id"], unique=False)
    op.create_index("ix_staff_activity_status", "staff_activity", ["status"], unique=False)
    op.create_index("ix_staff_activity_follow_up_date", "staff_activity", ["follow_up_date"], unique=False)
    op.create_index("ix_staff_activity_created_at", "staff_activity", ["created_at"], unique=False)

    op.create_table(
        "defaulter_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=10), nullable=True),
        sa.Column("team", sa.String(length=64), nullable=False),
        sa.Column("role", sa.String(length=64), nullable=True),
        sa.Column("defaulter_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "defaulter_date", name="uq_defaulter_logs_user_date"),
    )
    op.create_index("ix_defaulter_logs_user_id", "defaulter_logs", ["user_id"], unique=False)
    op.create_index("ix_defaulter_logs_team", "defaulter_logs", ["team"], unique=False)
    op.create_index("ix_defaulter_logs_defaulter_date", "defaulter_logs", ["defaulter_date"], unique=False)

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("ts_utc", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("actor_type", audit_actor_type, nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("entity_type", sa.String(length=255), nullable=True),
        sa.Column("entity_id", sa.String(length=255), nullable=True),
        sa.Column("ip", sa.String(length=128), nullable=True),
        sa.Column("user_agent", sa.String(length=1024), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "details",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
    )
    op.create_index("ix_audit_logs_ts_utc", "audit_logs", ["ts_utc"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_audit_logs_ts_utc", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_index("ix_defaulter_logs_defaulter_date", table_name="defaulter_logs")
    op.drop_index("ix_defaulter_logs_team", table_name="defaulter_logs")
    op.drop_index("ix_defaulter_logs_user_id", table_name="defaulter_logs")
    op.drop_table("defaulter_logs")

    op.drop_index("ix_staff_activity_created_at", table_name="staff_activity")
    op.drop_index("ix_staff_activity_follow_up_date", table_name="staff_activity")
    op.drop_index("ix_staff_activity_status", table_name="staff_activity")
    op.drop_index("ix_staff_activity_user_id", table_name="staff_activity")
    op.drop_table("staff_activity")

    op.drop_index("ix_profiles_team", table_name="profiles")
    op.drop_table("profiles")

    bind = op.get_bind()
    audit_actor_type.drop(bind, checkfirst=True)
    activity_status.drop(bind, checkfirst=True)
