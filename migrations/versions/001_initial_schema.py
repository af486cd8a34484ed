"""Initial schema.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "schools",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("center_name", sa.String(length=255), nullable=False),
        sa.Column("center_number", sa.String(length=32), nullable=False),
        sa.Column("school_email", sa.String(length=512), nullable=False),
        sa.Column("school_email_hash", sa.String(length=64), nullable=False),
        sa.Column("school_phone", sa.String(length=512), nullable=True),
        sa.Column("school_phone_hash", sa.String(length=64), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("email_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("email_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_by", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_schools_center_number", "schools", ["center_number"], unique=True)
    op.create_index("ix_schools_school_email_hash", "schools", ["school_email_hash"], unique=True)
    op.create_index("ix_schools_school_phone_hash", "schools", ["school_phone_hash"], unique=False)

    op.create_table(
        "admin_users",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=512), nullable=False),
        sa.Column("email_hash", sa.String(length=64), nullable=False),
        sa.Column("phone", sa.String(length=512), nullable=True),
        sa.Column("phone_hash", sa.String(length=64), nullable=True),
        sa.Column("nin", sa.String(length=512), nullable=True),
        sa.Column("nin_hash", sa.String(length=64), nullable=True),
        sa.Column("role", sa.String(length=32), nullable=False, server_default="Admin"),
        sa.Column("school_id", sa.Uuid(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("email_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("email_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["school_id"], ["schools.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_admin_users_email_hash", "admin_users", ["email_hash"], unique=True)
    op.create_index("ix_admin_users_phone_hash", "admin_users", ["phone_hash"], unique=False)
    op.create_index("ix_admin_users_nin_hash", "admin_users", ["nin_hash"], unique=False)
    op.create_index("ix_admin_users_school_id", "admin_users", ["school_id"], unique=False)

    op.create_table(
        "email_verifications",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("owner_kind", sa.String(length=16), nullable=False),
        sa.Column("email_hash", sa.String(length=64), nullable=False),
        sa.Column("token", sa.Text(), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="PENDING"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failure_reason", sa.String(length=255), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
    )
    op.create_index("ix_email_verifications_owner_id", "email_verifications", ["owner_id"], unique=False)
    op.create_index("ix_email_verifications_email_hash", "email_verifications", ["email_hash"], unique=False)
    op.create_index("ix_email_verifications_token", "email_verifications", ["token"], unique=False)
    op.create_index(
        "uq_email_verifications_pending_owner_type",
        "email_verifications",
        ["owner_id", "type"],
        unique=True,
        postgresql_where=sa.text("status = 'PENDING'"),
    )

    op.create_table(
        "admin_audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("admin_user_id", sa.Uuid(), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("details", postgresql.JSONB(), nullable=False),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_admin_audit_logs_admin_user_id", "admin_audit_logs", ["admin_user_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_admin_audit_logs_admin_user_id", table_name="admin_audit_logs")
    op.drop_table("admin_audit_logs")

    op.drop_index("uq_email_verifications_pending_owner_type", table_name="email_verifications")
    op.drop_index("ix_email_verifications_token", table_name="email_verifications")
    op.drop_index("ix_email_verifications_email_hash", table_name="email_verifications")
    op.drop_index("ix_email_verifications_owner_id", table_name="email_verifications")
    op.drop_table("email_verifications")

    op.drop_index("ix_admin_users_school_id", table_name="admin_users")
    op.drop_index("ix_admin_users_nin_hash", table_name="admin_users")
    op.drop_index("ix_admin_users_phone_hash", table_name="admin_users")
    op.drop_index("ix_admin_users_email_hash", table_name="admin_users")
    op.drop_table("admin_users")

    op.drop_index("ix_schools_school_phone_hash", table_name="schools")
    op.drop_index("ix_schools_school_email_hash", table_name="schools")
    op.drop_index("ix_schools_center_number", table_name="schools")
    op.drop_table("schools")
