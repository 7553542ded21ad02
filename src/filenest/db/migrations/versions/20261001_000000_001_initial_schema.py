"""Initial schema with all core tables.

Revision ID: 001
Revises: None
Create Date: 2026-10-01 00:00:00.000000+00:00

Creates all tables for FileNest:
- users, subscriptions (identity and billing tier)
- file_requests (request lifecycle, expiry and reminder watermark)
- uploaded_files (file metadata)
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# Revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Apply migration: Initial schema with all core tables."""
    # Create enum types first
    subscription_tier = postgresql.ENUM(
        "free", "premium", name="subscription_tier", create_type=False
    )
    subscription_tier.create(op.get_bind(), checkfirst=True)

    request_status = postgresql.ENUM(
        "pending", "completed", name="request_status", create_type=False
    )
    request_status.create(op.get_bind(), checkfirst=True)

    # =========================================================================
    # Users domain
    # =========================================================================
    op.create_table(
        "users",
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("email", sa.String(255), nullable=False),
        sa.PrimaryKeyConstraint("user_id", name=op.f("pk_users")),
    )
    # Backs find-or-create on email
    op.create_index("uq_users_email", "users", ["email"], unique=True)

    op.create_table(
        "subscriptions",
        sa.Column(
            "subscription_id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tier", subscription_tier, nullable=False, server_default="free"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "start_date",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("provider_customer_id", sa.String(255), nullable=True),
        sa.Column("provider_subscription_id", sa.String(255), nullable=True),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.user_id"],
            name=op.f("fk_subscriptions_user_id_users"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("subscription_id", name=op.f("pk_subscriptions")),
    )
    op.create_index(
        "ix_subscriptions_user_id_active",
        "subscriptions",
        ["user_id", "is_active"],
        unique=False,
    )
    op.create_index(
        "uq_subscriptions_user_id_active",
        "subscriptions",
        ["user_id"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    # =========================================================================
    # Requests domain
    # =========================================================================
    op.create_table(
        "file_requests",
        sa.Column(
            "request_id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("recipient_email", sa.String(255), nullable=True),
        sa.Column("description", sa.String(1000), nullable=False),
        sa.Column("deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", request_status, nullable=False, server_default="pending"),
        sa.Column("unique_link", sa.String(32), nullable=False),
        sa.Column(
            "expires_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("last_reminder_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.user_id"],
            name=op.f("fk_file_requests_user_id_users"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("request_id", name=op.f("pk_file_requests")),
    )
    op.create_index(
        "uq_file_requests_unique_link", "file_requests", ["unique_link"], unique=True
    )
    op.create_index(
        "ix_file_requests_user_id_created_at",
        "file_requests",
        ["user_id", "created_at"],
        unique=False,
    )
    op.create_index("ix_file_requests_is_active", "file_requests", ["is_active"], unique=False)
    op.create_index(
        "ix_file_requests_status_is_active",
        "file_requests",
        ["status", "is_active"],
        unique=False,
    )

    op.create_table(
        "uploaded_files",
        sa.Column(
            "file_id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column(
            "uploaded_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("request_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("filename", sa.String(500), nullable=False),
        sa.Column("storage_path", sa.String(1000), nullable=False),
        sa.Column("content_type", sa.String(255), nullable=True),
        sa.Column("file_size", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.ForeignKeyConstraint(
            ["request_id"],
            ["file_requests.request_id"],
            name=op.f("fk_uploaded_files_request_id_file_requests"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("file_id", name=op.f("pk_uploaded_files")),
    )
    op.create_index(
        "ix_uploaded_files_request_id", "uploaded_files", ["request_id"], unique=False
    )


def downgrade() -> None:
    """Revert migration: Initial schema with all core tables."""
    # Drop tables in reverse order (respecting foreign key dependencies)
    op.drop_table("uploaded_files")
    op.drop_table("file_requests")
    op.drop_table("subscriptions")
    op.drop_table("users")

    # Drop enum types
    op.execute("DROP TYPE IF EXISTS request_status")
    op.execute("DROP TYPE IF EXISTS subscription_tier")
