"""Create users, features and kv_entries tables.

Revision ID: 5c2e81a4d7f0
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "5c2e81a4d7f0"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  """Upgrade schema."""
  user_status = postgresql.ENUM("PENDING", "APPROVED", "DISABLED", "REJECTED", name="user_status")
  op.create_table(
    "users",
    sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
    sa.Column("firebase_uid", sa.String(), nullable=False),
    sa.Column("email", sa.String(), nullable=False),
    sa.Column("full_name", sa.String(), nullable=True),
    sa.Column("status", user_status, nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_users_firebase_uid"), "users", ["firebase_uid"], unique=True)
  op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

  op.create_table(
    "features",
    sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
    sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("granted_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("user_id", "name", name="ux_features_user_name"),
  )
  op.create_index(op.f("ix_features_user_id"), "features", ["user_id"], unique=False)
  op.create_index(op.f("ix_features_name"), "features", ["name"], unique=False)

  op.create_table(
    "kv_entries",
    sa.Column("key", sa.Text(), nullable=False),
    sa.Column("value", sa.Text(), nullable=False),
    sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    sa.PrimaryKeyConstraint("key"),
  )
  op.create_index(op.f("ix_kv_entries_expires_at"), "kv_entries", ["expires_at"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index(op.f("ix_kv_entries_expires_at"), table_name="kv_entries")
  op.drop_table("kv_entries")
  op.drop_index(op.f("ix_features_name"), table_name="features")
  op.drop_index(op.f("ix_features_user_id"), table_name="features")
  op.drop_table("features")
  op.drop_index(op.f("ix_users_email"), table_name="users")
  op.drop_index(op.f("ix_users_firebase_uid"), table_name="users")
  op.drop_table("users")
  postgresql.ENUM(name="user_status").drop(op.get_bind(), checkfirst=True)
