"""initial schema

Revision ID: 2026_09_01_0000
Revises:
Create Date: 2026-09-01 08:00:00.000000

Creates users, the entitlement ledger (user_credits), chats and the
append-only messages log.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "2026_09_01_0000"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create initial database schema."""

    # ========================================================================
    # users
    # ========================================================================
    op.create_table(
        "users",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("access_token_hash", sa.String(64), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")
        ),
        sa.UniqueConstraint("access_token_hash", name="uq_users_access_token_hash"),
    )

    # ========================================================================
    # user_credits (entitlement ledger, one row per user)
    # ========================================================================
    op.create_table(
        "user_credits",
        sa.Column("user_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("free_messages_left", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("paid_messages_left", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_using_paid", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")
        ),
        sa.CheckConstraint("free_messages_left >= 0", name="ck_free_messages_non_negative"),
        sa.CheckConstraint("paid_messages_left >= 0", name="ck_paid_messages_non_negative"),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], name="fk_user_credits_user", ondelete="CASCADE"
        ),
    )

    # ========================================================================
    # chats
    # ========================================================================
    op.create_table(
        "chats",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(50), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_chats_user", ondelete="CASCADE"),
    )
    op.create_index("idx_chats_user_created", "chats", ["user_id", "created_at"])

    # ========================================================================
    # messages (append-only)
    # ========================================================================
    op.create_table(
        "messages",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("seq", sa.BigInteger(), sa.Identity(always=True), nullable=False),
        sa.Column("chat_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("role", sa.String(16), nullable=False),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        sa.Column(
            "image_paths",
            postgresql.ARRAY(sa.String()),
            nullable=False,
            server_default=sa.text("'{}'"),
        ),
        sa.Column(
            "voice_paths",
            postgresql.ARRAY(sa.String()),
            nullable=False,
            server_default=sa.text("'{}'"),
        ),
        sa.Column("voice_transcription", sa.Text(), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")
        ),
        sa.CheckConstraint("role IN ('system', 'user', 'assistant')", name="ck_message_role"),
        sa.ForeignKeyConstraint(
            ["chat_id"], ["chats.id"], name="fk_messages_chat", ondelete="CASCADE"
        ),
    )
    op.create_index("idx_messages_chat_order", "messages", ["chat_id", "created_at", "seq"])


def downgrade() -> None:
    """Drop initial schema."""
    op.drop_index("idx_messages_chat_order", table_name="messages")
    op.drop_table("messages")
    op.drop_index("idx_chats_user_created", table_name="chats")
    op.drop_table("chats")
    op.drop_table("user_credits")
    op.drop_table("users")
