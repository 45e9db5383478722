"""add processed transactions

Revision ID: 2026_09_14_0001
Revises: 2026_09_01_0000
Create Date: 2026-09-14 00:00:00.000000

Adds the idempotency barrier for billing provider purchase reconciliation:
- processed_transactions: one row per credited store transaction id
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "2026_09_14_0001"
down_revision: str | None = "2026_09_01_0000"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "processed_transactions",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("transaction_id", sa.String(length=255), nullable=False),
        sa.Column("product_id", sa.String(length=255), nullable=False),
        sa.Column("credited_messages", sa.Integer(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.CheckConstraint("credited_messages > 0", name="ck_credited_messages_positive"),
        sa.UniqueConstraint("transaction_id", name="processed_transactions_transaction_id_key"),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], name="fk_processed_transactions_user", ondelete="CASCADE"
        ),
    )
    op.create_index("idx_processed_transactions_user", "processed_transactions", ["user_id"])


def downgrade() -> None:
    op.drop_index("idx_processed_transactions_user", table_name="processed_transactions")
    op.drop_table("processed_transactions")
