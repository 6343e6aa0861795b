"""create_analytics_tables

Revision ID: 3e1a9c4b7d20
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3e1a9c4b7d20"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    # Timestamps (from TimestampMixin)
    return [
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
    ]


def upgrade() -> None:
    """Apply migration - create data_record and period_rollup tables."""
    op.create_table(
        "data_record",
        sa.Column("id", sa.BigInteger(), nullable=False),
        sa.Column("account_id", sa.String(length=64), nullable=False),
        sa.Column("date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revenue", sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column("price", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=True),
        sa.Column("customer_id", sa.String(length=100), nullable=True),
        sa.Column("product_id", sa.String(length=100), nullable=True),
        sa.Column("category", sa.String(length=100), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("quantity IS NULL OR quantity >= 0", name="ck_data_record_quantity"),
        sa.CheckConstraint("price IS NULL OR price >= 0", name="ck_data_record_price"),
    )
    op.create_index(op.f("ix_data_record_account_id"), "data_record", ["account_id"], unique=False)
    op.create_index("ix_data_record_account_date", "data_record", ["account_id", "date"], unique=False)
    op.create_index(
        "ix_data_record_account_category", "data_record", ["account_id", "category"], unique=False
    )

    op.create_table(
        "period_rollup",
        sa.Column("id", sa.BigInteger(), nullable=False),
        sa.Column("account_id", sa.String(length=64), nullable=False),
        sa.Column("period", sa.String(length=10), nullable=False),
        sa.Column("bucket_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("metrics", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("growth", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("account_id", "period", "bucket_start", name="uq_period_rollup_key"),
        sa.CheckConstraint(
            "period IN ('daily', 'weekly', 'monthly')",
            name="ck_period_rollup_valid_period",
        ),
    )
    op.create_index(
        "ix_period_rollup_lookup",
        "period_rollup",
        ["account_id", "period", "bucket_start"],
        unique=False,
    )


def downgrade() -> None:
    """Revert migration - drop analytics tables."""
    op.drop_index("ix_period_rollup_lookup", table_name="period_rollup")
    op.drop_table("period_rollup")
    op.drop_index("ix_data_record_account_category", table_name="data_record")
    op.drop_index("ix_data_record_account_date", table_name="data_record")
    op.drop_index(op.f("ix_data_record_account_id"), table_name="data_record")
    op.drop_table("data_record")
