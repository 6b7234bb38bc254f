"""widen royalties_summary money columns to numeric(38,10)

Revision ID: 20261018_0005
Revises: 20261018_0004
Create Date: 2026-10-18 14:20:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261018_0005"
down_revision = "20261018_0004"
branch_labels = None
depends_on = None

MONEY_COLUMNS = (
    "total_revenue",
    "total_gross",
    "total_net",
    "avg_per_stream",
    "revenue_per_play",
    "highest_revenue",
)


def upgrade() -> None:
    for column in MONEY_COLUMNS:
        op.alter_column(
            "royalties_summary",
            column,
            type_=sa.Numeric(precision=38, scale=10),
            existing_type=sa.Numeric(precision=20, scale=10),
            existing_nullable=False,
        )


def downgrade() -> None:
    for column in MONEY_COLUMNS:
        op.alter_column(
            "royalties_summary",
            column,
            type_=sa.Numeric(precision=20, scale=10),
            existing_type=sa.Numeric(precision=38, scale=10),
            existing_nullable=False,
        )
