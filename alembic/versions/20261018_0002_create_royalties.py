"""create royalties and royalties_summary tables

Revision ID: 20261018_0002
Revises: 20261018_0001
Create Date: 2026-10-18 09:10:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261018_0002"
down_revision = "20261018_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "royalties",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("track_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("artist_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("usage_count", sa.Integer(), nullable=False),
        sa.Column("gross_amount", sa.Numeric(precision=28, scale=10), nullable=False),
        sa.Column("admin_percent", sa.Numeric(precision=28, scale=10), nullable=False),
        sa.Column("net_amount", sa.Numeric(precision=28, scale=10), nullable=False),
        sa.Column("broadcast_date", sa.Date(), nullable=True),
        sa.Column("exploitation_source_name", sa.String(length=255), nullable=True),
        sa.Column("territory", sa.String(length=255), nullable=True),
        sa.Column("year", sa.SmallInteger(), nullable=True),
        sa.Column("quarter", sa.SmallInteger(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["artist_id"], ["artists.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["track_id"], ["tracks.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_royalties_artist_year_quarter",
        "royalties",
        ["artist_id", "year", "quarter"],
        unique=False,
    )
    op.create_index("ix_royalties_track_id", "royalties", ["track_id"], unique=False)
    op.create_index(
        "ix_royalties_artist_broadcast_date",
        "royalties",
        ["artist_id", "broadcast_date"],
        unique=False,
    )

    op.create_table(
        "royalties_summary",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("artist_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("track_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("year", sa.SmallInteger(), nullable=False),
        sa.Column("quarter", sa.SmallInteger(), nullable=False),
        sa.Column("total_streams", sa.BigInteger(), nullable=False),
        sa.Column("total_revenue", sa.Numeric(precision=20, scale=10), nullable=False),
        sa.Column("total_gross", sa.Numeric(precision=20, scale=10), nullable=False),
        sa.Column("total_net", sa.Numeric(precision=20, scale=10), nullable=False),
        sa.Column("avg_per_stream", sa.Numeric(precision=20, scale=10), nullable=False),
        sa.Column("revenue_per_play", sa.Numeric(precision=20, scale=10), nullable=False),
        sa.Column("highest_revenue", sa.Numeric(precision=20, scale=10), nullable=False),
        sa.Column("top_territory", sa.String(length=255), nullable=True),
        sa.Column("top_platform", sa.String(length=255), nullable=True),
        sa.Column("platform_distribution", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("territory_distribution", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("monthly_breakdown", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("record_count", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("year BETWEEN 2000 AND 2100", name="ck_royalties_summary_year"),
        sa.CheckConstraint("quarter BETWEEN 1 AND 4", name="ck_royalties_summary_quarter"),
        sa.ForeignKeyConstraint(["artist_id"], ["artists.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["track_id"], ["tracks.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("artist_id", "track_id", "year", "quarter", name="uq_royalties_summary_entry"),
    )
    op.create_index(
        "ix_royalties_summary_artist_period",
        "royalties_summary",
        ["artist_id", "year", "quarter"],
        unique=False,
    )
    op.create_index("ix_royalties_summary_track_id", "royalties_summary", ["track_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_royalties_summary_track_id", table_name="royalties_summary")
    op.drop_index("ix_royalties_summary_artist_period", table_name="royalties_summary")
    op.drop_table("royalties_summary")
    op.drop_index("ix_royalties_artist_broadcast_date", table_name="royalties")
    op.drop_index("ix_royalties_track_id", table_name="royalties")
    op.drop_index("ix_royalties_artist_year_quarter", table_name="royalties")
    op.drop_table("royalties")
