"""
db/models/royalty_summary.py

Quarterly per-track royalty summary.
One row per (artist, track, year, quarter).
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    SmallInteger,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin

SUMMARY_UPSERT_CONSTRAINT = "uq_royalties_summary_entry"

# Quarter totals add up many lines of MONEY precision; 38 digits matches the decimal context.
SUMMARY_MONEY = Numeric(38, 10)


class RoyaltySummary(Base, TimestampMixin):
    """
    Derived, replaceable summary of one track's royalties for a quarter.

    The unique constraint on ``(artist_id, track_id, year, quarter)`` drives
    upsert semantics: recomputing a quarter replaces the row rather than
    adding to it.
    """

    __tablename__ = "royalties_summary"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    artist_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("artists.id", ondelete="CASCADE"),
        nullable=False,
    )
    track_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("tracks.id", ondelete="CASCADE"),
        nullable=False,
    )
    year: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    quarter: Mapped[int] = mapped_column(SmallInteger, nullable=False)

    total_streams: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_revenue: Mapped[Decimal] = mapped_column(SUMMARY_MONEY, nullable=False, default=Decimal(0))
    total_gross: Mapped[Decimal] = mapped_column(SUMMARY_MONEY, nullable=False, default=Decimal(0))
    total_net: Mapped[Decimal] = mapped_column(SUMMARY_MONEY, nullable=False, default=Decimal(0))
    avg_per_stream: Mapped[Decimal] = mapped_column(SUMMARY_MONEY, nullable=False, default=Decimal(0))
    revenue_per_play: Mapped[Decimal] = mapped_column(SUMMARY_MONEY, nullable=False, default=Decimal(0))
    highest_revenue: Mapped[Decimal] = mapped_column(
        SUMMARY_MONEY,
        nullable=False,
        default=Decimal(0),
        comment="Net revenue of the top territory",
    )
    top_territory: Mapped[str | None] = mapped_column(String(255), nullable=True)
    top_platform: Mapped[str | None] = mapped_column(String(255), nullable=True)

    platform_distribution: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        comment="Platform -> share of total net",
    )
    territory_distribution: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        comment="Territory -> share of total net",
    )
    monthly_breakdown: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        comment="Month (Jan..Dec, Unknown) -> net revenue",
    )
    record_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Number of royalty lines folded into the summary",
    )

    __table_args__ = (
        UniqueConstraint("artist_id", "track_id", "year", "quarter", name=SUMMARY_UPSERT_CONSTRAINT),
        CheckConstraint("year BETWEEN 2000 AND 2100", name="ck_royalties_summary_year"),
        CheckConstraint("quarter BETWEEN 1 AND 4", name="ck_royalties_summary_quarter"),
        Index("ix_royalties_summary_artist_period", "artist_id", "year", "quarter"),
        Index("ix_royalties_summary_track_id", "track_id"),
    )
