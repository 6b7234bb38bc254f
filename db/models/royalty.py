"""
db/models/royalty.py

One persisted royalty statement line.
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import Date, ForeignKey, Index, Integer, Numeric, SmallInteger, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, CreatedAtMixin

MONEY = Numeric(28, 10)


class Royalty(Base, CreatedAtMixin):
    """
    Royalty line as reported by the source file.

    ``net_amount`` is stored exactly as reported and is never derived from
    ``gross_amount`` and ``admin_percent``.
    """

    __tablename__ = "royalties"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    track_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("tracks.id", ondelete="CASCADE"),
        nullable=False,
    )
    artist_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("artists.id", ondelete="CASCADE"),
        nullable=False,
    )
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    gross_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal(0))
    admin_percent: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal(0))
    net_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal(0))
    broadcast_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    exploitation_source_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Platform or exploitation source",
    )
    territory: Mapped[str | None] = mapped_column(String(255), nullable=True)
    year: Mapped[int | None] = mapped_column(
        SmallInteger,
        nullable=True,
        comment="Statement year when ingested as quarterly data",
    )
    quarter: Mapped[int | None] = mapped_column(
        SmallInteger,
        nullable=True,
        comment="Statement quarter (1-4) when ingested as quarterly data",
    )

    __table_args__ = (
        Index("ix_royalties_artist_year_quarter", "artist_id", "year", "quarter"),
        Index("ix_royalties_track_id", "track_id"),
        Index("ix_royalties_artist_broadcast_date", "artist_id", "broadcast_date"),
    )
