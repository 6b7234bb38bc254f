"""
db/models/track.py

Catalog track owned by one artist.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, TimestampMixin

if TYPE_CHECKING:
    from db.models.artist import Artist

TRACK_TITLE_CONSTRAINT = "uq_tracks_artist_title"


class Track(Base, TimestampMixin):
    """
    One title in an artist's catalog.

    ``(artist_id, title)`` is unique so concurrent ingestions for the same
    artist converge on a single row per title.
    """

    __tablename__ = "tracks"

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
    title: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        comment="Song title exactly as it appears in royalty statements",
    )
    composer: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
        comment="Composer taken from the first statement row of the title",
    )
    iswc: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        comment="International Standard Musical Work Code",
    )

    artist: Mapped["Artist"] = relationship("Artist", back_populates="tracks")

    __table_args__ = (
        UniqueConstraint("artist_id", "title", name=TRACK_TITLE_CONSTRAINT),
        Index("ix_tracks_artist_id", "artist_id"),
    )

    def __repr__(self) -> str:
        return f"<Track id={self.id} artist_id={self.artist_id} title={self.title!r}>"
