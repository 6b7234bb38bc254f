"""
db/repositories/track_repository.py

Persistence layer for catalog tracks.

The caller controls commit/rollback; this repository never commits on its own.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Session

from app.domain.royalty import NewTrack
from db.models.artist import Artist
from db.models.track import TRACK_TITLE_CONSTRAINT, Track


class TrackRepository:
    """
    Repository for looking up and creating tracks of one artist.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def artist_exists(self, artist_id: uuid.UUID) -> bool:
        stmt = select(Artist.id).where(Artist.id == artist_id)
        return self._session.execute(stmt).first() is not None

    def find_by_titles(
        self,
        *,
        artist_id: uuid.UUID,
        titles: Sequence[str],
    ) -> dict[str, uuid.UUID]:
        """
        Return ``{title: track_id}`` for the titles the artist already owns.
        """

        if not titles:
            return {}

        stmt = select(Track.title, Track.id).where(
            Track.artist_id == artist_id,
            Track.title.in_(list(titles)),
        )
        return {title: track_id for title, track_id in self._session.execute(stmt).all()}

    def insert_missing(
        self,
        *,
        artist_id: uuid.UUID,
        tracks: Sequence[NewTrack],
    ) -> dict[str, uuid.UUID]:
        """
        Insert tracks with ``ON CONFLICT DO NOTHING`` on ``(artist_id, title)``.

        Only rows actually inserted by this statement are returned; titles
        that already existed are left for the caller to re-read.
        """

        if not tracks:
            return {}

        payloads = [
            {
                "id": uuid.uuid4(),
                "artist_id": artist_id,
                "title": track.title,
                "composer": track.composer,
                "iswc": track.iswc,
            }
            for track in tracks
        ]
        stmt = (
            insert(Track)
            .values(payloads)
            .on_conflict_do_nothing(constraint=TRACK_TITLE_CONSTRAINT)
            .returning(Track.title, Track.id)
        )
        return {title: track_id for title, track_id in self._session.execute(stmt).all()}
