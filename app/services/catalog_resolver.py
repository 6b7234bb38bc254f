"""
app/services/catalog_resolver.py

Resolves song titles of one ingestion run to persistent track identifiers.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Sequence
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError

from app.domain.royalty import CatalogResolution, NewTrack, ValidatedRow

logger = logging.getLogger(__name__)

TRACK_LOOKUP_BATCH_SIZE = 100
TRACK_INSERT_BATCH_SIZE = 200


class CatalogResolutionError(RuntimeError):
    """
    Raised when existing tracks cannot be read or new tracks cannot be created.
    """


class TrackStore(Protocol):
    def find_by_titles(self, *, artist_id: uuid.UUID, titles: Sequence[str]) -> dict[str, uuid.UUID]:
        ...

    def insert_missing(self, *, artist_id: uuid.UUID, tracks: Sequence[NewTrack]) -> dict[str, uuid.UUID]:
        ...


class CatalogResolver:
    """
    Builds the title -> track id table for one artist.

    Existing tracks are looked up in bounded batches, missing titles are
    created with the composer and ISWC of their first occurring row. Track
    creation is conflict-safe: a title created concurrently by another run is
    re-read instead of duplicated.
    """

    def __init__(
        self,
        store: TrackStore,
        *,
        lookup_batch_size: int = TRACK_LOOKUP_BATCH_SIZE,
        insert_batch_size: int = TRACK_INSERT_BATCH_SIZE,
    ) -> None:
        self._store = store
        self._lookup_batch_size = max(1, lookup_batch_size)
        self._insert_batch_size = max(1, insert_batch_size)

    def resolve(self, *, artist_id: uuid.UUID, rows: Iterable[ValidatedRow]) -> CatalogResolution:
        first_rows: dict[str, ValidatedRow] = {}
        for row in rows:
            title = row.row.song_title
            if title and title not in first_rows:
                first_rows[title] = row

        titles = list(first_rows)
        if not titles:
            return CatalogResolution(track_ids={})

        logger.info("Resolving catalog artist_id=%s unique_titles=%s", artist_id, len(titles))
        track_ids = self._lookup(artist_id=artist_id, titles=titles)
        existing_count = len(track_ids)

        missing = [title for title in titles if title not in track_ids]
        created_count = 0
        if missing:
            new_tracks = [self._new_track(first_rows[title]) for title in missing]
            created = self._create(artist_id=artist_id, tracks=new_tracks)
            created_count = len(created)
            track_ids.update(created)

            # Titles absorbed by ON CONFLICT were created by a concurrent run.
            raced = [title for title in missing if title not in created]
            if raced:
                concurrent = self._lookup(artist_id=artist_id, titles=raced)
                existing_count += len(concurrent)
                track_ids.update(concurrent)
                logger.warning(
                    "Tracks created concurrently artist_id=%s titles=%s resolved=%s",
                    artist_id,
                    len(raced),
                    len(concurrent),
                )

        logger.info(
            "Catalog resolved artist_id=%s existing=%s created=%s",
            artist_id,
            existing_count,
            created_count,
        )
        return CatalogResolution(
            track_ids=track_ids,
            created_count=created_count,
            existing_count=existing_count,
        )

    def _lookup(self, *, artist_id: uuid.UUID, titles: Sequence[str]) -> dict[str, uuid.UUID]:
        found: dict[str, uuid.UUID] = {}
        for start in range(0, len(titles), self._lookup_batch_size):
            chunk = titles[start : start + self._lookup_batch_size]
            try:
                found.update(self._store.find_by_titles(artist_id=artist_id, titles=chunk))
            except SQLAlchemyError as exc:
                logger.exception("Track lookup failed artist_id=%s batch_start=%s", artist_id, start)
                raise CatalogResolutionError(f"Failed to fetch tracks: {exc}") from exc
        return found

    def _create(self, *, artist_id: uuid.UUID, tracks: Sequence[NewTrack]) -> dict[str, uuid.UUID]:
        created: dict[str, uuid.UUID] = {}
        for start in range(0, len(tracks), self._insert_batch_size):
            chunk = tracks[start : start + self._insert_batch_size]
            try:
                created.update(self._store.insert_missing(artist_id=artist_id, tracks=chunk))
            except SQLAlchemyError as exc:
                logger.exception("Track creation failed artist_id=%s batch_start=%s", artist_id, start)
                raise CatalogResolutionError(f"Failed to create tracks: {exc}") from exc
        return created

    @staticmethod
    def _new_track(first_row: ValidatedRow) -> NewTrack:
        row = first_row.row
        return NewTrack(
            title=row.song_title,
            composer=row.composer or None,
            iswc=row.iswc or None,
        )
