"""
db/repositories/royalty_repository.py

Persistence layer for royalty statement lines.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator, Sequence
from typing import Any

from sqlalchemy import insert, select
from sqlalchemy.orm import Session

from app.domain.royalty import RoyaltyRecord
from app.services.decimal_engine import quantize
from db.models.royalty import Royalty

_READ_CHUNK_SIZE = 1000


class RoyaltyRepository:
    """
    Repository for batch writes and quarterly reads of royalty lines.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def bulk_insert(self, records: Sequence[RoyaltyRecord]) -> int:
        """
        Insert all ``records`` in one statement.

        The statement either writes every row or none of them; callers wrap it
        in a transaction so a failed batch leaves nothing behind.
        """

        if not records:
            return 0

        payloads: list[dict[str, Any]] = [
            {
                "id": uuid.uuid4(),
                "track_id": record.track_id,
                "artist_id": record.artist_id,
                "usage_count": record.usage_count,
                "gross_amount": quantize(record.gross_amount),
                "admin_percent": quantize(record.admin_percent),
                "net_amount": quantize(record.net_amount),
                "broadcast_date": record.broadcast_date,
                "exploitation_source_name": record.source or None,
                "territory": record.territory or None,
                "year": record.year,
                "quarter": record.quarter,
            }
            for record in records
        ]
        self._session.execute(insert(Royalty).values(payloads))
        return len(payloads)

    def iter_for_quarter(
        self,
        *,
        artist_id: uuid.UUID,
        year: int,
        quarter: int,
    ) -> Iterator[RoyaltyRecord]:
        """
        Stream the artist's royalty lines ingested for one quarter.
        """

        stmt = (
            select(Royalty)
            .where(
                Royalty.artist_id == artist_id,
                Royalty.year == year,
                Royalty.quarter == quarter,
            )
            .order_by(Royalty.created_at, Royalty.id)
            .execution_options(yield_per=_READ_CHUNK_SIZE)
        )
        for row in self._session.scalars(stmt):
            yield RoyaltyRecord(
                artist_id=row.artist_id,
                track_id=row.track_id,
                usage_count=row.usage_count,
                gross_amount=row.gross_amount,
                admin_percent=row.admin_percent,
                net_amount=row.net_amount,
                broadcast_date=row.broadcast_date,
                source=row.exploitation_source_name or "",
                territory=row.territory or "",
                year=row.year,
                quarter=row.quarter,
            )
