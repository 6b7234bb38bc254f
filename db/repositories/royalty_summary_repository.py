"""
db/repositories/royalty_summary_repository.py

Persistence layer for quarterly royalty summaries.

All methods are transaction-safe. The caller controls commit/rollback;
this repository never commits on its own.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Session

from app.domain.royalty import RoyaltySummaryInput
from app.services.decimal_engine import quantize
from db.models.royalty_summary import SUMMARY_UPSERT_CONSTRAINT, RoyaltySummary

_DEFAULT_BATCH_SIZE = 100

_REPLACED_COLUMNS: tuple[str, ...] = (
    "total_streams",
    "total_revenue",
    "total_gross",
    "total_net",
    "avg_per_stream",
    "revenue_per_play",
    "highest_revenue",
    "top_territory",
    "top_platform",
    "platform_distribution",
    "territory_distribution",
    "monthly_breakdown",
    "record_count",
)


class RoyaltySummaryRepository:
    """
    Repository for writing and querying RoyaltySummary rows.

    Upsert semantics: a summary whose ``(artist_id, track_id, year, quarter)``
    already exists is replaced column by column, never accumulated.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def upsert_many(
        self,
        summaries: Sequence[RoyaltySummaryInput],
        *,
        batch_size: int = _DEFAULT_BATCH_SIZE,
    ) -> int:
        """
        Upsert summaries in chunks of ``batch_size``.

        Duplicate keys within one call are deduplicated before hitting the
        database; the last occurrence wins.

        Returns
        -------
        int
            Total number of rows written (inserted + updated).
        """

        if not summaries:
            return 0

        deduped = _deduplicate(summaries)
        size = max(1, batch_size)
        written = 0

        for start in range(0, len(deduped), size):
            chunk = deduped[start : start + size]
            stmt = insert(RoyaltySummary).values([_to_payload(summary) for summary in chunk])
            set_: dict[str, Any] = {column: stmt.excluded[column] for column in _REPLACED_COLUMNS}
            set_["updated_at"] = datetime.now(timezone.utc)
            stmt = stmt.on_conflict_do_update(
                constraint=SUMMARY_UPSERT_CONSTRAINT,
                set_=set_,
            ).returning(RoyaltySummary.id)
            written += len(self._session.scalars(stmt).all())

        return written

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def list_for_quarter(
        self,
        *,
        artist_id: uuid.UUID,
        year: int,
        quarter: int,
    ) -> list[RoyaltySummary]:
        stmt = (
            select(RoyaltySummary)
            .where(
                RoyaltySummary.artist_id == artist_id,
                RoyaltySummary.year == year,
                RoyaltySummary.quarter == quarter,
            )
            .order_by(RoyaltySummary.total_net.desc(), RoyaltySummary.track_id)
        )
        return list(self._session.scalars(stmt).all())


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_payload(summary: RoyaltySummaryInput) -> dict[str, Any]:
    return {
        "id": uuid.uuid4(),
        "artist_id": summary.key.artist_id,
        "track_id": summary.key.track_id,
        "year": summary.key.year,
        "quarter": summary.key.quarter,
        "total_streams": summary.total_streams,
        "total_revenue": quantize(summary.total_revenue),
        "total_gross": quantize(summary.total_gross),
        "total_net": quantize(summary.total_net),
        "avg_per_stream": quantize(summary.avg_per_stream),
        "revenue_per_play": quantize(summary.revenue_per_play),
        "highest_revenue": quantize(summary.highest_revenue),
        "top_territory": summary.top_territory,
        "top_platform": summary.top_platform,
        "platform_distribution": summary.platform_distribution,
        "territory_distribution": summary.territory_distribution,
        "monthly_breakdown": summary.monthly_breakdown,
        "record_count": summary.record_count,
    }


def _deduplicate(summaries: Sequence[RoyaltySummaryInput]) -> list[RoyaltySummaryInput]:
    by_key: dict[Any, RoyaltySummaryInput] = {}
    for summary in summaries:
        by_key[summary.key] = summary
    return list(by_key.values())
