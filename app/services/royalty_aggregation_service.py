"""
app/services/royalty_aggregation_service.py

Quarterly per-track royalty aggregation.

Folds royalty lines of one artist and quarter into one summary per track:

    total_streams        : sum of usage counts
    total_gross          : sum of gross amounts
    total_revenue        : sum of gross amounts
    total_net            : sum of net amounts
    avg_per_stream       : total_net / total_streams
    revenue_per_play     : total_revenue / total_streams
    top_platform         : platform with the highest net revenue
    top_territory        : territory with the highest net revenue
    highest_revenue      : net revenue of the top territory
    *_distribution       : platform / territory share of total_net (6 dp)
    monthly_breakdown    : net revenue per calendar month (2 dp)

Breakdowns (platform, territory, month) are keyed on net revenue. A missing
platform or territory is recorded as ``Unknown``, as is a missing or
unparseable broadcast date.

Summaries are upserted on ``(artist_id, track_id, year, quarter)``, so
recomputing a quarter replaces earlier totals instead of adding to them.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.domain.royalty import AggregationKey, RoyaltyRecord, RoyaltySummaryInput
from app.services import decimal_engine
from app.services.decimal_engine import ZERO

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"
MONTH_NAMES: tuple[str, ...] = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)
DISTRIBUTION_PLACES = 6
MONTHLY_PLACES = 2
SUMMARY_UPSERT_BATCH_SIZE = 100


class SummaryPersistenceError(RuntimeError):
    """
    Raised when summary rows cannot be read or written.
    """


# ---------------------------------------------------------------------------
# Accumulators
# ---------------------------------------------------------------------------


@dataclass
class BreakdownBucket:
    streams: int = 0
    revenue: Decimal = ZERO


@dataclass
class TrackAggregation:
    """
    Running totals for one track.
    """

    track_id: uuid.UUID
    total_streams: int = 0
    total_gross: Decimal = ZERO
    total_net: Decimal = ZERO
    total_revenue: Decimal = ZERO
    record_count: int = 0
    platforms: dict[str, BreakdownBucket] = field(default_factory=dict)
    territories: dict[str, BreakdownBucket] = field(default_factory=dict)
    months: dict[str, BreakdownBucket] = field(default_factory=dict)

    def add(self, record: RoyaltyRecord) -> None:
        streams = record.usage_count
        net = record.net_amount

        self.total_streams += streams
        self.total_gross = decimal_engine.add(self.total_gross, record.gross_amount)
        self.total_revenue = decimal_engine.add(self.total_revenue, record.gross_amount)
        self.total_net = decimal_engine.add(self.total_net, net)
        self.record_count += 1

        _accumulate(self.platforms, record.source.strip() or UNKNOWN, streams, net)
        _accumulate(self.territories, record.territory.strip() or UNKNOWN, streams, net)
        _accumulate(self.months, month_label(record), streams, net)


def _accumulate(buckets: dict[str, BreakdownBucket], key: str, streams: int, revenue: Decimal) -> None:
    bucket = buckets.get(key)
    if bucket is None:
        bucket = BreakdownBucket()
        buckets[key] = bucket
    bucket.streams += streams
    bucket.revenue = decimal_engine.add(bucket.revenue, revenue)


def month_label(record: RoyaltyRecord) -> str:
    if record.broadcast_date is None:
        return UNKNOWN
    return MONTH_NAMES[record.broadcast_date.month - 1]


# ---------------------------------------------------------------------------
# Pure aggregation
# ---------------------------------------------------------------------------


def aggregate_by_track(records: Iterable[RoyaltyRecord]) -> dict[uuid.UUID, TrackAggregation]:
    aggregations: dict[uuid.UUID, TrackAggregation] = {}
    for record in records:
        aggregation = aggregations.get(record.track_id)
        if aggregation is None:
            aggregation = TrackAggregation(track_id=record.track_id)
            aggregations[record.track_id] = aggregation
        aggregation.add(record)
    return aggregations


def compute_distribution(buckets: dict[str, BreakdownBucket], total_net: Decimal) -> dict[str, float]:
    """
    Convert buckets into revenue shares of ``total_net``; empty when the total is zero.
    """

    if total_net == 0:
        return {}
    return {
        key: float(decimal_engine.quantize(decimal_engine.divide(bucket.revenue, total_net), DISTRIBUTION_PLACES))
        for key, bucket in buckets.items()
    }


def top_item(buckets: dict[str, BreakdownBucket]) -> tuple[str, Decimal] | None:
    """
    Return the key with the strictly greatest positive revenue, if any.
    """

    top_key: str | None = None
    top_revenue = ZERO
    for key, bucket in buckets.items():
        if decimal_engine.compare(bucket.revenue, top_revenue) > 0:
            top_key = key
            top_revenue = bucket.revenue
    if top_key is None:
        return None
    return top_key, top_revenue


def monthly_breakdown(buckets: dict[str, BreakdownBucket]) -> dict[str, float]:
    return {
        key: float(decimal_engine.quantize(bucket.revenue, MONTHLY_PLACES))
        for key, bucket in buckets.items()
    }


def build_summary(
    aggregation: TrackAggregation,
    *,
    artist_id: uuid.UUID,
    year: int,
    quarter: int,
) -> RoyaltySummaryInput:
    streams = aggregation.total_streams
    top_territory = top_item(aggregation.territories)
    top_platform = top_item(aggregation.platforms)

    if streams > 0:
        avg_per_stream = decimal_engine.quantize(decimal_engine.divide(aggregation.total_net, streams))
        revenue_per_play = decimal_engine.quantize(decimal_engine.divide(aggregation.total_revenue, streams))
    else:
        avg_per_stream = ZERO
        revenue_per_play = ZERO

    return RoyaltySummaryInput(
        key=AggregationKey(
            artist_id=artist_id,
            track_id=aggregation.track_id,
            year=year,
            quarter=quarter,
        ),
        total_streams=streams,
        total_revenue=decimal_engine.quantize(aggregation.total_revenue),
        total_gross=decimal_engine.quantize(aggregation.total_gross),
        total_net=decimal_engine.quantize(aggregation.total_net),
        avg_per_stream=avg_per_stream,
        revenue_per_play=revenue_per_play,
        top_territory=top_territory[0] if top_territory else None,
        top_platform=top_platform[0] if top_platform else None,
        highest_revenue=decimal_engine.quantize(top_territory[1]) if top_territory else ZERO,
        platform_distribution=compute_distribution(aggregation.platforms, aggregation.total_net),
        territory_distribution=compute_distribution(aggregation.territories, aggregation.total_net),
        monthly_breakdown=monthly_breakdown(aggregation.months),
        record_count=aggregation.record_count,
    )


def summarize_quarter(
    records: Iterable[RoyaltyRecord],
    *,
    artist_id: uuid.UUID,
    year: int,
    quarter: int,
) -> list[RoyaltySummaryInput]:
    """
    Aggregate royalty lines of one artist/quarter into one summary per track.
    """

    return [
        build_summary(aggregation, artist_id=artist_id, year=year, quarter=quarter)
        for aggregation in aggregate_by_track(records).values()
    ]


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


class RoyaltySummaryService:
    """
    Computes and upserts quarterly summaries.

    Each public method opens its own session from ``session_factory`` and
    commits once; repositories are built from the injected factories.
    """

    def __init__(
        self,
        *,
        session_factory: Callable[[], Session] | None = None,
        summary_repository_factory: Callable[[Session], Any] | None = None,
        royalty_repository_factory: Callable[[Session], Any] | None = None,
        upsert_batch_size: int = SUMMARY_UPSERT_BATCH_SIZE,
    ) -> None:
        if session_factory is None:
            from db.session import SessionLocal

            session_factory = SessionLocal
        if summary_repository_factory is None:
            from db.repositories.royalty_summary_repository import RoyaltySummaryRepository

            summary_repository_factory = RoyaltySummaryRepository
        if royalty_repository_factory is None:
            from db.repositories.royalty_repository import RoyaltyRepository

            royalty_repository_factory = RoyaltyRepository

        self._session_factory = session_factory
        self._summary_repository_factory = summary_repository_factory
        self._royalty_repository_factory = royalty_repository_factory
        self._upsert_batch_size = max(1, upsert_batch_size)

    def upsert_summaries(self, summaries: Sequence[RoyaltySummaryInput]) -> int:
        if not summaries:
            return 0

        try:
            with self._session_factory() as db:
                with db.begin():
                    written = self._summary_repository_factory(db).upsert_many(
                        summaries,
                        batch_size=self._upsert_batch_size,
                    )
        except SQLAlchemyError as exc:
            logger.exception("Summary upsert failed summaries=%s", len(summaries))
            raise SummaryPersistenceError(f"Failed to upsert royalty summaries: {exc}") from exc

        logger.info("Summaries upserted count=%s", written)
        return written

    def summarize_and_upsert(
        self,
        records: Iterable[RoyaltyRecord],
        *,
        artist_id: uuid.UUID,
        year: int,
        quarter: int,
    ) -> int:
        summaries = summarize_quarter(records, artist_id=artist_id, year=year, quarter=quarter)
        return self.upsert_summaries(summaries)

    def recompute(self, *, artist_id: uuid.UUID, year: int, quarter: int) -> list[RoyaltySummaryInput]:
        """
        Re-read the persisted royalty lines of a quarter and replace its summaries.
        """

        try:
            with self._session_factory() as db:
                with db.begin():
                    records = self._royalty_repository_factory(db).iter_for_quarter(
                        artist_id=artist_id,
                        year=year,
                        quarter=quarter,
                    )
                    summaries = summarize_quarter(records, artist_id=artist_id, year=year, quarter=quarter)
                    if summaries:
                        self._summary_repository_factory(db).upsert_many(
                            summaries,
                            batch_size=self._upsert_batch_size,
                        )
        except SQLAlchemyError as exc:
            logger.exception(
                "Summary recompute failed artist_id=%s year=%s quarter=%s",
                artist_id,
                year,
                quarter,
            )
            raise SummaryPersistenceError(f"Failed to recompute royalty summaries: {exc}") from exc

        logger.info(
            "Summaries recomputed artist_id=%s year=%s quarter=%s tracks=%s",
            artist_id,
            year,
            quarter,
            len(summaries),
        )
        return summaries

    def list_summaries(self, *, artist_id: uuid.UUID, year: int, quarter: int) -> list[Any]:
        with self._session_factory() as db:
            return self._summary_repository_factory(db).list_for_quarter(
                artist_id=artist_id,
                year=year,
                quarter=quarter,
            )
