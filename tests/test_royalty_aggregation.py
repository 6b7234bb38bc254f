"""
tests/test_royalty_aggregation.py

Pytest unit tests for quarterly per-track aggregation.

Coverage
--------
- Totals, per-stream averages and zero-stream handling
- Top territory / platform selection on net revenue
- Distribution shares and monthly breakdown
- Unknown buckets for missing platform, territory and date
- Summary column precision for the largest accepted amounts
- Upsert replacement on re-aggregation
- Recompute from persisted lines
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

import pytest

from app.domain.royalty import RoyaltyRecord
from app.services.decimal_engine import NUMERIC_UPPER_BOUND, quantize
from app.services.royalty_aggregation_service import (
    RoyaltySummaryService,
    SummaryPersistenceError,
    summarize_quarter,
)
from db.models.royalty_summary import RoyaltySummary
from tests.fakes import InMemoryCatalog

TRACK_A = uuid.uuid4()
TRACK_B = uuid.uuid4()


def _record(
    artist_id: uuid.UUID,
    track_id: uuid.UUID = TRACK_A,
    *,
    streams: int = 10,
    gross: str = "2.00",
    net: str = "1.00",
    source: str = "Spotify",
    territory: str = "US",
    broadcast: date | None = date(2024, 1, 15),
) -> RoyaltyRecord:
    return RoyaltyRecord(
        artist_id=artist_id,
        track_id=track_id,
        usage_count=streams,
        gross_amount=Decimal(gross),
        admin_percent=Decimal("0"),
        net_amount=Decimal(net),
        broadcast_date=broadcast,
        source=source,
        territory=territory,
        year=2024,
        quarter=1,
    )


@pytest.fixture()
def artist() -> uuid.UUID:
    return uuid.uuid4()


# ---------------------------------------------------------------------------
# Pure aggregation
# ---------------------------------------------------------------------------


class TestSummarizeQuarter:
    def test_totals_and_per_stream_metrics(self, artist: uuid.UUID) -> None:
        records = [
            _record(artist, streams=10, gross="2.00", net="1.50"),
            _record(artist, streams=30, gross="6.00", net="4.50", territory="GB"),
        ]
        (summary,) = summarize_quarter(records, artist_id=artist, year=2024, quarter=1)

        assert summary.total_streams == 40
        assert summary.total_gross == Decimal("8.00")
        assert summary.total_revenue == Decimal("8.00")
        assert summary.total_net == Decimal("6.00")
        assert summary.avg_per_stream == Decimal("0.15")
        assert summary.revenue_per_play == Decimal("0.2")
        assert summary.record_count == 2

    def test_one_summary_per_track(self, artist: uuid.UUID) -> None:
        records = [_record(artist, TRACK_A), _record(artist, TRACK_B), _record(artist, TRACK_A)]
        summaries = summarize_quarter(records, artist_id=artist, year=2024, quarter=1)

        by_track = {summary.key.track_id: summary for summary in summaries}
        assert set(by_track) == {TRACK_A, TRACK_B}
        assert by_track[TRACK_A].record_count == 2
        assert by_track[TRACK_A].key.year == 2024
        assert by_track[TRACK_A].key.quarter == 1

    def test_zero_streams_give_zero_averages(self, artist: uuid.UUID) -> None:
        (summary,) = summarize_quarter(
            [_record(artist, streams=0, net="5.00")],
            artist_id=artist,
            year=2024,
            quarter=1,
        )
        assert summary.avg_per_stream == Decimal(0)
        assert summary.revenue_per_play == Decimal(0)

    def test_top_items_follow_net_revenue(self, artist: uuid.UUID) -> None:
        records = [
            _record(artist, streams=1000, net="1.00", source="YouTube", territory="US"),
            _record(artist, streams=10, net="3.00", source="Spotify", territory="DE"),
        ]
        (summary,) = summarize_quarter(records, artist_id=artist, year=2024, quarter=1)

        assert summary.top_platform == "Spotify"
        assert summary.top_territory == "DE"
        assert summary.highest_revenue == Decimal("3.00")

    def test_no_top_items_without_positive_revenue(self, artist: uuid.UUID) -> None:
        (summary,) = summarize_quarter([_record(artist, net="0")], artist_id=artist, year=2024, quarter=1)

        assert summary.top_platform is None
        assert summary.top_territory is None
        assert summary.highest_revenue == Decimal(0)
        assert summary.platform_distribution == {}

    def test_distributions_are_shares_of_net(self, artist: uuid.UUID) -> None:
        records = [
            _record(artist, net="1.00", source="Spotify", territory="US"),
            _record(artist, net="2.00", source="Apple", territory="US"),
        ]
        (summary,) = summarize_quarter(records, artist_id=artist, year=2024, quarter=1)

        assert summary.platform_distribution == {"Spotify": 0.333333, "Apple": 0.666667}
        assert summary.territory_distribution == {"US": 1.0}

    def test_monthly_breakdown_and_unknown_buckets(self, artist: uuid.UUID) -> None:
        records = [
            _record(artist, net="1.005", broadcast=date(2024, 1, 3)),
            _record(artist, net="2.00", broadcast=date(2024, 3, 9)),
            _record(artist, net="0.50", broadcast=None, source="", territory="  "),
        ]
        (summary,) = summarize_quarter(records, artist_id=artist, year=2024, quarter=1)

        assert summary.monthly_breakdown == {"Jan": 1.01, "Mar": 2.0, "Unknown": 0.5}
        assert "Unknown" in summary.platform_distribution
        assert "Unknown" in summary.territory_distribution

    def test_empty_input(self, artist: uuid.UUID) -> None:
        assert summarize_quarter([], artist_id=artist, year=2024, quarter=1) == []

    def test_largest_accepted_lines_fit_the_summary_columns(self, artist: uuid.UUID) -> None:
        largest = str(NUMERIC_UPPER_BOUND - Decimal("0.01"))
        records = [_record(artist, streams=1, gross=largest, net=largest) for _ in range(1000)]

        (summary,) = summarize_quarter(records, artist_id=artist, year=2024, quarter=1)

        columns = RoyaltySummary.__table__.c
        for name in ("total_revenue", "total_gross", "total_net", "avg_per_stream", "highest_revenue"):
            column_type = columns[name].type
            integer_digits = len(str(int(abs(quantize(getattr(summary, name))))))
            assert integer_digits <= column_type.precision - column_type.scale, name


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


class TestRoyaltySummaryService:
    def test_reaggregation_replaces_previous_summary(
        self,
        summary_service: RoyaltySummaryService,
        catalog: InMemoryCatalog,
        artist: uuid.UUID,
    ) -> None:
        summary_service.summarize_and_upsert(
            [_record(artist, streams=10, net="1.00")],
            artist_id=artist,
            year=2024,
            quarter=1,
        )
        summary_service.summarize_and_upsert(
            [_record(artist, streams=99, net="9.00")],
            artist_id=artist,
            year=2024,
            quarter=1,
        )

        (stored,) = catalog.summaries.values()
        assert stored.total_streams == 99
        assert stored.total_net == Decimal("9.00")

    def test_recompute_reads_persisted_lines(
        self,
        summary_service: RoyaltySummaryService,
        catalog: InMemoryCatalog,
        artist: uuid.UUID,
    ) -> None:
        catalog.royalties.extend([_record(artist, streams=5), _record(artist, streams=7)])

        summaries = summary_service.recompute(artist_id=artist, year=2024, quarter=1)

        assert len(summaries) == 1
        assert summaries[0].total_streams == 12
        assert summary_service.list_summaries(artist_id=artist, year=2024, quarter=1) == summaries

    def test_empty_upsert_is_noop(self, summary_service: RoyaltySummaryService) -> None:
        assert summary_service.upsert_summaries([]) == 0

    def test_upsert_failure_is_wrapped(
        self,
        summary_service: RoyaltySummaryService,
        catalog: InMemoryCatalog,
        artist: uuid.UUID,
    ) -> None:
        catalog.fail_summary_upsert = True
        with pytest.raises(SummaryPersistenceError):
            summary_service.summarize_and_upsert([_record(artist)], artist_id=artist, year=2024, quarter=1)
