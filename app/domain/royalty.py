"""
app/domain/royalty.py

Domain models used by the royalty ingestion and aggregation flow.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any


class ProgressStatus:
    PENDING = "pending"
    PARSING = "parsing"
    PROCESSING = "processing"
    INSERTING = "inserting"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class NormalizedRow:
    """
    One CSV row reduced to the ten canonical fields, all kept as strings.

    ``source_values`` keeps the untrimmed cells keyed by source header so a
    rejected row can be written back exactly as it was read.
    """

    row_index: int
    song_title: str = ""
    iswc: str = ""
    composer: str = ""
    date: str = ""
    territory: str = ""
    source: str = ""
    usage_count: str = ""
    gross: str = ""
    admin_percent: str = ""
    net: str = ""
    source_values: Mapping[str, str] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class ValidatedRow:
    """
    Normalized row plus its validation verdict.
    """

    row: NormalizedRow
    errors: tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def row_index(self) -> int:
        return self.row.row_index

    @property
    def error_message(self) -> str:
        return "; ".join(self.errors)


@dataclass(frozen=True)
class NewTrack:
    """
    Track to create for a title that has no catalog entry yet.
    """

    title: str
    composer: str | None = None
    iswc: str | None = None


@dataclass(frozen=True)
class CatalogResolution:
    """
    Title to track id lookup table produced once per ingestion run.
    """

    track_ids: Mapping[str, uuid.UUID]
    created_count: int = 0
    existing_count: int = 0


@dataclass(frozen=True)
class RoyaltyRecord:
    """
    Unit of persistence for one royalty line.

    ``net_amount`` is the value reported by the source file and is stored as-is.
    """

    artist_id: uuid.UUID
    track_id: uuid.UUID
    usage_count: int
    gross_amount: Decimal
    admin_percent: Decimal
    net_amount: Decimal
    broadcast_date: date | None = None
    source: str = ""
    territory: str = ""
    row_index: int | None = None
    year: int | None = None
    quarter: int | None = None


@dataclass(frozen=True)
class BatchRowError:
    row_index: int | None
    message: str


@dataclass(frozen=True)
class BatchResult:
    """
    Outcome of one attempted batch write.
    """

    batch_index: int
    success: bool
    inserted_count: int
    failed_count: int
    errors: tuple[BatchRowError, ...] = ()
    duration_ms: int = 0
    retry_count: int = 0


@dataclass(frozen=True)
class BatchInsertOutcome:
    total_inserted: int
    total_failed: int
    batch_results: tuple[BatchResult, ...] = ()
    cancelled: bool = False


@dataclass(frozen=True)
class FailedRowRecord:
    """
    One rejected row with the values it was read with.
    """

    row_index: int
    values: Mapping[str, str]
    error_message: str
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "row_index": self.row_index,
            "values": dict(self.values),
            "error_message": self.error_message,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> FailedRowRecord:
        return cls(
            row_index=int(payload.get("row_index") or 0),
            values={str(k): "" if v is None else str(v) for k, v in (payload.get("values") or {}).items()},
            error_message=str(payload.get("error_message") or ""),
            timestamp=str(payload.get("timestamp") or ""),
        )


@dataclass(frozen=True)
class ProcessingProgress:
    """
    Snapshot of a running ingestion.
    """

    status: str
    phase: str
    total_rows: int = 0
    processed_rows: int = 0
    successful_rows: int = 0
    failed_rows: int = 0
    current_batch: int = 0
    total_batches: int = 0
    percent_complete: int = 0
    elapsed_ms: int = 0
    estimated_remaining_ms: int = 0
    rows_per_second: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "phase": self.phase,
            "total_rows": self.total_rows,
            "processed_rows": self.processed_rows,
            "successful_rows": self.successful_rows,
            "failed_rows": self.failed_rows,
            "current_batch": self.current_batch,
            "total_batches": self.total_batches,
            "percent_complete": self.percent_complete,
            "elapsed_ms": self.elapsed_ms,
            "estimated_remaining_ms": self.estimated_remaining_ms,
            "rows_per_second": self.rows_per_second,
        }


@dataclass(frozen=True)
class ProcessingSummary:
    total_rows_processed: int = 0
    successful_inserts: int = 0
    failed_inserts: int = 0
    tracks_created: int = 0
    tracks_existing: int = 0
    total_duration_ms: int = 0
    throughput: int = 0


@dataclass(frozen=True)
class ProcessingResult:
    """
    End-of-run result of one royalty file ingestion.
    """

    success: bool
    job_id: str
    summary: ProcessingSummary
    failed_rows: list[FailedRowRecord] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    headers: list[str] = field(default_factory=list)
    cancelled: bool = False
    summaries_upserted: int = 0


@dataclass(frozen=True)
class AggregationKey:
    artist_id: uuid.UUID
    track_id: uuid.UUID
    year: int
    quarter: int


@dataclass(frozen=True)
class RoyaltySummaryInput:
    """
    Per-track quarterly summary prepared for upsert.
    """

    key: AggregationKey
    total_streams: int
    total_revenue: Decimal
    total_gross: Decimal
    total_net: Decimal
    avg_per_stream: Decimal
    revenue_per_play: Decimal
    top_territory: str | None
    top_platform: str | None
    highest_revenue: Decimal
    platform_distribution: dict[str, float] = field(default_factory=dict)
    territory_distribution: dict[str, float] = field(default_factory=dict)
    monthly_breakdown: dict[str, float] = field(default_factory=dict)
    record_count: int = 0
