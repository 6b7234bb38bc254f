"""
app/services/royalty_ingestion_service.py

Service layer for royalty file ingestion.

One call to ``process`` is one logical ingestion task and runs these stages
strictly in order:

    1. parse      : stream the CSV, map headers, normalize and validate rows
    2. catalog    : resolve or create one track per distinct song title
    3. insert     : persist royalty records in bounded concurrent batches
    4. summarize  : (quarterly runs only) upsert per-track quarter summaries

Rejected rows never stop the run. Only a file without valid rows or a
catalog that cannot be resolved makes the run fail as a whole.
"""

from __future__ import annotations

import csv
import io
import logging
import threading
import time
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import IO, Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import RoyaltyIngestionSettings, get_royalty_ingestion_settings
from app.domain.royalty import (
    BatchInsertOutcome,
    CatalogResolution,
    FailedRowRecord,
    NormalizedRow,
    ProcessingProgress,
    ProcessingResult,
    ProcessingSummary,
    ProgressStatus,
    RoyaltyRecord,
    ValidatedRow,
)
from app.mappers.column_mapper import CANONICAL_DISPLAY_HEADERS, ColumnMapper, ColumnMapping
from app.services import decimal_engine
from app.services.batch_insert_engine import BatchConfig, BatchInsertEngine, round_half_up
from app.services.catalog_resolver import CatalogResolutionError, CatalogResolver
from app.services.progress_reporter import ProgressReporter
from app.services.royalty_aggregation_service import RoyaltySummaryService, SummaryPersistenceError
from app.validators.royalty_row_validator import RoyaltyRowValidator, parse_broadcast_date

logger = logging.getLogger(__name__)

MIN_YEAR = 2000
MAX_YEAR = 2100
NO_VALID_ROWS_MESSAGE = "No valid rows found in CSV"
CANCELLED_MESSAGE = "Ingestion cancelled"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class IngestionConfigurationError(ValueError):
    """
    Raised before any processing when the run parameters are unusable.
    """

    def __init__(self, problems: list[str]) -> None:
        super().__init__("; ".join(problems))
        self.problems = tuple(problems)

    def to_dict(self) -> dict[str, object]:
        return {
            "message": "Invalid ingestion configuration.",
            "errors": list(self.problems),
        }


class RoyaltyFileFormatError(ValueError):
    """
    Raised when the uploaded file is not a readable UTF-8 CSV with a header row.
    """


# ---------------------------------------------------------------------------
# Run parameters
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IngestionRequest:
    artist_id: uuid.UUID
    year: int | None = None
    quarter: int | None = None

    @property
    def is_quarterly(self) -> bool:
        return self.year is not None and self.quarter is not None


def validate_ingestion_request(
    *,
    artist_id: uuid.UUID | str | None,
    year: int | None = None,
    quarter: int | None = None,
) -> IngestionRequest:
    """
    Check artist, year and quarter; collects every problem before raising.
    """

    problems: list[str] = []
    resolved_artist: uuid.UUID | None = None

    if isinstance(artist_id, uuid.UUID):
        resolved_artist = artist_id
    elif artist_id is None or not str(artist_id).strip():
        problems.append("artist_id is required")
    else:
        try:
            resolved_artist = uuid.UUID(str(artist_id).strip())
        except ValueError:
            problems.append(f"artist_id must be a valid UUID: {artist_id!r}")

    if (year is None) != (quarter is None):
        problems.append("year and quarter must be provided together")
    if quarter is not None and not 1 <= quarter <= 4:
        problems.append(f"quarter must be between 1 and 4, got {quarter}")
    if year is not None and not MIN_YEAR <= year <= MAX_YEAR:
        problems.append(f"year must be between {MIN_YEAR} and {MAX_YEAR}, got {year}")

    if problems or resolved_artist is None:
        raise IngestionConfigurationError(problems)
    return IngestionRequest(artist_id=resolved_artist, year=year, quarter=quarter)


def default_batch_config(settings: RoyaltyIngestionSettings) -> BatchConfig:
    return BatchConfig(
        batch_size=settings.batch_size,
        max_concurrency=settings.max_concurrency,
        retry_attempts=settings.retry_attempts,
        retry_delay_ms=settings.retry_delay_ms,
        continue_on_error=settings.continue_on_error,
    )


@dataclass
class _ParsedFile:
    headers: list[str]
    mapping: ColumnMapping
    valid_rows: list[ValidatedRow]
    failed_rows: list[FailedRowRecord]
    total_rows: int


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class RoyaltyIngestionService:
    """
    Coordinates parsing, validation, catalog resolution, batch insertion and
    quarterly aggregation of one royalty file.
    """

    def __init__(
        self,
        *,
        settings: RoyaltyIngestionSettings | None = None,
        session_factory: Callable[[], Session] | None = None,
        track_repository_factory: Callable[[Session], Any] | None = None,
        royalty_repository_factory: Callable[[Session], Any] | None = None,
        summary_service: RoyaltySummaryService | None = None,
        mapper: ColumnMapper | None = None,
        validator: RoyaltyRowValidator | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if session_factory is None:
            from db.session import SessionLocal

            session_factory = SessionLocal
        if track_repository_factory is None:
            from db.repositories.track_repository import TrackRepository

            track_repository_factory = TrackRepository
        if royalty_repository_factory is None:
            from db.repositories.royalty_repository import RoyaltyRepository

            royalty_repository_factory = RoyaltyRepository

        self._settings = settings or get_royalty_ingestion_settings()
        self._session_factory = session_factory
        self._track_repository_factory = track_repository_factory
        self._royalty_repository_factory = royalty_repository_factory
        self._summary_service = summary_service or RoyaltySummaryService(
            session_factory=session_factory,
            royalty_repository_factory=royalty_repository_factory,
            upsert_batch_size=self._settings.summary_upsert_batch_size,
        )
        self._mapper = mapper or ColumnMapper()
        self._validator = validator or RoyaltyRowValidator()
        self._sleep = sleep
        self._clock = clock

    @property
    def settings(self) -> RoyaltyIngestionSettings:
        return self._settings

    @property
    def summary_service(self) -> RoyaltySummaryService:
        return self._summary_service

    def process_text(self, content: str, **kwargs: Any) -> ProcessingResult:
        """
        Convenience wrapper around ``process`` for in-memory CSV text.
        """

        return self.process(source=io.BytesIO(content.encode("utf-8")), **kwargs)

    def process(
        self,
        *,
        source: IO[bytes],
        artist_id: uuid.UUID | str | None,
        year: int | None = None,
        quarter: int | None = None,
        config: BatchConfig | None = None,
        on_progress: Callable[[ProcessingProgress], None] | None = None,
        cancel_event: threading.Event | None = None,
        job_id: str | None = None,
    ) -> ProcessingResult:
        """
        Ingest one royalty file for one artist.

        Args:
            source:        Binary file object positioned anywhere; read from the start.
            artist_id:     Owning artist; must exist.
            year, quarter: Statement period. When given, summaries are upserted
                           for every track inserted by this run.
            config:        Batch tuning; defaults come from settings.
            on_progress:   Receives ordered progress snapshots.
            cancel_event:  Checked between insert waves.
            job_id:        Identifier echoed in the result.

        Raises:
            IngestionConfigurationError: bad artist/year/quarter (nothing processed).
            RoyaltyFileFormatError:      file has no header row or is not UTF-8 CSV.
        """

        request = validate_ingestion_request(artist_id=artist_id, year=year, quarter=quarter)
        batch_config = config or default_batch_config(self._settings)
        self._ensure_artist_exists(request.artist_id)

        run_id = job_id or f"job_{uuid.uuid4().hex}"
        started = self._clock()
        reporter = ProgressReporter(on_progress)
        errors: list[str] = []

        logger.info(
            "Royalty ingestion started job_id=%s artist_id=%s year=%s quarter=%s",
            run_id,
            request.artist_id,
            request.year,
            request.quarter,
        )
        reporter.report(
            ProcessingProgress(
                status=ProgressStatus.PARSING,
                phase="Parsing CSV file",
                percent_complete=5,
                elapsed_ms=self._elapsed_ms(started),
            )
        )

        try:
            parsed = self._parse(source, reporter=reporter, started=started)
        except RoyaltyFileFormatError as exc:
            reporter.report(self._failed_progress(f"Error: {exc}", started))
            raise

        failed_rows = list(parsed.failed_rows)
        if "song_title" not in parsed.mapping.canonical_to_source:
            errors.append(f"Missing required column: {CANONICAL_DISPLAY_HEADERS['song_title']}")

        logger.info(
            "Royalty file parsed job_id=%s rows=%s valid=%s invalid=%s",
            run_id,
            parsed.total_rows,
            len(parsed.valid_rows),
            len(failed_rows),
        )

        if not parsed.valid_rows:
            errors.append(NO_VALID_ROWS_MESSAGE)
            return self._failure(run_id, parsed, failed_rows, errors, reporter, started)

        reporter.report(
            ProcessingProgress(
                status=ProgressStatus.PROCESSING,
                phase="Processing tracks",
                total_rows=parsed.total_rows,
                processed_rows=parsed.total_rows,
                failed_rows=len(failed_rows),
                percent_complete=30,
                elapsed_ms=self._elapsed_ms(started),
            )
        )

        try:
            resolution = self._resolve_catalog(request.artist_id, parsed.valid_rows)
        except CatalogResolutionError as exc:
            errors.append(str(exc))
            return self._failure(run_id, parsed, failed_rows, errors, reporter, started)

        reporter.report(
            ProcessingProgress(
                status=ProgressStatus.PROCESSING,
                phase="Preparing royalty records",
                total_rows=parsed.total_rows,
                processed_rows=parsed.total_rows,
                failed_rows=len(failed_rows),
                percent_complete=40,
                elapsed_ms=self._elapsed_ms(started),
            )
        )

        records: list[RoyaltyRecord] = []
        rows_by_index: dict[int, NormalizedRow] = {}
        for validated in parsed.valid_rows:
            row = validated.row
            track_id = resolution.track_ids.get(row.song_title)
            if track_id is None:
                failed_rows.append(
                    self._failed_row(row, f"Track not found for song: {row.song_title}")
                )
                continue
            rows_by_index[row.row_index] = row
            records.append(self._to_record(row, request=request, track_id=track_id))

        engine = BatchInsertEngine(
            self._write_batch,
            batch_config,
            sleep=self._sleep,
            clock=self._clock,
        )
        outcome = engine.insert(records, on_progress=reporter.report, cancel_event=cancel_event)
        failed_rows.extend(self._batch_failures(outcome, rows_by_index, errors))

        summaries_upserted = 0
        if request.is_quarterly and outcome.total_inserted:
            inserted = self._inserted_records(records, outcome, batch_config.batch_size)
            try:
                summaries_upserted = self._summary_service.summarize_and_upsert(
                    inserted,
                    artist_id=request.artist_id,
                    year=request.year,
                    quarter=request.quarter,
                )
            except SummaryPersistenceError as exc:
                errors.append(str(exc))

        duration_ms = self._elapsed_ms(started)
        throughput = round_half_up(outcome.total_inserted / (duration_ms / 1000)) if duration_ms > 0 else 0
        summary = ProcessingSummary(
            total_rows_processed=parsed.total_rows,
            successful_inserts=outcome.total_inserted,
            failed_inserts=len(failed_rows),
            tracks_created=resolution.created_count,
            tracks_existing=resolution.existing_count,
            total_duration_ms=duration_ms,
            throughput=throughput,
        )

        if outcome.cancelled:
            errors.append(CANCELLED_MESSAGE)
            reporter.report(self._failed_progress(CANCELLED_MESSAGE, started))
        else:
            reporter.report(
                ProcessingProgress(
                    status=ProgressStatus.COMPLETED,
                    phase="Processing complete",
                    total_rows=parsed.total_rows,
                    processed_rows=parsed.total_rows,
                    successful_rows=outcome.total_inserted,
                    failed_rows=len(failed_rows),
                    current_batch=len(outcome.batch_results),
                    total_batches=len(outcome.batch_results),
                    percent_complete=100,
                    elapsed_ms=duration_ms,
                    rows_per_second=throughput,
                )
            )

        logger.info(
            "Royalty ingestion finished job_id=%s rows=%s inserted=%s failed=%s "
            "tracks_created=%s duration_ms=%s throughput=%s cancelled=%s",
            run_id,
            parsed.total_rows,
            outcome.total_inserted,
            len(failed_rows),
            resolution.created_count,
            duration_ms,
            throughput,
            outcome.cancelled,
        )

        return ProcessingResult(
            success=not outcome.cancelled,
            job_id=run_id,
            summary=summary,
            failed_rows=failed_rows,
            errors=errors,
            headers=parsed.headers,
            cancelled=outcome.cancelled,
            summaries_upserted=summaries_upserted,
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _parse(self, source: IO[bytes], *, reporter: ProgressReporter, started: float) -> _ParsedFile:
        estimated_rows = self._estimate_rows(source)
        interval = self._settings.progress_row_interval
        text_stream: io.TextIOWrapper | None = None

        valid_rows: list[ValidatedRow] = []
        failed_rows: list[FailedRowRecord] = []
        total_rows = 0

        try:
            text_stream = io.TextIOWrapper(source, encoding="utf-8-sig", newline="")
            reader = csv.DictReader(text_stream, restval="")
            raw_headers = reader.fieldnames
            if not raw_headers:
                raise RoyaltyFileFormatError("CSV header row is missing.")
            headers = [header.strip() for header in raw_headers]
            reader.fieldnames = headers
            mapping = self._mapper.build_mapping(headers)
            logger.info(
                "Column mapping resolved mapped=%s unmapped=%s",
                dict(mapping.canonical_to_source),
                list(mapping.unmapped_fields),
            )

            for row_index, raw_row in enumerate(reader, start=2):
                total_rows += 1
                normalized = self._mapper.normalize_row(raw_row=raw_row, mapping=mapping, row_index=row_index)
                validated = self._validator.validate(normalized)
                if validated.is_valid:
                    valid_rows.append(validated)
                else:
                    failed_rows.append(
                        FailedRowRecord(
                            row_index=row_index,
                            values=dict(normalized.source_values),
                            error_message=validated.error_message,
                            timestamp=_utc_timestamp(),
                        )
                    )
                    if self._settings.log_validation_errors:
                        logger.warning(
                            "Royalty row rejected row=%s errors=%s",
                            row_index,
                            validated.error_message,
                        )

                if total_rows % interval == 0:
                    total = max(estimated_rows, total_rows)
                    reporter.report(
                        ProcessingProgress(
                            status=ProgressStatus.PARSING,
                            phase=f"Parsing row {total_rows}/{total}",
                            total_rows=total,
                            processed_rows=total_rows,
                            percent_complete=min(20, round_half_up(total_rows / total * 20)),
                            elapsed_ms=self._elapsed_ms(started),
                        )
                    )
        except UnicodeDecodeError as exc:
            raise RoyaltyFileFormatError("CSV must be UTF-8 encoded.") from exc
        except csv.Error as exc:
            raise RoyaltyFileFormatError(f"Invalid CSV format: {exc}") from exc
        finally:
            if text_stream is not None:
                try:
                    text_stream.detach()
                except ValueError:
                    pass

        return _ParsedFile(
            headers=headers,
            mapping=mapping,
            valid_rows=valid_rows,
            failed_rows=failed_rows,
            total_rows=total_rows,
        )

    def _ensure_artist_exists(self, artist_id: uuid.UUID) -> None:
        try:
            with self._session_factory() as db:
                exists = self._track_repository_factory(db).artist_exists(artist_id)
        except SQLAlchemyError as exc:
            logger.exception("Artist lookup failed artist_id=%s", artist_id)
            raise CatalogResolutionError(f"Failed to verify artist: {exc}") from exc
        if not exists:
            raise IngestionConfigurationError([f"Unknown artist_id: {artist_id}"])

    def _resolve_catalog(self, artist_id: uuid.UUID, rows: list[ValidatedRow]) -> CatalogResolution:
        try:
            with self._session_factory() as db:
                with db.begin():
                    resolver = CatalogResolver(
                        self._track_repository_factory(db),
                        lookup_batch_size=self._settings.track_lookup_batch_size,
                        insert_batch_size=self._settings.track_insert_batch_size,
                    )
                    return resolver.resolve(artist_id=artist_id, rows=rows)
        except SQLAlchemyError as exc:
            logger.exception("Catalog commit failed artist_id=%s", artist_id)
            raise CatalogResolutionError(f"Failed to create tracks: {exc}") from exc

    def _write_batch(self, records: list[RoyaltyRecord]) -> int:
        with self._session_factory() as db:
            with db.begin():
                return self._royalty_repository_factory(db).bulk_insert(records)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_record(row: NormalizedRow, *, request: IngestionRequest, track_id: uuid.UUID) -> RoyaltyRecord:
        return RoyaltyRecord(
            artist_id=request.artist_id,
            track_id=track_id,
            usage_count=decimal_engine.parse_integer(row.usage_count),
            gross_amount=decimal_engine.parse_decimal(row.gross),
            admin_percent=decimal_engine.parse_decimal(row.admin_percent),
            net_amount=decimal_engine.parse_decimal(row.net),
            broadcast_date=parse_broadcast_date(row.date),
            source=row.source,
            territory=row.territory,
            row_index=row.row_index,
            year=request.year,
            quarter=request.quarter,
        )

    def _batch_failures(
        self,
        outcome: BatchInsertOutcome,
        rows_by_index: Mapping[int, NormalizedRow],
        errors: list[str],
    ) -> list[FailedRowRecord]:
        failures: list[FailedRowRecord] = []
        for result in outcome.batch_results:
            if result.success:
                continue
            message = result.errors[0].message if result.errors else "Unknown error"
            errors.append(
                f"Batch {result.batch_index + 1} failed after {result.retry_count} retries: {message}"
            )
            for row_error in result.errors:
                row = rows_by_index.get(row_error.row_index) if row_error.row_index is not None else None
                if row is None:
                    continue
                failures.append(
                    self._failed_row(row, f"Batch {result.batch_index + 1} failed: {row_error.message}")
                )
        return failures

    @staticmethod
    def _inserted_records(
        records: list[RoyaltyRecord],
        outcome: BatchInsertOutcome,
        batch_size: int,
    ) -> list[RoyaltyRecord]:
        inserted: list[RoyaltyRecord] = []
        for result in outcome.batch_results:
            if result.success:
                start = result.batch_index * batch_size
                inserted.extend(records[start : start + batch_size])
        return inserted

    def _failure(
        self,
        run_id: str,
        parsed: _ParsedFile,
        failed_rows: list[FailedRowRecord],
        errors: list[str],
        reporter: ProgressReporter,
        started: float,
    ) -> ProcessingResult:
        logger.error("Royalty ingestion failed job_id=%s errors=%s", run_id, errors)
        reporter.report(self._failed_progress(f"Error: {errors[-1]}", started))
        return ProcessingResult(
            success=False,
            job_id=run_id,
            summary=ProcessingSummary(
                total_rows_processed=parsed.total_rows,
                failed_inserts=len(failed_rows),
                total_duration_ms=self._elapsed_ms(started),
            ),
            failed_rows=failed_rows,
            errors=errors,
            headers=parsed.headers,
        )

    def _failed_progress(self, phase: str, started: float) -> ProcessingProgress:
        return ProcessingProgress(
            status=ProgressStatus.FAILED,
            phase=phase,
            elapsed_ms=self._elapsed_ms(started),
        )

    @staticmethod
    def _failed_row(row: NormalizedRow, message: str) -> FailedRowRecord:
        return FailedRowRecord(
            row_index=row.row_index,
            values=dict(row.source_values),
            error_message=message,
            timestamp=_utc_timestamp(),
        )

    @staticmethod
    def _estimate_rows(source: IO[bytes]) -> int:
        """
        Count data lines for progress reporting; 0 when the stream cannot be rewound.
        """

        if not source.seekable():
            return 0
        source.seek(0)
        newlines = 0
        last_chunk = b""
        while True:
            chunk = source.read(1024 * 1024)
            if not chunk:
                break
            newlines += chunk.count(b"\n")
            last_chunk = chunk
        source.seek(0)
        lines = newlines + (1 if last_chunk and not last_chunk.endswith(b"\n") else 0)
        return max(0, lines - 1)

    def _elapsed_ms(self, started: float) -> int:
        return round_half_up(max(0.0, self._clock() - started) * 1000)


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def get_royalty_ingestion_service() -> RoyaltyIngestionService:
    """
    Build and cache the ingestion service with env-driven settings.
    """

    return RoyaltyIngestionService(settings=get_royalty_ingestion_settings())
