"""
app/services/batch_insert_engine.py

Bounded-concurrency batch persistence for royalty records.

Records are split into fixed-size batches in their original order and written
in sequential waves of at most ``max_concurrency`` concurrent batches. A wave
finishes completely (success or exhausted retries) before the next one starts,
so the backend never sees more than ``max_concurrency`` outstanding writes.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any

from app.domain.royalty import (
    BatchInsertOutcome,
    BatchResult,
    BatchRowError,
    ProcessingProgress,
    ProgressStatus,
    RoyaltyRecord,
)

logger = logging.getLogger(__name__)

BatchWriter = Callable[[Sequence[RoyaltyRecord]], Any]
ProgressCallback = Callable[[ProcessingProgress], None]

CANCELLED_MESSAGE = "Ingestion cancelled before batch was dispatched"
SKIPPED_MESSAGE = "Skipped after an earlier batch failure"


class BatchConfigError(ValueError):
    """
    Raised when a batch configuration value is out of range.
    """


@dataclass(frozen=True)
class BatchConfig:
    """
    Tuning for one batch insert run.
    """

    batch_size: int = 500
    max_concurrency: int = 3
    retry_attempts: int = 3
    retry_delay_ms: int = 1000
    continue_on_error: bool = True

    def __post_init__(self) -> None:
        problems: list[str] = []
        if self.batch_size < 1:
            problems.append("batch_size must be a positive integer")
        if self.max_concurrency < 1:
            problems.append("max_concurrency must be a positive integer")
        if self.retry_attempts < 0:
            problems.append("retry_attempts must be a non-negative integer")
        if self.retry_delay_ms < 1:
            problems.append("retry_delay_ms must be a positive integer")
        if problems:
            raise BatchConfigError("; ".join(problems))


DEFAULT_BATCH_CONFIG = BatchConfig()


class BatchInsertEngine:
    """
    Writes records in waves of concurrent batches with per-batch retry.

    Parameters
    ----------
    writer:
        Callable persisting one batch as a single all-or-nothing write. Any
        exception it raises counts as a failed attempt.
    config:
        Batch size, concurrency bound and retry policy.
    sleep:
        Delay function used between retry attempts.
    clock:
        Monotonic clock in seconds used for durations and throughput.
    """

    def __init__(
        self,
        writer: BatchWriter,
        config: BatchConfig = DEFAULT_BATCH_CONFIG,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._writer = writer
        self._config = config
        self._sleep = sleep
        self._clock = clock

    @property
    def config(self) -> BatchConfig:
        return self._config

    def insert(
        self,
        records: Sequence[RoyaltyRecord],
        *,
        on_progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> BatchInsertOutcome:
        """
        Persist ``records`` and return per-batch accounting.

        ``cancel_event`` is checked before every wave; once it is set, no
        further batch is dispatched and the remaining batches are reported as
        failed. Inserted plus failed counts always add up to ``len(records)``.
        """

        if not records:
            return BatchInsertOutcome(total_inserted=0, total_failed=0)

        size = self._config.batch_size
        batches = [records[start : start + size] for start in range(0, len(records), size)]
        total_batches = len(batches)
        logger.info(
            "Inserting royalty records rows=%s batches=%s batch_size=%s max_concurrency=%s",
            len(records),
            total_batches,
            size,
            self._config.max_concurrency,
        )

        results: list[BatchResult] = []
        total_inserted = 0
        total_failed = 0
        next_batch = 0
        stop_message: str | None = None
        cancelled = False
        started = self._clock()

        workers = min(self._config.max_concurrency, total_batches)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="royalty-batch") as executor:
            for wave_start in range(0, total_batches, self._config.max_concurrency):
                if cancel_event is not None and cancel_event.is_set():
                    cancelled = True
                    stop_message = CANCELLED_MESSAGE
                    logger.warning(
                        "Batch insert cancelled completed_batches=%s remaining_batches=%s",
                        next_batch,
                        total_batches - next_batch,
                    )
                    break

                wave = batches[wave_start : wave_start + self._config.max_concurrency]
                wave_results = self._run_wave(executor, wave, wave_start, total_batches)
                next_batch = wave_start + len(wave)

                for result in wave_results:
                    results.append(result)
                    total_inserted += result.inserted_count
                    total_failed += result.failed_count

                if on_progress is not None:
                    on_progress(
                        self._progress(
                            total_rows=len(records),
                            inserted=total_inserted,
                            failed=total_failed,
                            completed_batches=next_batch,
                            total_batches=total_batches,
                            started=started,
                        )
                    )

                if not self._config.continue_on_error and any(not result.success for result in wave_results):
                    stop_message = SKIPPED_MESSAGE
                    logger.warning(
                        "Stopping batch insert after failed wave remaining_batches=%s",
                        total_batches - next_batch,
                    )
                    break

        if stop_message is not None:
            for index in range(next_batch, total_batches):
                skipped = self._unattempted_result(batches[index], index, stop_message)
                results.append(skipped)
                total_failed += skipped.failed_count

        return BatchInsertOutcome(
            total_inserted=total_inserted,
            total_failed=total_failed,
            batch_results=tuple(results),
            cancelled=cancelled,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run_wave(
        self,
        executor: ThreadPoolExecutor,
        wave: Sequence[Sequence[RoyaltyRecord]],
        wave_start: int,
        total_batches: int,
    ) -> list[BatchResult]:
        futures = [
            executor.submit(self._process_batch, batch, wave_start + offset)
            for offset, batch in enumerate(wave)
        ]
        wave_results: list[BatchResult] = []
        for future in as_completed(futures):
            result = future.result()
            wave_results.append(result)
            if result.success:
                logger.info(
                    "Batch finished index=%s/%s inserted=%s duration_ms=%s retries=%s",
                    result.batch_index + 1,
                    total_batches,
                    result.inserted_count,
                    result.duration_ms,
                    result.retry_count,
                )
            else:
                logger.error(
                    "Batch failed index=%s/%s failed=%s duration_ms=%s retries=%s",
                    result.batch_index + 1,
                    total_batches,
                    result.failed_count,
                    result.duration_ms,
                    result.retry_count,
                )
        return sorted(wave_results, key=lambda result: result.batch_index)

    def _process_batch(self, batch: Sequence[RoyaltyRecord], batch_index: int) -> BatchResult:
        started = self._clock()
        retry_attempts = self._config.retry_attempts
        last_error: Exception | None = None

        for attempt in range(retry_attempts + 1):
            try:
                self._writer(batch)
            except Exception as exc:  # noqa: BLE001
                last_error = exc
                logger.warning(
                    "Batch write failed index=%s attempt=%s/%s error=%s",
                    batch_index,
                    attempt + 1,
                    retry_attempts + 1,
                    exc,
                )
                if attempt < retry_attempts:
                    wait_seconds = self._config.retry_delay_ms * (2**attempt) / 1000.0
                    logger.warning(
                        "Batch write retry index=%s attempt=%s/%s wait_seconds=%.2f",
                        batch_index,
                        attempt + 1,
                        retry_attempts,
                        wait_seconds,
                    )
                    self._sleep(wait_seconds)
                continue

            return BatchResult(
                batch_index=batch_index,
                success=True,
                inserted_count=len(batch),
                failed_count=0,
                duration_ms=self._elapsed_ms(started),
                retry_count=attempt,
            )

        message = str(last_error) if last_error is not None else "Unknown error"
        return BatchResult(
            batch_index=batch_index,
            success=False,
            inserted_count=0,
            failed_count=len(batch),
            errors=tuple(BatchRowError(row_index=record.row_index, message=message) for record in batch),
            duration_ms=self._elapsed_ms(started),
            retry_count=retry_attempts,
        )

    @staticmethod
    def _unattempted_result(batch: Sequence[RoyaltyRecord], batch_index: int, message: str) -> BatchResult:
        return BatchResult(
            batch_index=batch_index,
            success=False,
            inserted_count=0,
            failed_count=len(batch),
            errors=tuple(BatchRowError(row_index=record.row_index, message=message) for record in batch),
        )

    def _progress(
        self,
        *,
        total_rows: int,
        inserted: int,
        failed: int,
        completed_batches: int,
        total_batches: int,
        started: float,
    ) -> ProcessingProgress:
        elapsed_seconds = max(0.0, self._clock() - started)
        rows_per_second = round_half_up(inserted / elapsed_seconds) if inserted and elapsed_seconds > 0 else 0
        remaining_rows = total_rows - inserted - failed
        estimated_remaining_ms = (
            round_half_up(remaining_rows / rows_per_second * 1000) if rows_per_second > 0 else 0
        )
        return ProcessingProgress(
            status=ProgressStatus.INSERTING,
            phase="Inserting royalty records",
            total_rows=total_rows,
            processed_rows=inserted + failed,
            successful_rows=inserted,
            failed_rows=failed,
            current_batch=completed_batches,
            total_batches=total_batches,
            percent_complete=round_half_up(completed_batches / total_batches * 100),
            elapsed_ms=round_half_up(elapsed_seconds * 1000),
            estimated_remaining_ms=estimated_remaining_ms,
            rows_per_second=rows_per_second,
        )

    def _elapsed_ms(self, started: float) -> int:
        return round_half_up(max(0.0, self._clock() - started) * 1000)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))
