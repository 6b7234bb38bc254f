"""
tests/test_batch_insert_engine.py

Pytest unit tests for BatchInsertEngine.

Coverage
--------
- Batch partitioning and per-batch accounting
- Concurrency bound per wave
- Retry counts and exponential back-off delays
- Exhausted batches, continue_on_error and cancellation
- inserted + failed == N in every outcome
- Progress events per wave
"""

from __future__ import annotations

import threading
import time
import uuid
from decimal import Decimal
from collections.abc import Sequence

import pytest

from app.domain.royalty import ProcessingProgress, ProgressStatus, RoyaltyRecord
from app.services.batch_insert_engine import (
    CANCELLED_MESSAGE,
    SKIPPED_MESSAGE,
    BatchConfig,
    BatchConfigError,
    BatchInsertEngine,
)

ARTIST_ID = uuid.uuid4()
TRACK_ID = uuid.uuid4()


def _records(count: int) -> list[RoyaltyRecord]:
    return [
        RoyaltyRecord(
            artist_id=ARTIST_ID,
            track_id=TRACK_ID,
            usage_count=1,
            gross_amount=Decimal("1.00"),
            admin_percent=Decimal("0"),
            net_amount=Decimal("1.00"),
            row_index=index,
        )
        for index in range(2, count + 2)
    ]


class RecordingWriter:
    """Thread-safe writer that can fail selected batches a number of times."""

    def __init__(self, failures: dict[int, int] | None = None, delay: float = 0.0) -> None:
        # first row_index of a batch -> number of attempts that should fail
        self._failures = dict(failures or {})
        self._delay = delay
        self._lock = threading.Lock()
        self.written: list[int] = []
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0

    def __call__(self, batch: Sequence[RoyaltyRecord]) -> int:
        first = batch[0].row_index
        with self._lock:
            self.calls += 1
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            remaining = self._failures.get(first, 0)
            if remaining:
                self._failures[first] = remaining - 1 if remaining > 0 else remaining
        try:
            if self._delay:
                time.sleep(self._delay)
            if remaining:
                raise RuntimeError(f"write failed for batch starting at row {first}")
            with self._lock:
                self.written.append(len(batch))
            return len(batch)
        finally:
            with self._lock:
                self.in_flight -= 1


def _engine(writer: RecordingWriter, sleeps: list[float] | None = None, **config: object) -> BatchInsertEngine:
    recorded = sleeps if sleeps is not None else []
    return BatchInsertEngine(writer, BatchConfig(**config), sleep=recorded.append)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class TestBatchConfig:
    def test_defaults(self) -> None:
        config = BatchConfig()
        assert (config.batch_size, config.max_concurrency, config.retry_attempts) == (500, 3, 3)
        assert config.retry_delay_ms == 1000
        assert config.continue_on_error is True

    @pytest.mark.parametrize(
        "overrides",
        [
            {"batch_size": 0},
            {"max_concurrency": 0},
            {"retry_attempts": -1},
            {"retry_delay_ms": 0},
        ],
    )
    def test_rejects_out_of_range_values(self, overrides: dict[str, int]) -> None:
        with pytest.raises(BatchConfigError):
            BatchConfig(**overrides)


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


class TestBatchPartitioning:
    def test_splits_into_fixed_size_batches(self) -> None:
        writer = RecordingWriter()
        outcome = _engine(writer, batch_size=500).insert(_records(1200))

        assert [result.inserted_count for result in outcome.batch_results] == [500, 500, 200]
        assert [result.batch_index for result in outcome.batch_results] == [0, 1, 2]
        assert sorted(writer.written) == [200, 500, 500]
        assert outcome.total_inserted == 1200
        assert outcome.total_failed == 0
        assert all(result.retry_count == 0 for result in outcome.batch_results)

    def test_empty_input(self) -> None:
        writer = RecordingWriter()
        outcome = _engine(writer).insert([])

        assert outcome.total_inserted == 0
        assert outcome.total_failed == 0
        assert outcome.batch_results == ()
        assert writer.calls == 0

    def test_never_exceeds_max_concurrency(self) -> None:
        writer = RecordingWriter(delay=0.02)
        outcome = _engine(writer, batch_size=10, max_concurrency=2).insert(_records(95))

        assert writer.max_in_flight <= 2
        assert outcome.total_inserted == 95
        assert len(outcome.batch_results) == 10

    def test_reports_progress_after_each_wave(self) -> None:
        events: list[ProcessingProgress] = []
        writer = RecordingWriter()
        _engine(writer, batch_size=10, max_concurrency=2).insert(_records(50), on_progress=events.append)

        assert [event.current_batch for event in events] == [2, 4, 5]
        assert all(event.status == ProgressStatus.INSERTING for event in events)
        assert all(event.total_batches == 5 for event in events)
        assert events[-1].percent_complete == 100
        assert events[-1].successful_rows == 50


# ---------------------------------------------------------------------------
# Retries and failures
# ---------------------------------------------------------------------------


class TestRetries:
    def test_retry_count_reflects_failed_attempts(self) -> None:
        sleeps: list[float] = []
        writer = RecordingWriter(failures={2: 2})
        outcome = _engine(writer, sleeps, batch_size=10, retry_delay_ms=1000).insert(_records(10))

        result = outcome.batch_results[0]
        assert result.success
        assert result.retry_count == 2
        assert sleeps == [1.0, 2.0]

    def test_exhausted_batch_fails_every_row(self) -> None:
        sleeps: list[float] = []
        writer = RecordingWriter(failures={2: -1})
        outcome = _engine(writer, sleeps, batch_size=5, retry_attempts=3, retry_delay_ms=100).insert(_records(5))

        result = outcome.batch_results[0]
        assert not result.success
        assert result.retry_count == 3
        assert result.failed_count == 5
        assert [error.row_index for error in result.errors] == [2, 3, 4, 5, 6]
        assert "write failed" in result.errors[0].message
        assert sleeps == [0.1, 0.2, 0.4]
        assert writer.calls == 4

    def test_zero_retries_fails_on_first_error(self) -> None:
        writer = RecordingWriter(failures={2: -1})
        outcome = _engine(writer, retry_attempts=0).insert(_records(3))

        assert outcome.batch_results[0].retry_count == 0
        assert writer.calls == 1

    def test_continue_on_error_keeps_going(self) -> None:
        writer = RecordingWriter(failures={12: -1})
        outcome = _engine(
            writer,
            batch_size=10,
            max_concurrency=1,
            retry_attempts=0,
            continue_on_error=True,
        ).insert(_records(30))

        assert [result.success for result in outcome.batch_results] == [True, False, True]
        assert outcome.total_inserted == 20
        assert outcome.total_failed == 10

    def test_stop_on_error_skips_remaining_batches(self) -> None:
        writer = RecordingWriter(failures={12: -1})
        outcome = _engine(
            writer,
            batch_size=10,
            max_concurrency=1,
            retry_attempts=0,
            continue_on_error=False,
        ).insert(_records(40))

        assert [result.success for result in outcome.batch_results] == [True, False, False, False]
        assert outcome.batch_results[2].errors[0].message == SKIPPED_MESSAGE
        assert writer.calls == 2
        assert outcome.total_inserted + outcome.total_failed == 40
        assert not outcome.cancelled


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class TestCancellation:
    def test_cancel_between_waves(self) -> None:
        cancel = threading.Event()
        writer = RecordingWriter()

        def on_progress(progress: ProcessingProgress) -> None:
            cancel.set()

        outcome = _engine(writer, batch_size=10, max_concurrency=2).insert(
            _records(60),
            on_progress=on_progress,
            cancel_event=cancel,
        )

        assert outcome.cancelled
        assert outcome.total_inserted == 20
        assert outcome.total_failed == 40
        assert len(outcome.batch_results) == 6
        assert outcome.batch_results[-1].errors[0].message == CANCELLED_MESSAGE
        assert writer.calls == 2

    def test_cancel_before_start_writes_nothing(self) -> None:
        cancel = threading.Event()
        cancel.set()
        writer = RecordingWriter()

        outcome = _engine(writer, batch_size=10).insert(_records(25), cancel_event=cancel)

        assert outcome.cancelled
        assert outcome.total_inserted == 0
        assert outcome.total_failed == 25
        assert writer.calls == 0


# ---------------------------------------------------------------------------
# Accounting invariant
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("count", [1, 9, 10, 11, 47])
@pytest.mark.parametrize("continue_on_error", [True, False])
def test_inserted_plus_failed_equals_input(count: int, continue_on_error: bool) -> None:
    writer = RecordingWriter(failures={12: -1})
    outcome = _engine(
        writer,
        batch_size=10,
        max_concurrency=2,
        retry_attempts=1,
        retry_delay_ms=1,
        continue_on_error=continue_on_error,
    ).insert(_records(count))

    assert outcome.total_inserted + outcome.total_failed == count
    assert sum(result.inserted_count + result.failed_count for result in outcome.batch_results) == count
