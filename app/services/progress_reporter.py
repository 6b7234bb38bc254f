"""
app/services/progress_reporter.py

Progress sink for long-running ingestions and rejection file rendering.
"""

from __future__ import annotations

import csv
import io
import logging
import threading
from collections.abc import Callable, Sequence

from app.domain.royalty import FailedRowRecord, ProcessingProgress, ProgressStatus
from app.mappers.column_mapper import CANONICAL_DISPLAY_HEADERS, CANONICAL_FIELDS

logger = logging.getLogger(__name__)

ERROR_COLUMN = "Error"
TIMESTAMP_COLUMN = "Timestamp"

# Position of each status in the pipeline; FAILED may follow any non-terminal status.
_STATUS_ORDER: dict[str, int] = {
    ProgressStatus.PENDING: 0,
    ProgressStatus.PARSING: 1,
    ProgressStatus.PROCESSING: 2,
    ProgressStatus.INSERTING: 3,
    ProgressStatus.COMPLETED: 4,
}
_TERMINAL_STATUSES = frozenset({ProgressStatus.COMPLETED, ProgressStatus.FAILED})


class ProgressSequenceError(ValueError):
    """
    Raised when a progress event arrives out of pipeline order.
    """


class ProgressReporter:
    """
    Passive, ordered sink of progress events.

    Events are kept in arrival order and forwarded to ``listener``. A status
    may repeat, may move forward, and may switch to ``failed`` from any
    non-terminal status; nothing is accepted after ``completed`` or ``failed``.
    """

    def __init__(self, listener: Callable[[ProcessingProgress], None] | None = None) -> None:
        self._listener = listener
        self._events: list[ProcessingProgress] = []
        self._lock = threading.Lock()

    @property
    def events(self) -> tuple[ProcessingProgress, ...]:
        with self._lock:
            return tuple(self._events)

    @property
    def latest(self) -> ProcessingProgress | None:
        with self._lock:
            return self._events[-1] if self._events else None

    def report(self, progress: ProcessingProgress) -> None:
        with self._lock:
            self._check_order(progress.status)
            self._events.append(progress)

        logger.info(
            "Ingestion progress status=%s phase=%r percent=%s processed=%s/%s failed=%s elapsed_ms=%s",
            progress.status,
            progress.phase,
            progress.percent_complete,
            progress.processed_rows,
            progress.total_rows,
            progress.failed_rows,
            progress.elapsed_ms,
        )
        if self._listener is not None:
            self._listener(progress)

    def _check_order(self, status: str) -> None:
        if status != ProgressStatus.FAILED and status not in _STATUS_ORDER:
            raise ProgressSequenceError(f"Unknown progress status: {status!r}")
        if not self._events:
            return

        current = self._events[-1].status
        if current in _TERMINAL_STATUSES:
            raise ProgressSequenceError(f"Progress already finished with status {current!r}; got {status!r}")
        if status == ProgressStatus.FAILED:
            return
        if _STATUS_ORDER[status] < _STATUS_ORDER[current]:
            raise ProgressSequenceError(f"Progress status {status!r} cannot follow {current!r}")


def rejection_headers(source_headers: Sequence[str] | None) -> list[str]:
    """
    Column order of a rejection file: the input's headers, then Error and Timestamp.
    """

    base = list(source_headers) if source_headers else [CANONICAL_DISPLAY_HEADERS[name] for name in CANONICAL_FIELDS]
    return [*base, ERROR_COLUMN, TIMESTAMP_COLUMN]


def render_rejection_csv(
    failed_rows: Sequence[FailedRowRecord],
    *,
    source_headers: Sequence[str] | None = None,
) -> str:
    """
    Render rejected rows in the input's tabular layout so they can be fixed and re-uploaded.

    Every cell is quoted. Rows are written in row index order. Returns an empty
    string when nothing was rejected.
    """

    if not failed_rows:
        return ""

    headers = rejection_headers(source_headers)
    value_columns = headers[:-2]

    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(headers)
    for failed in sorted(failed_rows, key=lambda row: row.row_index):
        writer.writerow(
            [
                *(failed.values.get(column, "") for column in value_columns),
                failed.error_message,
                failed.timestamp,
            ]
        )
    return buffer.getvalue()
