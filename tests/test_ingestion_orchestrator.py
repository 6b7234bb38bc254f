"""
tests/test_ingestion_orchestrator.py

Background job lifecycle tests for IngestionOrchestratorService.

Coverage
--------
- Job creation, request payload and background run to completion
- Run parameter validation before any job is stored
- Cancellation before start, during a run, and after completion
- Progress persistence and the stored rejection file
- Result payload truncation
"""

from __future__ import annotations

import io
import threading
import uuid
from typing import Any

import pytest
from fastapi import UploadFile

from app.config import RoyaltyIngestionSettings
from app.domain.royalty import (
    FailedRowRecord,
    ProcessingProgress,
    ProcessingResult,
    ProcessingSummary,
    ProgressStatus,
)
from app.services.ingestion_orchestrator_service import (
    IngestionOrchestratorService,
    JobNotCancellableError,
    build_result_payload,
)
from app.services.royalty_ingestion_service import IngestionConfigurationError, RoyaltyIngestionService
from db.models.ingestion_job import IngestionJobStatus
from tests.fakes import FakeJobRepository, FakeSession, InMemoryCatalog, db_error

MIXED_FILE = (
    "Song Title,Gross,Net\n"
    "Sunrise,100.00,85.00\n"
    ",50.00,42.50\n"
)


class DeferredExecutor:
    """Collects submitted tasks so a test decides when the job runs."""

    def __init__(self) -> None:
        self.tasks: list[tuple[Any, tuple[Any, ...], dict[str, Any]]] = []

    def submit(self, task: Any, *args: Any, **kwargs: Any) -> None:
        self.tasks.append((task, args, kwargs))

    def run_all(self) -> None:
        tasks, self.tasks = self.tasks, []
        for task, args, kwargs in tasks:
            task(*args, **kwargs)


class FailingExecutor:
    def submit(self, task: Any, *args: Any, **kwargs: Any) -> None:
        raise RuntimeError("executor is shut down")


def _upload(content: str = MIXED_FILE, filename: str = "statement.csv") -> UploadFile:
    return UploadFile(file=io.BytesIO(content.encode("utf-8")), filename=filename)


@pytest.fixture()
def jobs() -> dict[uuid.UUID, Any]:
    return {}


@pytest.fixture()
def orchestrator(
    jobs: dict[uuid.UUID, Any],
    ingestion_service: RoyaltyIngestionService,
    ingestion_settings: RoyaltyIngestionSettings,
) -> IngestionOrchestratorService:
    return IngestionOrchestratorService(
        session_factory=FakeSession,
        ingestion_service=ingestion_service,
        settings=ingestion_settings,
        job_repository_factory=lambda session: FakeJobRepository(jobs),
    )


# ---------------------------------------------------------------------------
# Job creation and execution
# ---------------------------------------------------------------------------


class TestTriggerRoyaltyIngestion:
    def test_job_is_pending_until_the_executor_runs_it(
        self,
        orchestrator: IngestionOrchestratorService,
        artist_id: uuid.UUID,
    ) -> None:
        executor = DeferredExecutor()
        job = orchestrator.trigger_royalty_ingestion(
            db=FakeSession(),
            executor=executor,
            upload_file=_upload(),
            artist_id=str(artist_id),
            year=2024,
            quarter=1,
        )

        assert job.status == IngestionJobStatus.PENDING
        assert len(executor.tasks) == 1
        payload = job.request_payload
        assert payload["file_name"] == "statement.csv"
        assert job.artist_id == artist_id
        assert "artist_id" not in payload
        assert payload["year"] == 2024
        assert payload["quarter"] == 1
        assert payload["file_size_bytes"] == len(MIXED_FILE.encode("utf-8"))
        assert payload["batch_config"]["batch_size"] == 500
        assert job.progress_payload["status"] == ProgressStatus.PENDING
        assert job.progress_payload["percent_complete"] == 0

    def test_completed_job_stores_result_and_progress(
        self,
        orchestrator: IngestionOrchestratorService,
        artist_id: uuid.UUID,
        catalog: InMemoryCatalog,
    ) -> None:
        executor = DeferredExecutor()
        job = orchestrator.trigger_royalty_ingestion(
            db=FakeSession(),
            executor=executor,
            upload_file=_upload(),
            artist_id=artist_id,
        )
        executor.run_all()

        assert job.status == IngestionJobStatus.COMPLETED
        assert job.started_at is not None
        assert job.completed_at is not None
        assert job.result_payload["success"] is True
        assert job.result_payload["job_id"] == str(job.id)
        assert job.result_payload["summary"]["successful_inserts"] == 1
        assert job.result_payload["failed_row_count"] == 1
        assert job.result_payload["failed_rows_truncated"] is False
        assert job.rejection_file.splitlines()[0] == '"Song Title","Gross","Net","Error","Timestamp"'
        assert job.progress_payload["status"] == ProgressStatus.COMPLETED
        assert job.progress_payload["percent_complete"] == 100
        assert job.progress_history[0]["status"] == ProgressStatus.PARSING
        assert len(catalog.royalties) == 1

    def test_invalid_run_parameters_store_no_job(
        self,
        orchestrator: IngestionOrchestratorService,
        jobs: dict[uuid.UUID, Any],
    ) -> None:
        executor = DeferredExecutor()
        with pytest.raises(IngestionConfigurationError):
            orchestrator.trigger_royalty_ingestion(
                db=FakeSession(),
                executor=executor,
                upload_file=_upload(),
                artist_id="not-a-uuid",
                year=2024,
            )

        assert jobs == {}
        assert executor.tasks == []

    def test_scheduling_failure_marks_job_failed(
        self,
        orchestrator: IngestionOrchestratorService,
        artist_id: uuid.UUID,
        jobs: dict[uuid.UUID, Any],
    ) -> None:
        with pytest.raises(RuntimeError, match="shut down"):
            orchestrator.trigger_royalty_ingestion(
                db=FakeSession(),
                executor=FailingExecutor(),
                upload_file=_upload(),
                artist_id=artist_id,
            )

        (job,) = jobs.values()
        assert job.status == IngestionJobStatus.FAILED
        assert job.error_message == "Failed to schedule royalty ingestion job."

    def test_unknown_artist_fails_the_job(
        self,
        orchestrator: IngestionOrchestratorService,
    ) -> None:
        executor = DeferredExecutor()
        job = orchestrator.trigger_royalty_ingestion(
            db=FakeSession(),
            executor=executor,
            upload_file=_upload(),
            artist_id=uuid.uuid4(),
        )
        executor.run_all()

        assert job.status == IngestionJobStatus.FAILED
        assert "IngestionConfigurationError" in job.error_message

    def test_file_without_valid_rows_fails_the_job(
        self,
        orchestrator: IngestionOrchestratorService,
        artist_id: uuid.UUID,
    ) -> None:
        executor = DeferredExecutor()
        job = orchestrator.trigger_royalty_ingestion(
            db=FakeSession(),
            executor=executor,
            upload_file=_upload("Song Title,Net\n,1.00\n"),
            artist_id=artist_id,
        )
        executor.run_all()

        assert job.status == IngestionJobStatus.FAILED
        assert job.result_payload["success"] is False
        assert job.result_payload["failed_row_count"] == 1


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class TestRequestCancel:
    def test_pending_job_is_cancelled_before_start(
        self,
        orchestrator: IngestionOrchestratorService,
        artist_id: uuid.UUID,
        catalog: InMemoryCatalog,
    ) -> None:
        executor = DeferredExecutor()
        job = orchestrator.trigger_royalty_ingestion(
            db=FakeSession(),
            executor=executor,
            upload_file=_upload(),
            artist_id=artist_id,
        )

        cancelled = orchestrator.request_cancel(db=FakeSession(), job_id=job.id)
        assert cancelled is job
        assert job.cancel_requested is True

        executor.run_all()
        assert job.status == IngestionJobStatus.CANCELLED
        assert catalog.royalties == []

    def test_cancel_flag_seen_during_progress_stops_the_run(
        self,
        monkeypatch: pytest.MonkeyPatch,
        orchestrator: IngestionOrchestratorService,
        artist_id: uuid.UUID,
        catalog: InMemoryCatalog,
        jobs: dict[uuid.UUID, Any],
    ) -> None:
        executor = DeferredExecutor()
        job = orchestrator.trigger_royalty_ingestion(
            db=FakeSession(),
            executor=executor,
            upload_file=_upload(),
            artist_id=artist_id,
        )
        original_update = FakeJobRepository.update_progress

        def cancel_from_another_worker(repo: FakeJobRepository, **kwargs: Any) -> bool | None:
            if kwargs["progress_payload"]["status"] == ProgressStatus.PROCESSING:
                jobs[job.id].cancel_requested = True
            return original_update(repo, **kwargs)

        monkeypatch.setattr(FakeJobRepository, "update_progress", cancel_from_another_worker)
        executor.run_all()

        assert job.status == IngestionJobStatus.CANCELLED
        assert job.result_payload["cancelled"] is True
        assert catalog.royalties == []

    def test_finished_job_cannot_be_cancelled(
        self,
        orchestrator: IngestionOrchestratorService,
        artist_id: uuid.UUID,
    ) -> None:
        executor = DeferredExecutor()
        job = orchestrator.trigger_royalty_ingestion(
            db=FakeSession(),
            executor=executor,
            upload_file=_upload(),
            artist_id=artist_id,
        )
        executor.run_all()

        with pytest.raises(JobNotCancellableError) as exc_info:
            orchestrator.request_cancel(db=FakeSession(), job_id=job.id)
        assert exc_info.value.status == IngestionJobStatus.COMPLETED

    def test_unknown_job_returns_none(self, orchestrator: IngestionOrchestratorService) -> None:
        assert orchestrator.request_cancel(db=FakeSession(), job_id=uuid.uuid4()) is None


# ---------------------------------------------------------------------------
# Progress persistence
# ---------------------------------------------------------------------------


class TestRecordProgress:
    def test_persistence_failure_is_not_raised(
        self,
        ingestion_service: RoyaltyIngestionService,
        ingestion_settings: RoyaltyIngestionSettings,
    ) -> None:
        def broken_repository(session: Any) -> FakeJobRepository:
            raise db_error("progress table locked")

        orchestrator = IngestionOrchestratorService(
            session_factory=FakeSession,
            ingestion_service=ingestion_service,
            settings=ingestion_settings,
            job_repository_factory=broken_repository,
        )
        event = threading.Event()

        orchestrator._record_progress(uuid.uuid4(), ProcessingProgress(status=ProgressStatus.PARSING, phase="x"), event)

        assert not event.is_set()


# ---------------------------------------------------------------------------
# Stored results
# ---------------------------------------------------------------------------


class TestRejectionCsv:
    def test_rejected_rows_come_back_in_upload_layout(
        self,
        orchestrator: IngestionOrchestratorService,
        artist_id: uuid.UUID,
    ) -> None:
        executor = DeferredExecutor()
        job = orchestrator.trigger_royalty_ingestion(
            db=FakeSession(),
            executor=executor,
            upload_file=_upload(),
            artist_id=artist_id,
        )
        executor.run_all()

        content = orchestrator.rejection_csv(db=FakeSession(), job_id=job.id)

        lines = content.splitlines()
        assert lines[0] == '"Song Title","Gross","Net","Error","Timestamp"'
        assert lines[1].startswith('"","50.00","42.50","Missing song title"')

    def test_download_holds_every_rejection_beyond_the_payload_cap(
        self,
        jobs: dict[uuid.UUID, Any],
        ingestion_service: RoyaltyIngestionService,
        artist_id: uuid.UUID,
    ) -> None:
        orchestrator = IngestionOrchestratorService(
            session_factory=FakeSession,
            ingestion_service=ingestion_service,
            settings=RoyaltyIngestionSettings(progress_row_interval=2, max_failed_rows_in_job_payload=2),
            job_repository_factory=lambda session: FakeJobRepository(jobs),
        )
        rejected = [f",{index}.00,{index}.00" for index in range(6)]
        content = "\n".join(["Song Title,Gross,Net", "Sunrise,1.00,0.85", *rejected]) + "\n"
        executor = DeferredExecutor()
        job = orchestrator.trigger_royalty_ingestion(
            db=FakeSession(),
            executor=executor,
            upload_file=_upload(content),
            artist_id=artist_id,
        )
        executor.run_all()

        assert job.result_payload["failed_row_count"] == 6
        assert job.result_payload["failed_rows_truncated"] is True
        assert len(job.result_payload["failed_rows"]) == 2

        lines = orchestrator.rejection_csv(db=FakeSession(), job_id=job.id).splitlines()
        assert len(lines) == 1 + 6
        assert [line.split(",")[1] for line in lines[1:]] == [f'"{index}.00"' for index in range(6)]

    def test_job_without_rejection_file_uses_stored_rows(
        self,
        orchestrator: IngestionOrchestratorService,
        artist_id: uuid.UUID,
        jobs: dict[uuid.UUID, Any],
    ) -> None:
        job = FakeJobRepository(jobs).create_job(job_type="royalty_csv", artist_id=artist_id)
        job.result_payload = {
            "headers": ["Title", "Net"],
            "failed_rows": [{"row_index": 2, "values": {"Title": "", "Net": "1"}, "error_message": "bad"}],
        }

        content = orchestrator.rejection_csv(db=FakeSession(), job_id=job.id)

        assert content.splitlines()[1].startswith('"","1","bad"')

    def test_unknown_job_returns_none(self, orchestrator: IngestionOrchestratorService) -> None:
        assert orchestrator.rejection_csv(db=FakeSession(), job_id=uuid.uuid4()) is None


class TestBuildResultPayload:
    def test_failed_rows_are_capped(self) -> None:
        failed = [
            FailedRowRecord(row_index=index, values={"Net": "x"}, error_message="bad", timestamp="t")
            for index in range(2, 7)
        ]
        result = ProcessingResult(
            success=False,
            job_id="job-1",
            summary=ProcessingSummary(total_rows_processed=5, failed_inserts=5),
            failed_rows=failed,
            errors=["No valid rows found in CSV"],
        )

        payload = build_result_payload(result, max_failed_rows=2)

        assert payload["failed_row_count"] == 5
        assert payload["failed_rows_truncated"] is True
        assert [row["row_index"] for row in payload["failed_rows"]] == [2, 3]
        assert payload["summary"]["total_rows_processed"] == 5
        assert payload["errors"] == ["No valid rows found in CSV"]
