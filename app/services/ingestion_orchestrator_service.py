"""
Orchestrator service for background royalty ingestion jobs and lifecycle tracking.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
import uuid
from collections.abc import Callable
from dataclasses import asdict
from functools import lru_cache
from typing import Any, Protocol

from fastapi import BackgroundTasks, UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.config import RoyaltyIngestionSettings, get_royalty_ingestion_settings
from app.domain.royalty import FailedRowRecord, ProcessingProgress, ProcessingResult, ProgressStatus
from app.services.batch_insert_engine import BatchConfig
from app.services.progress_reporter import render_rejection_csv
from app.services.royalty_ingestion_service import (
    IngestionRequest,
    RoyaltyIngestionService,
    default_batch_config,
    get_royalty_ingestion_service,
    validate_ingestion_request,
)
from db.models.ingestion_job import IngestionJob, IngestionJobStatus, IngestionJobType
from db.repositories.ingestion_job_repository import IngestionJobRepository

logger = logging.getLogger(__name__)


class JobNotCancellableError(RuntimeError):
    """
    Raised when cancellation is requested for a job that already finished.
    """

    def __init__(self, job_id: uuid.UUID, status: str) -> None:
        super().__init__(f"Ingestion job {job_id} is not running (status={status}).")
        self.job_id = job_id
        self.status = status


class IngestionTaskExecutor(Protocol):
    def submit(self, task: Callable[..., None], *args: Any, **kwargs: Any) -> None:
        ...


class FastAPIBackgroundTaskExecutor:
    def __init__(self, background_tasks: BackgroundTasks) -> None:
        self._background_tasks = background_tasks

    def submit(self, task: Callable[..., None], *args: Any, **kwargs: Any) -> None:
        self._background_tasks.add_task(task, *args, **kwargs)


def build_result_payload(result: ProcessingResult, *, max_failed_rows: int) -> dict[str, Any]:
    """
    JSON-ready job result; the failed row list is a preview capped at
    ``max_failed_rows``. The full set is kept in the job's rejection file.
    """

    stored_rows = result.failed_rows[:max_failed_rows]
    return {
        "success": result.success,
        "job_id": result.job_id,
        "cancelled": result.cancelled,
        "summary": asdict(result.summary),
        "errors": list(result.errors),
        "headers": list(result.headers),
        "summaries_upserted": result.summaries_upserted,
        "failed_row_count": len(result.failed_rows),
        "failed_rows_truncated": len(stored_rows) < len(result.failed_rows),
        "failed_rows": [row.to_dict() for row in stored_rows],
    }


class IngestionOrchestratorService:
    """
    Coordinates job creation, background execution, progress and status persistence.

    Cancel events live in process memory keyed by job id; the persisted
    ``cancel_requested`` flag is polled on every progress update so a cancel
    issued through another worker still reaches the run.
    """

    def __init__(
        self,
        *,
        session_factory: sessionmaker[Session] | Callable[[], Session] | None = None,
        ingestion_service: RoyaltyIngestionService | None = None,
        settings: RoyaltyIngestionSettings | None = None,
        job_repository_factory: Callable[[Session], IngestionJobRepository] = IngestionJobRepository,
    ) -> None:
        if session_factory is None:
            from db.session import SessionLocal

            self._session_factory = SessionLocal
        else:
            self._session_factory = session_factory

        self._ingestion_service = ingestion_service or get_royalty_ingestion_service()
        self._settings = settings or get_royalty_ingestion_settings()
        self._job_repository_factory = job_repository_factory
        self._cancel_events: dict[uuid.UUID, threading.Event] = {}
        self._lock = threading.Lock()

    def trigger_royalty_ingestion(
        self,
        *,
        db: Session,
        executor: IngestionTaskExecutor,
        upload_file: UploadFile,
        artist_id: uuid.UUID | str | None,
        year: int | None = None,
        quarter: int | None = None,
        config: BatchConfig | None = None,
    ) -> IngestionJob:
        request = validate_ingestion_request(artist_id=artist_id, year=year, quarter=quarter)
        batch_config = config or default_batch_config(self._settings)

        temp_file_path, file_size = self._persist_temp_upload(upload_file)
        file_name = upload_file.filename or "upload.csv"
        request_payload = {
            "file_name": file_name,
            "content_type": upload_file.content_type,
            "file_size_bytes": file_size,
            "year": request.year,
            "quarter": request.quarter,
            "batch_config": asdict(batch_config),
        }

        repository = self._job_repository_factory(db)
        with db.begin():
            job = repository.create_job(
                job_type=IngestionJobType.ROYALTY_CSV,
                artist_id=request.artist_id,
                request_payload=request_payload,
                progress_payload=ProcessingProgress(status=ProgressStatus.PENDING, phase="Queued").to_dict(),
            )
        job_id = job.id
        self._register_cancel_event(job_id)

        try:
            executor.submit(
                self._run_royalty_ingestion_job,
                job_id,
                temp_file_path,
                request,
                batch_config,
            )
        except Exception:
            self._delete_file_quietly(temp_file_path)
            self._release_cancel_event(job_id)
            with db.begin():
                repository.mark_failed(
                    job_id=job_id,
                    error_message="Failed to schedule royalty ingestion job.",
                )
            raise

        logger.info(
            "Royalty ingestion job queued id=%s artist_id=%s file=%s size_bytes=%s",
            job_id,
            request.artist_id,
            file_name,
            file_size,
        )
        return job

    def get_job_status(self, *, db: Session, job_id: uuid.UUID) -> IngestionJob | None:
        repository = self._job_repository_factory(db)
        return repository.get_job(job_id)

    def list_job_statuses(
        self,
        *,
        db: Session,
        limit: int = 100,
        status: str | None = None,
        artist_id: uuid.UUID | None = None,
    ) -> list[IngestionJob]:
        repository = self._job_repository_factory(db)
        return repository.list_jobs(
            limit=limit,
            job_type=IngestionJobType.ROYALTY_CSV,
            status=status,
            artist_id=artist_id,
        )

    def request_cancel(self, *, db: Session, job_id: uuid.UUID) -> IngestionJob | None:
        """
        Flag a pending or running job for cancellation; returns None for unknown ids.

        Raises:
            JobNotCancellableError: the job already reached a terminal status.
        """

        repository = self._job_repository_factory(db)
        with db.begin():
            job = repository.get_job(job_id)
            if job is None:
                return None
            if job.status in IngestionJobStatus.TERMINAL:
                raise JobNotCancellableError(job_id, job.status)
            repository.request_cancel(job_id=job_id)

        with self._lock:
            event = self._cancel_events.get(job_id)
        if event is not None:
            event.set()
        logger.info("Royalty ingestion cancel requested id=%s in_process=%s", job_id, event is not None)
        return job

    def rejection_csv(self, *, db: Session, job_id: uuid.UUID) -> str | None:
        """
        Every rejected row of a job as CSV; None for unknown ids.

        Jobs that ended before producing a rejection file fall back to the
        rows kept in ``result_payload``.
        """

        job = self.get_job_status(db=db, job_id=job_id)
        if job is None:
            return None
        if job.rejection_file is not None:
            return job.rejection_file
        payload = job.result_payload or {}
        failed_rows = [FailedRowRecord.from_dict(item) for item in payload.get("failed_rows") or []]
        return render_rejection_csv(failed_rows, source_headers=payload.get("headers") or None)

    def _run_royalty_ingestion_job(
        self,
        job_id: uuid.UUID,
        temp_file_path: str,
        request: IngestionRequest,
        config: BatchConfig,
    ) -> None:
        cancel_event = self._register_cancel_event(job_id)
        with self._session_factory() as db:
            repository = self._job_repository_factory(db)
            try:
                running_job = repository.mark_running(job_id=job_id)
                if running_job is None:
                    raise RuntimeError(f"Ingestion job not found: {job_id}")
                if running_job.cancel_requested:
                    cancel_event.set()
                db.commit()

                if cancel_event.is_set():
                    repository.mark_cancelled(job_id=job_id)
                    db.commit()
                    logger.info("Royalty ingestion job cancelled before start id=%s", job_id)
                    return

                with open(temp_file_path, "rb") as file_handle:
                    result = self._ingestion_service.process(
                        source=file_handle,
                        artist_id=request.artist_id,
                        year=request.year,
                        quarter=request.quarter,
                        config=config,
                        on_progress=lambda progress: self._record_progress(job_id, progress, cancel_event),
                        cancel_event=cancel_event,
                        job_id=str(job_id),
                    )

                result_payload = build_result_payload(
                    result,
                    max_failed_rows=self._settings.max_failed_rows_in_job_payload,
                )
                rejection_file = render_rejection_csv(result.failed_rows, source_headers=result.headers or None)
                if result.cancelled:
                    finished_job = repository.mark_cancelled(
                        job_id=job_id,
                        result_payload=result_payload,
                        rejection_file=rejection_file,
                    )
                elif result.success:
                    finished_job = repository.mark_completed(
                        job_id=job_id,
                        result_payload=result_payload,
                        rejection_file=rejection_file,
                    )
                else:
                    finished_job = repository.mark_failed(
                        job_id=job_id,
                        error_message="; ".join(result.errors)[:2000] or "Royalty ingestion failed.",
                        result_payload=result_payload,
                        rejection_file=rejection_file,
                    )
                if finished_job is None:
                    raise RuntimeError(f"Ingestion job not found: {job_id}")
                db.commit()
            except Exception as exc:
                self._mark_job_failed(db=db, job_id=job_id, exc=exc)
            finally:
                self._delete_file_quietly(temp_file_path)
                self._release_cancel_event(job_id)

    def _record_progress(
        self,
        job_id: uuid.UUID,
        progress: ProcessingProgress,
        cancel_event: threading.Event,
    ) -> None:
        try:
            with self._session_factory() as db:
                repository = self._job_repository_factory(db)
                cancel_requested = repository.update_progress(job_id=job_id, progress_payload=progress.to_dict())
                db.commit()
            if cancel_requested:
                cancel_event.set()
        except SQLAlchemyError:
            logger.warning("Failed to persist ingestion progress id=%s status=%s", job_id, progress.status, exc_info=True)

    def _mark_job_failed(self, *, db: Session, job_id: uuid.UUID, exc: Exception) -> None:
        repository = self._job_repository_factory(db)
        error_message = f"{type(exc).__name__}: {exc}"
        logger.exception("Ingestion job failed id=%s error=%s", job_id, error_message)
        try:
            db.rollback()
            failed_job = repository.mark_failed(
                job_id=job_id,
                error_message=error_message[:2000],
            )
            if failed_job is None:
                logger.error("Unable to mark ingestion job as failed because it was not found id=%s", job_id)
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("Failed to persist failed ingestion job state id=%s", job_id)

    def _register_cancel_event(self, job_id: uuid.UUID) -> threading.Event:
        with self._lock:
            return self._cancel_events.setdefault(job_id, threading.Event())

    def _release_cancel_event(self, job_id: uuid.UUID) -> None:
        with self._lock:
            self._cancel_events.pop(job_id, None)

    def _persist_temp_upload(self, upload_file: UploadFile) -> tuple[str, int]:
        file_name = upload_file.filename or "upload.csv"
        _, ext = os.path.splitext(file_name)
        suffix = ext if ext else ".csv"
        upload_file.file.seek(0)

        with tempfile.NamedTemporaryFile(delete=False, prefix="royalty_job_", suffix=suffix) as temp_file:
            while True:
                chunk = upload_file.file.read(1024 * 1024)
                if not chunk:
                    break
                temp_file.write(chunk)
            temp_path = temp_file.name
            file_size = temp_file.tell()

        upload_file.file.seek(0)
        return temp_path, file_size

    def _delete_file_quietly(self, file_path: str) -> None:
        try:
            os.remove(file_path)
        except OSError:
            return


@lru_cache(maxsize=1)
def get_ingestion_orchestrator_service() -> IngestionOrchestratorService:
    return IngestionOrchestratorService()
