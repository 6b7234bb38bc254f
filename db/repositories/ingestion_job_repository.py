"""
db/repositories/ingestion_job_repository.py

Persistence for royalty ingestion jobs: lifecycle, progress snapshots and cancel flags.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Select, select, update
from sqlalchemy.orm import Session

from db.models.ingestion_job import IngestionJob, IngestionJobStatus


class IngestionJobRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create_job(
        self,
        *,
        job_type: str,
        artist_id: uuid.UUID | None = None,
        request_payload: dict[str, Any] | None = None,
        progress_payload: dict[str, Any] | None = None,
    ) -> IngestionJob:
        job = IngestionJob(
            job_type=job_type,
            status=IngestionJobStatus.PENDING,
            artist_id=artist_id,
            request_payload=request_payload,
            progress_payload=progress_payload,
            cancel_requested=False,
        )
        self._session.add(job)
        self._session.flush()
        self._session.refresh(job)
        return job

    def get_job(self, job_id: uuid.UUID) -> IngestionJob | None:
        return self._session.get(IngestionJob, job_id)

    def list_jobs(
        self,
        *,
        limit: int = 100,
        job_type: str | None = None,
        status: str | None = None,
        artist_id: uuid.UUID | None = None,
    ) -> list[IngestionJob]:
        stmt: Select[tuple[IngestionJob]] = select(IngestionJob)

        if job_type:
            stmt = stmt.where(IngestionJob.job_type == job_type)
        if status:
            stmt = stmt.where(IngestionJob.status == status)
        if artist_id is not None:
            stmt = stmt.where(IngestionJob.artist_id == artist_id)

        stmt = stmt.order_by(IngestionJob.created_at.desc()).limit(max(1, limit))
        return list(self._session.scalars(stmt).all())

    def mark_running(self, *, job_id: uuid.UUID) -> IngestionJob | None:
        job = self.get_job(job_id)
        if job is None:
            return None
        job.status = IngestionJobStatus.RUNNING
        job.started_at = datetime.now(timezone.utc)
        job.completed_at = None
        job.error_message = None
        return job

    def update_progress(
        self,
        *,
        job_id: uuid.UUID,
        progress_payload: dict[str, Any],
    ) -> bool | None:
        """
        Overwrite the progress snapshot in one UPDATE and return the job's
        ``cancel_requested`` flag, or None when the job does not exist.
        """

        stmt = (
            update(IngestionJob)
            .where(IngestionJob.id == job_id)
            .values(progress_payload=progress_payload, updated_at=datetime.now(timezone.utc))
            .returning(IngestionJob.cancel_requested)
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def request_cancel(self, *, job_id: uuid.UUID) -> IngestionJob | None:
        job = self.get_job(job_id)
        if job is None:
            return None
        job.cancel_requested = True
        return job

    def mark_completed(
        self,
        *,
        job_id: uuid.UUID,
        result_payload: dict[str, Any] | None = None,
        rejection_file: str | None = None,
    ) -> IngestionJob | None:
        return self._finish(
            job_id=job_id,
            status=IngestionJobStatus.COMPLETED,
            result_payload=result_payload,
            rejection_file=rejection_file,
        )

    def mark_cancelled(
        self,
        *,
        job_id: uuid.UUID,
        result_payload: dict[str, Any] | None = None,
        rejection_file: str | None = None,
    ) -> IngestionJob | None:
        return self._finish(
            job_id=job_id,
            status=IngestionJobStatus.CANCELLED,
            result_payload=result_payload,
            rejection_file=rejection_file,
            error_message="Ingestion cancelled by operator.",
        )

    def mark_failed(
        self,
        *,
        job_id: uuid.UUID,
        error_message: str,
        result_payload: dict[str, Any] | None = None,
        rejection_file: str | None = None,
    ) -> IngestionJob | None:
        return self._finish(
            job_id=job_id,
            status=IngestionJobStatus.FAILED,
            result_payload=result_payload,
            rejection_file=rejection_file,
            error_message=error_message,
        )

    def _finish(
        self,
        *,
        job_id: uuid.UUID,
        status: str,
        result_payload: dict[str, Any] | None,
        rejection_file: str | None = None,
        error_message: str | None = None,
    ) -> IngestionJob | None:
        job = self.get_job(job_id)
        if job is None:
            return None
        job.status = status
        job.completed_at = datetime.now(timezone.utc)
        job.error_message = error_message
        if result_payload is not None:
            job.result_payload = result_payload
        if rejection_file is not None:
            job.rejection_file = rejection_file
        return job
