"""
db/models/ingestion_job.py

Background royalty ingestion run: lifecycle, latest progress and cancel flag.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, false
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class IngestionJobType:
    ROYALTY_CSV = "royalty_csv"


class IngestionJobStatus:
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    TERMINAL = frozenset({COMPLETED, FAILED, CANCELLED})


class IngestionJob(Base, TimestampMixin):
    """
    One uploaded royalty file processed in the background.

    ``progress_payload`` holds only the most recent progress snapshot.
    ``cancel_requested`` is polled by the worker on every progress update.
    ``result_payload`` carries at most a capped preview of rejected rows;
    ``rejection_file`` holds all of them and is loaded only on access.
    """

    __tablename__ = "ingestion_jobs"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    job_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=IngestionJobStatus.PENDING)
    artist_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("artists.id", ondelete="SET NULL"),
        nullable=True,
    )
    request_payload: Mapped[dict[str, Any] | None] = mapped_column(
        comment="Period, batch config and upload metadata",
    )
    progress_payload: Mapped[dict[str, Any] | None] = mapped_column(
        comment="Latest progress snapshot",
    )
    result_payload: Mapped[dict[str, Any] | None] = mapped_column(
        comment="Run summary, errors and a preview of rejected rows",
    )
    rejection_file: Mapped[str | None] = mapped_column(
        Text,
        deferred=True,
        comment="Rendered CSV of every rejected row",
    )
    error_message: Mapped[str | None] = mapped_column(Text)
    cancel_requested: Mapped[bool] = mapped_column(nullable=False, default=False, server_default=false())
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("ix_ingestion_jobs_created_at", "created_at"),
        Index("ix_ingestion_jobs_job_type_status", "job_type", "status"),
        Index("ix_ingestion_jobs_artist_id", "artist_id"),
    )

    def __repr__(self) -> str:
        return f"<IngestionJob id={self.id} status={self.status} artist_id={self.artist_id}>"
