"""
app/schemas/royalty_ingestion.py

Response schemas for royalty ingestion and job endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class ProcessingSummaryResponse(BaseModel):
    total_rows_processed: int = Field(..., ge=0)
    successful_inserts: int = Field(..., ge=0)
    failed_inserts: int = Field(..., ge=0)
    tracks_created: int = Field(..., ge=0)
    tracks_existing: int = Field(..., ge=0)
    total_duration_ms: int = Field(..., ge=0)
    throughput: int = Field(..., ge=0, description="Inserted rows per second")


class FailedRowResponse(BaseModel):
    """
    API response model for one rejected row.
    """

    row_index: int = Field(..., ge=1)
    values: dict[str, str] = Field(default_factory=dict)
    error_message: str
    timestamp: str


class ProcessingResultResponse(BaseModel):
    """
    API response model for a finished royalty file ingestion.
    """

    success: bool
    job_id: str
    cancelled: bool = False
    summary: ProcessingSummaryResponse
    summaries_upserted: int = Field(default=0, ge=0)
    headers: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    failed_rows: list[FailedRowResponse] = Field(default_factory=list)


class ProgressResponse(BaseModel):
    status: str
    phase: str
    total_rows: int = Field(default=0, ge=0)
    processed_rows: int = Field(default=0, ge=0)
    successful_rows: int = Field(default=0, ge=0)
    failed_rows: int = Field(default=0, ge=0)
    current_batch: int = Field(default=0, ge=0)
    total_batches: int = Field(default=0, ge=0)
    percent_complete: int = Field(default=0, ge=0, le=100)
    elapsed_ms: int = Field(default=0, ge=0)
    estimated_remaining_ms: int = Field(default=0, ge=0)
    rows_per_second: int = Field(default=0, ge=0)


class RoyaltyJobAcceptedResponse(BaseModel):
    job_id: UUID
    job_type: str
    status: str
    created_at: datetime


class RoyaltyJobStatusResponse(BaseModel):
    job_id: UUID
    job_type: str
    status: str
    artist_id: UUID | None = None
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    cancel_requested: bool = False
    request_payload: dict[str, Any] | None = None
    progress: ProgressResponse | None = None
    result_payload: dict[str, Any] | None = None
    error_message: str | None = None


class RoyaltyJobListResponse(BaseModel):
    jobs: list[RoyaltyJobStatusResponse] = Field(default_factory=list)
