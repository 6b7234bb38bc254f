"""
app/api/dependencies.py

Shared FastAPI dependencies for request validation.
"""

from __future__ import annotations

from dataclasses import replace

from fastapi import File, HTTPException, Query, UploadFile, status

from app.config import get_royalty_ingestion_settings
from app.services.batch_insert_engine import BatchConfig, BatchConfigError
from app.services.royalty_ingestion_service import default_batch_config

CSV_CONTENT_TYPES = {
    "text/csv",
    "application/csv",
    "application/vnd.ms-excel",
}


def get_csv_upload(file: UploadFile = File(...)) -> UploadFile:
    """
    Validate that the uploaded file is a CSV by extension or MIME type.
    """

    filename = (file.filename or "").strip().lower()
    content_type = (file.content_type or "").strip().lower()

    is_csv_filename = filename.endswith(".csv")
    is_csv_content_type = content_type in CSV_CONTENT_TYPES

    if not is_csv_filename and not is_csv_content_type:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only CSV files are allowed.",
        )

    return file


def get_batch_config(
    batch_size: int | None = Query(default=None, description="Records per batch"),
    max_concurrency: int | None = Query(default=None, description="Concurrent batches per wave"),
    retry_attempts: int | None = Query(default=None, description="Retries per failed batch"),
    retry_delay_ms: int | None = Query(default=None, description="Base retry delay in milliseconds"),
    continue_on_error: bool | None = Query(default=None, description="Keep going after an exhausted batch"),
) -> BatchConfig:
    """
    Merge per-request batch overrides onto the env-driven defaults.
    """

    overrides = {
        "batch_size": batch_size,
        "max_concurrency": max_concurrency,
        "retry_attempts": retry_attempts,
        "retry_delay_ms": retry_delay_ms,
        "continue_on_error": continue_on_error,
    }
    defaults = default_batch_config(get_royalty_ingestion_settings())
    try:
        return replace(defaults, **{name: value for name, value in overrides.items() if value is not None})
    except BatchConfigError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": "Invalid batch configuration.", "errors": str(exc).split("; ")},
        ) from exc
