"""
app/api/routers/royalty_ingestion.py

Royalty file ingestion and background job endpoints.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Response, UploadFile, status
from sqlalchemy.orm import Session

from app.api.dependencies import get_batch_config, get_csv_upload
from app.domain.royalty import ProcessingResult
from app.schemas.royalty_ingestion import (
    FailedRowResponse,
    ProcessingResultResponse,
    ProcessingSummaryResponse,
    ProgressResponse,
    RoyaltyJobAcceptedResponse,
    RoyaltyJobListResponse,
    RoyaltyJobStatusResponse,
)
from app.services.batch_insert_engine import BatchConfig
from app.services.catalog_resolver import CatalogResolutionError
from app.services.ingestion_orchestrator_service import (
    FastAPIBackgroundTaskExecutor,
    IngestionOrchestratorService,
    JobNotCancellableError,
    get_ingestion_orchestrator_service,
)
from app.services.royalty_ingestion_service import (
    IngestionConfigurationError,
    RoyaltyFileFormatError,
    RoyaltyIngestionService,
    get_royalty_ingestion_service,
)
from db.models.ingestion_job import IngestionJob
from db.session import get_db

router = APIRouter(prefix="/royalties", tags=["royalty-ingestion"])


@router.post("/process", response_model=ProcessingResultResponse)
def process_royalty_file(
    file: UploadFile = Depends(get_csv_upload),
    artist_id: str = Query(..., description="Artist owning every row of the file"),
    year: int | None = Query(default=None, description="Statement year; requires quarter"),
    quarter: int | None = Query(default=None, description="Statement quarter 1-4; requires year"),
    config: BatchConfig = Depends(get_batch_config),
    ingestion_service: RoyaltyIngestionService = Depends(get_royalty_ingestion_service),
) -> ProcessingResultResponse:
    """
    Ingest one royalty file synchronously and return the full result.
    """

    try:
        result = ingestion_service.process(
            source=file.file,
            artist_id=artist_id,
            year=year,
            quarter=quarter,
            config=config,
        )
    except IngestionConfigurationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=exc.to_dict(),
        ) from exc
    except RoyaltyFileFormatError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except CatalogResolutionError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unable to read the track catalog.",
        ) from exc
    finally:
        file.file.close()

    return to_result_response(result)


@router.post(
    "/jobs",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=RoyaltyJobAcceptedResponse,
)
def start_royalty_job(
    background_tasks: BackgroundTasks,
    file: UploadFile = Depends(get_csv_upload),
    artist_id: str = Query(..., description="Artist owning every row of the file"),
    year: int | None = Query(default=None, description="Statement year; requires quarter"),
    quarter: int | None = Query(default=None, description="Statement quarter 1-4; requires year"),
    config: BatchConfig = Depends(get_batch_config),
    db: Session = Depends(get_db),
    orchestrator: IngestionOrchestratorService = Depends(get_ingestion_orchestrator_service),
) -> RoyaltyJobAcceptedResponse:
    try:
        job = orchestrator.trigger_royalty_ingestion(
            db=db,
            executor=FastAPIBackgroundTaskExecutor(background_tasks),
            upload_file=file,
            artist_id=artist_id,
            year=year,
            quarter=quarter,
            config=config,
        )
    except IngestionConfigurationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=exc.to_dict(),
        ) from exc
    finally:
        file.file.close()

    return RoyaltyJobAcceptedResponse(
        job_id=job.id,
        job_type=job.job_type,
        status=job.status,
        created_at=job.created_at,
    )


@router.get("/jobs", response_model=RoyaltyJobListResponse)
def list_royalty_jobs(
    status_filter: str | None = Query(default=None, alias="status", description="Optional status filter"),
    artist_id: UUID | None = Query(default=None, description="Only jobs for this artist"),
    limit: int = Query(default=100, ge=1, le=500, description="Max jobs returned"),
    db: Session = Depends(get_db),
    orchestrator: IngestionOrchestratorService = Depends(get_ingestion_orchestrator_service),
) -> RoyaltyJobListResponse:
    jobs = orchestrator.list_job_statuses(db=db, limit=limit, status=status_filter, artist_id=artist_id)
    return RoyaltyJobListResponse(jobs=[_to_status_response(job) for job in jobs])


@router.get("/jobs/{job_id}", response_model=RoyaltyJobStatusResponse)
def get_royalty_job(
    job_id: UUID,
    db: Session = Depends(get_db),
    orchestrator: IngestionOrchestratorService = Depends(get_ingestion_orchestrator_service),
) -> RoyaltyJobStatusResponse:
    job = orchestrator.get_job_status(db=db, job_id=job_id)
    if job is None:
        raise _job_not_found(job_id)
    return _to_status_response(job)


@router.post("/jobs/{job_id}/cancel", response_model=RoyaltyJobStatusResponse)
def cancel_royalty_job(
    job_id: UUID,
    db: Session = Depends(get_db),
    orchestrator: IngestionOrchestratorService = Depends(get_ingestion_orchestrator_service),
) -> RoyaltyJobStatusResponse:
    try:
        job = orchestrator.request_cancel(db=db, job_id=job_id)
    except JobNotCancellableError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    if job is None:
        raise _job_not_found(job_id)
    return _to_status_response(job)


@router.get("/jobs/{job_id}/rejections")
def download_rejections(
    job_id: UUID,
    db: Session = Depends(get_db),
    orchestrator: IngestionOrchestratorService = Depends(get_ingestion_orchestrator_service),
) -> Response:
    """
    Rejected rows of a job in the uploaded file's column layout.
    """

    content = orchestrator.rejection_csv(db=db, job_id=job_id)
    if content is None:
        raise _job_not_found(job_id)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="rejections_{job_id}.csv"'},
    )


def to_result_response(result: ProcessingResult) -> ProcessingResultResponse:
    summary = result.summary
    return ProcessingResultResponse(
        success=result.success,
        job_id=result.job_id,
        cancelled=result.cancelled,
        summary=ProcessingSummaryResponse(
            total_rows_processed=summary.total_rows_processed,
            successful_inserts=summary.successful_inserts,
            failed_inserts=summary.failed_inserts,
            tracks_created=summary.tracks_created,
            tracks_existing=summary.tracks_existing,
            total_duration_ms=summary.total_duration_ms,
            throughput=summary.throughput,
        ),
        summaries_upserted=result.summaries_upserted,
        headers=result.headers,
        errors=result.errors,
        failed_rows=[
            FailedRowResponse(
                row_index=row.row_index,
                values=dict(row.values),
                error_message=row.error_message,
                timestamp=row.timestamp,
            )
            for row in result.failed_rows
        ],
    )


def _job_not_found(job_id: UUID) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Ingestion job not found: {job_id}",
    )


def _to_status_response(job: IngestionJob) -> RoyaltyJobStatusResponse:
    return RoyaltyJobStatusResponse(
        job_id=job.id,
        job_type=job.job_type,
        status=job.status,
        artist_id=job.artist_id,
        created_at=job.created_at,
        updated_at=job.updated_at,
        started_at=job.started_at,
        completed_at=job.completed_at,
        cancel_requested=bool(job.cancel_requested),
        request_payload=job.request_payload,
        progress=ProgressResponse(**job.progress_payload) if job.progress_payload else None,
        result_payload=job.result_payload,
        error_message=job.error_message,
    )
