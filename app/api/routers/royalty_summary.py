"""
app/api/routers/royalty_summary.py

Quarterly royalty summary endpoints.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.domain.royalty import RoyaltySummaryInput
from app.schemas.royalty_summary import (
    RoyaltySummaryListResponse,
    RoyaltySummaryResponse,
    SummaryRecomputeRequest,
)
from app.services.royalty_aggregation_service import RoyaltySummaryService, SummaryPersistenceError

router = APIRouter(prefix="/royalties/summaries", tags=["royalty-summaries"])


def get_royalty_summary_service() -> RoyaltySummaryService:
    from app.services.royalty_ingestion_service import get_royalty_ingestion_service

    return get_royalty_ingestion_service().summary_service


@router.post("/recompute", response_model=RoyaltySummaryListResponse)
def recompute_summaries(
    payload: SummaryRecomputeRequest,
    summary_service: RoyaltySummaryService = Depends(get_royalty_summary_service),
) -> RoyaltySummaryListResponse:
    """
    Re-aggregate a quarter from the persisted royalty lines.
    """

    try:
        summaries = summary_service.recompute(
            artist_id=payload.artist_id,
            year=payload.year,
            quarter=payload.quarter,
        )
    except SummaryPersistenceError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unable to recompute royalty summaries.",
        ) from exc

    return RoyaltySummaryListResponse(
        artist_id=payload.artist_id,
        year=payload.year,
        quarter=payload.quarter,
        summaries=[_from_input(summary) for summary in summaries],
    )


@router.get("", response_model=RoyaltySummaryListResponse)
def list_summaries(
    artist_id: UUID = Query(..., description="Artist id"),
    year: int = Query(..., ge=2000, le=2100),
    quarter: int = Query(..., ge=1, le=4),
    summary_service: RoyaltySummaryService = Depends(get_royalty_summary_service),
) -> RoyaltySummaryListResponse:
    rows = summary_service.list_summaries(artist_id=artist_id, year=year, quarter=quarter)
    return RoyaltySummaryListResponse(
        artist_id=artist_id,
        year=year,
        quarter=quarter,
        summaries=[_from_row(row) for row in rows],
    )


def _from_input(summary: RoyaltySummaryInput) -> RoyaltySummaryResponse:
    key = summary.key
    return RoyaltySummaryResponse(
        artist_id=key.artist_id,
        track_id=key.track_id,
        year=key.year,
        quarter=key.quarter,
        total_streams=summary.total_streams,
        total_revenue=summary.total_revenue,
        total_gross=summary.total_gross,
        total_net=summary.total_net,
        avg_per_stream=summary.avg_per_stream,
        revenue_per_play=summary.revenue_per_play,
        highest_revenue=summary.highest_revenue,
        top_territory=summary.top_territory,
        top_platform=summary.top_platform,
        platform_distribution=summary.platform_distribution,
        territory_distribution=summary.territory_distribution,
        monthly_breakdown=summary.monthly_breakdown,
        record_count=summary.record_count,
    )


def _from_row(row: Any) -> RoyaltySummaryResponse:
    return RoyaltySummaryResponse(
        artist_id=row.artist_id,
        track_id=row.track_id,
        year=row.year,
        quarter=row.quarter,
        total_streams=row.total_streams,
        total_revenue=row.total_revenue,
        total_gross=row.total_gross,
        total_net=row.total_net,
        avg_per_stream=row.avg_per_stream,
        revenue_per_play=row.revenue_per_play,
        highest_revenue=row.highest_revenue,
        top_territory=row.top_territory,
        top_platform=row.top_platform,
        platform_distribution=row.platform_distribution or {},
        territory_distribution=row.territory_distribution or {},
        monthly_breakdown=row.monthly_breakdown or {},
        record_count=row.record_count,
    )
