"""
app/schemas/royalty_summary.py

Request/response schemas for quarterly royalty summaries.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field


class SummaryRecomputeRequest(BaseModel):
    artist_id: UUID
    year: int = Field(..., ge=2000, le=2100)
    quarter: int = Field(..., ge=1, le=4)


class RoyaltySummaryResponse(BaseModel):
    """
    One track's royalty totals for a quarter.
    """

    artist_id: UUID
    track_id: UUID
    year: int
    quarter: int
    total_streams: int = Field(..., ge=0)
    total_revenue: Decimal
    total_gross: Decimal
    total_net: Decimal
    avg_per_stream: Decimal
    revenue_per_play: Decimal
    highest_revenue: Decimal
    top_territory: str | None = None
    top_platform: str | None = None
    platform_distribution: dict[str, float] = Field(default_factory=dict)
    territory_distribution: dict[str, float] = Field(default_factory=dict)
    monthly_breakdown: dict[str, float] = Field(default_factory=dict)
    record_count: int = Field(default=0, ge=0)


class RoyaltySummaryListResponse(BaseModel):
    artist_id: UUID
    year: int
    quarter: int
    summaries: list[RoyaltySummaryResponse] = Field(default_factory=list)
