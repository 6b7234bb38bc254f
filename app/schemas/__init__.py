"""
app/schemas package marker.
"""

from app.schemas.royalty_ingestion import (
    FailedRowResponse,
    ProcessingResultResponse,
    ProcessingSummaryResponse,
    ProgressResponse,
    RoyaltyJobAcceptedResponse,
    RoyaltyJobListResponse,
    RoyaltyJobStatusResponse,
)
from app.schemas.royalty_summary import (
    RoyaltySummaryListResponse,
    RoyaltySummaryResponse,
    SummaryRecomputeRequest,
)

__all__ = [
    "FailedRowResponse",
    "ProcessingResultResponse",
    "ProcessingSummaryResponse",
    "ProgressResponse",
    "RoyaltyJobAcceptedResponse",
    "RoyaltyJobListResponse",
    "RoyaltyJobStatusResponse",
    "RoyaltySummaryListResponse",
    "RoyaltySummaryResponse",
    "SummaryRecomputeRequest",
]
