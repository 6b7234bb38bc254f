"""
app/domain package marker.
"""

from app.domain.royalty import (
    AggregationKey,
    BatchInsertOutcome,
    BatchResult,
    BatchRowError,
    CatalogResolution,
    FailedRowRecord,
    NewTrack,
    NormalizedRow,
    ProcessingProgress,
    ProcessingResult,
    ProcessingSummary,
    ProgressStatus,
    RoyaltyRecord,
    RoyaltySummaryInput,
    ValidatedRow,
)

__all__ = [
    "AggregationKey",
    "BatchInsertOutcome",
    "BatchResult",
    "BatchRowError",
    "CatalogResolution",
    "FailedRowRecord",
    "NewTrack",
    "NormalizedRow",
    "ProcessingProgress",
    "ProcessingResult",
    "ProcessingSummary",
    "ProgressStatus",
    "RoyaltyRecord",
    "RoyaltySummaryInput",
    "ValidatedRow",
]
