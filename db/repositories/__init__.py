"""
Repository layer exports.
"""

from db.repositories.ingestion_job_repository import IngestionJobRepository
from db.repositories.royalty_repository import RoyaltyRepository
from db.repositories.royalty_summary_repository import RoyaltySummaryRepository
from db.repositories.track_repository import TrackRepository

__all__ = [
    "IngestionJobRepository",
    "RoyaltyRepository",
    "RoyaltySummaryRepository",
    "TrackRepository",
]
