"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.artist import Artist
from db.models.ingestion_job import IngestionJob
from db.models.royalty import Royalty
from db.models.royalty_summary import RoyaltySummary
from db.models.track import Track

__all__ = [
    "Artist",
    "IngestionJob",
    "Royalty",
    "RoyaltySummary",
    "Track",
]
