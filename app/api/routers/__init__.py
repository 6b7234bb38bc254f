"""
app/api/routers package marker.
"""

from app.api.routers.royalty_ingestion import router as royalty_ingestion_router
from app.api.routers.royalty_summary import router as royalty_summary_router

__all__ = [
    "royalty_ingestion_router",
    "royalty_summary_router",
]
