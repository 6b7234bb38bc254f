"""
app/mappers package marker.
"""

from app.mappers.column_mapper import (
    CANONICAL_DISPLAY_HEADERS,
    CANONICAL_FIELDS,
    COLUMN_VARIATIONS,
    ColumnMapper,
    ColumnMapping,
    MatchStrategy,
)

__all__ = [
    "CANONICAL_DISPLAY_HEADERS",
    "CANONICAL_FIELDS",
    "COLUMN_VARIATIONS",
    "ColumnMapper",
    "ColumnMapping",
    "MatchStrategy",
]
