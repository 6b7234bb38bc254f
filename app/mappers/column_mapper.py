"""
app/mappers/column_mapper.py

Header-to-canonical-field mapping for royalty statement files.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Sequence

from app.domain.royalty import NormalizedRow

CANONICAL_FIELDS: tuple[str, ...] = (
    "song_title",
    "iswc",
    "composer",
    "date",
    "territory",
    "source",
    "usage_count",
    "gross",
    "admin_percent",
    "net",
)

# Accepted spellings per field, in priority order.
COLUMN_VARIATIONS: dict[str, tuple[str, ...]] = {
    "song_title": ("Song Title", "song title", "title", "Title", "SongTitle", "song_title"),
    "iswc": ("ISWC", "iswc", "Iswc", "ISWC Code", "iswc_code"),
    "composer": (
        "Composer",
        "composer",
        "Composer Name",
        "Song Composer(s)",
        "Song Composers",
        "composer_name",
    ),
    "date": ("Date", "date", "Broadcast Date", "broadcast_date", "BroadcastDate"),
    "territory": ("Territory", "territory", "Country", "country", "Region"),
    "source": (
        "Source",
        "source",
        "Platform",
        "platform",
        "Exploitation Source",
        "exploitation_source",
    ),
    "usage_count": (
        "Usage Count",
        "usage count",
        "Usage Cou",
        "Usage",
        "usage",
        "usage_count",
        "UsageCount",
    ),
    "gross": ("Gross", "gross", "Gross Amount", "gross_amount", "GrossAmount"),
    "admin_percent": ("Admin %", "admin %", "Admin Percent", "admin_percent", "AdminPercent", "Admin"),
    "net": ("Net", "net", "Net Amount", "net_amount", "NetAmount"),
}

# Column titles used when a rejection file has to be written without source headers.
CANONICAL_DISPLAY_HEADERS: dict[str, str] = {
    "song_title": "Song Title",
    "iswc": "ISWC",
    "composer": "Composer",
    "date": "Date",
    "territory": "Territory",
    "source": "Source",
    "usage_count": "Usage Count",
    "gross": "Gross",
    "admin_percent": "Admin %",
    "net": "Net",
}


class MatchStrategy:
    EXACT = "exact"
    CASE_INSENSITIVE = "case_insensitive"
    BLANK_HEADER = "blank_header"


@dataclass(frozen=True)
class ColumnMapping:
    """
    Resolved mapping between canonical fields and source headers.

    Fields absent from ``canonical_to_source`` are unmapped.
    """

    canonical_to_source: Mapping[str, str]
    source_headers: tuple[str, ...]
    match_strategies: Mapping[str, str] = field(default_factory=dict)

    def source_for(self, canonical_field: str) -> str | None:
        return self.canonical_to_source.get(canonical_field)

    @property
    def unmapped_fields(self) -> tuple[str, ...]:
        return tuple(name for name in CANONICAL_FIELDS if name not in self.canonical_to_source)


class ColumnMapper:
    """
    Maps royalty file headers onto canonical fields.

    Matching runs an exact, case-sensitive pass over the accepted spellings
    first and falls back to a case-insensitive pass. When no usage column was
    found, the first blank header is taken as the usage count column.
    """

    def __init__(
        self,
        variations: Mapping[str, Sequence[str]] | None = None,
        *,
        blank_header_usage_fallback: bool = True,
    ) -> None:
        source = variations or COLUMN_VARIATIONS
        self._variations: dict[str, tuple[str, ...]] = {
            canonical_field: tuple(source.get(canonical_field, ()))
            for canonical_field in CANONICAL_FIELDS
        }
        self._blank_header_usage_fallback = blank_header_usage_fallback

    def build_mapping(self, headers: Sequence[str]) -> ColumnMapping:
        header_set = set(headers)
        lowercase_lookup: dict[str, str] = {}
        for header in headers:
            lowercase_lookup.setdefault(header.strip().lower(), header)

        mapping: dict[str, str] = {}
        strategies: dict[str, str] = {}
        for canonical_field, spellings in self._variations.items():
            exact = next((spelling for spelling in spellings if spelling in header_set), None)
            if exact is not None:
                mapping[canonical_field] = exact
                strategies[canonical_field] = MatchStrategy.EXACT
                continue

            for spelling in spellings:
                found = lowercase_lookup.get(spelling.lower())
                if found is not None:
                    mapping[canonical_field] = found
                    strategies[canonical_field] = MatchStrategy.CASE_INSENSITIVE
                    break

        if self._blank_header_usage_fallback and "usage_count" not in mapping:
            blank = next((header for header in headers if header.strip() == ""), None)
            if blank is not None:
                mapping["usage_count"] = blank
                strategies["usage_count"] = MatchStrategy.BLANK_HEADER

        return ColumnMapping(
            canonical_to_source=mapping,
            source_headers=tuple(headers),
            match_strategies=strategies,
        )

    def normalize_row(
        self,
        *,
        raw_row: Mapping[str, str | None],
        mapping: ColumnMapping,
        row_index: int,
    ) -> NormalizedRow:
        """
        Extract the trimmed canonical values of one raw row.

        Every source column is also kept verbatim in ``source_values``,
        including columns that map to no canonical field.
        """

        values: dict[str, str] = {}
        for canonical_field in CANONICAL_FIELDS:
            column = mapping.source_for(canonical_field)
            raw_value = raw_row.get(column) if column is not None else None
            values[canonical_field] = _stringify(raw_value).strip()
        source_values = {header: _stringify(raw_row.get(header)) for header in mapping.source_headers}
        return NormalizedRow(row_index=row_index, source_values=source_values, **values)


def _stringify(value: object) -> str:
    if value is None:
        return ""
    return str(value)
