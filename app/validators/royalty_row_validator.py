"""
app/validators/royalty_row_validator.py

Row-level validation for normalized royalty rows.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from app.domain.royalty import NormalizedRow, ValidatedRow
from app.services import decimal_engine

# Decimal fields in the order their errors are reported.
DECIMAL_FIELDS: tuple[str, ...] = ("gross", "admin_percent", "net")


class RoyaltyRowValidator:
    """
    Validates normalized royalty rows.

    Every rule is evaluated independently so a rejected row carries all of its
    problems, not only the first one found.
    """

    def __init__(
        self,
        *,
        lower_bound: Decimal = decimal_engine.NUMERIC_LOWER_BOUND,
        upper_bound: Decimal = decimal_engine.NUMERIC_UPPER_BOUND,
    ) -> None:
        self._lower_bound = lower_bound
        self._upper_bound = upper_bound

    def validate(self, row: NormalizedRow) -> ValidatedRow:
        errors: list[str] = []

        if self._is_blank(row.song_title):
            errors.append("Missing song title")

        for field_name in DECIMAL_FIELDS:
            value = getattr(row, field_name)
            if self._is_blank(value):
                continue
            if not decimal_engine.is_valid_decimal(value):
                errors.append(f'Invalid {field_name} value: "{value}"')
                continue
            parsed = decimal_engine.parse_decimal(value)
            if not decimal_engine.within_bounds(parsed, self._lower_bound, self._upper_bound):
                errors.append(f'Value out of range for {field_name}: "{value}"')

        if not self._is_blank(row.usage_count) and not decimal_engine.is_valid_integer(row.usage_count):
            errors.append(f'Invalid usage count: "{row.usage_count}"')

        return ValidatedRow(row=row, errors=tuple(errors))

    @staticmethod
    def _is_blank(value: str | None) -> bool:
        return value is None or value.strip() == ""


BROADCAST_DATE_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%d %b %Y",
    "%d %B %Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%b %Y",
    "%B %Y",
    "%Y-%m",
)


def parse_broadcast_date(value: str | None) -> date | None:
    """
    Parse a statement date; unparseable values yield None rather than an error.
    """

    if value is None or not value.strip():
        return None

    raw = value.strip()
    normalized = raw[:-1] + "+00:00" if raw.endswith("Z") else raw
    try:
        return datetime.fromisoformat(normalized).date()
    except ValueError:
        pass

    for fmt in BROADCAST_DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    return None
