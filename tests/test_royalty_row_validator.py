"""
tests/test_royalty_row_validator.py

Pytest unit tests for royalty row validation and broadcast date parsing.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from app.domain.royalty import NormalizedRow
from app.validators.royalty_row_validator import RoyaltyRowValidator, parse_broadcast_date


@pytest.fixture()
def validator() -> RoyaltyRowValidator:
    return RoyaltyRowValidator()


def _row(**values: str) -> NormalizedRow:
    base = {"song_title": "Song A", "usage_count": "10", "gross": "1.00", "admin_percent": "15", "net": "0.85"}
    base.update(values)
    return NormalizedRow(row_index=2, **base)


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


class TestRoyaltyRowValidator:
    def test_complete_row_is_valid(self, validator: RoyaltyRowValidator) -> None:
        result = validator.validate(_row())
        assert result.is_valid
        assert result.error_message == ""

    def test_missing_title(self, validator: RoyaltyRowValidator) -> None:
        result = validator.validate(_row(song_title="   "))
        assert result.errors == ("Missing song title",)

    def test_invalid_decimal_message_quotes_value(self, validator: RoyaltyRowValidator) -> None:
        result = validator.validate(_row(gross="abc"))
        assert result.errors == ('Invalid gross value: "abc"',)

    def test_out_of_range_decimal(self, validator: RoyaltyRowValidator) -> None:
        result = validator.validate(_row(net="2000000000000000"))
        assert result.errors == ('Value out of range for net: "2000000000000000"',)

    def test_invalid_usage_count(self, validator: RoyaltyRowValidator) -> None:
        result = validator.validate(_row(usage_count="many"))
        assert result.errors == ('Invalid usage count: "many"',)

    def test_blank_numeric_fields_are_accepted(self, validator: RoyaltyRowValidator) -> None:
        result = validator.validate(_row(usage_count="", gross="", admin_percent="", net=""))
        assert result.is_valid

    def test_collects_every_error_in_order(self, validator: RoyaltyRowValidator) -> None:
        result = validator.validate(_row(song_title="", gross="x", net="y", usage_count="z"))

        assert result.errors == (
            "Missing song title",
            'Invalid gross value: "x"',
            'Invalid net value: "y"',
            'Invalid usage count: "z"',
        )
        assert result.error_message == (
            'Missing song title; Invalid gross value: "x"; Invalid net value: "y"; Invalid usage count: "z"'
        )

    def test_custom_bounds(self) -> None:
        validator = RoyaltyRowValidator(lower_bound=Decimal("0"), upper_bound=Decimal("100"))
        result = validator.validate(_row(gross="-1"))
        assert result.errors == ('Value out of range for gross: "-1"',)

    def test_validation_is_deterministic(self, validator: RoyaltyRowValidator) -> None:
        row = _row(gross="$1,0x0")
        assert validator.validate(row) == validator.validate(row)


# ---------------------------------------------------------------------------
# Broadcast dates
# ---------------------------------------------------------------------------


class TestParseBroadcastDate:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("2024-02-15", date(2024, 2, 15)),
            ("2024-02-15T10:30:00Z", date(2024, 2, 15)),
            ("2024/03/01", date(2024, 3, 1)),
            ("03/01/2024", date(2024, 3, 1)),
            ("15 Feb 2024", date(2024, 2, 15)),
            ("March 2024", date(2024, 3, 1)),
        ],
    )
    def test_parses_known_formats(self, raw: str, expected: date) -> None:
        assert parse_broadcast_date(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "  ", "not a date", "2024-13-45"])
    def test_unparseable_dates_are_none(self, raw: str | None) -> None:
        assert parse_broadcast_date(raw) is None
