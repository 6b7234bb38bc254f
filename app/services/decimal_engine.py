"""
app/services/decimal_engine.py

Exact parsing and arithmetic for monetary and percentage values.

All money flows through ``decimal.Decimal`` evaluated in a dedicated context
(38 significant digits, ROUND_HALF_UP). Values are rendered back to strings
with 10 fractional digits only at the persistence boundary.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Context, Decimal, InvalidOperation

FRACTION_DIGITS = 10
NUMERIC_LOWER_BOUND = Decimal("-1e15")
NUMERIC_UPPER_BOUND = Decimal("1e15")

MONEY_CONTEXT = Context(prec=38, rounding=ROUND_HALF_UP)

ZERO = Decimal(0)

_STRIP_CHARS = re.compile(r"[$€£¥₱,\s]")
_INTEGER_STRIP_CHARS = re.compile(r"[,\s]")
_LEADING_INTEGER = re.compile(r"^[+-]?\d+")


def _clean(value: str) -> str:
    cleaned = _STRIP_CHARS.sub("", value)
    return cleaned.replace("(", "-").replace(")", "").strip()


def _to_decimal(cleaned: str) -> Decimal | None:
    if cleaned in {"", "-"}:
        return None
    try:
        parsed = MONEY_CONTEXT.create_decimal(cleaned)
    except InvalidOperation:
        return None
    if not parsed.is_finite():
        return None
    return parsed


def parse_decimal(value: str | None) -> Decimal:
    """
    Parse a human-formatted numeric string into a Decimal.

    Currency symbols, thousands separators and whitespace are stripped and a
    parenthesized amount is read as negative. Empty or malformed input
    resolves to zero instead of raising.
    """

    if value is None:
        return ZERO
    parsed = _to_decimal(_clean(str(value)))
    return ZERO if parsed is None else parsed


def is_valid_decimal(value: str | None) -> bool:
    """
    Return True when ``value`` holds a parseable finite number.
    """

    if value is None:
        return False
    return _to_decimal(_clean(str(value))) is not None


def parse_integer(value: str | None) -> int:
    """
    Parse the leading integer of ``value`` after stripping separators; 0 otherwise.
    """

    if value is None:
        return 0
    match = _LEADING_INTEGER.match(_INTEGER_STRIP_CHARS.sub("", str(value)))
    if match is None:
        return 0
    return int(match.group(0))


def is_valid_integer(value: str | None) -> bool:
    if value is None:
        return False
    return _LEADING_INTEGER.match(_INTEGER_STRIP_CHARS.sub("", str(value))) is not None


def within_bounds(
    value: Decimal,
    minimum: Decimal = NUMERIC_LOWER_BOUND,
    maximum: Decimal = NUMERIC_UPPER_BOUND,
) -> bool:
    return minimum <= value <= maximum


# ---------------------------------------------------------------------------
# Arithmetic
# ---------------------------------------------------------------------------


def add(left: Decimal, right: Decimal) -> Decimal:
    return MONEY_CONTEXT.add(left, right)


def subtract(left: Decimal, right: Decimal) -> Decimal:
    return MONEY_CONTEXT.subtract(left, right)


def sum_decimals(values: Iterable[Decimal]) -> Decimal:
    total = ZERO
    for value in values:
        total = MONEY_CONTEXT.add(total, value)
    return total


def divide(numerator: Decimal, denominator: Decimal | int) -> Decimal:
    """
    Divide in the money context; division by zero yields zero.
    """

    divisor = Decimal(denominator)
    if divisor == 0:
        return ZERO
    return MONEY_CONTEXT.divide(numerator, divisor)


def compare(left: Decimal, right: Decimal) -> int:
    """
    Return -1, 0 or 1 as ``left`` is less than, equal to or greater than ``right``.
    """

    return int(MONEY_CONTEXT.compare(left, right))


def quantize(value: Decimal, places: int = FRACTION_DIGITS) -> Decimal:
    exponent = Decimal(1).scaleb(-places)
    return value.quantize(exponent, rounding=ROUND_HALF_UP, context=MONEY_CONTEXT)


def to_fixed(value: Decimal, places: int = FRACTION_DIGITS) -> str:
    """
    Render ``value`` with exactly ``places`` fractional digits.
    """

    return format(quantize(value, places), "f")
