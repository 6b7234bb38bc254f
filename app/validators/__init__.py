"""
app/validators package marker.
"""

from app.validators.royalty_row_validator import RoyaltyRowValidator, parse_broadcast_date

__all__ = [
    "RoyaltyRowValidator",
    "parse_broadcast_date",
]
