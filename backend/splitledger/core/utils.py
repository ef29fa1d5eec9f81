"""
Utility functions for the application.
"""
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Union

# Currency tolerance used by every monetary comparison
MONEY_EPSILON = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def to_money(value: Number) -> Decimal:
    """Convert a numeric value to a Decimal rounded to whole cents, as stored."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(MONEY_EPSILON, rounding=ROUND_HALF_UP)


def is_zero(amount: Decimal) -> bool:
    """True if the amount is within the currency tolerance of zero."""
    return abs(amount) < MONEY_EPSILON


def zero_if_negligible(amount: Decimal) -> Decimal:
    """Snap amounts within the tolerance to exactly zero."""
    return Decimal("0") if is_zero(amount) else amount


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def format_error(message: str, code: str = None) -> Dict[str, Any]:
    """Format error response."""
    response = {"detail": message}
    if code:
        response["code"] = code
    return response
