"""
Hours and percent arithmetic shared by the engines and the reporting edge.

Calculations keep full Decimal precision.  ``round_hours`` and
``round_percent`` are the only sanctioned rounding functions and are
applied when figures leave the system (report rows, exports), never in
between.
"""

from decimal import ROUND_HALF_UP, Decimal

HOURS_DECIMAL_PLACES = 2
PERCENT_DECIMAL_PLACES = 2


def round_hours(amount: Decimal, places: int = HOURS_DECIMAL_PLACES) -> Decimal:
    """Round hours for presentation using ROUND_HALF_UP."""
    quantizer = Decimal(10) ** -places
    return amount.quantize(quantizer, rounding=ROUND_HALF_UP)


def round_percent(amount: Decimal, places: int = PERCENT_DECIMAL_PLACES) -> Decimal:
    """Round a percentage for presentation using ROUND_HALF_UP."""
    quantizer = Decimal(10) ** -places
    return amount.quantize(quantizer, rounding=ROUND_HALF_UP)


def percent_of(part: Decimal, whole: Decimal) -> Decimal:
    """part / whole * 100, or 0 when whole is zero."""
    if whole == 0:
        return Decimal("0")
    return part / whole * Decimal("100")
