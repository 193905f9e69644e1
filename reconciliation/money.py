"""
Money helpers.

Calculations keep full Decimal precision; these helpers are only used at the
presentation boundary.
"""

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


def quantize_money(value: Decimal) -> Decimal:
    """Round to cents using ROUND_HALF_UP."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_money(value: Decimal | None) -> str | None:
    """Fixed-point string with 2 decimal places, for API output."""
    if value is None:
        return None
    return str(quantize_money(value))


def to_percent(value: Decimal | None) -> str | None:
    """Percentage as a plain string, trailing zeros dropped (12.50 -> 12.5)."""
    if value is None:
        return None
    normalized = value.normalize()
    # normalize() turns 100 into 1E+2
    if normalized == normalized.to_integral():
        return str(normalized.quantize(Decimal("1")))
    return format(normalized, "f")


def round_half_up(value: Decimal) -> int:
    """Round to the nearest whole number, halves away from zero."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def round_percent(value: Decimal | None) -> Decimal | None:
    """One decimal place, halves up (12.345 -> 12.3)."""
    if value is None:
        return None
    return value.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
