"""
Refund policy arithmetic. Pure functions, no I/O.
"""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

CENTS = Decimal("0.01")
SECONDS_PER_DAY = 24 * 60 * 60


def round2(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(CENTS, rounding=ROUND_HALF_UP)


def days_until(moment: datetime, now: datetime) -> float:
    """Fractional days from `now` until `moment` (negative once it has passed)."""
    return (moment - now).total_seconds() / SECONDS_PER_DAY


def is_refundable(days_until_departure: float, refundable_until_days_before: int) -> bool:
    """Cancellations are refundable strictly before the cutoff."""
    return days_until_departure > refundable_until_days_before


def calculate_refund(price_charged, cancellation_fee_percent: int, refundable: bool) -> Decimal:
    """
    Refund owed on cancellation.

    >>> calculate_refund(Decimal("100"), 10, True)
    Decimal('90.00')
    >>> calculate_refund(Decimal("100"), 10, False)
    Decimal('0.00')
    """
    if not 0 <= cancellation_fee_percent <= 100:
        raise ValueError(f"cancellation_fee_percent out of range: {cancellation_fee_percent}")
    if not refundable:
        return round2(Decimal(0))
    keep_ratio = 1 - Decimal(cancellation_fee_percent) / 100
    return round2(Decimal(price_charged) * keep_ratio)
