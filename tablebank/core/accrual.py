"""Simple-interest accrual over an elapsed day count."""

from decimal import Decimal

from tablebank.core.money import round_money
from tablebank.exceptions import InvariantViolation

HUNDRED = Decimal("100")


def accrue(
    balance: Decimal,
    annual_rate_percent: Decimal,
    days: int,
    days_in_year: int = 365,
) -> Decimal:
    """Interest owed on ``balance`` for ``days`` at an annual percentage rate.

    Computes ``balance * (rate / 100) * (days / days_in_year)`` and rounds the
    result to cents. The interval is not compounded internally; callers add
    the increment to the running balance before the next interval.

    Parameters
    ----------
    balance : Decimal
        Balance the interest is charged on.
    annual_rate_percent : Decimal
        Annual rate, e.g. ``Decimal("10")`` for 10%.
    days : int
        Elapsed calendar days, never negative.
    days_in_year : int
        Day-count basis.

    Returns
    -------
    Decimal
        Interest increment rounded to two decimals.

    Raises
    ------
    InvariantViolation
        If ``days`` is negative.
    """
    if days < 0:
        raise InvariantViolation(f"Cannot accrue interest over a negative day count: {days}")
    if days == 0 or balance == 0 or annual_rate_percent == 0:
        return Decimal("0.00")
    return round_money(balance * (annual_rate_percent / HUNDRED) * Decimal(days) / Decimal(days_in_year))
