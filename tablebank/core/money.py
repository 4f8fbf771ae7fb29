"""Fixed-point money and calendar-date primitives."""

from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from dateutil.relativedelta import relativedelta

from tablebank.exceptions import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def round_money(value: Decimal) -> Decimal:
    """Round to two decimal places, half-up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value: Any, field_name: str = "amount") -> Decimal:
    """Parse a numeric value without rounding.

    Floats go through ``str`` so ``0.1`` becomes ``Decimal("0.1")``.

    Raises
    ------
    ValidationError
        If the value is missing, not a number, or not finite.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field_name} is required")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as e:
            raise ValidationError(f"{field_name} is not a valid number: {value!r}") from e
    if not result.is_finite():
        raise ValidationError(f"{field_name} is not a valid number: {value!r}")
    return result


def to_money(value: Any, field_name: str = "amount") -> Decimal:
    """Parse a monetary value and round it to cents."""
    return round_money(to_decimal(value, field_name))


def to_date(value: Any, field_name: str = "date") -> date:
    """Parse a calendar date.

    ISO strings (``"2024-03-01"``) are read as plain calendar dates, with no
    timezone involved. ``datetime`` values are truncated to their date.
    """
    if value is None:
        raise ValidationError(f"{field_name} is required")
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError as e:
            raise ValidationError(f"{field_name} is not a valid date: {value!r}") from e
    raise ValidationError(f"{field_name} is not a valid date: {value!r}")


def days_between(start: date, end: date) -> int:
    """Whole calendar days from ``start`` to ``end`` (negative if end is earlier)."""
    return (end - start).days


def add_months(start: date, months: int) -> date:
    """Shift a date by whole months, clamping to the end of shorter months."""
    return start + relativedelta(months=months)
