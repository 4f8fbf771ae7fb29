"""Fixed-term amortization: equal principal slices, interest on the opening balance."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any

from tablebank.config import LedgerConfig
from tablebank.core.money import ZERO, add_months, round_money, to_date, to_money
from tablebank.exceptions import ValidationError
from tablebank.models.results import AmortizationRow

HUNDRED = Decimal("100")


def preview_schedule(
    principal: Any,
    issue_date: Any,
    config: LedgerConfig | None = None,
) -> list[AmortizationRow]:
    """Project a month-by-month repayment plan for a loan.

    Principal is split into ``config.fixed_term_months`` equal slices, the last
    slice taking whatever remains after rounding. Each month charges
    ``config.fixed_term_monthly_rate_percent`` of that month's opening balance.

    Parameters
    ----------
    principal : Any
        Loan amount (anything ``to_money`` accepts).
    issue_date : Any
        Loan start date; installment ``n`` falls due ``n`` months later.
    config : LedgerConfig | None
        Group settings (defaults: 3 months at 10% a month).

    Returns
    -------
    list[AmortizationRow]
        One row per month.
    """
    config = config or LedgerConfig()
    amount = to_money(principal, "principal")
    if amount <= 0:
        raise ValidationError(f"principal must be positive, got {amount}")
    start = to_date(issue_date, "issue_date")

    months = config.fixed_term_months
    rate = config.fixed_term_monthly_rate_percent / HUNDRED
    monthly_principal = round_money(amount / months)

    rows: list[AmortizationRow] = []
    opening = amount
    for month in range(1, months + 1):
        interest = round_money(opening * rate)
        principal_paid = opening if month == months else monthly_principal
        closing = max(ZERO, round_money(opening - principal_paid))

        rows.append(
            AmortizationRow(
                month=month,
                opening_balance=opening,
                interest=interest,
                principal_paid=principal_paid,
                total_installment=round_money(interest + principal_paid),
                closing_balance=closing,
                due_date=add_months(start, month),
            )
        )
        opening = closing

    return rows


def schedule_interest(rows: list[AmortizationRow]) -> Decimal:
    """Total interest over a schedule."""
    return round_money(sum((row.interest for row in rows), ZERO))


def fixed_term_totals(
    principal: Decimal,
    issue_date: date,
    paid: Decimal,
    config: LedgerConfig | None = None,
) -> tuple[Decimal, Decimal, list[AmortizationRow]]:
    """Interest and balance for a fixed-term loan.

    Returns ``(total_interest, balance, schedule)``; the balance is the
    scheduled total less what was paid, floored at zero.
    """
    rows = preview_schedule(principal, issue_date, config)
    total_interest = schedule_interest(rows)
    total_amount = round_money(principal + total_interest)
    balance = max(ZERO, round_money(total_amount - paid))
    return total_interest, balance, rows
