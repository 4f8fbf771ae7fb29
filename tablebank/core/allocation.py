"""Replay repayments chronologically against a reducing, accruing balance."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Iterable

from tablebank.config import LedgerConfig
from tablebank.core.accrual import accrue
from tablebank.core.money import ZERO, days_between, round_money, to_date, to_money
from tablebank.core.schedule import preview_schedule
from tablebank.exceptions import InvariantViolation, ValidationError
from tablebank.models.ledger import Loan, Repayment
from tablebank.models.results import Allocation, AllocationEvent

logger = logging.getLogger(__name__)


def ordered_payments(
    loan: Loan,
    repayments: Iterable[Repayment],
    as_of: date,
) -> list[tuple[date, Decimal]]:
    """Validate, filter and sort repayments into ``(date, amount)`` pairs."""
    keyed: list[tuple[date, int, int, Decimal]] = []
    for index, repayment in enumerate(repayments):
        if repayment.loan_id != loan.loan_id:
            raise ValidationError(
                f"Repayment {repayment.repayment_id} belongs to loan {repayment.loan_id}, not {loan.loan_id}"
            )
        paid_on = to_date(repayment.payment_date, "payment_date")
        amount = to_money(repayment.amount_paid, "amount_paid")

        if amount <= 0:
            logger.warning(
                "Ignoring non-positive repayment %s (%s) on loan %s",
                repayment.repayment_id,
                amount,
                loan.loan_id,
            )
            continue
        if paid_on < loan.issue_date:
            raise ValidationError(
                f"Repayment {repayment.repayment_id} dated {paid_on} precedes loan issue date {loan.issue_date}"
            )
        if paid_on > as_of:
            continue

        keyed.append((paid_on, repayment.sequence, index, amount))

    keyed.sort(key=lambda item: item[:3])
    return [(paid_on, amount) for paid_on, _, _, amount in keyed]


def allocate(
    loan: Loan,
    repayments: Iterable[Repayment],
    as_of: Any = None,
    *,
    include_schedule: bool = False,
    config: LedgerConfig | None = None,
) -> Allocation:
    """Compute a loan's balance by replaying its repayments.

    Interest accrues on the running balance from the issue date to each
    payment date in turn, is added to the balance, and the payment is then
    subtracted. A payment larger than the balance clears it; the excess is
    absorbed (reported on the event) rather than carried as credit. After the
    last payment, interest accrues up to ``as_of``.

    The result depends only on the arguments: repayments are re-sorted by
    date (ties by ``sequence``, then input order) on every call, and
    repayments dated after ``as_of`` are not yet effective.

    Parameters
    ----------
    loan : Loan
        Loan to evaluate.
    repayments : Iterable[Repayment]
        Repayments for this loan, in any order.
    as_of : Any
        Evaluation date (default: today).
    include_schedule : bool
        Attach a fixed-term forward projection.
    config : LedgerConfig | None
        Group settings (day-count basis, schedule terms).

    Returns
    -------
    Allocation
        Balance, total interest, total paid and per-payment events.
    """
    config = config or LedgerConfig()
    as_of_date = date.today() if as_of is None else to_date(as_of, "as_of")
    rate = loan.annual_rate_percent

    balance = round_money(loan.principal)
    total_interest = ZERO
    total_paid = ZERO
    cursor = loan.issue_date
    events: list[AllocationEvent] = []

    for paid_on, amount in ordered_payments(loan, repayments, as_of_date):
        days = days_between(cursor, paid_on)
        if days < 0:
            raise InvariantViolation(f"Repayments for loan {loan.loan_id} out of order after sorting")

        interest = accrue(balance, rate, days, config.days_in_year)
        total_interest += interest
        balance = balance + interest - amount
        absorbed = ZERO
        if balance < 0:
            absorbed = -balance
            balance = ZERO
        total_paid += amount
        cursor = paid_on

        events.append(
            AllocationEvent(
                payment_date=paid_on,
                days=days,
                interest=interest,
                amount_paid=amount,
                balance_after=balance,
                absorbed=absorbed,
            )
        )

    if as_of_date > cursor:
        interest = accrue(balance, rate, days_between(cursor, as_of_date), config.days_in_year)
        total_interest += interest
        balance += interest

    schedule = preview_schedule(loan.principal, loan.issue_date, config) if include_schedule else None

    return Allocation(
        balance=balance,
        total_interest=total_interest,
        total_paid=total_paid,
        as_of=as_of_date,
        events=events,
        schedule=schedule,
    )
