"""Loan ledger: live loan figures and the loan status state machine."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from typing import Any, Iterable

from tablebank.config import LedgerConfig
from tablebank.core.allocation import allocate, ordered_payments
from tablebank.core.money import ZERO, round_money, to_date, to_decimal, to_money
from tablebank.core.schedule import fixed_term_totals
from tablebank.exceptions import (
    DomainRejection,
    InvalidEntityStateError,
    ValidationError,
)
from tablebank.models.enums import AccrualStrategy, LoanStatus, RejectionReason
from tablebank.models.ledger import Loan, Repayment
from tablebank.models.results import LoanState, RepaymentOutcome

logger = logging.getLogger(__name__)

# Admin transitions. COMPLETED is never a manual target.
MANUAL_TRANSITIONS: dict[LoanStatus, frozenset[LoanStatus]] = {
    LoanStatus.PENDING: frozenset({LoanStatus.ONGOING}),
    LoanStatus.ONGOING: frozenset({LoanStatus.DEFAULTED}),
    LoanStatus.DEFAULTED: frozenset({LoanStatus.ONGOING}),
    LoanStatus.COMPLETED: frozenset({LoanStatus.ONGOING}),
}


def compute_loan_state(
    loan: Loan,
    repayments: Iterable[Repayment],
    as_of: Any = None,
    *,
    include_schedule: bool = False,
    config: LedgerConfig | None = None,
) -> LoanState:
    """Current interest, totals and balance for a loan.

    Dispatches on ``loan.strategy``: continuous-accrual loans are replayed
    through the allocator, fixed-term loans are priced from their schedule.

    Parameters
    ----------
    loan : Loan
        Loan to evaluate.
    repayments : Iterable[Repayment]
        Full repayment history of the loan, in any order.
    as_of : Any
        Evaluation date (default: today).
    include_schedule : bool
        Attach the fixed-term month-by-month breakdown.
    config : LedgerConfig | None
        Group settings.

    Returns
    -------
    LoanState
        Figures recomputed from scratch; nothing is cached.
    """
    config = config or LedgerConfig()
    repayments = list(repayments)

    if loan.strategy == AccrualStrategy.FIXED_TERM:
        as_of_date = date.today() if as_of is None else to_date(as_of, "as_of")
        paid = round_money(sum((amount for _, amount in ordered_payments(loan, repayments, as_of_date)), ZERO))
        interest, balance, rows = fixed_term_totals(loan.principal, loan.issue_date, paid, config)
        schedule = rows if include_schedule else None
    else:
        allocation = allocate(loan, repayments, as_of, include_schedule=include_schedule, config=config)
        as_of_date = allocation.as_of
        paid = allocation.total_paid
        interest = allocation.total_interest
        balance = allocation.balance
        schedule = allocation.schedule

    return LoanState(
        loan_id=loan.loan_id,
        principal=loan.principal,
        interest_amount=interest,
        total_amount=round_money(loan.principal + interest),
        total_paid=paid,
        balance=balance,
        status=loan.status,
        as_of=as_of_date,
        strategy=loan.strategy,
        schedule=schedule,
    )


def derive_status(loan: Loan, state: LoanState) -> LoanStatus:
    """Status implied by the balance, keeping manual states where they apply."""
    if state.is_fully_settled:
        return LoanStatus.COMPLETED
    if loan.status == LoanStatus.COMPLETED:
        return LoanStatus.ONGOING
    return loan.status


def validate_loan_edit(
    loan: Loan,
    repayments: Iterable[Repayment],
    *,
    principal: Any = None,
    issue_date: Any = None,
    annual_rate_percent: Any = None,
    due_date: Any = None,
    as_of: Any = None,
    config: LedgerConfig | None = None,
) -> Loan:
    """Apply an edit to a loan if existing repayments still fit.

    The edited loan is re-priced against its recorded repayments. The edit
    is refused only when it leaves the member more overpaid than before:
    an overpayment the loan already absorbed does not block edits that
    leave it unchanged (a new due date on a completed loan, say).

    Returns
    -------
    Loan
        Edited copy, with its status re-derived from the new balance.

    Raises
    ------
    ValidationError
        If an edited field is malformed.
    DomainRejection
        ``BALANCE_WOULD_GO_NEGATIVE`` if the edit increases the amount by
        which recorded repayments exceed the loan total.
    """
    changes: dict[str, Any] = {}
    if principal is not None:
        changes["principal"] = to_money(principal, "principal")
        if changes["principal"] <= 0:
            raise ValidationError(f"principal must be positive, got {changes['principal']}")
    if annual_rate_percent is not None:
        changes["annual_rate_percent"] = to_decimal(annual_rate_percent, "annual_rate_percent")
        if changes["annual_rate_percent"] < 0:
            raise ValidationError("annual_rate_percent must not be negative")
    if issue_date is not None:
        changes["issue_date"] = to_date(issue_date, "issue_date")
    if due_date is not None:
        changes["due_date"] = to_date(due_date, "due_date")

    new_issue = changes.get("issue_date", loan.issue_date)
    new_due = changes.get("due_date", loan.due_date)
    if new_issue > new_due:
        raise ValidationError(f"issue_date {new_issue} is after due_date {new_due}")

    repayments = list(repayments)
    before = compute_loan_state(loan, repayments, as_of, config=config)
    edited = replace(loan, **changes)
    state = compute_loan_state(edited, repayments, as_of, config=config)

    overpaid_before = max(ZERO, round_money(before.total_paid - before.total_amount))
    overpaid = max(ZERO, round_money(state.total_paid - state.total_amount))
    if overpaid > overpaid_before:
        logger.info(
            "Rejected edit of loan %s: repayments %s exceed new total %s",
            loan.loan_id,
            state.total_paid,
            state.total_amount,
            extra={"loan_id": loan.loan_id, "reason": RejectionReason.BALANCE_WOULD_GO_NEGATIVE},
        )
        raise DomainRejection(
            RejectionReason.BALANCE_WOULD_GO_NEGATIVE,
            f"Recorded repayments ({state.total_paid}) exceed the edited loan total ({state.total_amount})",
            {
                "total_paid": state.total_paid,
                "total_amount": state.total_amount,
                "balance": -overpaid,
            },
        )

    return replace(edited, status=derive_status(edited, state))


def record_repayment(
    loan: Loan,
    repayments: Iterable[Repayment],
    repayment: Repayment,
    *,
    reject_overpayment: bool | None = None,
    as_of: Any = None,
    config: LedgerConfig | None = None,
) -> RepaymentOutcome:
    """Validate a new repayment and work out the loan's resulting status.

    A loan in any status, Pending and Defaulted included, becomes
    ``COMPLETED`` once the repayment settles it. A partial payment never
    changes the status; ``PENDING`` loans are activated by an admin only.

    The loan is not mutated; callers persist ``outcome.repayment`` and
    ``outcome.status``.

    Parameters
    ----------
    loan : Loan
        Loan being repaid.
    repayments : Iterable[Repayment]
        Repayments already recorded.
    repayment : Repayment
        Repayment to record.
    reject_overpayment : bool | None
        Refuse payments above the live balance instead of absorbing the
        excess (default: ``config.reject_overpayment``).
    as_of : Any
        Evaluation date (default: today, or the payment date if later).
    config : LedgerConfig | None
        Group settings.

    Returns
    -------
    RepaymentOutcome
        Normalized repayment, the loan's new state and status.
    """
    config = config or LedgerConfig()
    if reject_overpayment is None:
        reject_overpayment = config.reject_overpayment

    if repayment.loan_id != loan.loan_id:
        raise ValidationError(f"Repayment {repayment.repayment_id} is not for loan {loan.loan_id}")
    amount = to_money(repayment.amount_paid, "amount_paid")
    if amount <= 0:
        raise ValidationError(f"amount_paid must be positive, got {amount}")
    paid_on = to_date(repayment.payment_date, "payment_date")
    if paid_on < loan.issue_date:
        raise ValidationError(f"payment_date {paid_on} precedes loan issue date {loan.issue_date}")

    existing = list(repayments)
    normalized = replace(repayment, amount_paid=amount, payment_date=paid_on)

    if reject_overpayment:
        before = compute_loan_state(loan, existing, paid_on, config=config)
        if amount > before.balance:
            logger.info(
                "Rejected repayment of %s on loan %s: balance is %s",
                amount,
                loan.loan_id,
                before.balance,
                extra={
                    "loan_id": loan.loan_id,
                    "reason": RejectionReason.PAYMENT_EXCEEDS_BALANCE,
                    "amount": amount,
                    "balance": before.balance,
                },
            )
            raise DomainRejection(
                RejectionReason.PAYMENT_EXCEEDS_BALANCE,
                f"Payment of {amount} exceeds loan balance of {before.balance}",
                {"balance": before.balance, "amount_paid": amount},
            )

    if as_of is None:
        as_of = max(date.today(), paid_on)
    state = compute_loan_state(loan, [*existing, normalized], as_of, config=config)

    status = loan.status
    if state.is_fully_settled and status != LoanStatus.COMPLETED:
        status = LoanStatus.COMPLETED
        logger.info(
            "Loan %s fully settled, marking %s",
            loan.loan_id,
            status.value,
            extra={"loan_id": loan.loan_id, "repayment_id": repayment.repayment_id, "status": status},
        )
    state.status = status

    return RepaymentOutcome(
        repayment=normalized,
        state=state,
        status=status,
        status_changed=status != loan.status,
    )


def change_status(
    loan: Loan,
    new_status: LoanStatus | str,
    repayments: Iterable[Repayment],
    as_of: Any = None,
    config: LedgerConfig | None = None,
) -> Loan:
    """Admin status change: approve, mark defaulted, or reinstate.

    ``COMPLETED`` cannot be set by hand; it follows from the balance. A loan
    reinstated to ``ONGOING`` with nothing left to pay comes back
    ``COMPLETED``, and a completed loan can only reopen if it owes money.

    Raises
    ------
    ValidationError
        If ``new_status`` is not a loan status.
    InvalidEntityStateError
        If the transition is not allowed.
    """
    try:
        target = LoanStatus(new_status)
    except ValueError as e:
        raise ValidationError(f"Invalid loan status: {new_status!r}") from e

    if target == loan.status:
        return loan
    if target == LoanStatus.COMPLETED:
        raise InvalidEntityStateError(
            f"Loan {loan.loan_id} cannot be marked {target.value} manually; it completes when repaid"
        )
    if target not in MANUAL_TRANSITIONS[loan.status]:
        raise InvalidEntityStateError(
            f"Loan {loan.loan_id} cannot move from {loan.status.value} to {target.value}"
        )

    state = compute_loan_state(loan, repayments, as_of, config=config)
    if target == LoanStatus.ONGOING and state.is_fully_settled:
        if loan.status == LoanStatus.COMPLETED:
            raise InvalidEntityStateError(f"Loan {loan.loan_id} is fully repaid and cannot be reopened")
        logger.info("Loan %s reinstated with zero balance, marking Completed", loan.loan_id)
        target = LoanStatus.COMPLETED

    logger.info(
        "Loan %s status %s -> %s",
        loan.loan_id,
        loan.status.value,
        target.value,
        extra={"loan_id": loan.loan_id, "status": target},
    )
    return replace(loan, status=target)

