"""Member statements and group dashboard figures built on the ledger core."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Mapping

from tablebank.config import LedgerConfig
from tablebank.core.ledger import compute_loan_state
from tablebank.core.liquidity import build_pool_snapshot, compute_available_cash, group_repayments
from tablebank.core.money import ZERO, round_money, to_date, to_money
from tablebank.models.enums import LoanStatus, MemberStatus
from tablebank.models.ledger import (
    Contribution,
    Expense,
    ExternalFund,
    Fine,
    Loan,
    Member,
    RegistrationFee,
    Repayment,
)
from tablebank.models.results import LoanState, PoolSnapshot


@dataclass
class MemberStatement:
    """A member's savings against what they still owe."""

    member_id: str
    full_name: str
    total_contributions: Decimal
    outstanding_balance: Decimal
    net_position: Decimal
    loans: list[LoanState] = field(default_factory=list)


@dataclass
class GroupSummary:
    """Dashboard figures for the whole group."""

    active_members: int
    open_loans: int
    pool: Decimal
    available_cash: Decimal
    outstanding_balance: Decimal
    defaulted_balance: Decimal
    total_interest: Decimal
    snapshot: PoolSnapshot
    defaulted_loans: list[str] = field(default_factory=list)


@dataclass
class MonthlySummaryRow:
    """Group activity in one calendar month."""

    year: int
    month: int
    contributions: Decimal = ZERO
    loans_count: int = 0
    loans_principal: Decimal = ZERO
    loans_interest: Decimal = ZERO
    repayments: Decimal = ZERO


def member_statement(
    member: Member,
    contributions: Iterable[Contribution],
    loans: Iterable[Loan],
    repayments_by_loan: Mapping[str, list[Repayment]],
    as_of: Any = None,
    config: LedgerConfig | None = None,
) -> MemberStatement:
    """Build a statement for one member.

    Net position is total contributions less the live balance on every one
    of the member's loans.
    """
    total_contributions = round_money(
        sum((to_money(c.amount) for c in contributions if c.member_id == member.member_id), ZERO)
    )
    states = [
        compute_loan_state(loan, repayments_by_loan.get(loan.loan_id, []), as_of, config=config)
        for loan in loans
        if loan.member_id == member.member_id
    ]
    outstanding = round_money(sum((s.balance for s in states), ZERO))

    return MemberStatement(
        member_id=member.member_id,
        full_name=member.full_name,
        total_contributions=total_contributions,
        outstanding_balance=outstanding,
        net_position=round_money(total_contributions - outstanding),
        loans=states,
    )


def group_summary(
    *,
    members: Iterable[Member] = (),
    contributions: Iterable[Contribution] = (),
    loans: Iterable[Loan] = (),
    repayments: Iterable[Repayment] = (),
    external_funds: Iterable[ExternalFund] = (),
    registration_fees: Iterable[RegistrationFee] = (),
    fines: Iterable[Fine] = (),
    expenses: Iterable[Expense] = (),
    as_of: Any = None,
    config: LedgerConfig | None = None,
) -> GroupSummary:
    """Compute the group dashboard from raw ledger rows."""
    loans = list(loans)
    repayments = list(repayments)
    snapshot = build_pool_snapshot(
        contributions=contributions,
        repayments=repayments,
        external_funds=external_funds,
        registration_fees=registration_fees,
        fines=fines,
        expenses=expenses,
        loans=loans,
        as_of=as_of,
        config=config,
    )

    by_loan = group_repayments(repayments)
    defaulted = ZERO
    defaulted_loans: list[str] = []
    total_interest = ZERO
    for loan in loans:
        state = compute_loan_state(loan, by_loan.get(loan.loan_id, []), as_of, config=config)
        total_interest += state.interest_amount
        if loan.status == LoanStatus.DEFAULTED:
            defaulted += state.balance
            defaulted_loans.append(loan.loan_id)

    return GroupSummary(
        active_members=sum(1 for m in members if m.status == MemberStatus.ACTIVE),
        open_loans=sum(1 for loan in loans if loan.status in (LoanStatus.ONGOING, LoanStatus.PENDING)),
        pool=round_money(snapshot.pool),
        available_cash=compute_available_cash(snapshot),
        outstanding_balance=snapshot.outstanding_balance,
        defaulted_balance=round_money(defaulted),
        total_interest=round_money(total_interest),
        snapshot=snapshot,
        defaulted_loans=defaulted_loans,
    )


def portfolio_totals(
    loans: Iterable[Loan],
    repayments_by_loan: Mapping[str, list[Repayment]],
    as_of: Any = None,
    config: LedgerConfig | None = None,
) -> dict[str, Any]:
    """Loan count, total amount and total interest over a set of loans.

    Returns
    -------
    dict[str, Any]
        Portfolio totals, plus a per-status loan count.
    """
    count = 0
    total_amount = ZERO
    total_interest = ZERO
    status_counts: dict[LoanStatus, int] = {}
    for loan in loans:
        state = compute_loan_state(loan, repayments_by_loan.get(loan.loan_id, []), as_of, config=config)
        count += 1
        total_amount += state.total_amount
        total_interest += state.interest_amount
        status_counts[loan.status] = status_counts.get(loan.status, 0) + 1

    return {
        "count": count,
        "total_amount": round_money(total_amount),
        "total_interest": round_money(total_interest),
        "loan_status_distribution": status_counts,
    }


def monthly_summary(
    *,
    contributions: Iterable[Contribution] = (),
    loans: Iterable[Loan] = (),
    repayments: Iterable[Repayment] = (),
    as_of: Any = None,
    config: LedgerConfig | None = None,
) -> list[MonthlySummaryRow]:
    """Contributions, lending and repayments per calendar month.

    Contributions are grouped by their recorded ``month``/``year`` (falling
    back to the contribution date), loans by issue date and repayments by
    payment date. A loan's interest is its live interest as of ``as_of``,
    booked in the month it was issued. Repayments dated after ``as_of`` are
    left out.

    Returns
    -------
    list[MonthlySummaryRow]
        One row per month with any activity, oldest first.
    """
    as_of_date = date.today() if as_of is None else to_date(as_of, "as_of")
    repayments = [r for r in repayments if to_date(r.payment_date, "payment_date") <= as_of_date]
    rows: dict[tuple[int, int], MonthlySummaryRow] = {}

    def row_for(year: int, month: int) -> MonthlySummaryRow:
        if (year, month) not in rows:
            rows[(year, month)] = MonthlySummaryRow(year=year, month=month)
        return rows[(year, month)]

    for c in contributions:
        when = to_date(c.contribution_date, "contribution_date")
        row = row_for(c.year or when.year, c.month or when.month)
        row.contributions += to_money(c.amount)

    by_loan = group_repayments(repayments)
    for loan in loans:
        state = compute_loan_state(loan, by_loan.get(loan.loan_id, []), as_of_date, config=config)
        row = row_for(loan.issue_date.year, loan.issue_date.month)
        row.loans_count += 1
        row.loans_principal += loan.principal
        row.loans_interest += state.interest_amount

    for r in repayments:
        paid_on = to_date(r.payment_date, "payment_date")
        row_for(paid_on.year, paid_on.month).repayments += to_money(r.amount_paid)

    result = []
    for key in sorted(rows):
        row = rows[key]
        row.contributions = round_money(row.contributions)
        row.loans_principal = round_money(row.loans_principal)
        row.loans_interest = round_money(row.loans_interest)
        row.repayments = round_money(row.repayments)
        result.append(row)
    return result
