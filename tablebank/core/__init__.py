"""Loan interest-accrual, repayment and group liquidity computations.

Everything here is a pure function of the records passed in.
"""

from tablebank.core.accrual import accrue
from tablebank.core.allocation import allocate
from tablebank.core.approval import evaluate_loan_request
from tablebank.core.ledger import (
    change_status,
    compute_loan_state,
    derive_status,
    record_repayment,
    validate_loan_edit,
)
from tablebank.core.liquidity import (
    build_pool_snapshot,
    compute_available_cash,
    compute_outstanding,
    group_repayments,
)
from tablebank.core.reports import (
    GroupSummary,
    MemberStatement,
    MonthlySummaryRow,
    group_summary,
    member_statement,
    monthly_summary,
    portfolio_totals,
)
from tablebank.core.schedule import fixed_term_totals, preview_schedule

__all__ = [
    "GroupSummary",
    "MemberStatement",
    "MonthlySummaryRow",
    "accrue",
    "allocate",
    "build_pool_snapshot",
    "change_status",
    "compute_available_cash",
    "compute_loan_state",
    "compute_outstanding",
    "derive_status",
    "evaluate_loan_request",
    "fixed_term_totals",
    "group_repayments",
    "group_summary",
    "member_statement",
    "monthly_summary",
    "portfolio_totals",
    "preview_schedule",
    "record_repayment",
    "validate_loan_edit",
]
