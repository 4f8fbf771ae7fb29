"""Loan interest accrual, repayment allocation and group liquidity for table-banking groups."""

from tablebank.config import LedgerConfig, TableBankConfig
from tablebank.core import (
    accrue,
    allocate,
    build_pool_snapshot,
    change_status,
    compute_available_cash,
    compute_loan_state,
    compute_outstanding,
    evaluate_loan_request,
    group_summary,
    member_statement,
    monthly_summary,
    portfolio_totals,
    preview_schedule,
    record_repayment,
    validate_loan_edit,
)
from tablebank.exceptions import (
    ConfigurationError,
    DomainRejection,
    InvariantViolation,
    TableBankError,
    ValidationError,
)
from tablebank.models import AccrualStrategy, LoanStatus, RejectionReason

__version__ = "0.1.0"

__all__ = [
    "AccrualStrategy",
    "ConfigurationError",
    "DomainRejection",
    "InvariantViolation",
    "LedgerConfig",
    "LoanStatus",
    "RejectionReason",
    "TableBankConfig",
    "TableBankError",
    "ValidationError",
    "accrue",
    "allocate",
    "build_pool_snapshot",
    "change_status",
    "compute_available_cash",
    "compute_loan_state",
    "compute_outstanding",
    "evaluate_loan_request",
    "group_summary",
    "member_statement",
    "monthly_summary",
    "portfolio_totals",
    "preview_schedule",
    "record_repayment",
    "validate_loan_edit",
]
