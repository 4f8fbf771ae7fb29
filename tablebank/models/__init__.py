"""Domain models for the table-banking ledger."""

from tablebank.models.base import Event
from tablebank.models.enums import (
    OPEN_LOAN_STATUSES,
    AccrualStrategy,
    FineStatus,
    FundSource,
    LoanStatus,
    MemberStatus,
    RejectionReason,
)
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
from tablebank.models.results import (
    Allocation,
    AllocationEvent,
    AmortizationRow,
    ApprovalDecision,
    LoanRequest,
    LoanState,
    MemberContext,
    PoolSnapshot,
    RepaymentOutcome,
)

__all__ = [
    "OPEN_LOAN_STATUSES",
    "AccrualStrategy",
    "Allocation",
    "AllocationEvent",
    "AmortizationRow",
    "ApprovalDecision",
    "Contribution",
    "Event",
    "Expense",
    "ExternalFund",
    "Fine",
    "FineStatus",
    "FundSource",
    "Loan",
    "LoanRequest",
    "LoanState",
    "LoanStatus",
    "Member",
    "MemberContext",
    "MemberStatus",
    "PoolSnapshot",
    "RegistrationFee",
    "RejectionReason",
    "Repayment",
    "RepaymentOutcome",
]
