"""Ledger record models: members, loans, repayments and pool inflows/outflows."""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from tablebank.exceptions import InvariantViolation
from tablebank.models.enums import (
    AccrualStrategy,
    FineStatus,
    FundSource,
    LoanStatus,
    MemberStatus,
)


@dataclass
class Member:
    """Group member."""

    member_id: str
    full_name: str
    status: MemberStatus = MemberStatus.ACTIVE
    phone: str | None = None
    joined_date: date | None = None


@dataclass
class Loan:
    """Member loan funded from the group pool.

    ``principal`` and ``issue_date`` are only replaced through a validated
    edit (see ``tablebank.core.ledger.validate_loan_edit``).
    """

    loan_id: str
    member_id: str
    principal: Decimal
    annual_rate_percent: Decimal
    issue_date: date
    due_date: date
    status: LoanStatus = LoanStatus.ONGOING
    strategy: AccrualStrategy = AccrualStrategy.CONTINUOUS_ACCRUAL
    created_at: datetime | None = None
    approved_by: str | None = None

    def __post_init__(self) -> None:
        if not self.principal > 0:
            raise InvariantViolation(f"Loan {self.loan_id}: principal must be positive, got {self.principal}")
        if self.annual_rate_percent < 0:
            raise InvariantViolation(
                f"Loan {self.loan_id}: annual rate must not be negative, got {self.annual_rate_percent}"
            )
        if self.issue_date > self.due_date:
            raise InvariantViolation(
                f"Loan {self.loan_id}: issue date {self.issue_date} is after due date {self.due_date}"
            )


@dataclass
class Repayment:
    """Repayment recorded against a loan. Immutable once recorded."""

    repayment_id: str
    loan_id: str
    amount_paid: Decimal
    payment_date: date
    recorded_by: str | None = None
    sequence: int = 0  # insertion order, breaks same-day ties


@dataclass
class Contribution:
    """Periodic member savings contribution."""

    contribution_id: str
    member_id: str
    amount: Decimal
    contribution_date: date
    month: int | None = None
    year: int | None = None


@dataclass
class ExternalFund:
    """Money received from outside the group."""

    fund_id: str
    source: FundSource
    amount: Decimal
    received_date: date
    description: str | None = None


@dataclass
class RegistrationFee:
    """One-off membership registration fee."""

    fee_id: str
    member_id: str
    amount: Decimal
    payment_date: date


@dataclass
class Fine:
    """Fine issued to a member. Only paid fines reach the pool."""

    fine_id: str
    member_id: str
    amount: Decimal
    issued_date: date
    reason: str | None = None
    status: FineStatus = FineStatus.UNPAID
    payment_date: date | None = None


@dataclass
class Expense:
    """Group operating expense."""

    expense_id: str
    amount: Decimal
    expense_date: date
    category: str | None = None
    description: str | None = None
