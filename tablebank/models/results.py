"""Derived values computed by the ledger core. None of these are persisted."""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

from tablebank.models.enums import AccrualStrategy, LoanStatus, MemberStatus, RejectionReason
from tablebank.models.ledger import Loan, Repayment

ZERO = Decimal("0.00")


@dataclass
class AmortizationRow:
    """One month of a fixed-term repayment schedule."""

    month: int
    opening_balance: Decimal
    interest: Decimal
    principal_paid: Decimal
    total_installment: Decimal
    closing_balance: Decimal
    due_date: date


@dataclass
class AllocationEvent:
    """Effect of a single repayment on a running loan balance."""

    payment_date: date
    days: int
    interest: Decimal
    amount_paid: Decimal
    balance_after: Decimal
    absorbed: Decimal = ZERO  # overpayment clamped away, not carried as credit


@dataclass
class Allocation:
    """Result of replaying repayments against a loan."""

    balance: Decimal
    total_interest: Decimal
    total_paid: Decimal
    as_of: date
    events: list[AllocationEvent] = field(default_factory=list)
    schedule: list[AmortizationRow] | None = None


@dataclass
class LoanState:
    """Live figures for a loan as of a given date."""

    loan_id: str
    principal: Decimal
    interest_amount: Decimal
    total_amount: Decimal
    total_paid: Decimal
    balance: Decimal
    status: LoanStatus
    as_of: date
    strategy: AccrualStrategy = AccrualStrategy.CONTINUOUS_ACCRUAL
    schedule: list[AmortizationRow] | None = None

    @property
    def is_fully_settled(self) -> bool:
        return self.balance <= 0


@dataclass
class PoolSnapshot:
    """Aggregate cash figures for the whole group, computed fresh per check."""

    total_contributions: Decimal = ZERO
    total_repaid: Decimal = ZERO
    total_external: Decimal = ZERO
    total_reg_fees: Decimal = ZERO
    total_fines_paid: Decimal = ZERO
    total_principal_lent: Decimal = ZERO
    total_expenses: Decimal = ZERO
    outstanding_balance: Decimal = ZERO

    @property
    def pool(self) -> Decimal:
        """Every recorded inflow minus every recorded outflow."""
        return (
            self.total_contributions
            + self.total_repaid
            + self.total_external
            + self.total_reg_fees
            + self.total_fines_paid
            - self.total_principal_lent
            - self.total_expenses
        )

    @property
    def available_cash(self) -> Decimal:
        return self.pool - self.outstanding_balance


@dataclass
class LoanRequest:
    """Loan application submitted for approval."""

    member_id: str
    loan_amount: Any
    issue_date: Any
    due_date: Any
    annual_rate_percent: Any = None
    strategy: AccrualStrategy | None = None
    approved_by: str | None = None
    loan_id: str | None = None


@dataclass
class MemberContext:
    """What the approval guard needs to know about the applicant."""

    member_id: str
    status: MemberStatus
    has_registration_fee: bool
    total_contributions: Decimal


@dataclass
class ApprovalDecision:
    """Outcome of evaluating a loan request."""

    accepted: bool
    reason: RejectionReason | None = None
    details: dict[str, Any] = field(default_factory=dict)
    loan: Loan | None = None
    state: LoanState | None = None

    def raise_for_rejection(self) -> "ApprovalDecision":
        """Raise ``DomainRejection`` if the request was refused."""
        if not self.accepted:
            from tablebank.exceptions import DomainRejection

            raise DomainRejection(self.reason, self.details.get("message"), self.details)
        return self


@dataclass
class RepaymentOutcome:
    """Result of recording a repayment against a loan."""

    repayment: Repayment
    state: LoanState
    status: LoanStatus
    status_changed: bool
