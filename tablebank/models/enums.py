"""Enumeration types for table-banking ledger entities."""

from enum import Enum


class MemberStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


class LoanStatus(str, Enum):
    PENDING = "Pending"
    ONGOING = "Ongoing"
    COMPLETED = "Completed"
    DEFAULTED = "Defaulted"


class AccrualStrategy(str, Enum):
    CONTINUOUS_ACCRUAL = "CONTINUOUS_ACCRUAL"
    FIXED_TERM = "FIXED_TERM"


class FineStatus(str, Enum):
    UNPAID = "Unpaid"
    PAID = "Paid"


class FundSource(str, Enum):
    FINANCIAL_AID = "Financial Aid"
    GOVERNMENT_LOAN = "Government Loan"
    OTHER = "Other"


class RejectionReason(str, Enum):
    MEMBER_INACTIVE = "MEMBER_INACTIVE"
    NO_REGISTRATION_FEE = "NO_REGISTRATION_FEE"
    EXCEEDS_CONTRIBUTION_MULTIPLE = "EXCEEDS_CONTRIBUTION_MULTIPLE"
    INSUFFICIENT_POOL_FUNDS = "INSUFFICIENT_POOL_FUNDS"
    BALANCE_WOULD_GO_NEGATIVE = "BALANCE_WOULD_GO_NEGATIVE"
    PAYMENT_EXCEEDS_BALANCE = "PAYMENT_EXCEEDS_BALANCE"


# Loans whose live balance still counts against the pool
OPEN_LOAN_STATUSES = frozenset({LoanStatus.ONGOING, LoanStatus.PENDING, LoanStatus.DEFAULTED})
