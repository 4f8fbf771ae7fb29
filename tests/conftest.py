"""Pytest configuration and fixtures."""

from datetime import date
from decimal import Decimal

import pytest

from tablebank.config import LedgerConfig
from tablebank.models import Loan, Member, Repayment
from tablebank.store import LedgerStore


@pytest.fixture
def seed() -> int:
    """Fixed seed for reproducible tests."""
    return 42


@pytest.fixture
def config() -> LedgerConfig:
    """Default group settings."""
    return LedgerConfig()


@pytest.fixture
def sample_member_id() -> str:
    """Sample member ID."""
    return "mem-test-001"


@pytest.fixture
def sample_loan_id() -> str:
    """Sample loan ID."""
    return "loan-test-001"


@pytest.fixture
def loan(sample_loan_id: str, sample_member_id: str) -> Loan:
    """10,000 at 10% a year issued 2024-01-01."""
    return Loan(
        loan_id=sample_loan_id,
        member_id=sample_member_id,
        principal=Decimal("10000.00"),
        annual_rate_percent=Decimal("10"),
        issue_date=date(2024, 1, 1),
        due_date=date(2025, 1, 1),
    )


@pytest.fixture
def make_repayment(sample_loan_id: str):
    """Factory for repayments against the sample loan."""
    counter = {"n": 0}

    def _make(amount: str, paid_on: date, loan_id: str = sample_loan_id, sequence: int = 0) -> Repayment:
        counter["n"] += 1
        return Repayment(
            repayment_id=f"rep-{counter['n']:03d}",
            loan_id=loan_id,
            amount_paid=Decimal(amount),
            payment_date=paid_on,
            sequence=sequence,
        )

    return _make


@pytest.fixture
def member(sample_member_id: str) -> Member:
    """Active member."""
    return Member(member_id=sample_member_id, full_name="Jane Wanjiru", joined_date=date(2023, 1, 1))


@pytest.fixture
def store(config: LedgerConfig, member: Member) -> LedgerStore:
    """Store with one member who has paid the registration fee and saved 5,000."""
    from tablebank.models import Contribution, RegistrationFee

    store = LedgerStore(config=config)
    store.add_member(member)
    store.add_registration_fee(
        RegistrationFee(
            fee_id="fee-001",
            member_id=member.member_id,
            amount=Decimal("500"),
            payment_date=date(2023, 1, 1),
        )
    )
    for month in range(1, 6):
        store.add_contribution(
            Contribution(
                contribution_id=f"con-{month:03d}",
                member_id=member.member_id,
                amount=Decimal("1000"),
                contribution_date=date(2023, month, 5),
                month=month,
                year=2023,
            )
        )
    return store
