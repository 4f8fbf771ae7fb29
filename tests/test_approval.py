"""Tests for the loan approval guard."""

import json
import logging
from datetime import date
from decimal import Decimal

import pytest

from tablebank.config import LedgerConfig
from tablebank.core.approval import evaluate_loan_request
from tablebank.core.ledger import compute_loan_state
from tablebank.exceptions import DomainRejection, ValidationError
from tablebank.logging import JsonFormatter
from tablebank.models import (
    AccrualStrategy,
    LoanRequest,
    LoanStatus,
    MemberContext,
    MemberStatus,
    PoolSnapshot,
    RejectionReason,
)


@pytest.fixture
def guard_pool() -> PoolSnapshot:
    """Pool of 43,000 with 15,000 outstanding: 28,000 available."""
    return PoolSnapshot(
        total_contributions=Decimal("50000"),
        total_repaid=Decimal("10000"),
        total_reg_fees=Decimal("5000"),
        total_principal_lent=Decimal("20000"),
        total_expenses=Decimal("2000"),
        outstanding_balance=Decimal("15000"),
    )


@pytest.fixture
def rich_pool() -> PoolSnapshot:
    """Pool with plenty of cash."""
    return PoolSnapshot(total_contributions=Decimal("1000000"))


def _member(contributions: str, status: MemberStatus = MemberStatus.ACTIVE, fee: bool = True) -> MemberContext:
    return MemberContext(
        member_id="mem-001",
        status=status,
        has_registration_fee=fee,
        total_contributions=Decimal(contributions),
    )


def _request(amount: str, **kwargs) -> LoanRequest:
    return LoanRequest(
        member_id="mem-001",
        loan_amount=amount,
        issue_date=kwargs.pop("issue_date", date(2024, 1, 1)),
        due_date=kwargs.pop("due_date", date(2024, 12, 31)),
        **kwargs,
    )


class TestRejections:
    """Each guard, in order."""

    def test_insufficient_pool_funds(self, guard_pool) -> None:
        decision = evaluate_loan_request(_request("30000"), _member("20000"), guard_pool)

        assert not decision.accepted
        assert decision.reason == RejectionReason.INSUFFICIENT_POOL_FUNDS
        assert decision.details["available_cash"] == Decimal("28000.00")
        assert decision.details["requested"] == Decimal("30000.00")
        assert decision.loan is None

    def test_exceeds_contribution_multiple(self, rich_pool) -> None:
        decision = evaluate_loan_request(_request("3500"), _member("1000"), rich_pool)

        assert decision.reason == RejectionReason.EXCEEDS_CONTRIBUTION_MULTIPLE
        assert decision.details["max_allowed"] == Decimal("3000.00")
        assert decision.details["multiplier"] == Decimal("3")

    def test_limit_is_inclusive(self, rich_pool) -> None:
        assert evaluate_loan_request(_request("3000"), _member("1000"), rich_pool).accepted

    def test_inactive_member(self, rich_pool) -> None:
        decision = evaluate_loan_request(_request("100"), _member("1000", MemberStatus.INACTIVE), rich_pool)
        assert decision.reason == RejectionReason.MEMBER_INACTIVE

    def test_no_registration_fee(self, rich_pool) -> None:
        decision = evaluate_loan_request(_request("100"), _member("1000", fee=False), rich_pool)
        assert decision.reason == RejectionReason.NO_REGISTRATION_FEE

    def test_first_failure_wins(self, guard_pool) -> None:
        member = _member("0", MemberStatus.INACTIVE, fee=False)
        decision = evaluate_loan_request(_request("99999"), member, guard_pool)
        assert decision.reason == RejectionReason.MEMBER_INACTIVE

    def test_custom_multiplier(self, rich_pool) -> None:
        config = LedgerConfig(max_loan_multiplier=Decimal("5"))
        assert evaluate_loan_request(_request("4500"), _member("1000"), rich_pool, config).accepted

    def test_raise_for_rejection(self, guard_pool) -> None:
        decision = evaluate_loan_request(_request("30000"), _member("20000"), guard_pool)

        with pytest.raises(DomainRejection) as exc_info:
            decision.raise_for_rejection()

        assert exc_info.value.reason == RejectionReason.INSUFFICIENT_POOL_FUNDS
        assert "28000.00" in str(exc_info.value)

    def test_rejection_logged_at_info(self, guard_pool, caplog) -> None:
        with caplog.at_level(logging.INFO, logger="tablebank.core.approval"):
            evaluate_loan_request(_request("30000"), _member("20000"), guard_pool)

        assert any(r.levelno == logging.INFO and "rejected" in r.getMessage() for r in caplog.records)

    def test_rejection_log_carries_ledger_context(self, guard_pool, caplog) -> None:
        with caplog.at_level(logging.INFO, logger="tablebank.core.approval"):
            evaluate_loan_request(_request("30000"), _member("20000"), guard_pool)

        record = next(r for r in caplog.records if "rejected" in r.getMessage())
        data = json.loads(JsonFormatter().format(record))

        assert data["member_id"] == "mem-001"
        assert data["reason"] == "INSUFFICIENT_POOL_FUNDS"


class TestAcceptance:
    """Accepted requests."""

    def test_accepted_loan(self, guard_pool) -> None:
        decision = evaluate_loan_request(_request("5000", approved_by="admin"), _member("20000"), guard_pool)

        assert decision.accepted
        assert decision.raise_for_rejection() is decision
        loan = decision.loan
        assert loan.principal == Decimal("5000.00")
        assert loan.status == LoanStatus.ONGOING
        assert loan.annual_rate_percent == Decimal("10")
        assert loan.strategy == AccrualStrategy.CONTINUOUS_ACCRUAL
        assert loan.approved_by == "admin"
        assert loan.loan_id

    def test_initial_state(self, guard_pool) -> None:
        decision = evaluate_loan_request(_request("5000"), _member("20000"), guard_pool, as_of=date(2024, 1, 1))

        state = decision.state
        assert state.balance == Decimal("5000.00")
        assert state.total_amount == Decimal("5000.00")
        assert state.interest_amount == Decimal("0.00")
        assert state.as_of == date(2024, 1, 1)

    def test_backdated_state_accrues_to_as_of(self, guard_pool) -> None:
        decision = evaluate_loan_request(_request("5000"), _member("20000"), guard_pool, as_of=date(2024, 7, 1))

        assert decision.state.interest_amount == Decimal("249.32")
        assert decision.state.balance == Decimal("5249.32")
        assert decision.state.as_of == date(2024, 7, 1)

    def test_state_matches_later_read(self, guard_pool) -> None:
        decision = evaluate_loan_request(_request("1000"), _member("20000"), guard_pool)
        live = compute_loan_state(decision.loan, [])

        assert decision.state.as_of == live.as_of == date.today()
        assert decision.state.balance == live.balance
        assert decision.state.interest_amount == live.interest_amount

    def test_request_overrides(self, rich_pool) -> None:
        request = _request(
            "900",
            annual_rate_percent="12.5",
            strategy=AccrualStrategy.FIXED_TERM,
            loan_id="loan-fixed",
        )
        decision = evaluate_loan_request(request, _member("1000"), rich_pool)

        assert decision.loan.loan_id == "loan-fixed"
        assert decision.loan.annual_rate_percent == Decimal("12.5")
        assert decision.loan.strategy == AccrualStrategy.FIXED_TERM
        assert decision.state.interest_amount == Decimal("180.00")

    def test_config_strategy_default(self, rich_pool) -> None:
        config = LedgerConfig(accrual_strategy=AccrualStrategy.FIXED_TERM)
        decision = evaluate_loan_request(_request("900"), _member("1000"), rich_pool, config)
        assert decision.loan.strategy == AccrualStrategy.FIXED_TERM


class TestMalformedRequests:
    """Malformed requests raise instead of returning a decision."""

    @pytest.mark.parametrize("amount", ["0", "-10", "lots", None])
    def test_bad_amount(self, rich_pool, amount) -> None:
        with pytest.raises(ValidationError):
            evaluate_loan_request(_request(amount), _member("1000"), rich_pool)

    def test_issue_after_due(self, rich_pool) -> None:
        with pytest.raises(ValidationError):
            evaluate_loan_request(
                _request("100", issue_date=date(2024, 6, 1), due_date=date(2024, 1, 1)),
                _member("1000"),
                rich_pool,
            )

    def test_member_mismatch(self, rich_pool) -> None:
        member = MemberContext("someone-else", MemberStatus.ACTIVE, True, Decimal("1000"))
        with pytest.raises(ValidationError):
            evaluate_loan_request(_request("100"), member, rich_pool)

    def test_negative_rate(self, rich_pool) -> None:
        with pytest.raises(ValidationError):
            evaluate_loan_request(_request("100", annual_rate_percent="-1"), _member("1000"), rich_pool)
