"""Tests for pool snapshots and available cash."""

from datetime import date
from decimal import Decimal

from tablebank.core.liquidity import (
    build_pool_snapshot,
    compute_available_cash,
    compute_outstanding,
    group_repayments,
)
from tablebank.models import (
    Contribution,
    Expense,
    ExternalFund,
    Fine,
    FineStatus,
    FundSource,
    Loan,
    LoanRequest,
    LoanStatus,
    PoolSnapshot,
    RegistrationFee,
    Repayment,
)


def _loan(loan_id: str, principal: str, status: LoanStatus = LoanStatus.ONGOING) -> Loan:
    return Loan(
        loan_id=loan_id,
        member_id="mem-001",
        principal=Decimal(principal),
        annual_rate_percent=Decimal("10"),
        issue_date=date(2024, 1, 1),
        due_date=date(2024, 12, 31),
        status=status,
    )


class TestAvailableCash:
    """Tests for compute_available_cash."""

    def test_guard_scenario(self) -> None:
        snapshot = PoolSnapshot(
            total_contributions=Decimal("50000"),
            total_repaid=Decimal("10000"),
            total_external=Decimal("0"),
            total_reg_fees=Decimal("5000"),
            total_fines_paid=Decimal("0"),
            total_principal_lent=Decimal("20000"),
            total_expenses=Decimal("2000"),
            outstanding_balance=Decimal("15000"),
        )

        assert snapshot.pool == Decimal("43000")
        assert compute_available_cash(snapshot) == Decimal("28000.00")

    def test_can_go_negative(self) -> None:
        snapshot = PoolSnapshot(total_contributions=Decimal("1000"), total_principal_lent=Decimal("1500"))
        assert compute_available_cash(snapshot) == Decimal("-500.00")

    def test_empty_group(self) -> None:
        assert compute_available_cash(PoolSnapshot()) == Decimal("0.00")


class TestBuildPoolSnapshot:
    """Tests for build_pool_snapshot."""

    def test_aggregates_every_source(self) -> None:
        loans = [_loan("l1", "3000"), _loan("l2", "2000", LoanStatus.COMPLETED)]
        repayments = [
            Repayment("r1", "l2", Decimal("2000"), date(2024, 1, 1)),
            Repayment("r2", "l1", Decimal("500"), date(2024, 1, 1)),
        ]
        snapshot = build_pool_snapshot(
            contributions=[Contribution("c1", "mem-001", Decimal("10000"), date(2023, 12, 1))],
            repayments=repayments,
            external_funds=[ExternalFund("e1", FundSource.FINANCIAL_AID, Decimal("1500"), date(2023, 12, 1))],
            registration_fees=[RegistrationFee("f1", "mem-001", Decimal("500"), date(2023, 1, 1))],
            fines=[
                Fine("fn1", "mem-001", Decimal("100"), date(2023, 12, 1), status=FineStatus.PAID),
                Fine("fn2", "mem-001", Decimal("100"), date(2023, 12, 1)),
            ],
            expenses=[Expense("x1", Decimal("250"), date(2023, 12, 1))],
            loans=loans,
            as_of=date(2024, 1, 1),
        )

        assert snapshot.total_contributions == Decimal("10000.00")
        assert snapshot.total_repaid == Decimal("2500.00")
        assert snapshot.total_external == Decimal("1500.00")
        assert snapshot.total_reg_fees == Decimal("500.00")
        assert snapshot.total_fines_paid == Decimal("100.00")
        assert snapshot.total_principal_lent == Decimal("5000.00")
        assert snapshot.total_expenses == Decimal("250.00")
        # Completed loan l2 does not count; l1 owes 3000 - 500
        assert snapshot.outstanding_balance == Decimal("2500.00")
        assert compute_available_cash(snapshot) == Decimal("6850.00")

    def test_future_repayments_excluded(self) -> None:
        loans = [_loan("l1", "3000")]
        repayments = [Repayment("r1", "l1", Decimal("1000"), date(2024, 2, 1))]

        snapshot = build_pool_snapshot(loans=loans, repayments=repayments, as_of=date(2024, 1, 1))

        assert snapshot.total_repaid == Decimal("0.00")
        assert snapshot.outstanding_balance == Decimal("3000.00")

    def test_outstanding_includes_accrued_interest(self) -> None:
        snapshot = build_pool_snapshot(loans=[_loan("l1", "10000")], as_of=date(2024, 7, 1))
        assert snapshot.outstanding_balance == Decimal("10498.63")


class TestOutstanding:
    """Tests for compute_outstanding."""

    def test_open_statuses_only(self) -> None:
        loans = [
            _loan("l1", "1000", LoanStatus.ONGOING),
            _loan("l2", "2000", LoanStatus.PENDING),
            _loan("l3", "4000", LoanStatus.DEFAULTED),
            _loan("l4", "8000", LoanStatus.COMPLETED),
        ]
        assert compute_outstanding(loans, {}, date(2024, 1, 1)) == Decimal("7000.00")

    def test_group_repayments(self) -> None:
        repayments = [
            Repayment("r1", "l1", Decimal("1"), date(2024, 1, 2)),
            Repayment("r2", "l2", Decimal("2"), date(2024, 1, 2)),
            Repayment("r3", "l1", Decimal("3"), date(2024, 1, 3)),
        ]
        grouped = group_repayments(repayments)

        assert [r.repayment_id for r in grouped["l1"]] == ["r1", "r3"]
        assert [r.repayment_id for r in grouped["l2"]] == ["r2"]


class TestCashDeltas:
    """How approvals and repayments move available cash."""

    def test_approval_counts_principal_twice(self, store, sample_member_id) -> None:
        as_of = date(2024, 1, 1)
        before = store.available_cash(as_of)

        decision = store.approve_loan(
            LoanRequest(sample_member_id, Decimal("1000"), as_of, date(2024, 6, 1)),
            as_of=as_of,
        )
        after = store.available_cash(as_of)

        assert decision.accepted
        assert before == Decimal("5500.00")
        # Principal leaves the pool and is also still owed
        assert before - after == Decimal("2000.00")

    def test_repayment_raises_cash(self, store, sample_member_id) -> None:
        as_of = date(2024, 1, 1)
        decision = store.approve_loan(
            LoanRequest(sample_member_id, Decimal("1000"), as_of, date(2024, 6, 1)),
            as_of=as_of,
        )
        before = store.available_cash(as_of)

        store.add_repayment(Repayment("r1", decision.loan.loan_id, Decimal("400"), as_of), as_of=as_of)

        assert store.available_cash(as_of) - before == Decimal("800.00")
