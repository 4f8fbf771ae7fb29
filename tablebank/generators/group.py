"""Synthetic lending group: members, savings, loans and repayments."""

import logging
import random
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal

from tablebank.core.money import add_months, round_money
from tablebank.generators.base import BaseGenerator
from tablebank.models.enums import FundSource, LoanStatus, MemberStatus
from tablebank.models.ledger import (
    Contribution,
    Expense,
    ExternalFund,
    Fine,
    Member,
    RegistrationFee,
    Repayment,
)
from tablebank.models.results import LoanRequest
from tablebank.store.ledger import LedgerStore

logger = logging.getLogger(__name__)


@dataclass
class SimulationStats:
    """What happened while populating a store."""

    approved: int = 0
    rejected: Counter = field(default_factory=Counter)
    repayments: int = 0
    completed: int = 0


class GroupGenerator(BaseGenerator):
    """Generate a table-banking group and run it through a ledger store.

    Loans go through ``LedgerStore.approve_loan`` and repayments through
    ``LedgerStore.add_repayment``, so the generated history obeys the same
    rules as live data.
    """

    MONTHLY_CONTRIBUTIONS = [500, 1000, 1500, 2000, 3000]
    EXPENSE_CATEGORIES = ["Stationery", "Meeting venue", "Refreshments", "Bank charges", "Transport"]
    FINE_REASONS = ["Late contribution", "Missed meeting", "Late arrival"]

    def __init__(self, seed: int | None = None, locale: str = "en_US") -> None:
        super().__init__(seed, locale)

    def generate_member(self, joined_date: date) -> Member:
        """Generate a member, mostly active."""
        return Member(
            member_id=self.fake.uuid4(),
            full_name=self.fake.name(),
            status=MemberStatus.ACTIVE if random.random() < 0.95 else MemberStatus.INACTIVE,
            phone=self.fake.phone_number(),
            joined_date=joined_date,
        )

    def populate(
        self,
        store: LedgerStore,
        num_members: int = 10,
        months: int = 6,
        start_date: date | None = None,
        loan_probability: float = 0.15,
    ) -> SimulationStats:
        """Fill a store with a group history.

        Parameters
        ----------
        store : LedgerStore
            Store to populate.
        num_members : int
            Group size.
        months : int
            Number of monthly meetings to simulate.
        start_date : date | None
            First meeting (default: ``months`` months before today).
        loan_probability : float
            Chance each member asks for a loan at a meeting.

        Returns
        -------
        SimulationStats
            Approval and repayment counts.
        """
        start = start_date or add_months(date.today(), -months)
        stats = SimulationStats()
        fee_amount = store.config.registration_fee_amount or Decimal("500")

        savings = {}
        for _ in range(num_members):
            member = self.generate_member(start)
            store.add_member(member)
            savings[member.member_id] = Decimal(random.choice(self.MONTHLY_CONTRIBUTIONS))
            if random.random() < 0.9:
                store.add_registration_fee(
                    RegistrationFee(
                        fee_id=self.fake.uuid4(),
                        member_id=member.member_id,
                        amount=fee_amount,
                        payment_date=start,
                    )
                )

        if random.random() < 0.5:
            store.add_external_fund(
                ExternalFund(
                    fund_id=self.fake.uuid4(),
                    source=random.choice(list(FundSource)),
                    amount=Decimal(random.randint(10, 50) * 1000),
                    received_date=start,
                    description=self.fake.sentence(nb_words=4),
                )
            )

        for month in range(months):
            meeting = add_months(start, month)
            self._monthly_meeting(store, meeting, savings, loan_probability, stats)

        logger.info(
            "Simulated %d members over %d months: %d loans approved, %d rejected, %d repayments",
            num_members,
            months,
            stats.approved,
            sum(stats.rejected.values()),
            stats.repayments,
        )
        return stats

    def _monthly_meeting(
        self,
        store: LedgerStore,
        meeting: date,
        savings: dict[str, Decimal],
        loan_probability: float,
        stats: SimulationStats,
    ) -> None:
        for member in list(store.members.values()):
            if member.status != MemberStatus.ACTIVE:
                continue
            store.add_contribution(
                Contribution(
                    contribution_id=self.fake.uuid4(),
                    member_id=member.member_id,
                    amount=savings[member.member_id],
                    contribution_date=meeting,
                    month=meeting.month,
                    year=meeting.year,
                )
            )
            if random.random() < 0.05:
                self._issue_fine(store, member, meeting)

        # Repayments on open loans, a few days after the meeting
        for loan in list(store.loans.values()):
            if loan.status != LoanStatus.ONGOING or loan.issue_date >= meeting:
                continue
            if random.random() < 0.1:
                continue
            paid_on = meeting + timedelta(days=random.randint(0, 5))
            balance = store.loan_state(loan.loan_id, as_of=paid_on).balance
            if balance <= 0:
                continue
            installment = round_money(loan.principal / 3 + balance * Decimal("0.05"))
            outcome = store.add_repayment(
                Repayment(
                    repayment_id=self.fake.uuid4(),
                    loan_id=loan.loan_id,
                    amount_paid=min(installment, balance),
                    payment_date=paid_on,
                    recorded_by="treasurer",
                ),
                as_of=paid_on,
            )
            stats.repayments += 1
            if outcome.status_changed and outcome.status == LoanStatus.COMPLETED:
                stats.completed += 1

        for member in list(store.members.values()):
            if random.random() >= loan_probability:
                continue
            self._request_loan(store, member, meeting, stats)

        if random.random() < 0.3:
            store.add_expense(
                Expense(
                    expense_id=self.fake.uuid4(),
                    amount=Decimal(random.randint(2, 20) * 50),
                    expense_date=meeting,
                    category=random.choice(self.EXPENSE_CATEGORIES),
                    description=self.fake.sentence(nb_words=5),
                )
            )

    def _request_loan(self, store: LedgerStore, member: Member, meeting: date, stats: SimulationStats) -> None:
        contributions = store.member_total_contributions(member.member_id)
        if contributions <= 0:
            return
        # Mostly within the member's limit, occasionally greedy
        factor = Decimal(str(random.uniform(0.5, 3.5)))
        amount = Decimal(int(contributions * factor / 100) * 100)
        if amount <= 0:
            return
        decision = store.approve_loan(
            LoanRequest(
                member_id=member.member_id,
                loan_amount=amount,
                issue_date=meeting,
                due_date=add_months(meeting, random.choice([3, 6, 12])),
                approved_by="admin",
            ),
            as_of=meeting,
        )
        if decision.accepted:
            stats.approved += 1
        else:
            stats.rejected[decision.reason.value] += 1

    def _issue_fine(self, store: LedgerStore, member: Member, meeting: date) -> None:
        fine = Fine(
            fine_id=self.fake.uuid4(),
            member_id=member.member_id,
            amount=store.config.default_fine_amount or Decimal("100"),
            issued_date=meeting,
            reason=random.choice(self.FINE_REASONS),
        )
        store.add_fine(fine)
        if random.random() < 0.7:
            store.pay_fine(fine.fine_id, meeting + timedelta(days=7))
