"""In-memory ledger store with referential integrity and serialized loan approval."""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable

from tablebank.config import LedgerConfig
from tablebank.core.approval import evaluate_loan_request
from tablebank.core.ledger import change_status, compute_loan_state, record_repayment, validate_loan_edit
from tablebank.core.liquidity import build_pool_snapshot, compute_available_cash
from tablebank.core.money import ZERO, round_money, to_money
from tablebank.core.reports import (
    GroupSummary,
    MemberStatement,
    MonthlySummaryRow,
    group_summary,
    member_statement,
    monthly_summary,
)
from tablebank.exceptions import EntityNotFoundError, InvalidEntityStateError, ReferentialIntegrityError
from tablebank.models.base import Event
from tablebank.models.enums import FineStatus, LoanStatus
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
    ApprovalDecision,
    LoanRequest,
    LoanState,
    MemberContext,
    PoolSnapshot,
    RepaymentOutcome,
)
from tablebank.sinks.serialization import to_dict_fast

logger = logging.getLogger(__name__)

EventListener = Callable[[Event], None]


@dataclass
class LedgerStore:
    """In-memory store for a lending group's ledger.

    Reads recompute balances from the stored rows every time. Writes that
    depend on pool state (loan approval, repayments, edits) run under one
    lock so two approvals can never both spend the same cash.
    """

    config: LedgerConfig = field(default_factory=LedgerConfig)

    members: dict[str, Member] = field(default_factory=dict)
    loans: dict[str, Loan] = field(default_factory=dict)
    contributions: list[Contribution] = field(default_factory=list)
    registration_fees: list[RegistrationFee] = field(default_factory=list)
    fines: dict[str, Fine] = field(default_factory=dict)
    external_funds: list[ExternalFund] = field(default_factory=list)
    expenses: list[Expense] = field(default_factory=list)

    listeners: list[EventListener] = field(default_factory=list)

    # Relationship indexes
    _loan_repayments: dict[str, list[Repayment]] = field(default_factory=dict)
    _member_loans: dict[str, list[str]] = field(default_factory=dict)
    _sequence: int = 0
    _lock: Any = field(default_factory=threading.RLock, repr=False, compare=False)

    # Insert methods
    def add_member(self, member: Member) -> None:
        """Add a member to the store."""
        self.members[member.member_id] = member
        self._member_loans.setdefault(member.member_id, [])

    def _require_member(self, member_id: str) -> Member:
        if member_id not in self.members:
            raise ReferentialIntegrityError(f"Member {member_id} not found")
        return self.members[member_id]

    def _require_loan(self, loan_id: str) -> Loan:
        if loan_id not in self.loans:
            raise EntityNotFoundError(f"Loan {loan_id} not found")
        return self.loans[loan_id]

    def add_contribution(self, contribution: Contribution) -> None:
        """Add a member contribution."""
        self._require_member(contribution.member_id)
        self.contributions.append(contribution)

    def add_registration_fee(self, fee: RegistrationFee) -> None:
        """Add a registration fee payment."""
        self._require_member(fee.member_id)
        self.registration_fees.append(fee)

    def add_fine(self, fine: Fine) -> None:
        """Add a fine issued to a member."""
        self._require_member(fine.member_id)
        self.fines[fine.fine_id] = fine

    def pay_fine(self, fine_id: str, payment_date: Any) -> Fine:
        """Mark a fine as paid so it counts towards the pool."""
        if fine_id not in self.fines:
            raise EntityNotFoundError(f"Fine {fine_id} not found")
        fine = self.fines[fine_id]
        if fine.status == FineStatus.PAID:
            raise InvalidEntityStateError(f"Fine {fine_id} is already paid")
        fine.status = FineStatus.PAID
        fine.payment_date = payment_date
        return fine

    def add_external_fund(self, fund: ExternalFund) -> None:
        """Add money received from outside the group."""
        self.external_funds.append(fund)

    def add_expense(self, expense: Expense) -> None:
        """Add a group expense."""
        self.expenses.append(expense)

    def add_loan(self, loan: Loan) -> None:
        """Insert an existing loan without approval checks (imports, fixtures)."""
        self._require_member(loan.member_id)
        self.loans[loan.loan_id] = loan
        self._member_loans[loan.member_id].append(loan.loan_id)
        self._loan_repayments.setdefault(loan.loan_id, [])

    # Query methods
    def get_member_loans(self, member_id: str) -> list[Loan]:
        """Get all loans for a member."""
        loan_ids = self._member_loans.get(member_id, [])
        return [self.loans[lid] for lid in loan_ids]

    def get_loan_repayments(self, loan_id: str) -> list[Repayment]:
        """Get all repayments for a loan, in insertion order."""
        return list(self._loan_repayments.get(loan_id, []))

    @property
    def repayments(self) -> list[Repayment]:
        """All repayments across loans."""
        return [r for rows in self._loan_repayments.values() for r in rows]

    def member_total_contributions(self, member_id: str) -> Decimal:
        """Sum of a member's contributions."""
        return round_money(sum((to_money(c.amount) for c in self.contributions if c.member_id == member_id), ZERO))

    def member_has_registration_fee(self, member_id: str) -> bool:
        """Whether the member has any registration fee record."""
        return any(fee.member_id == member_id for fee in self.registration_fees)

    def member_context(self, member_id: str) -> MemberContext:
        """Facts the approval guard needs about a member."""
        member = self._require_member(member_id)
        return MemberContext(
            member_id=member_id,
            status=member.status,
            has_registration_fee=self.member_has_registration_fee(member_id),
            total_contributions=self.member_total_contributions(member_id),
        )

    def pool_snapshot(self, as_of: Any = None) -> PoolSnapshot:
        """Fresh pool snapshot from every stored row."""
        return build_pool_snapshot(
            contributions=self.contributions,
            repayments=self.repayments,
            external_funds=self.external_funds,
            registration_fees=self.registration_fees,
            fines=self.fines.values(),
            expenses=self.expenses,
            loans=self.loans.values(),
            as_of=as_of,
            config=self.config,
        )

    def available_cash(self, as_of: Any = None) -> Decimal:
        """Cash currently free to lend."""
        return compute_available_cash(self.pool_snapshot(as_of))

    def loan_state(self, loan_id: str, as_of: Any = None, include_schedule: bool = False) -> LoanState:
        """Live figures for one loan."""
        loan = self._require_loan(loan_id)
        return compute_loan_state(
            loan,
            self.get_loan_repayments(loan_id),
            as_of,
            include_schedule=include_schedule,
            config=self.config,
        )

    def group_summary(self, as_of: Any = None) -> GroupSummary:
        """Dashboard figures for the group."""
        return group_summary(
            members=self.members.values(),
            contributions=self.contributions,
            loans=self.loans.values(),
            repayments=self.repayments,
            external_funds=self.external_funds,
            registration_fees=self.registration_fees,
            fines=self.fines.values(),
            expenses=self.expenses,
            as_of=as_of,
            config=self.config,
        )

    def monthly_summary(self, as_of: Any = None) -> list[MonthlySummaryRow]:
        """Per-month contributions, lending and repayments."""
        return monthly_summary(
            contributions=self.contributions,
            loans=self.loans.values(),
            repayments=self.repayments,
            as_of=as_of,
            config=self.config,
        )

    def member_statement(self, member_id: str, as_of: Any = None) -> MemberStatement:
        """Statement of contributions against outstanding loans for a member."""
        member = self._require_member(member_id)
        return member_statement(
            member,
            self.contributions,
            self.get_member_loans(member_id),
            self._loan_repayments,
            as_of,
            config=self.config,
        )

    # Serialized writes
    def approve_loan(self, request: LoanRequest, as_of: Any = None) -> ApprovalDecision:
        """Evaluate a loan request and insert the loan if accepted.

        Reading the pool, deciding and inserting happen under the store lock.
        """
        with self._lock:
            member = self.member_context(request.member_id)
            pool = self.pool_snapshot(as_of)
            decision = evaluate_loan_request(request, member, pool, self.config, as_of=as_of)
            if decision.accepted:
                if decision.loan.loan_id in self.loans:
                    raise InvalidEntityStateError(f"Loan {decision.loan.loan_id} already exists")
                self.add_loan(decision.loan)
                self._emit("loan.approved", decision.loan.loan_id, decision.loan)
            return decision

    def add_repayment(self, repayment: Repayment, as_of: Any = None) -> RepaymentOutcome:
        """Record a repayment and complete the loan if it is now settled."""
        with self._lock:
            loan = self._require_loan(repayment.loan_id)
            self._sequence += 1
            outcome = record_repayment(
                loan,
                self._loan_repayments[loan.loan_id],
                Repayment(
                    repayment_id=repayment.repayment_id,
                    loan_id=repayment.loan_id,
                    amount_paid=repayment.amount_paid,
                    payment_date=repayment.payment_date,
                    recorded_by=repayment.recorded_by,
                    sequence=self._sequence,
                ),
                as_of=as_of,
                config=self.config,
            )
            self._loan_repayments[loan.loan_id].append(outcome.repayment)
            if outcome.status_changed:
                self.loans[loan.loan_id] = replace(loan, status=outcome.status)
            self._emit("repayment.recorded", loan.loan_id, outcome.repayment)
            if outcome.status_changed and outcome.status == LoanStatus.COMPLETED:
                self._emit("loan.completed", loan.loan_id, outcome.state)
            return outcome

    def edit_loan(self, loan_id: str, as_of: Any = None, **changes: Any) -> Loan:
        """Edit a loan's terms; refused if recorded repayments would exceed the new total."""
        with self._lock:
            loan = self._require_loan(loan_id)
            edited = validate_loan_edit(
                loan,
                self._loan_repayments[loan_id],
                as_of=as_of,
                config=self.config,
                **changes,
            )
            self.loans[loan_id] = edited
            self._emit("loan.updated", loan_id, edited)
            return edited

    def set_loan_status(self, loan_id: str, status: LoanStatus | str, as_of: Any = None) -> Loan:
        """Admin status change (approve, default, reinstate)."""
        with self._lock:
            loan = self._require_loan(loan_id)
            updated = change_status(loan, status, self._loan_repayments[loan_id], as_of, self.config)
            if updated is not loan:
                self.loans[loan_id] = updated
                self._emit("loan.status_changed", loan_id, updated)
            return updated

    def delete_loan(self, loan_id: str) -> None:
        """Delete a loan and its repayments."""
        with self._lock:
            loan = self._require_loan(loan_id)
            del self.loans[loan_id]
            self._member_loans[loan.member_id].remove(loan_id)
            removed = self._loan_repayments.pop(loan_id, [])
            logger.info("Deleted loan %s with %d repayments", loan_id, len(removed))

    def _emit(self, event_type: str, subject: str, payload: Any) -> None:
        if not self.listeners:
            return
        event = Event(
            event_id=str(uuid.uuid4()),
            event_type=event_type,
            event_time=datetime.now(),
            source="tablebank",
            subject=subject,
            data=to_dict_fast(payload),
        )
        for listener in self.listeners:
            listener(event)

    def summary(self) -> dict[str, int]:
        """Return summary counts of all entities."""
        return {
            "members": len(self.members),
            "loans": len(self.loans),
            "repayments": sum(len(rows) for rows in self._loan_repayments.values()),
            "contributions": len(self.contributions),
            "registration_fees": len(self.registration_fees),
            "fines": len(self.fines),
            "external_funds": len(self.external_funds),
            "expenses": len(self.expenses),
        }
