"""Loan approval guard: member eligibility and group liquidity checks."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any

from tablebank.config import LedgerConfig
from tablebank.core.ledger import compute_loan_state
from tablebank.core.liquidity import compute_available_cash
from tablebank.core.money import round_money, to_date, to_decimal, to_money
from tablebank.exceptions import ValidationError
from tablebank.models.enums import LoanStatus, MemberStatus, RejectionReason
from tablebank.models.ledger import Loan
from tablebank.models.results import ApprovalDecision, LoanRequest, MemberContext, PoolSnapshot

logger = logging.getLogger(__name__)


def _reject(applicant: str, reason: RejectionReason, message: str, **details: Any) -> ApprovalDecision:
    details["message"] = message
    logger.info("Loan request rejected: %s", message, extra={"member_id": applicant, "reason": reason})
    return ApprovalDecision(accepted=False, reason=reason, details=details)


def evaluate_loan_request(
    request: LoanRequest,
    member: MemberContext,
    pool: PoolSnapshot,
    config: LedgerConfig | None = None,
    as_of: Any = None,
) -> ApprovalDecision:
    """Accept or reject a loan request.

    Checks run in order and the first failure wins:

    1. member must be active;
    2. member must have paid a registration fee;
    3. amount must not exceed the member's contributions times
       ``config.max_loan_multiplier``;
    4. amount must not exceed the group's available cash.

    An accepted request yields a new ``ONGOING`` loan and its initial state
    with no repayments, valued as of ``as_of`` exactly as a later
    ``compute_loan_state`` read would value it. Persisting the loan is up to
    the caller, which must hold the pool read and the insert in one
    serialized unit of work.

    Parameters
    ----------
    request : LoanRequest
        Requested loan.
    member : MemberContext
        Applicant's status, fee and contribution facts.
    pool : PoolSnapshot
        Freshly computed pool snapshot.
    config : LedgerConfig | None
        Group settings.
    as_of : Any
        Date the initial state is valued at (default: today).

    Returns
    -------
    ApprovalDecision
        Accepted decision with the loan, or rejected with a reason code.

    Raises
    ------
    ValidationError
        If the request itself is malformed.
    """
    config = config or LedgerConfig()

    if request.member_id != member.member_id:
        raise ValidationError(f"Member context {member.member_id} does not match request for {request.member_id}")
    amount = to_money(request.loan_amount, "loan_amount")
    if amount <= 0:
        raise ValidationError(f"loan_amount must be positive, got {amount}")
    issue_date = to_date(request.issue_date, "issue_date")
    due_date = to_date(request.due_date, "due_date")
    if issue_date > due_date:
        raise ValidationError(f"issue_date {issue_date} is after due_date {due_date}")
    if request.annual_rate_percent is None:
        rate = config.default_interest_rate
    else:
        rate = to_decimal(request.annual_rate_percent, "annual_rate_percent")
    if rate < 0:
        raise ValidationError("annual_rate_percent must not be negative")

    if member.status != MemberStatus.ACTIVE:
        return _reject(
            member.member_id,
            RejectionReason.MEMBER_INACTIVE,
            "Member must be Active to apply for loan",
            member_id=member.member_id,
        )

    if not member.has_registration_fee:
        return _reject(
            member.member_id,
            RejectionReason.NO_REGISTRATION_FEE,
            "Member must pay registration fee before applying for a loan",
            member_id=member.member_id,
        )

    multiplier = config.max_loan_multiplier
    max_allowed = round_money(to_money(member.total_contributions, "total_contributions") * multiplier)
    if amount > max_allowed:
        return _reject(
            member.member_id,
            RejectionReason.EXCEEDS_CONTRIBUTION_MULTIPLE,
            f"Loan cannot exceed {multiplier}x member contributions (max: {max_allowed})",
            requested=amount,
            max_allowed=max_allowed,
            multiplier=multiplier,
        )

    available = compute_available_cash(pool)
    if amount > available:
        return _reject(
            member.member_id,
            RejectionReason.INSUFFICIENT_POOL_FUNDS,
            f"Insufficient group funds. Available cash: {available}",
            requested=amount,
            available_cash=available,
        )

    loan = Loan(
        loan_id=request.loan_id or str(uuid.uuid4()),
        member_id=member.member_id,
        principal=amount,
        annual_rate_percent=rate,
        issue_date=issue_date,
        due_date=due_date,
        status=LoanStatus.ONGOING,
        strategy=request.strategy or config.accrual_strategy,
        created_at=datetime.now(),
        approved_by=request.approved_by,
    )
    state = compute_loan_state(loan, [], as_of, config=config)

    logger.info(
        "Approved loan %s for member %s: %s at %s%% (%s)",
        loan.loan_id,
        member.member_id,
        amount,
        rate,
        loan.strategy.value,
        extra={"loan_id": loan.loan_id, "member_id": member.member_id, "amount": amount},
    )
    return ApprovalDecision(accepted=True, loan=loan, state=state)
