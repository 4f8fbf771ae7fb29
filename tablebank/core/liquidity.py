"""Group liquidity: how much pooled cash is actually free to lend."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Mapping

from tablebank.config import LedgerConfig
from tablebank.core.ledger import compute_loan_state
from tablebank.core.money import ZERO, round_money, to_date, to_money
from tablebank.models.enums import OPEN_LOAN_STATUSES, FineStatus
from tablebank.models.ledger import (
    Contribution,
    Expense,
    ExternalFund,
    Fine,
    Loan,
    RegistrationFee,
    Repayment,
)
from tablebank.models.results import PoolSnapshot

logger = logging.getLogger(__name__)


def _total(amounts: Iterable[Any]) -> Decimal:
    return round_money(sum((to_money(amount) for amount in amounts), ZERO))


def group_repayments(repayments: Iterable[Repayment]) -> dict[str, list[Repayment]]:
    """Index repayments by loan ID."""
    by_loan: dict[str, list[Repayment]] = defaultdict(list)
    for repayment in repayments:
        by_loan[repayment.loan_id].append(repayment)
    return dict(by_loan)


def compute_outstanding(
    loans: Iterable[Loan],
    repayments_by_loan: Mapping[str, list[Repayment]],
    as_of: Any = None,
    config: LedgerConfig | None = None,
) -> Decimal:
    """Sum of live balances over pending, ongoing and defaulted loans."""
    total = ZERO
    for loan in loans:
        if loan.status not in OPEN_LOAN_STATUSES:
            continue
        state = compute_loan_state(loan, repayments_by_loan.get(loan.loan_id, []), as_of, config=config)
        total += state.balance
    return round_money(total)


def build_pool_snapshot(
    *,
    contributions: Iterable[Contribution] = (),
    repayments: Iterable[Repayment] = (),
    external_funds: Iterable[ExternalFund] = (),
    registration_fees: Iterable[RegistrationFee] = (),
    fines: Iterable[Fine] = (),
    expenses: Iterable[Expense] = (),
    loans: Iterable[Loan] = (),
    as_of: Any = None,
    config: LedgerConfig | None = None,
) -> PoolSnapshot:
    """Aggregate raw ledger rows into a fresh pool snapshot.

    Only paid fines count. Repayments dated after ``as_of`` are left out of
    both the repaid total and the outstanding balances.
    """
    as_of_date = date.today() if as_of is None else to_date(as_of, "as_of")
    loans = list(loans)
    effective = [
        r for r in repayments if to_date(r.payment_date, "payment_date") <= as_of_date and to_money(r.amount_paid) > 0
    ]

    snapshot = PoolSnapshot(
        total_contributions=_total(c.amount for c in contributions),
        total_repaid=_total(r.amount_paid for r in effective),
        total_external=_total(f.amount for f in external_funds),
        total_reg_fees=_total(f.amount for f in registration_fees),
        total_fines_paid=_total(f.amount for f in fines if f.status == FineStatus.PAID),
        total_principal_lent=_total(loan.principal for loan in loans),
        total_expenses=_total(e.amount for e in expenses),
        outstanding_balance=compute_outstanding(loans, group_repayments(effective), as_of_date, config),
    )
    logger.debug("Pool snapshot as of %s: pool=%s outstanding=%s", as_of_date, snapshot.pool, snapshot.outstanding_balance)
    return snapshot


def compute_available_cash(snapshot: PoolSnapshot) -> Decimal:
    """Cash free to lend: every inflow, minus every outflow, minus money still out on loan.

    ``pool = contributions + repaid + external + registration fees + paid fines
    - principal lent - expenses`` and ``available = pool - outstanding``. The
    result may be negative, meaning there is no lending capacity.
    """
    return round_money(snapshot.available_cash)
