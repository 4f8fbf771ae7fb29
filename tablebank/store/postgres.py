"""PostgreSQL-backed ledger store using psycopg."""

import logging
from dataclasses import fields, is_dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from tablebank.config import LedgerConfig
from tablebank.core.approval import evaluate_loan_request
from tablebank.core.ledger import compute_loan_state, record_repayment
from tablebank.core.liquidity import compute_outstanding, group_repayments
from tablebank.core.money import to_date
from tablebank.exceptions import EntityNotFoundError, ReferentialIntegrityError
from tablebank.models.enums import OPEN_LOAN_STATUSES, AccrualStrategy, LoanStatus, MemberStatus
from tablebank.models.ledger import Loan, Repayment
from tablebank.models.results import (
    ApprovalDecision,
    LoanRequest,
    LoanState,
    MemberContext,
    PoolSnapshot,
    RepaymentOutcome,
)
from tablebank.sinks.serialization import serialize_value

logger = logging.getLogger(__name__)

DDL = """
CREATE TABLE IF NOT EXISTS members (
    member_id VARCHAR(64) PRIMARY KEY,
    full_name VARCHAR(255) NOT NULL,
    status VARCHAR(16) NOT NULL DEFAULT 'Active',
    phone VARCHAR(32),
    joined_date DATE
);
CREATE TABLE IF NOT EXISTS registration_fees (
    fee_id VARCHAR(64) PRIMARY KEY,
    member_id VARCHAR(64) NOT NULL REFERENCES members(member_id) ON DELETE CASCADE,
    amount NUMERIC(15, 2) NOT NULL,
    payment_date DATE NOT NULL
);
CREATE TABLE IF NOT EXISTS contributions (
    contribution_id VARCHAR(64) PRIMARY KEY,
    member_id VARCHAR(64) NOT NULL REFERENCES members(member_id) ON DELETE CASCADE,
    amount NUMERIC(15, 2) NOT NULL,
    contribution_date DATE NOT NULL,
    month INT,
    year INT
);
CREATE TABLE IF NOT EXISTS fines (
    fine_id VARCHAR(64) PRIMARY KEY,
    member_id VARCHAR(64) NOT NULL REFERENCES members(member_id) ON DELETE CASCADE,
    amount NUMERIC(15, 2) NOT NULL,
    issued_date DATE NOT NULL,
    reason VARCHAR(255),
    status VARCHAR(16) NOT NULL DEFAULT 'Unpaid',
    payment_date DATE
);
CREATE TABLE IF NOT EXISTS external_funds (
    fund_id VARCHAR(64) PRIMARY KEY,
    source VARCHAR(32) NOT NULL,
    amount NUMERIC(15, 2) NOT NULL,
    received_date DATE NOT NULL,
    description VARCHAR(255)
);
CREATE TABLE IF NOT EXISTS expenses (
    expense_id VARCHAR(64) PRIMARY KEY,
    amount NUMERIC(15, 2) NOT NULL,
    expense_date DATE NOT NULL,
    category VARCHAR(100),
    description VARCHAR(255)
);
CREATE TABLE IF NOT EXISTS loans (
    loan_id VARCHAR(64) PRIMARY KEY,
    member_id VARCHAR(64) NOT NULL REFERENCES members(member_id) ON DELETE CASCADE,
    principal NUMERIC(15, 2) NOT NULL CHECK (principal > 0),
    annual_rate_percent NUMERIC(7, 4) NOT NULL CHECK (annual_rate_percent >= 0),
    issue_date DATE NOT NULL,
    due_date DATE NOT NULL,
    status VARCHAR(16) NOT NULL DEFAULT 'Ongoing',
    strategy VARCHAR(32) NOT NULL DEFAULT 'CONTINUOUS_ACCRUAL',
    created_at TIMESTAMP,
    approved_by VARCHAR(64)
);
CREATE TABLE IF NOT EXISTS repayments (
    repayment_id VARCHAR(64) PRIMARY KEY,
    loan_id VARCHAR(64) NOT NULL REFERENCES loans(loan_id) ON DELETE CASCADE,
    amount_paid NUMERIC(15, 2) NOT NULL CHECK (amount_paid > 0),
    payment_date DATE NOT NULL,
    recorded_by VARCHAR(64),
    sequence BIGINT NOT NULL DEFAULT 0
);
"""

POOL_TOTALS_SQL = """
SELECT
    (SELECT COALESCE(SUM(amount), 0) FROM contributions),
    (SELECT COALESCE(SUM(amount_paid), 0) FROM repayments
        WHERE payment_date <= %(as_of)s AND amount_paid > 0),
    (SELECT COALESCE(SUM(amount), 0) FROM external_funds),
    (SELECT COALESCE(SUM(amount), 0) FROM registration_fees),
    (SELECT COALESCE(SUM(amount), 0) FROM fines WHERE status = 'Paid'),
    (SELECT COALESCE(SUM(principal), 0) FROM loans),
    (SELECT COALESCE(SUM(amount), 0) FROM expenses)
"""

MEMBER_CONTEXT_SQL = """
SELECT
    m.status,
    EXISTS (SELECT 1 FROM registration_fees f WHERE f.member_id = m.member_id),
    (SELECT COALESCE(SUM(c.amount), 0) FROM contributions c WHERE c.member_id = m.member_id)
FROM members m
WHERE m.member_id = %s
"""


class PostgresLedgerStore:
    """Ledger store backed by PostgreSQL.

    Loan approval and repayment recording each run in one SERIALIZABLE
    transaction, so concurrent approvals cannot overdraw the pool.
    """

    # Insert order respects foreign keys
    ENTITY_ORDER = [
        "members",
        "registration_fees",
        "contributions",
        "fines",
        "external_funds",
        "expenses",
        "loans",
        "repayments",
    ]

    TABLE_COLUMNS = {
        "members": ["member_id", "full_name", "status", "phone", "joined_date"],
        "registration_fees": ["fee_id", "member_id", "amount", "payment_date"],
        "contributions": ["contribution_id", "member_id", "amount", "contribution_date", "month", "year"],
        "fines": ["fine_id", "member_id", "amount", "issued_date", "reason", "status", "payment_date"],
        "external_funds": ["fund_id", "source", "amount", "received_date", "description"],
        "expenses": ["expense_id", "amount", "expense_date", "category", "description"],
        "loans": [
            "loan_id",
            "member_id",
            "principal",
            "annual_rate_percent",
            "issue_date",
            "due_date",
            "status",
            "strategy",
            "created_at",
            "approved_by",
        ],
        "repayments": ["repayment_id", "loan_id", "amount_paid", "payment_date", "recorded_by", "sequence"],
    }

    def __init__(self, connection_string: str, config: LedgerConfig | None = None) -> None:
        """Connect to PostgreSQL.

        Parameters
        ----------
        connection_string : str
            libpq connection string or URL.
        config : LedgerConfig | None
            Group settings used for every evaluation.
        """
        try:
            import psycopg
        except ImportError as e:
            raise ImportError("psycopg is required for PostgresLedgerStore: pip install 'psycopg[binary]'") from e

        self._psycopg = psycopg
        self.config = config or LedgerConfig()
        self.conn = psycopg.connect(connection_string)
        self.conn.isolation_level = psycopg.IsolationLevel.SERIALIZABLE

    def create_tables(self) -> None:
        """Create the ledger tables if they do not exist."""
        with self.conn.cursor() as cur:
            for statement in DDL.split(";"):
                if statement.strip():
                    cur.execute(statement)
        self.conn.commit()
        logger.info("Ledger tables ready")

    def truncate_tables(self) -> None:
        """Remove all ledger rows."""
        with self.conn.cursor() as cur:
            cur.execute(f"TRUNCATE {', '.join(reversed(self.ENTITY_ORDER))} CASCADE")
        self.conn.commit()

    def write_batch(self, entity_type: str, records: list[Any]) -> None:
        """Bulk insert records into a ledger table."""
        if not records:
            return
        columns = self.TABLE_COLUMNS.get(entity_type)
        if columns is None:
            logger.warning("Unknown entity type %s, skipping %d records", entity_type, len(records))
            return

        rows = [self._row(record, columns) for record in records]
        placeholders = ", ".join(["%s"] * len(columns))
        sql = f"INSERT INTO {entity_type} ({', '.join(columns)}) VALUES ({placeholders})"  # noqa: S608

        with self.conn.cursor() as cur:
            cur.executemany(sql, rows)
        self.conn.commit()
        logger.info("Inserted %d rows into %s", len(rows), entity_type)

    def load_store(self, store: Any) -> None:
        """Copy every table of an in-memory ``LedgerStore`` into the database."""
        tables = {
            "members": list(store.members.values()),
            "registration_fees": store.registration_fees,
            "contributions": store.contributions,
            "fines": list(store.fines.values()),
            "external_funds": store.external_funds,
            "expenses": store.expenses,
            "loans": list(store.loans.values()),
            "repayments": sorted(store.repayments, key=lambda r: r.sequence),
        }
        for entity_type in self.ENTITY_ORDER:
            self.write_batch(entity_type, tables[entity_type])

    # Reads
    def _member_context(self, cur: Any, member_id: str) -> MemberContext:
        cur.execute(MEMBER_CONTEXT_SQL, (member_id,))
        row = cur.fetchone()
        if row is None:
            raise ReferentialIntegrityError(f"Member {member_id} not found")
        status, has_fee, contributions = row
        return MemberContext(
            member_id=member_id,
            status=MemberStatus(status),
            has_registration_fee=bool(has_fee),
            total_contributions=Decimal(contributions),
        )

    def _pool_snapshot(self, cur: Any, as_of: date) -> PoolSnapshot:
        cur.execute(POOL_TOTALS_SQL, {"as_of": as_of})
        totals = [Decimal(value) for value in cur.fetchone()]

        statuses = [status.value for status in OPEN_LOAN_STATUSES]
        cur.execute(
            f"SELECT {', '.join(self.TABLE_COLUMNS['loans'])} FROM loans WHERE status = ANY(%s)",  # noqa: S608
            (statuses,),
        )
        loans = [self._loan_from_row(row) for row in cur.fetchall()]
        repayments = self._fetch_repayments(cur, [loan.loan_id for loan in loans])
        outstanding = compute_outstanding(loans, group_repayments(repayments), as_of, self.config)

        return PoolSnapshot(*totals, outstanding_balance=outstanding)

    def _fetch_loan(self, cur: Any, loan_id: str, for_update: bool = False) -> Loan:
        sql = f"SELECT {', '.join(self.TABLE_COLUMNS['loans'])} FROM loans WHERE loan_id = %s"  # noqa: S608
        if for_update:
            sql += " FOR UPDATE"
        cur.execute(sql, (loan_id,))
        row = cur.fetchone()
        if row is None:
            raise EntityNotFoundError(f"Loan {loan_id} not found")
        return self._loan_from_row(row)

    def _fetch_repayments(self, cur: Any, loan_ids: list[str]) -> list[Repayment]:
        if not loan_ids:
            return []
        cur.execute(
            f"SELECT {', '.join(self.TABLE_COLUMNS['repayments'])} FROM repayments WHERE loan_id = ANY(%s)",  # noqa: S608
            (loan_ids,),
        )
        return [
            Repayment(
                repayment_id=row[0],
                loan_id=row[1],
                amount_paid=Decimal(row[2]),
                payment_date=row[3],
                recorded_by=row[4],
                sequence=row[5],
            )
            for row in cur.fetchall()
        ]

    def member_context(self, member_id: str) -> MemberContext:
        """Facts the approval guard needs about a member."""
        with self.conn.cursor() as cur:
            return self._member_context(cur, member_id)

    def pool_snapshot(self, as_of: Any = None) -> PoolSnapshot:
        """Pool totals from SQL aggregates plus live outstanding balances."""
        as_of = date.today() if as_of is None else to_date(as_of, "as_of")
        with self.conn.transaction():
            with self.conn.cursor() as cur:
                return self._pool_snapshot(cur, as_of)

    def loan_state(self, loan_id: str, as_of: Any = None, include_schedule: bool = False) -> LoanState:
        """Live figures for one loan."""
        with self.conn.transaction():
            with self.conn.cursor() as cur:
                loan = self._fetch_loan(cur, loan_id)
                repayments = self._fetch_repayments(cur, [loan_id])
        return compute_loan_state(loan, repayments, as_of, include_schedule=include_schedule, config=self.config)

    # Serialized writes
    def approve_loan(self, request: LoanRequest, as_of: Any = None) -> ApprovalDecision:
        """Evaluate and insert a loan inside one SERIALIZABLE transaction.

        Nothing is written when the request is rejected. A concurrent
        approval that read the same pool fails with a serialization error
        and can be retried by the caller.
        """
        as_of = date.today() if as_of is None else to_date(as_of, "as_of")
        with self.conn.transaction():
            with self.conn.cursor() as cur:
                member = self._member_context(cur, request.member_id)
                pool = self._pool_snapshot(cur, as_of)
                decision = evaluate_loan_request(request, member, pool, self.config, as_of=as_of)
                if decision.accepted:
                    columns = self.TABLE_COLUMNS["loans"]
                    placeholders = ", ".join(["%s"] * len(columns))
                    cur.execute(
                        f"INSERT INTO loans ({', '.join(columns)}) VALUES ({placeholders})",  # noqa: S608
                        self._row(decision.loan, columns),
                    )
                    logger.info("Loan %s approved for member %s", decision.loan.loan_id, request.member_id)
        return decision

    def add_repayment(self, repayment: Repayment, as_of: Any = None) -> RepaymentOutcome:
        """Record a repayment, locking the loan row, and complete the loan if settled."""
        with self.conn.transaction():
            with self.conn.cursor() as cur:
                loan = self._fetch_loan(cur, repayment.loan_id, for_update=True)
                existing = self._fetch_repayments(cur, [loan.loan_id])
                next_sequence = max((r.sequence for r in existing), default=0) + 1
                repayment = Repayment(
                    repayment_id=repayment.repayment_id,
                    loan_id=repayment.loan_id,
                    amount_paid=repayment.amount_paid,
                    payment_date=repayment.payment_date,
                    recorded_by=repayment.recorded_by,
                    sequence=next_sequence,
                )
                outcome = record_repayment(loan, existing, repayment, as_of=as_of, config=self.config)
                columns = self.TABLE_COLUMNS["repayments"]
                placeholders = ", ".join(["%s"] * len(columns))
                cur.execute(
                    f"INSERT INTO repayments ({', '.join(columns)}) VALUES ({placeholders})",  # noqa: S608
                    self._row(outcome.repayment, columns),
                )
                if outcome.status_changed:
                    cur.execute(
                        "UPDATE loans SET status = %s WHERE loan_id = %s",
                        (outcome.status.value, loan.loan_id),
                    )
        return outcome

    def close(self) -> None:
        """Close the connection."""
        self.conn.close()

    @staticmethod
    def _row(record: Any, columns: list[str]) -> tuple:
        if is_dataclass(record):
            names = {f.name for f in fields(record)}
            values = [getattr(record, col) if col in names else None for col in columns]
        else:
            values = [record.get(col) for col in columns]
        return tuple(_db_value(v) for v in values)

    @staticmethod
    def _loan_from_row(row: tuple) -> Loan:
        return Loan(
            loan_id=row[0],
            member_id=row[1],
            principal=Decimal(row[2]),
            annual_rate_percent=Decimal(row[3]),
            issue_date=row[4],
            due_date=row[5],
            status=LoanStatus(row[6]),
            strategy=AccrualStrategy(row[7]),
            created_at=row[8],
            approved_by=row[9],
        )


def _db_value(value: Any) -> Any:
    """Enums go to the database as their string values; other values pass through."""
    if isinstance(value, (Decimal, date)):
        return value
    return serialize_value(value)
