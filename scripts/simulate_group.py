#!/usr/bin/env python3
"""Simulate a table-banking group and export its ledger.

Generates members, savings, loans and repayments through the in-memory
ledger store (so every loan passes the approval checks) and then:
- prints the group summary and loan portfolio totals
- optionally writes every table to JSON, PostgreSQL and/or Kafka
"""

import argparse
import logging
import sys
from datetime import date
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tablebank.config import TableBankConfig
from tablebank.core.liquidity import group_repayments
from tablebank.core.reports import portfolio_totals
from tablebank.generators import GroupGenerator
from tablebank.logging import setup_logging
from tablebank.sinks import ConsoleSink, JsonFileSink, KafkaSink
from tablebank.store import LedgerStore, PostgresLedgerStore

logger = logging.getLogger(__name__)


def export_tables(store: LedgerStore, sink) -> None:
    """Write every ledger table of ``store`` to ``sink``."""
    sink.write_batch("members", list(store.members.values()))
    sink.write_batch("registration_fees", store.registration_fees)
    sink.write_batch("contributions", store.contributions)
    sink.write_batch("fines", list(store.fines.values()))
    sink.write_batch("external_funds", store.external_funds)
    sink.write_batch("expenses", store.expenses)
    sink.write_batch("loans", list(store.loans.values()))
    sink.write_batch("repayments", store.repayments)


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Simulate a table-banking group ledger")
    parser.add_argument(
        "--members",
        type=int,
        default=12,
        help="Number of group members (default: 12)",
    )
    parser.add_argument(
        "--months",
        type=int,
        default=6,
        help="Number of monthly meetings to simulate (default: 6)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for reproducibility (default: SEED env var)",
    )
    parser.add_argument(
        "--as-of",
        type=date.fromisoformat,
        default=None,
        help="Evaluation date for balances, YYYY-MM-DD (default: today)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Write tables to JSON files in OUTPUT_DIR",
    )
    parser.add_argument(
        "--console",
        action="store_true",
        help="Print tables and ledger events to stdout",
    )
    parser.add_argument(
        "--postgres",
        action="store_true",
        help="Load tables into PostgreSQL (POSTGRES_* env vars)",
    )
    parser.add_argument(
        "--kafka",
        action="store_true",
        help="Publish ledger events and tables to Kafka (KAFKA_* env vars)",
    )
    parser.add_argument(
        "--log-format",
        choices=["standard", "json"],
        default="standard",
        help="Log output format",
    )
    args = parser.parse_args()

    config = TableBankConfig.from_env()
    setup_logging(config.log_level, args.log_format)
    seed = args.seed if args.seed is not None else config.seed

    store = LedgerStore(config=config.ledger)
    console = ConsoleSink(pretty=config.output.pretty_json, max_records=5) if args.console else None
    kafka = KafkaSink(config.kafka) if args.kafka else None
    if console:
        store.listeners.append(console.publish)
    if kafka:
        store.listeners.append(kafka.publish)

    stats = GroupGenerator(seed=seed).populate(store, num_members=args.members, months=args.months)

    summary = store.group_summary(args.as_of)
    totals = portfolio_totals(store.loans.values(), group_repayments(store.repayments), args.as_of, config.ledger)

    print(f"\n{'='*60}")
    print("Group Summary")
    print("=" * 60)
    print(f"  Active members:      {summary.active_members}")
    print(f"  Open loans:          {summary.open_loans}")
    print(f"  Pool:                {summary.pool}")
    print(f"  Outstanding:         {summary.outstanding_balance}")
    print(f"  Available cash:      {summary.available_cash}")
    print(f"  Defaulted balance:   {summary.defaulted_balance}")
    print(f"  Total interest:      {summary.total_interest}")
    print(f"  Loans approved:      {stats.approved}")
    print(f"  Loans rejected:      {dict(stats.rejected)}")
    print(f"  Loans completed:     {stats.completed}")
    print(f"  Portfolio amount:    {totals['total_amount']}")

    for name, count in store.summary().items():
        logger.info("  %s: %d", name, count)

    if args.json:
        json_sink = JsonFileSink(config.output.json_output_dir, pretty=config.output.pretty_json)
        export_tables(store, json_sink)
        json_sink.close()

    if console:
        export_tables(store, console)
        console.close()

    if kafka:
        export_tables(store, kafka)
        kafka.close()

    if args.postgres:
        pg = PostgresLedgerStore(config.postgres.connection_string, config.ledger)
        try:
            pg.create_tables()
            pg.load_store(store)
        finally:
            pg.close()


if __name__ == "__main__":
    main()
