"""Ledger stores: in-memory and PostgreSQL."""

from tablebank.store.ledger import LedgerStore
from tablebank.store.postgres import PostgresLedgerStore

__all__ = ["LedgerStore", "PostgresLedgerStore"]
