"""Ledger and import record persistence."""

from .database import Database, create_db_engine
from .locks import AccountLockRegistry, acquire_advisory_lock
from .repository import ImportBatchStore, LedgerRepository
from .tables import Base, ImportBatchRecord, LedgerTransaction, Payee, PayeeAlias

__all__ = [
    "AccountLockRegistry",
    "Base",
    "Database",
    "ImportBatchRecord",
    "ImportBatchStore",
    "LedgerRepository",
    "LedgerTransaction",
    "Payee",
    "PayeeAlias",
    "acquire_advisory_lock",
    "create_db_engine",
]
