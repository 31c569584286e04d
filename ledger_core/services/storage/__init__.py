"""
Storage Services Package

Provides the persistence contract the ledger core needs and an in-memory
implementation of it. Other backends implement the same interface.
"""

from ledger_core.services.storage.interface import (
    AuditStorageInterface,
    CommitError,
    ConflictError,
    LedgerStoreInterface,
    NotFoundError,
    StorageError,
    select_default_equity_fund,
)
from ledger_core.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStoreInterface",
    "select_default_equity_fund",
    # Exceptions
    "CommitError",
    "ConflictError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStore",
]
