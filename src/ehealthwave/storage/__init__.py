"""Storage backends for grants and the audit ledger."""

from .base import GrantStore, LedgerStore, StorageType
from .memory import InMemoryGrantStore, InMemoryLedgerStore
from .sql import SqlDatabase, SqlGrantStore, SqlLedgerStore

__all__ = [
    "GrantStore",
    "LedgerStore",
    "StorageType",
    "InMemoryGrantStore",
    "InMemoryLedgerStore",
    "SqlDatabase",
    "SqlGrantStore",
    "SqlLedgerStore",
]
