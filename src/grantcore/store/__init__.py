"""Ledger storage backends.

- ``MemoryLedgerStore`` — process-local, sharded per-key locks.
- ``SQLiteLedgerStore`` — transactional SQLite with partial unique indexes.
"""

from .base import LedgerStore
from .memory import MemoryLedgerStore
from .sqlite import SQLiteLedgerStore

__all__ = [
    "LedgerStore",
    "MemoryLedgerStore",
    "SQLiteLedgerStore",
]
