"""
Persistent Storage Module.

Provides SQLite-backed persistence for:
- Private UTXO records (owner-scoped repositories)
- Verifier state (commitments, nullifiers, receipts)
"""

from privutxo.core.storage.sqlite_adapter import SQLiteAdapter
from privutxo.core.storage.storage_manager import StorageManager
from privutxo.core.storage.repository import (
    UTXORepository,
    InMemoryUTXORepository,
    SQLiteUTXORepository,
)

__all__ = [
    "SQLiteAdapter",
    "StorageManager",
    "UTXORepository",
    "InMemoryUTXORepository",
    "SQLiteUTXORepository",
]
