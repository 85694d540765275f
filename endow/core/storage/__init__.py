"""
Persistent Storage Module.

Provides SQLite-backed persistence for:
- Ledger state (pools, positions, balances, parameters)
- Role assignments and token balances
- Operation journal
"""

from endow.core.storage.sqlite_adapter import SQLiteAdapter
from endow.core.storage.storage_manager import StorageManager, StoredTreasury

__all__ = ["SQLiteAdapter", "StorageManager", "StoredTreasury"]
