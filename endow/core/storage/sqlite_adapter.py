import sqlite3
import threading
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from endow.utils.logger import get_logger

logger = get_logger("storage.sqlite")


class SQLiteAdapter:
    """
    SQLite backend for persistent storage.

    Provides:
    1. Ledger state: pools, stake positions, global scalars (key-value).
    2. Collaborator state: role assignments, token balances.
    3. An append-only journal of applied operations.

    Ledger integers exceed SQLite's 64-bit INTEGER range (accumulators are
    scaled by 1e24), so amounts are stored as decimal TEXT.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._conn_local = threading.local()

        if not db_path.parent.exists():
            db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create connection for current thread."""
        if not hasattr(self._conn_local, "conn"):
            self._conn_local.conn = sqlite3.connect(
                self.db_path,
                timeout=30.0,
                check_same_thread=False
            )
            self._conn_local.conn.row_factory = sqlite3.Row
            self._conn_local.conn.execute("PRAGMA journal_mode=WAL;")
            self._conn_local.conn.execute("PRAGMA synchronous=NORMAL;")
        return self._conn_local.conn

    def _init_schema(self):
        """Initialize database schema."""
        conn = self._get_conn()
        with conn:
            # 1. Global scalars (balances, parameters, emergency request)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS treasury_state (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)

            # 2. Pools
            conn.execute("""
                CREATE TABLE IF NOT EXISTS pools (
                    kind INTEGER PRIMARY KEY,
                    total_staked TEXT NOT NULL,
                    acc_reward_per_share TEXT NOT NULL
                )
            """)

            # 3. Stake positions, keyed by account
            conn.execute("""
                CREATE TABLE IF NOT EXISTS positions (
                    account BLOB NOT NULL,
                    kind INTEGER NOT NULL,
                    amount TEXT NOT NULL,
                    reward_tally TEXT NOT NULL,
                    PRIMARY KEY (account, kind)
                )
            """)

            # 4. Role assignments
            conn.execute("""
                CREATE TABLE IF NOT EXISTS roles (
                    role TEXT NOT NULL,
                    account BLOB NOT NULL,
                    PRIMARY KEY (role, account)
                )
            """)

            # 5. Token balances
            conn.execute("""
                CREATE TABLE IF NOT EXISTS token_balances (
                    symbol TEXT NOT NULL,
                    account BLOB NOT NULL,
                    balance TEXT NOT NULL,
                    PRIMARY KEY (symbol, account)
                )
            """)

            # 6. Operation journal
            conn.execute("""
                CREATE TABLE IF NOT EXISTS operations (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    op TEXT NOT NULL,
                    account BLOB,
                    data TEXT NOT NULL,
                    timestamp INTEGER NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_ops_account ON operations(account);")

    # =========================================================================
    # Global State
    # =========================================================================

    def get_all_state(self) -> Dict[str, str]:
        conn = self._get_conn()
        cursor = conn.execute("SELECT key, value FROM treasury_state")
        return {row['key']: row['value'] for row in cursor}

    # =========================================================================
    # Ledger Reads
    # =========================================================================

    def get_pools(self) -> List[Tuple[int, int, int]]:
        """Get all (kind, total_staked, acc_reward_per_share)."""
        conn = self._get_conn()
        cursor = conn.execute("SELECT kind, total_staked, acc_reward_per_share FROM pools ORDER BY kind")
        return [(row['kind'], int(row['total_staked']), int(row['acc_reward_per_share'])) for row in cursor]

    def get_positions(self) -> List[Tuple[bytes, int, int, int]]:
        """Get all (account, kind, amount, reward_tally)."""
        conn = self._get_conn()
        cursor = conn.execute("SELECT account, kind, amount, reward_tally FROM positions")
        return [
            (bytes(row['account']), row['kind'], int(row['amount']), int(row['reward_tally']))
            for row in cursor
        ]

    def get_roles(self) -> List[Tuple[str, bytes]]:
        conn = self._get_conn()
        cursor = conn.execute("SELECT role, account FROM roles")
        return [(row['role'], bytes(row['account'])) for row in cursor]

    def get_token_balances(self, symbol: str) -> List[Tuple[bytes, int]]:
        conn = self._get_conn()
        cursor = conn.execute("SELECT account, balance FROM token_balances WHERE symbol = ?", (symbol,))
        return [(bytes(row['account']), int(row['balance'])) for row in cursor]

    def get_operations(self, account: Optional[bytes] = None, limit: int = 100) -> List[Tuple]:
        """Most recent journal entries, newest first."""
        conn = self._get_conn()
        if account is None:
            cursor = conn.execute(
                "SELECT seq, op, account, data, timestamp FROM operations ORDER BY seq DESC LIMIT ?",
                (limit,)
            )
        else:
            cursor = conn.execute(
                "SELECT seq, op, account, data, timestamp FROM operations WHERE account = ? ORDER BY seq DESC LIMIT ?",
                (account, limit)
            )
        return [tuple(row) for row in cursor]

    # =========================================================================
    # Atomic Update
    # =========================================================================

    def persist_treasury_update(
        self,
        op: str,
        account: Optional[bytes],
        op_data: str,
        timestamp: int,
        state: Dict[str, str],
        pools: List[Tuple[int, int, int]],
        positions: List[Tuple[bytes, int, int, int]],
        roles: Optional[List[Tuple[str, bytes]]],
        token_balances: List[Tuple[str, bytes, int]],
    ):
        """
        Atomically persist the effects of one ledger operation.

        Args:
            op: Operation name for the journal
            account: Account the operation acted on (may be None)
            op_data: JSON description of the operation
            timestamp: Unix time
            state: Global scalars to upsert
            pools: (kind, total_staked, acc) rows
            positions: (account, kind, amount, tally) rows for touched accounts
            roles: Full role table (replaces existing), or None to leave as is
            token_balances: (symbol, account, balance) rows for touched accounts
        """
        conn = self._get_conn()
        with conn:
            conn.execute(
                "INSERT INTO operations (op, account, data, timestamp) VALUES (?, ?, ?, ?)",
                (op, account, op_data, timestamp)
            )

            conn.executemany(
                "INSERT OR REPLACE INTO treasury_state (key, value) VALUES (?, ?)",
                list(state.items())
            )

            conn.executemany(
                "INSERT OR REPLACE INTO pools (kind, total_staked, acc_reward_per_share) VALUES (?, ?, ?)",
                [(kind, str(total), str(acc)) for kind, total, acc in pools]
            )

            conn.executemany(
                "INSERT OR REPLACE INTO positions (account, kind, amount, reward_tally) VALUES (?, ?, ?, ?)",
                [(acct, kind, str(amount), str(tally)) for acct, kind, amount, tally in positions]
            )

            if roles is not None:
                conn.execute("DELETE FROM roles")
                conn.executemany("INSERT INTO roles (role, account) VALUES (?, ?)", roles)

            conn.executemany(
                "INSERT OR REPLACE INTO token_balances (symbol, account, balance) VALUES (?, ?, ?)",
                [(symbol, acct, str(balance)) for symbol, acct, balance in token_balances]
            )
