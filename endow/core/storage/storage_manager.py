import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from endow.core.storage.sqlite_adapter import SQLiteAdapter
from endow.utils.logger import get_logger

logger = get_logger("storage.manager")


@dataclass
class StoredTreasury:
    """Everything needed to rebuild a Treasury."""
    state: Dict[str, Any]
    pools: List[Tuple[int, int, int]]
    positions: List[Tuple[bytes, int, int, int]]
    roles: List[Tuple[str, bytes]]
    token_balances: Dict[str, List[Tuple[bytes, int]]] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.state and not self.pools


class StorageManager:
    """
    Manages persistent storage for a treasury ledger.

    Coordinates data persistence using SQLite adapter.
    Handles:
    - Ledger state (pools, positions, balances, parameters)
    - Collaborator state (roles, token balances)
    - Operation journal
    """

    def __init__(self, data_dir: Path, db_name: str = "treasury.db"):
        self.data_dir = Path(data_dir)
        self.db_path = self.data_dir / db_name
        self.adapter = SQLiteAdapter(self.db_path)

        logger.info(f"StorageManager initialized at {self.db_path}")

    # =========================================================================
    # Treasury Support
    # =========================================================================

    def load_treasury(self, token_symbols: Iterable[str]) -> StoredTreasury:
        """
        Load full treasury state.

        Args:
            token_symbols: Tokens whose balances should be loaded
        """
        return StoredTreasury(
            state={key: json.loads(value) for key, value in self.adapter.get_all_state().items()},
            pools=self.adapter.get_pools(),
            positions=self.adapter.get_positions(),
            roles=self.adapter.get_roles(),
            token_balances={
                symbol: self.adapter.get_token_balances(symbol)
                for symbol in token_symbols
            },
        )

    def persist_treasury_update(
        self,
        op: str,
        account: Optional[bytes],
        op_data: dict,
        state: Dict[str, Any],
        pools: List[Tuple[int, int, int]],
        positions: List[Tuple[bytes, int, int, int]],
        roles: Optional[List[Tuple[str, bytes]]],
        token_balances: List[Tuple[str, bytes, int]],
    ):
        """Atomically persist one operation and the state it touched."""
        self.adapter.persist_treasury_update(
            op=op,
            account=account,
            op_data=json.dumps(op_data, sort_keys=True, default=str),
            timestamp=int(time.time()),
            state={key: json.dumps(value, sort_keys=True) for key, value in state.items()},
            pools=pools,
            positions=positions,
            roles=roles,
            token_balances=token_balances,
        )

    def get_history(self, account: Optional[bytes] = None, limit: int = 100) -> List[dict]:
        """Journal entries, newest first."""
        return [
            {
                "seq": seq,
                "op": op,
                "account": bytes(acct) if acct is not None else None,
                "data": json.loads(data),
                "timestamp": ts,
            }
            for seq, op, acct, data, ts in self.adapter.get_operations(account, limit)
        ]
