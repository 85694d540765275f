"""Ledger state: stake pools, positions and treasury balances"""
from endow.core.state.pools import (
    PoolKind,
    Pool,
    StakePosition,
    StakePoolRegistry,
)
from endow.core.state.balances import TreasuryBalances

__all__ = [
    "PoolKind",
    "Pool",
    "StakePosition",
    "StakePoolRegistry",
    "TreasuryBalances",
]
