"""
Stake Pool Registry - pools and per-account stake positions.

Conceptual Background:
---------------------
Two pools take stake: PRIMARY (the primary asset) and LP (its liquidity
derivative). Each pool keeps a running accumulator:

    acc_reward_per_share += reward * 1e24 / total_staked

An account's position records how much it has staked and the reward
tally already credited to it. Its pending reward is then

    pending = amount * acc_reward_per_share / 1e24 - reward_tally

Before a position's amount changes, pending reward is settled (minted as
bonus tokens) and the tally is reset to the new amount's accrued value,
so no reward is ever credited for time the stake was not there.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from endow.core.errors import InsufficientBalance
from endow.core.fixed_point import accrued
from endow.utils.logger import get_logger

logger = get_logger("pools")


# =============================================================================
# Enums
# =============================================================================


class PoolKind(IntEnum):
    """Kind of staked asset."""
    PRIMARY = 0     # Primary asset
    LP = 1          # LP derivative of the primary asset


# =============================================================================
# Data Structures
# =============================================================================


@dataclass
class Pool:
    """
    A stake pool.

    Attributes:
        kind: Which asset the pool takes
        total_staked: Sum of all position amounts
        acc_reward_per_share: Bonus earned per staked unit since inception,
            scaled by 1e24. Never decreases.
    """
    kind: PoolKind
    total_staked: int = 0
    acc_reward_per_share: int = 0


@dataclass
class StakePosition:
    """
    An account's stake in one pool.

    Attributes:
        amount: Units currently staked
        reward_tally: Accrued reward already credited to the account
    """
    amount: int = 0
    reward_tally: int = 0


# Receives an account and mints its pending bonus; returns the amount minted
SettleFn = Callable[[bytes], int]


# =============================================================================
# Stake Pool Registry
# =============================================================================


class StakePoolRegistry:
    """
    Holds both pools and every account's positions.

    Positions are created on first write. Reading an unknown account yields
    a zero position that is not stored.
    """

    def __init__(self):
        self.pools: Dict[PoolKind, Pool] = {kind: Pool(kind) for kind in PoolKind}

        # account -> {PoolKind -> StakePosition}
        self.positions: Dict[bytes, Dict[PoolKind, StakePosition]] = {}

    # =========================================================================
    # Lookup
    # =========================================================================

    def pool(self, kind: PoolKind) -> Pool:
        return self.pools[kind]

    def get_position(self, account: bytes, kind: PoolKind) -> StakePosition:
        """Position for reading; an unknown account yields a detached zero record."""
        slots = self.positions.get(account)
        if slots is None:
            return StakePosition()
        return slots[kind]

    def position_for_update(self, account: bytes, kind: PoolKind) -> StakePosition:
        """Position for writing; created on first use."""
        slots = self.positions.get(account)
        if slots is None:
            slots = {k: StakePosition() for k in PoolKind}
            self.positions[account] = slots
        return slots[kind]

    def pending(self, account: bytes, kind: PoolKind) -> int:
        """Unsettled reward of an account in one pool."""
        position = self.get_position(account, kind)
        return accrued(position.amount, self.pools[kind].acc_reward_per_share) - position.reward_tally

    def accounts(self) -> List[bytes]:
        return list(self.positions.keys())

    # =========================================================================
    # Stake Mutation
    # =========================================================================

    def deposit(
        self,
        account: bytes,
        amount_primary: int,
        amount_lp: int,
        settle: Optional[SettleFn] = None,
    ) -> int:
        """
        Stake into both pools.

        Args:
            account: Staker
            amount_primary: Units added to the PRIMARY pool
            amount_lp: Units added to the LP pool
            settle: Settlement hook called before any amount changes

        Returns:
            Bonus minted by settlement
        """
        minted = settle(account) if settle else 0

        for kind, amount in ((PoolKind.PRIMARY, amount_primary), (PoolKind.LP, amount_lp)):
            position = self.position_for_update(account, kind)
            position.amount += amount
            self.pools[kind].total_staked += amount
            self._reset_tally(position, kind)

        logger.debug(f"Deposit 0x{account.hex()[:8]}...: primary={amount_primary}, lp={amount_lp}")
        return minted

    def withdraw(
        self,
        account: bytes,
        amount_primary: int,
        amount_lp: int,
        settle: Optional[SettleFn] = None,
    ) -> int:
        """
        Unstake from both pools.

        Raises:
            InsufficientBalance: if either amount exceeds the staked amount
                (checked for both pools before anything changes)

        Returns:
            Bonus minted by settlement
        """
        self.check_withdrawable(account, amount_primary, amount_lp)

        minted = settle(account) if settle else 0

        for kind, amount in ((PoolKind.PRIMARY, amount_primary), (PoolKind.LP, amount_lp)):
            position = self.position_for_update(account, kind)
            position.amount -= amount
            self.pools[kind].total_staked -= amount
            self._reset_tally(position, kind)

        logger.debug(f"Withdraw 0x{account.hex()[:8]}...: primary={amount_primary}, lp={amount_lp}")
        return minted

    def check_withdrawable(self, account: bytes, amount_primary: int, amount_lp: int) -> None:
        for kind, amount in ((PoolKind.PRIMARY, amount_primary), (PoolKind.LP, amount_lp)):
            staked = self.get_position(account, kind).amount
            if staked < amount:
                raise InsufficientBalance(
                    f"{kind.name}: cannot withdraw {amount}, staked {staked}"
                )

    def emergency_withdraw(self, account: bytes) -> Tuple[int, int]:
        """
        Zero both positions without settling.

        Pending reward is forfeited. Returns the (primary, lp) amounts
        removed so the caller can return the assets.
        """
        removed = []
        for kind in PoolKind:
            position = self.get_position(account, kind)
            amount = position.amount
            if account in self.positions:
                self.pools[kind].total_staked -= amount
                position.amount = 0
                position.reward_tally = 0
            removed.append(amount)

        logger.warning(f"Emergency withdraw 0x{account.hex()[:8]}...: primary={removed[0]}, lp={removed[1]}")
        return removed[0], removed[1]

    def _reset_tally(self, position: StakePosition, kind: PoolKind) -> None:
        position.reward_tally = accrued(position.amount, self.pools[kind].acc_reward_per_share)

    # =========================================================================
    # Persistence Helpers
    # =========================================================================

    def load(
        self,
        pools: Iterable[Tuple[int, int, int]],
        positions: Iterable[Tuple[bytes, int, int, int]],
    ) -> None:
        """
        Restore state.

        Args:
            pools: (kind, total_staked, acc_reward_per_share) rows
            positions: (account, kind, amount, reward_tally) rows
        """
        for kind, total_staked, acc in pools:
            self.pools[PoolKind(kind)] = Pool(PoolKind(kind), total_staked, acc)
        for account, kind, amount, tally in positions:
            position = self.position_for_update(account, PoolKind(kind))
            position.amount = amount
            position.reward_tally = tally

    def position_rows(self, accounts: Iterable[bytes]) -> List[Tuple[bytes, int, int, int]]:
        """(account, kind, amount, reward_tally) rows for the given accounts."""
        rows = []
        for account in accounts:
            slots = self.positions.get(account)
            if slots is None:
                continue
            for kind, position in slots.items():
                rows.append((account, int(kind), position.amount, position.reward_tally))
        return rows

    # =========================================================================
    # Statistics
    # =========================================================================

    def stats(self) -> dict:
        return {
            "stakers": sum(
                1 for slots in self.positions.values()
                if any(p.amount > 0 for p in slots.values())
            ),
            "total_staked_primary": self.pools[PoolKind.PRIMARY].total_staked,
            "total_staked_lp": self.pools[PoolKind.LP].total_staked,
            "acc_primary": self.pools[PoolKind.PRIMARY].acc_reward_per_share,
            "acc_lp": self.pools[PoolKind.LP].acc_reward_per_share,
        }
