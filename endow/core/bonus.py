"""
Bonus Ledger - claimable bonus queries and the prioritized spend.

An account's total bonus is its pending (unsettled) reward in both pools
plus the bonus tokens already minted to it. A spend draws from these in a
fixed order:

1. LP pool pending
2. PRIMARY pool pending
3. minted bonus tokens (burned)

Pending reward is consumed by moving the position's reward_tally forward,
so no tokens need to be minted and then burned again.
"""

from dataclasses import dataclass

from endow.core.errors import InsufficientBonus
from endow.core.fixed_point import accrued
from endow.core.state import PoolKind, StakePoolRegistry, TreasuryBalances
from endow.core.token import FungibleToken
from endow.utils.logger import get_logger

logger = get_logger("bonus")


@dataclass
class SpendReceipt:
    """Where a spend was drawn from."""
    amount: int
    from_lp: int
    from_primary: int
    burned: int


class BonusLedger:
    """
    Spends and rebates bonus on behalf of accounts.
    """

    def __init__(
        self,
        registry: StakePoolRegistry,
        bonus_token: FungibleToken,
        balances: TreasuryBalances,
    ):
        self.registry = registry
        self.bonus_token = bonus_token
        self.balances = balances

    def pending_bonus(self, account: bytes) -> int:
        """Unsettled bonus across both pools."""
        return sum(self.registry.pending(account, kind) for kind in PoolKind)

    def total_bonus(self, account: bytes) -> int:
        """Pending bonus plus minted bonus token balance."""
        return self.pending_bonus(account) + self.bonus_token.balance_of(account)

    def spend(self, account: bytes, amount: int) -> SpendReceipt:
        """
        Consume `amount` of an account's bonus.

        Raises:
            InsufficientBonus: if total bonus (or the bonus pool) is below amount
        """
        pending_lp = self.registry.pending(account, PoolKind.LP)
        pending_primary = self.registry.pending(account, PoolKind.PRIMARY)
        minted = self.bonus_token.balance_of(account)

        if pending_lp + pending_primary + minted < amount:
            raise InsufficientBonus(
                f"Bonus {pending_lp + pending_primary + minted} < spend {amount}"
            )
        if self.balances.bonus_balance < amount:
            raise InsufficientBonus(
                f"Bonus pool {self.balances.bonus_balance} < spend {amount}"
            )

        if pending_lp >= amount:
            lp_position = self.registry.position_for_update(account, PoolKind.LP)
            lp_position.reward_tally += amount
            receipt = SpendReceipt(amount, from_lp=amount, from_primary=0, burned=0)

        elif pending_lp + pending_primary >= amount:
            self._zero_pending(account, PoolKind.LP)
            primary_position = self.registry.position_for_update(account, PoolKind.PRIMARY)
            primary_position.reward_tally += amount - pending_lp
            receipt = SpendReceipt(
                amount,
                from_lp=pending_lp,
                from_primary=amount - pending_lp,
                burned=0,
            )

        else:
            to_burn = amount - pending_primary - pending_lp
            self._zero_pending(account, PoolKind.LP)
            self._zero_pending(account, PoolKind.PRIMARY)
            self.bonus_token.burn(account, to_burn)
            receipt = SpendReceipt(
                amount,
                from_lp=pending_lp,
                from_primary=pending_primary,
                burned=to_burn,
            )

        self.balances.debit_bonus(amount)

        logger.info(
            f"Spent {amount} bonus of 0x{account.hex()[:8]}...: "
            f"lp={receipt.from_lp}, primary={receipt.from_primary}, burned={receipt.burned}"
        )
        return receipt

    def rebate(self, account: bytes, amount: int) -> int:
        """
        Refund bonus to an account by minting it fresh.

        Returns:
            Amount minted
        """
        self.bonus_token.mint(account, amount)
        self.balances.credit(bonus=amount)
        logger.info(f"Rebated {amount} bonus to 0x{account.hex()[:8]}...")
        return amount

    def _zero_pending(self, account: bytes, kind: PoolKind) -> None:
        position = self.registry.position_for_update(account, kind)
        position.reward_tally = accrued(position.amount, self.registry.pool(kind).acc_reward_per_share)
