"""
Reward Accumulator - profit receipt and pending-bonus settlement.

Profit Split:
------------
1. If nobody is staked, all profit goes to the endowment.
2. Otherwise: endowment gets amount * endowment_percent / 1e20, the rest
   is the bonus portion.
3. The bonus portion is split across pools by shares = total_staked * weight.
   PRIMARY gets its rounded-down share and LP gets the remainder, so the two
   always add up to the bonus portion exactly.
4. Each pool with stake advances its accumulator by bonus * 1e24 / total_staked.

Bonus that no accumulator can take (every staked pool has weight zero)
stays in bonus_balance unattributed.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from endow.core.fixed_point import PRECISION, mul_div, per_share, percent_of
from endow.core.parameters import ParameterSnapshot, TreasuryParameters
from endow.core.state import PoolKind, StakePoolRegistry, TreasuryBalances
from endow.core.token import FungibleToken
from endow.utils.logger import get_logger

logger = get_logger("rewards")


@dataclass
class ProfitReceipt:
    """Breakdown of one profit receipt."""
    amount: int
    endowment_portion: int
    bonus_portion: int
    bonus_primary: int
    bonus_lp: int
    unassigned: int = 0


def split_profit(
    amount: int,
    totals: Dict[PoolKind, int],
    params: ParameterSnapshot,
) -> ProfitReceipt:
    """
    Compute how a profit amount is divided, without applying it.

    Args:
        amount: Settlement asset received
        totals: total_staked per pool
        params: Parameter snapshot

    Returns:
        ProfitReceipt with the exact split
    """
    if all(total == 0 for total in totals.values()):
        return ProfitReceipt(
            amount=amount,
            endowment_portion=amount,
            bonus_portion=0,
            bonus_primary=0,
            bonus_lp=0,
        )

    endowment_portion = percent_of(amount, params.endowment_percent)
    bonus_portion = amount - endowment_portion

    shares = {kind: totals[kind] * params.weights[kind] for kind in PoolKind}
    total_shares = shares[PoolKind.PRIMARY] + shares[PoolKind.LP]

    if total_shares == 0:
        return ProfitReceipt(
            amount=amount,
            endowment_portion=endowment_portion,
            bonus_portion=bonus_portion,
            bonus_primary=0,
            bonus_lp=0,
            unassigned=bonus_portion,
        )

    bonus_primary = mul_div(bonus_portion, shares[PoolKind.PRIMARY], total_shares)
    bonus_lp = bonus_portion - bonus_primary

    return ProfitReceipt(
        amount=amount,
        endowment_portion=endowment_portion,
        bonus_portion=bonus_portion,
        bonus_primary=bonus_primary,
        bonus_lp=bonus_lp,
    )


class RewardAccumulator:
    """
    Advances pool accumulators on profit and settles accounts' pending
    bonus into minted bonus tokens.
    """

    def __init__(
        self,
        registry: StakePoolRegistry,
        bonus_token: FungibleToken,
        balances: TreasuryBalances,
        parameters: TreasuryParameters,
    ):
        self.registry = registry
        self.bonus_token = bonus_token
        self.balances = balances
        self.parameters = parameters

    # =========================================================================
    # Settlement
    # =========================================================================

    def pending(self, account: bytes, kind: PoolKind) -> int:
        return self.registry.pending(account, kind)

    def settle(self, account: bytes) -> int:
        """
        Mint both pools' pending bonus to the account.

        Tallies are left alone; the registry resets them once the stake
        amount has changed.

        Returns:
            Amount minted
        """
        pending = sum(self.registry.pending(account, kind) for kind in PoolKind)
        if pending > 0:
            self.bonus_token.mint(account, pending)
            logger.debug(f"Settled {pending} bonus to 0x{account.hex()[:8]}...")
        return max(pending, 0)

    # =========================================================================
    # Profit
    # =========================================================================

    def receive_profit(self, amount: int, params: Optional[ParameterSnapshot] = None) -> ProfitReceipt:
        """
        Credit a profit amount to endowment / bonus and advance accumulators.

        The settlement asset itself must already be held by the treasury.
        """
        params = params or self.parameters.snapshot()
        totals = {kind: self.registry.pool(kind).total_staked for kind in PoolKind}
        receipt = split_profit(amount, totals, params)

        self.balances.credit(endowment=receipt.endowment_portion, bonus=receipt.bonus_portion)

        for kind, bonus in ((PoolKind.PRIMARY, receipt.bonus_primary), (PoolKind.LP, receipt.bonus_lp)):
            pool = self.registry.pool(kind)
            if pool.total_staked == 0:
                continue
            increment = per_share(bonus, pool.total_staked)
            pool.acc_reward_per_share += increment
            logger.debug(f"{kind.name} acc += {increment} (bonus {bonus} over {pool.total_staked})")

        logger.info(
            f"Profit {amount}: endowment={receipt.endowment_portion}, "
            f"bonus={receipt.bonus_portion} (primary={receipt.bonus_primary}, lp={receipt.bonus_lp})"
        )
        if receipt.unassigned:
            logger.warning(f"{receipt.unassigned} bonus left unattributed: no weighted stake")
        return receipt

    def estimated_yield(self, kind: PoolKind, profit_amount: int) -> int:
        """
        Bonus per staked unit (scaled by 1e18) that `kind` would receive
        from a profit of `profit_amount` right now.
        """
        pool = self.registry.pool(kind)
        if pool.total_staked == 0:
            return 0
        totals = {k: self.registry.pool(k).total_staked for k in PoolKind}
        receipt = split_profit(profit_amount, totals, self.parameters.snapshot())
        bonus = receipt.bonus_primary if kind == PoolKind.PRIMARY else receipt.bonus_lp
        return mul_div(bonus, PRECISION, pool.total_staked)
