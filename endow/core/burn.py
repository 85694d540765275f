"""
Burn Redemption - convert primary-asset burns into treasury payouts.

Payout Formula:
--------------
    endowment = burn * 1e18 / primary_supply * endowment_balance / 1e18
    bonus     = min(total_bonus(account), endowment)
    endowment = endowment * burn_endowment_multiplier / 1e18

The bonus cap uses the endowment share before the multiplier, so bonus
tokens can never be redeemed for more than the burn itself is worth.
The share is taken of the global primary supply, not of staked amounts.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from endow.core.bonus import BonusLedger
from endow.core.errors import BurnLimitExceeded, InsufficientBalance
from endow.core.fixed_point import PRECISION, mul_div, scale
from endow.core.parameters import ParameterSnapshot, TreasuryParameters
from endow.core.state import TreasuryBalances
from endow.core.token import FungibleToken
from endow.utils.logger import get_logger

logger = get_logger("burn")


@dataclass
class BurnReceipt:
    """Result of a claim-and-burn."""
    beneficiary: bytes
    burn_amount: int
    endowment_portion: int
    bonus_portion: int

    @property
    def payout(self) -> int:
        return self.endowment_portion + self.bonus_portion


class BurnRedemption:
    """
    Quotes and executes burn redemptions.
    """

    def __init__(
        self,
        bonus_ledger: BonusLedger,
        balances: TreasuryBalances,
        parameters: TreasuryParameters,
        primary_token: FungibleToken,
        settlement_token: FungibleToken,
        treasury_address: bytes,
    ):
        self.bonus_ledger = bonus_ledger
        self.balances = balances
        self.parameters = parameters
        self.primary_token = primary_token
        self.settlement_token = settlement_token
        self.treasury_address = treasury_address

    def max_burn_amount(self, params: Optional[ParameterSnapshot] = None) -> int:
        """Largest burn accepted in one call."""
        params = params or self.parameters.snapshot()
        return scale(self.primary_token.total_supply, params.burn_limit)

    def get_burn_value_portions(
        self,
        account: bytes,
        burn_amount: int,
        params: Optional[ParameterSnapshot] = None,
    ) -> Tuple[int, int]:
        """
        Quote a burn.

        Returns:
            (endowment_portion, bonus_portion); (0, 0) when there is no supply
        """
        params = params or self.parameters.snapshot()
        supply = self.primary_token.total_supply
        if supply == 0:
            return 0, 0

        share = mul_div(burn_amount, PRECISION, supply)
        endowment_portion = scale(share, self.balances.endowment_balance)
        bonus_portion = min(self.bonus_ledger.total_bonus(account), endowment_portion)
        endowment_portion = scale(endowment_portion, params.burn_endowment_multiplier)
        return endowment_portion, bonus_portion

    def get_burn_value(self, account: bytes, burn_amount: int) -> int:
        """Total settlement asset a burn would pay out."""
        endowment_portion, bonus_portion = self.get_burn_value_portions(account, burn_amount)
        return endowment_portion + bonus_portion

    def check_claim(
        self,
        beneficiary: bytes,
        burn_amount: int,
        params: ParameterSnapshot,
    ) -> Tuple[int, int]:
        """
        Run every precondition of claim_and_burn and return the quote.

        Raises:
            BurnLimitExceeded: if burn_amount exceeds max_burn_amount()
            InsufficientBalance: if the endowment or the treasury's
                settlement holding cannot cover the payout
        """
        max_burn = self.max_burn_amount(params)
        if burn_amount > max_burn:
            raise BurnLimitExceeded(f"Burn {burn_amount} exceeds limit {max_burn}")

        endowment_portion, bonus_portion = self.get_burn_value_portions(beneficiary, burn_amount, params)

        if endowment_portion > self.balances.endowment_balance:
            raise InsufficientBalance(
                f"Endowment portion {endowment_portion} exceeds endowment {self.balances.endowment_balance}"
            )
        held = self.settlement_token.balance_of(self.treasury_address)
        if endowment_portion + bonus_portion > held:
            raise InsufficientBalance(
                f"Payout {endowment_portion + bonus_portion} exceeds treasury holding {held}"
            )
        return endowment_portion, bonus_portion

    def claim_and_burn(
        self,
        beneficiary: bytes,
        burn_amount: int,
        params: Optional[ParameterSnapshot] = None,
    ) -> BurnReceipt:
        """
        Pay a beneficiary for burning primary asset.

        The primary asset itself is burned by the caller (the facade)
        against the supply this quote was computed from.
        """
        params = params or self.parameters.snapshot()
        endowment_portion, bonus_portion = self.check_claim(beneficiary, burn_amount, params)

        if bonus_portion > 0:
            self.bonus_ledger.spend(beneficiary, bonus_portion)

        self.settlement_token.transfer(
            self.treasury_address, beneficiary, endowment_portion + bonus_portion
        )
        self.balances.debit_endowment(endowment_portion)

        logger.info(
            f"Burn {burn_amount} for 0x{beneficiary.hex()[:8]}...: "
            f"endowment={endowment_portion}, bonus={bonus_portion}"
        )
        return BurnReceipt(beneficiary, burn_amount, endowment_portion, bonus_portion)
