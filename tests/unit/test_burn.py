"""
Unit tests for burn redemption quotes and claims.
"""

import pytest

from endow.core.bonus import BonusLedger
from endow.core.burn import BurnRedemption
from endow.core.errors import BurnLimitExceeded, InsufficientBalance
from endow.core.fixed_point import PRECISION
from endow.core.parameters import TreasuryParameters
from endow.core.state import StakePoolRegistry, TreasuryBalances
from endow.core.token import FungibleToken
from endow.crypto import address_from_label

ALICE = address_from_label("alice")
TREASURY = address_from_label("treasury")


@pytest.fixture
def redemption():
    """
    Primary supply 1000 held by ALICE, endowment 1000, ALICE holds 150
    minted bonus, burn limit 10% of supply.
    """
    registry = StakePoolRegistry()
    bonus_token = FungibleToken("BONUS")
    bonus_token.mint(ALICE, 150)
    balances = TreasuryBalances(endowment_balance=1000, bonus_balance=150)
    parameters = TreasuryParameters(burn_limit=PRECISION // 10)

    primary = FungibleToken("PRIMARY", 1000, ALICE)
    settlement = FungibleToken("SETTLE", 1150, TREASURY)

    ledger = BonusLedger(registry, bonus_token, balances)
    return BurnRedemption(ledger, balances, parameters, primary, settlement, TREASURY)


class TestQuote:
    """Tests for get_burn_value_portions."""

    def test_bonus_capped_at_endowment_share(self, redemption):
        assert redemption.get_burn_value_portions(ALICE, 100) == (100, 100)

    def test_cap_uses_pre_multiplier_share(self, redemption):
        redemption.parameters.set_burn_multiplier(2 * PRECISION)
        assert redemption.get_burn_value_portions(ALICE, 100) == (200, 100)
        assert redemption.get_burn_value(ALICE, 100) == 300

    def test_bonus_below_cap(self, redemption):
        # share of 50 -> endowment 50; bonus 150 is capped to 50
        assert redemption.get_burn_value_portions(ALICE, 50) == (50, 50)
        stranger = address_from_label("stranger")
        assert redemption.get_burn_value_portions(stranger, 50) == (50, 0)

    def test_zero_supply(self, redemption):
        redemption.primary_token.burn(ALICE, 1000)
        assert redemption.get_burn_value_portions(ALICE, 10) == (0, 0)

    def test_max_burn_amount(self, redemption):
        assert redemption.max_burn_amount() == 100
        redemption.parameters.set_burn_limit(0)
        assert redemption.max_burn_amount() == 0


class TestClaim:
    """Tests for claim_and_burn."""

    def test_claim_pays_and_spends_bonus(self, redemption):
        redemption.parameters.set_burn_multiplier(2 * PRECISION)
        receipt = redemption.claim_and_burn(ALICE, 100)

        assert receipt.endowment_portion == 200
        assert receipt.bonus_portion == 100
        assert receipt.payout == 300
        assert redemption.settlement_token.balance_of(ALICE) == 300
        assert redemption.settlement_token.balance_of(TREASURY) == 850
        assert redemption.balances.endowment_balance == 800
        assert redemption.balances.bonus_balance == 50
        assert redemption.bonus_ledger.total_bonus(ALICE) == 50

    def test_claim_without_bonus(self, redemption):
        stranger = address_from_label("stranger")
        receipt = redemption.claim_and_burn(stranger, 10)
        assert (receipt.endowment_portion, receipt.bonus_portion) == (10, 0)
        assert redemption.balances.bonus_balance == 150

    def test_burn_limit(self, redemption):
        with pytest.raises(BurnLimitExceeded):
            redemption.claim_and_burn(ALICE, 101)
        assert redemption.balances.endowment_balance == 1000

    def test_endowment_cannot_cover_multiplied_portion(self, redemption):
        redemption.parameters.set_burn_multiplier(20 * PRECISION)
        with pytest.raises(InsufficientBalance):
            redemption.claim_and_burn(ALICE, 100)
        assert redemption.balances.endowment_balance == 1000
        assert redemption.bonus_ledger.total_bonus(ALICE) == 150

    def test_settlement_holding_too_small(self, redemption):
        redemption.settlement_token.burn(TREASURY, 1000)
        with pytest.raises(InsufficientBalance):
            redemption.claim_and_burn(ALICE, 100)
        assert redemption.bonus_ledger.total_bonus(ALICE) == 150


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
