"""
Unit tests for the bonus ledger.

The spend order is LP pending, then PRIMARY pending, then minted bonus
tokens. Pending amounts are arranged by moving accumulators directly.
"""

import pytest

from endow.core.bonus import BonusLedger
from endow.core.errors import InsufficientBonus
from endow.core.fixed_point import ACC_PRECISION
from endow.core.state import PoolKind, StakePoolRegistry, TreasuryBalances
from endow.core.token import FungibleToken
from endow.crypto import address_from_label

ALICE = address_from_label("alice")


def make_ledger(pending_lp=0, pending_primary=0, minted=0, bonus_balance=None):
    """Ledger where ALICE has the given pending and minted bonus."""
    registry = StakePoolRegistry()
    registry.deposit(ALICE, 1, 1)
    registry.pool(PoolKind.LP).acc_reward_per_share += pending_lp * ACC_PRECISION
    registry.pool(PoolKind.PRIMARY).acc_reward_per_share += pending_primary * ACC_PRECISION

    bonus_token = FungibleToken("BONUS")
    bonus_token.mint(ALICE, minted)

    total = pending_lp + pending_primary + minted
    balances = TreasuryBalances(bonus_balance=total if bonus_balance is None else bonus_balance)
    return BonusLedger(registry, bonus_token, balances)


class TestQueries:
    """Tests for pending_bonus / total_bonus."""

    def test_totals(self):
        ledger = make_ledger(pending_lp=10, pending_primary=5, minted=7)
        assert ledger.pending_bonus(ALICE) == 15
        assert ledger.total_bonus(ALICE) == 22

    def test_unknown_account(self):
        ledger = make_ledger()
        assert ledger.total_bonus(address_from_label("nobody")) == 0


class TestSpend:
    """Tests for the prioritized spend."""

    def test_lp_first(self):
        ledger = make_ledger(pending_lp=10, pending_primary=5, minted=0)
        receipt = ledger.spend(ALICE, 10)

        assert (receipt.from_lp, receipt.from_primary, receipt.burned) == (10, 0, 0)
        assert ledger.registry.pending(ALICE, PoolKind.LP) == 0
        assert ledger.registry.pending(ALICE, PoolKind.PRIMARY) == 5
        assert ledger.balances.bonus_balance == 5

    def test_partial_lp_keeps_offset(self):
        ledger = make_ledger(pending_lp=10)
        ledger.spend(ALICE, 4)
        assert ledger.registry.pending(ALICE, PoolKind.LP) == 6

    def test_lp_then_primary(self):
        ledger = make_ledger(pending_lp=3, pending_primary=5, minted=9)
        receipt = ledger.spend(ALICE, 6)

        assert (receipt.from_lp, receipt.from_primary, receipt.burned) == (3, 3, 0)
        assert ledger.registry.pending(ALICE, PoolKind.LP) == 0
        assert ledger.registry.pending(ALICE, PoolKind.PRIMARY) == 2
        assert ledger.bonus_token.balance_of(ALICE) == 9

    def test_overflow_burns_minted(self):
        ledger = make_ledger(pending_lp=3, pending_primary=2, minted=20)
        receipt = ledger.spend(ALICE, 15)

        assert (receipt.from_lp, receipt.from_primary, receipt.burned) == (3, 2, 10)
        assert ledger.registry.pending(ALICE, PoolKind.LP) == 0
        assert ledger.registry.pending(ALICE, PoolKind.PRIMARY) == 0
        assert ledger.bonus_token.balance_of(ALICE) == 10
        assert ledger.bonus_token.total_supply == 10
        assert ledger.balances.bonus_balance == 10

    def test_minted_only(self):
        ledger = make_ledger(minted=8)
        receipt = ledger.spend(ALICE, 8)
        assert receipt.burned == 8
        assert ledger.total_bonus(ALICE) == 0

    def test_insufficient_total(self):
        ledger = make_ledger(pending_lp=3, pending_primary=2, minted=4)
        with pytest.raises(InsufficientBonus):
            ledger.spend(ALICE, 10)
        assert ledger.total_bonus(ALICE) == 9
        assert ledger.balances.bonus_balance == 9

    def test_insufficient_bonus_pool(self):
        """The account's bonus is there but the pool cannot cover it."""
        ledger = make_ledger(minted=10, bonus_balance=5)
        with pytest.raises(InsufficientBonus):
            ledger.spend(ALICE, 8)
        assert ledger.bonus_token.balance_of(ALICE) == 10

    def test_pending_never_negative(self):
        ledger = make_ledger(pending_lp=7, pending_primary=7, minted=7)
        for amount in (5, 4, 6, 3):
            ledger.spend(ALICE, amount)
            for kind in PoolKind:
                assert ledger.registry.pending(ALICE, kind) >= 0
        assert ledger.total_bonus(ALICE) == 3


class TestRebate:
    """Tests for rebates."""

    def test_rebate_mints_and_credits(self):
        ledger = make_ledger(minted=5)
        ledger.spend(ALICE, 5)
        assert ledger.rebate(ALICE, 2) == 2

        assert ledger.bonus_token.balance_of(ALICE) == 2
        assert ledger.balances.bonus_balance == 2
        assert ledger.total_bonus(ALICE) == 2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
