"""
Unit tests for profit splitting and pending-bonus settlement.
"""

import random

import pytest

from endow.core.fixed_point import ACC_PRECISION, PRECISION
from endow.core.parameters import TreasuryParameters
from endow.core.rewards import RewardAccumulator, split_profit
from endow.core.state import PoolKind, StakePoolRegistry, TreasuryBalances
from endow.core.token import FungibleToken
from endow.crypto import address_from_label

ALICE = address_from_label("alice")
BOB = address_from_label("bob")


def make_accumulator(params=None):
    registry = StakePoolRegistry()
    bonus_token = FungibleToken("BONUS")
    balances = TreasuryBalances()
    parameters = params or TreasuryParameters()
    return RewardAccumulator(registry, bonus_token, balances, parameters)


class TestSplitProfit:
    """Tests for the pure profit split."""

    def test_no_stake_goes_to_endowment(self):
        params = TreasuryParameters().snapshot()
        receipt = split_profit(1000, {PoolKind.PRIMARY: 0, PoolKind.LP: 0}, params)
        assert receipt.endowment_portion == 1000
        assert receipt.bonus_portion == 0
        assert receipt.bonus_primary == receipt.bonus_lp == 0

    def test_split_with_remainder_to_lp(self):
        params = TreasuryParameters().snapshot()
        receipt = split_profit(1001, {PoolKind.PRIMARY: 3, PoolKind.LP: 7}, params)
        assert receipt.endowment_portion == 500
        assert receipt.bonus_portion == 501
        assert receipt.bonus_primary == 150
        assert receipt.bonus_lp == 351

    def test_weights(self):
        parameters = TreasuryParameters()
        parameters.set_pool_weight(PoolKind.LP, 3)
        receipt = split_profit(1001, {PoolKind.PRIMARY: 3, PoolKind.LP: 7}, parameters.snapshot())
        assert receipt.bonus_primary == 62
        assert receipt.bonus_lp == 439

    def test_single_pool_takes_all_bonus(self):
        params = TreasuryParameters().snapshot()
        receipt = split_profit(1000, {PoolKind.PRIMARY: 10, PoolKind.LP: 0}, params)
        assert receipt.bonus_primary == 500
        assert receipt.bonus_lp == 0
        assert receipt.unassigned == 0

    def test_zero_weight_stake_leaves_bonus_unassigned(self):
        parameters = TreasuryParameters()
        parameters.set_pool_weight(PoolKind.PRIMARY, 0)
        receipt = split_profit(1000, {PoolKind.PRIMARY: 10, PoolKind.LP: 0}, parameters.snapshot())
        assert receipt.endowment_portion == 500
        assert receipt.bonus_portion == 500
        assert receipt.bonus_primary == receipt.bonus_lp == 0
        assert receipt.unassigned == 500

    def test_exactness_over_random_inputs(self):
        """Portions always add up to the amount, pool shares to the bonus."""
        rng = random.Random(7)
        for _ in range(500):
            parameters = TreasuryParameters(
                endowment_percent=rng.randint(0, 100 * 10**18),
                weights={PoolKind.PRIMARY: rng.randint(1, 5), PoolKind.LP: rng.randint(1, 5)},
            )
            totals = {PoolKind.PRIMARY: rng.randint(1, 10**24), PoolKind.LP: rng.randint(0, 10**24)}
            amount = rng.randint(0, 10**27)
            receipt = split_profit(amount, totals, parameters.snapshot())
            assert receipt.endowment_portion + receipt.bonus_portion == amount
            assert receipt.bonus_primary + receipt.bonus_lp == receipt.bonus_portion


class TestReceiveProfit:
    """Tests for applying profit to balances and accumulators."""

    def test_zero_stake(self):
        acc = make_accumulator()
        acc.receive_profit(1000)

        assert acc.balances.endowment_balance == 1000
        assert acc.balances.bonus_balance == 0
        for kind in PoolKind:
            assert acc.registry.pool(kind).acc_reward_per_share == 0

    def test_advances_only_staked_pools(self):
        acc = make_accumulator()
        acc.registry.deposit(ALICE, 100, 0)
        acc.receive_profit(1000)

        assert acc.balances.endowment_balance == 500
        assert acc.balances.bonus_balance == 500
        assert acc.registry.pool(PoolKind.PRIMARY).acc_reward_per_share == 5 * ACC_PRECISION
        assert acc.registry.pool(PoolKind.LP).acc_reward_per_share == 0
        assert acc.pending(ALICE, PoolKind.PRIMARY) == 500

    def test_pending_split_by_stake(self):
        acc = make_accumulator()
        acc.registry.deposit(ALICE, 30, 0)
        acc.registry.deposit(BOB, 10, 50)
        acc.receive_profit(2000)

        # bonus 1000 split 40:50 -> primary 444, lp 556
        assert acc.pending(ALICE, PoolKind.PRIMARY) + acc.pending(BOB, PoolKind.PRIMARY) <= 444
        assert acc.pending(BOB, PoolKind.LP) <= 556
        assert acc.pending(ALICE, PoolKind.PRIMARY) == 333
        assert acc.pending(BOB, PoolKind.PRIMARY) == 111

    def test_unassigned_bonus_stays_in_pool(self):
        parameters = TreasuryParameters()
        parameters.set_pool_weight(PoolKind.PRIMARY, 0)
        acc = make_accumulator(parameters)
        acc.registry.deposit(ALICE, 100, 0)

        receipt = acc.receive_profit(1000)
        assert receipt.unassigned == 500
        assert acc.balances.bonus_balance == 500
        assert acc.registry.pool(PoolKind.PRIMARY).acc_reward_per_share == 0

    def test_accumulators_monotonic(self):
        rng = random.Random(11)
        acc = make_accumulator()
        acc.registry.deposit(ALICE, 1, 1)
        last = {kind: 0 for kind in PoolKind}
        for _ in range(200):
            if rng.random() < 0.3:
                acc.registry.deposit(BOB, rng.randint(0, 10**6), rng.randint(0, 10**6))
            acc.receive_profit(rng.randint(0, 10**9))
            for kind in PoolKind:
                value = acc.registry.pool(kind).acc_reward_per_share
                assert value >= last[kind]
                last[kind] = value


class TestSettle:
    """Tests for settlement."""

    def test_settle_mints_pending(self):
        acc = make_accumulator()
        acc.registry.deposit(ALICE, 10, 10)
        acc.receive_profit(100)

        assert acc.settle(ALICE) == 50
        assert acc.bonus_token.balance_of(ALICE) == 50

    def test_settle_without_pending(self):
        acc = make_accumulator()
        acc.registry.deposit(ALICE, 10, 0)
        assert acc.settle(ALICE) == 0
        assert acc.bonus_token.total_supply == 0

    def test_deposit_settles_once(self):
        """Settling through the registry resets tallies; a second pass mints nothing."""
        acc = make_accumulator()
        acc.registry.deposit(ALICE, 10, 0)
        acc.receive_profit(100)

        assert acc.registry.deposit(ALICE, 0, 0, settle=acc.settle) == 50
        assert acc.registry.deposit(ALICE, 0, 0, settle=acc.settle) == 0
        assert acc.bonus_token.balance_of(ALICE) == 50


class TestEstimatedYield:
    """Tests for estimated_yield."""

    def test_empty_pool(self):
        acc = make_accumulator()
        assert acc.estimated_yield(PoolKind.PRIMARY, 1000) == 0

    def test_yield_per_unit(self):
        acc = make_accumulator()
        acc.registry.deposit(ALICE, 100, 100)
        # bonus 500, each pool 250 over 100 units
        assert acc.estimated_yield(PoolKind.PRIMARY, 1000) == 25 * PRECISION // 10
        assert acc.estimated_yield(PoolKind.LP, 1000) == 25 * PRECISION // 10

    def test_does_not_mutate(self):
        acc = make_accumulator()
        acc.registry.deposit(ALICE, 100, 0)
        acc.estimated_yield(PoolKind.PRIMARY, 1000)
        assert acc.balances.total == 0
        assert acc.registry.pool(PoolKind.PRIMARY).acc_reward_per_share == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
