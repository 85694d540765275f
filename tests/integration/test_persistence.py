import pytest

from endow.core.access import DELEGATE, FINANCE_ADMIN
from endow.core.config import TreasuryConfig
from endow.core.emergency import EMERGENCY_DELAY
from endow.core.errors import InsufficientBalance
from endow.core.fixed_point import PRECISION
from endow.core.state import PoolKind
from endow.core.storage.storage_manager import StorageManager
from endow.core.treasury import LP_SYMBOL, PRIMARY_SYMBOL, SETTLEMENT_SYMBOL, Treasury
from endow.crypto import address_from_label

ADMIN = address_from_label("admin")
ALICE = address_from_label("alice")
BOB = address_from_label("bob")
SOURCE = address_from_label("profit-source")
VAULT = address_from_label("vault")


class FakeClock:
    def __init__(self, now=1_700_000_000):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def temp_data_dir(tmp_path):
    """Create a temporary directory for ledger data."""
    data_dir = tmp_path / "ledger_data"
    data_dir.mkdir()
    return data_dir


def ledger_state(treasury):
    return (
        treasury.stats(),
        {a: {k: (p.amount, p.reward_tally) for k, p in slots.items()} for a, slots in treasury.registry.positions.items()},
        {s: {a: b for a, b in t.balances.items() if b} for s, t in treasury.tokens.items()},
        {s: t.total_supply for s, t in treasury.tokens.items()},
        sorted(treasury.access.assignments()),
    )


def build_history(treasury):
    treasury.grant_role(ADMIN, FINANCE_ADMIN, ADMIN)
    treasury.grant_role(ADMIN, DELEGATE, ADMIN)
    treasury.set_burn_limit(ADMIN, PRECISION // 10)
    treasury.set_pool_weight(ADMIN, PoolKind.LP, 3)

    treasury.mint_asset(ADMIN, PRIMARY_SYMBOL, ALICE, 1000 * PRECISION)
    treasury.mint_asset(ADMIN, PRIMARY_SYMBOL, BOB, 500 * PRECISION)
    treasury.mint_asset(ADMIN, LP_SYMBOL, BOB, 300 * PRECISION)
    treasury.mint_asset(ADMIN, SETTLEMENT_SYMBOL, SOURCE, 10_000 * PRECISION)

    treasury.deposit(ALICE, 700 * PRECISION, 0)
    treasury.deposit(BOB, 100 * PRECISION, 300 * PRECISION)
    treasury.receive_profit(SOURCE, 1234 * PRECISION + 7)
    treasury.withdraw(ALICE, 200 * PRECISION, 0)
    treasury.receive_profit(SOURCE, 999 * PRECISION)
    treasury.spend_bonus(ADMIN, BOB, 50 * PRECISION)
    treasury.claim_and_burn_on_behalf(ADMIN, ALICE, 100 * PRECISION)


def test_treasury_persistence(temp_data_dir):
    """Ledger state is preserved across restarts."""
    # 1. Start and run a history
    storage_a = StorageManager(data_dir=temp_data_dir)
    treasury_a = Treasury(admin=ADMIN, storage_manager=storage_a)
    build_history(treasury_a)
    expected = ledger_state(treasury_a)
    assert treasury_a.check_invariants() == []

    del treasury_a
    del storage_a

    # 2. Reopen the same database
    storage_b = StorageManager(data_dir=temp_data_dir)
    treasury_b = Treasury(storage_manager=storage_b)

    assert ledger_state(treasury_b) == expected
    assert treasury_b.check_invariants() == []

    # 3. Continue operating on restored state
    pending = treasury_b.pending_bonus(BOB)
    assert treasury_b.deposit(BOB, 0, 0) == pending
    treasury_b.receive_profit(SOURCE, 10 * PRECISION)
    assert treasury_b.check_invariants() == []


def test_restored_parameters_override_config(temp_data_dir):
    """Stored parameters win over the config a restart is given."""
    config = TreasuryConfig(endowment_percent=20 * 10**18)
    treasury = Treasury(admin=ADMIN, config=config, storage_manager=StorageManager(temp_data_dir))
    treasury.grant_role(ADMIN, FINANCE_ADMIN, ADMIN)
    treasury.set_endowment_percent(ADMIN, 30 * 10**18)

    restored = Treasury(storage_manager=StorageManager(temp_data_dir))
    assert restored.parameters.endowment_percent == 30 * 10**18


def test_admin_ignored_on_restore(temp_data_dir):
    Treasury(admin=ADMIN, storage_manager=StorageManager(temp_data_dir))
    restored = Treasury(admin=BOB, storage_manager=StorageManager(temp_data_dir))
    assert restored.access.roles_of(BOB) == []
    assert restored.access.roles_of(ADMIN) == ["DEFAULT_ADMIN"]


def test_emergency_request_persists(temp_data_dir):
    clock = FakeClock()
    treasury = Treasury(admin=ADMIN, storage_manager=StorageManager(temp_data_dir), clock=clock)
    treasury.mint_asset(ADMIN, SETTLEMENT_SYMBOL, treasury.address, 100)
    treasury.set_emergency_transfer(ADMIN, SETTLEMENT_SYMBOL, VAULT, 40)

    clock.now += EMERGENCY_DELAY + 1
    restored = Treasury(storage_manager=StorageManager(temp_data_dir), clock=clock)
    assert restored.timelock.request == treasury.timelock.request

    restored.execute_emergency_transfer(ADMIN)
    again = Treasury(storage_manager=StorageManager(temp_data_dir), clock=clock)
    assert again.timelock.request is None
    assert again.settlement_token.balance_of(VAULT) == 40


def test_history_journal(temp_data_dir):
    treasury = Treasury(admin=ADMIN, storage_manager=StorageManager(temp_data_dir))
    build_history(treasury)

    ops = [entry["op"] for entry in treasury.history(limit=100)]
    assert ops[0] == "claim_and_burn_on_behalf"
    assert ops[-1] == "init"
    assert "receive_profit" in ops

    alice_ops = [entry["op"] for entry in treasury.history(ALICE)]
    assert alice_ops == ["claim_and_burn_on_behalf", "withdraw", "deposit", "mint_asset"]


def test_rejected_operation_is_not_journaled(temp_data_dir):
    treasury = Treasury(admin=ADMIN, storage_manager=StorageManager(temp_data_dir))
    count = len(treasury.history())
    with pytest.raises(InsufficientBalance):
        treasury.withdraw(ALICE, 1, 0)
    assert len(treasury.history()) == count


def test_failed_write_rolls_back(temp_data_dir, monkeypatch):
    """A storage failure leaves memory matching the database."""
    storage = StorageManager(temp_data_dir)
    treasury = Treasury(admin=ADMIN, storage_manager=storage)
    build_history(treasury)
    before = ledger_state(treasury)

    def disk_full(**kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(storage, "persist_treasury_update", disk_full)

    with pytest.raises(RuntimeError):
        treasury.receive_profit(SOURCE, 500 * PRECISION)
    with pytest.raises(RuntimeError):
        treasury.deposit(ALICE, 10 * PRECISION, 0)
    with pytest.raises(RuntimeError):
        treasury.spend_bonus(ADMIN, BOB, PRECISION)
    with pytest.raises(RuntimeError):
        treasury.set_pool_weight(ADMIN, PoolKind.PRIMARY, 5)

    assert ledger_state(treasury) == before
    assert treasury.check_invariants() == []

    monkeypatch.undo()
    restored = Treasury(storage_manager=StorageManager(temp_data_dir))
    assert ledger_state(restored) == before

    # the live instance keeps working once storage recovers
    treasury.receive_profit(SOURCE, 500 * PRECISION)
    assert treasury.check_invariants() == []
