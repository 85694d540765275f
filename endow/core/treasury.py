"""
Treasury - the externally callable surface of the ledger.

Conceptual Background:
---------------------
The Treasury composes the accounting components around one shared state:

    StakePoolRegistry ─┐
    TreasuryBalances ──┼─ RewardAccumulator (profit, settlement)
    TreasuryParameters ┤  BonusLedger (spend, rebate)
    bonus token ───────┘  BurnRedemption (claim and burn)

and adds what a caller needs around them: capability checks, input
validation, asset transfers, persistence and logging.

Transactions:
------------
Every operation runs under one exclusive lock as a read-modify-write
transaction. All preconditions (roles, input shape, balances, limits)
are checked before anything is mutated, and asset transfers that could
fail are ordered before ledger mutation. The in-memory state is
checkpointed when an operation starts and restored if anything raises
afterwards (including a failed write to storage), so a failed call leaves
the state unchanged. Queries take the same lock and never see a
half-applied operation.
"""

import copy
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from endow.core.access import DEFAULT_ADMIN, DELEGATE, FINANCE_ADMIN, AccessControl
from endow.core.bonus import BonusLedger, SpendReceipt
from endow.core.burn import BurnReceipt, BurnRedemption
from endow.core.config import TreasuryConfig
from endow.core.emergency import EmergencyTimelock, EmergencyTransferRequest
from endow.core.errors import InsufficientBalance, InvalidParameter, TreasuryError
from endow.core.fixed_point import accrued
from endow.core.parameters import TreasuryParameters
from endow.core.rewards import ProfitReceipt, RewardAccumulator
from endow.core.state import PoolKind, StakePoolRegistry, StakePosition, TreasuryBalances
from endow.core.storage.storage_manager import StorageManager, StoredTreasury
from endow.core.token import FungibleToken
from endow.crypto import address_from_label, short_address
from endow.utils.logger import get_logger
from endow.utils.validation import validate_address, validate_amount

logger = get_logger("treasury")


# =============================================================================
# Constants
# =============================================================================

PRIMARY_SYMBOL = "PRIMARY"
LP_SYMBOL = "LP"
SETTLEMENT_SYMBOL = "SETTLE"
BONUS_SYMBOL = "BONUS"

TOKEN_SYMBOLS = (PRIMARY_SYMBOL, LP_SYMBOL, SETTLEMENT_SYMBOL, BONUS_SYMBOL)

# Holder of staked assets and the settlement asset
DEFAULT_TREASURY_ADDRESS = address_from_label("endow.treasury")


# =============================================================================
# Treasury
# =============================================================================


class Treasury:
    """
    Staking treasury with endowment, bonus pool and burn redemption.

    Attributes:
        registry: Pools and stake positions
        balances: Endowment / bonus subdivisions of the settlement asset
        parameters: Admin-set configuration
        tokens: symbol -> FungibleToken for the four assets
        rewards: Profit receipt and settlement
        bonus: Bonus spend / rebate
        burn: Burn redemption
        access: Role table
        timelock: Emergency transfer gate
    """

    def __init__(
        self,
        admin: Optional[bytes] = None,
        config: Optional[TreasuryConfig] = None,
        storage_manager: Optional[StorageManager] = None,
        address: bytes = DEFAULT_TREASURY_ADDRESS,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the treasury.

        Args:
            admin: Initial DEFAULT_ADMIN (ignored when state is loaded from storage)
            config: Initial parameters and timelock window. None = defaults.
            storage_manager: Persistence manager. None = in-memory only.
            address: Account holding the treasury's assets
            clock: Time source for the emergency timelock
        """
        self.config = config or TreasuryConfig()
        self.address = address
        self.storage_manager = storage_manager
        self._lock = threading.RLock()

        stored = storage_manager.load_treasury(TOKEN_SYMBOLS) if storage_manager else None
        restoring = stored is not None and not stored.is_empty

        if restoring:
            self.parameters = TreasuryParameters.from_dict(stored.state["parameters"])
            self.balances = TreasuryBalances(
                endowment_balance=int(stored.state["balances"]["endowment_balance"]),
                bonus_balance=int(stored.state["balances"]["bonus_balance"]),
            )
        else:
            self.parameters = self.config.to_parameters()
            self.balances = TreasuryBalances()

        self.registry = StakePoolRegistry()
        self.tokens: Dict[str, FungibleToken] = {symbol: FungibleToken(symbol) for symbol in TOKEN_SYMBOLS}
        self.access = AccessControl(None if restoring else admin)
        self.timelock = EmergencyTimelock(
            delay=self.config.emergency_delay,
            expiry=self.config.emergency_expiry,
            clock=clock,
        )

        self.rewards = RewardAccumulator(self.registry, self.bonus_token, self.balances, self.parameters)
        self.bonus = BonusLedger(self.registry, self.bonus_token, self.balances)
        self.burn = BurnRedemption(
            self.bonus,
            self.balances,
            self.parameters,
            self.primary_token,
            self.settlement_token,
            self.address,
        )

        if restoring:
            self._restore(stored)
        elif storage_manager:
            self._commit("init", admin, {"parameters": self.parameters.to_dict()}, [], roles_changed=True)

        logger.info(f"Treasury ready at {short_address(self.address)} ({'restored' if restoring else 'new'})")

    # =========================================================================
    # Token Shortcuts
    # =========================================================================

    @property
    def primary_token(self) -> FungibleToken:
        return self.tokens[PRIMARY_SYMBOL]

    @property
    def lp_token(self) -> FungibleToken:
        return self.tokens[LP_SYMBOL]

    @property
    def settlement_token(self) -> FungibleToken:
        return self.tokens[SETTLEMENT_SYMBOL]

    @property
    def bonus_token(self) -> FungibleToken:
        return self.tokens[BONUS_SYMBOL]

    def _stake_token(self, kind: PoolKind) -> FungibleToken:
        return self.primary_token if kind == PoolKind.PRIMARY else self.lp_token

    # =========================================================================
    # Staking
    # =========================================================================

    def deposit(self, account: bytes, amount_primary: int, amount_lp: int) -> int:
        """
        Stake the caller's own assets.

        Returns:
            Bonus minted by settlement
        """
        with self._operation("deposit"):
            return self._deposit(account, amount_primary, amount_lp, skip_transfer=False)

    def deposit_on_behalf(self, caller: bytes, account: bytes, amount_primary: int, amount_lp: int) -> int:
        """Record a stake whose asset transfer already happened off-band."""
        with self._operation("deposit_on_behalf"):
            self.access.require(DELEGATE, caller)
            return self._deposit(account, amount_primary, amount_lp, skip_transfer=True)

    def withdraw(self, account: bytes, amount_primary: int, amount_lp: int) -> int:
        """
        Unstake and return the caller's own assets.

        Returns:
            Bonus minted by settlement
        """
        with self._operation("withdraw"):
            return self._withdraw(account, amount_primary, amount_lp, skip_transfer=False)

    def withdraw_on_behalf(self, caller: bytes, account: bytes, amount_primary: int, amount_lp: int) -> int:
        """Unstake without returning assets; the delegate settles them off-band."""
        with self._operation("withdraw_on_behalf"):
            self.access.require(DELEGATE, caller)
            return self._withdraw(account, amount_primary, amount_lp, skip_transfer=True)

    def emergency_withdraw(self, account: bytes) -> Tuple[int, int]:
        """
        Return all of an account's stake, forfeiting pending bonus.

        Returns:
            (primary, lp) amounts returned
        """
        with self._operation("emergency_withdraw"):
            self._check_account(account)
            staked = [self.registry.get_position(account, kind).amount for kind in PoolKind]
            for kind, amount in zip(PoolKind, staked):
                self._check_holding(self._stake_token(kind), amount)

            amount_primary, amount_lp = self.registry.emergency_withdraw(account)
            self.primary_token.transfer(self.address, account, amount_primary)
            self.lp_token.transfer(self.address, account, amount_lp)

            self._commit(
                "emergency_withdraw", account,
                {"amount_primary": amount_primary, "amount_lp": amount_lp},
                [account],
            )
            return amount_primary, amount_lp

    def _deposit(self, account: bytes, amount_primary: int, amount_lp: int, skip_transfer: bool) -> int:
        self._check_account(account)
        self._check_amount(amount_primary, "amount_primary")
        self._check_amount(amount_lp, "amount_lp")

        if not skip_transfer:
            for token, amount in ((self.primary_token, amount_primary), (self.lp_token, amount_lp)):
                if token.balance_of(account) < amount:
                    raise InsufficientBalance(
                        f"{token.symbol}: {short_address(account)} holds {token.balance_of(account)}, deposit {amount}"
                    )
            self.primary_token.transfer(account, self.address, amount_primary)
            self.lp_token.transfer(account, self.address, amount_lp)

        minted = self.registry.deposit(account, amount_primary, amount_lp, settle=self.rewards.settle)

        logger.info(
            f"Deposit {short_address(account)}: primary={amount_primary}, lp={amount_lp}, settled={minted}"
        )
        self._commit(
            "deposit_on_behalf" if skip_transfer else "deposit", account,
            {"amount_primary": amount_primary, "amount_lp": amount_lp, "settled": minted},
            [account],
        )
        return minted

    def _withdraw(self, account: bytes, amount_primary: int, amount_lp: int, skip_transfer: bool) -> int:
        self._check_account(account)
        self._check_amount(amount_primary, "amount_primary")
        self._check_amount(amount_lp, "amount_lp")
        self.registry.check_withdrawable(account, amount_primary, amount_lp)

        if not skip_transfer:
            self._check_holding(self.primary_token, amount_primary)
            self._check_holding(self.lp_token, amount_lp)

        minted = self.registry.withdraw(account, amount_primary, amount_lp, settle=self.rewards.settle)

        if not skip_transfer:
            self.primary_token.transfer(self.address, account, amount_primary)
            self.lp_token.transfer(self.address, account, amount_lp)

        logger.info(
            f"Withdraw {short_address(account)}: primary={amount_primary}, lp={amount_lp}, settled={minted}"
        )
        self._commit(
            "withdraw_on_behalf" if skip_transfer else "withdraw", account,
            {"amount_primary": amount_primary, "amount_lp": amount_lp, "settled": minted},
            [account],
        )
        return minted

    # =========================================================================
    # Profit
    # =========================================================================

    def receive_profit(self, payer: bytes, amount: int) -> ProfitReceipt:
        """
        Take `amount` of settlement asset from payer and distribute it.
        """
        with self._operation("receive_profit"):
            self._check_account(payer, "payer")
            self._check_amount(amount)
            params = self.parameters.snapshot()

            self.settlement_token.transfer(payer, self.address, amount)
            receipt = self.rewards.receive_profit(amount, params)

            self._commit(
                "receive_profit", payer,
                {
                    "amount": amount,
                    "endowment_portion": receipt.endowment_portion,
                    "bonus_portion": receipt.bonus_portion,
                    "bonus_primary": receipt.bonus_primary,
                    "bonus_lp": receipt.bonus_lp,
                },
                [payer],
            )
            return receipt

    # =========================================================================
    # Bonus (delegate)
    # =========================================================================

    def spend_bonus(self, caller: bytes, account: bytes, amount: int) -> SpendReceipt:
        """Draw down an account's bonus (LP pending, then primary pending, then minted)."""
        with self._operation("spend_bonus"):
            self.access.require(DELEGATE, caller)
            self._check_account(account)
            self._check_amount(amount)

            receipt = self.bonus.spend(account, amount)

            self._commit(
                "spend_bonus", account,
                {
                    "amount": amount,
                    "from_lp": receipt.from_lp,
                    "from_primary": receipt.from_primary,
                    "burned": receipt.burned,
                },
                [account],
            )
            return receipt

    def rebate_bonus(self, caller: bytes, account: bytes, amount: int) -> int:
        """Refund over-charged bonus to an account."""
        with self._operation("rebate_bonus"):
            self.access.require(DELEGATE, caller)
            self._check_account(account)
            self._check_amount(amount)

            minted = self.bonus.rebate(account, amount)

            self._commit("rebate_bonus", account, {"amount": amount}, [account])
            return minted

    # =========================================================================
    # Burn Redemption (delegate)
    # =========================================================================

    def claim_and_burn_on_behalf(self, caller: bytes, beneficiary: bytes, burn_amount: int) -> BurnReceipt:
        """
        Pay a beneficiary its endowment share and capped bonus for burning
        `burn_amount` of primary asset, then burn that amount from it.
        """
        with self._operation("claim_and_burn_on_behalf"):
            self.access.require(DELEGATE, caller)
            self._check_account(beneficiary, "beneficiary")
            self._check_amount(burn_amount, "burn_amount")
            params = self.parameters.snapshot()

            held = self.primary_token.balance_of(beneficiary)
            if held < burn_amount:
                raise InsufficientBalance(
                    f"{PRIMARY_SYMBOL}: {short_address(beneficiary)} holds {held}, burn {burn_amount}"
                )

            receipt = self.burn.claim_and_burn(beneficiary, burn_amount, params)
            self.primary_token.burn(beneficiary, burn_amount)

            self._commit(
                "claim_and_burn_on_behalf", beneficiary,
                {
                    "burn_amount": burn_amount,
                    "endowment_portion": receipt.endowment_portion,
                    "bonus_portion": receipt.bonus_portion,
                },
                [beneficiary],
            )
            return receipt

    # =========================================================================
    # Parameters (finance admin)
    # =========================================================================

    def set_endowment_percent(self, caller: bytes, value: int) -> None:
        with self._operation("set_endowment_percent"):
            self.access.require(FINANCE_ADMIN, caller)
            self.parameters.set_endowment_percent(value)
            self._commit("set_endowment_percent", caller, {"value": value}, [])

    def set_burn_limit(self, caller: bytes, value: int) -> None:
        with self._operation("set_burn_limit"):
            self.access.require(FINANCE_ADMIN, caller)
            self.parameters.set_burn_limit(value)
            self._commit("set_burn_limit", caller, {"value": value}, [])

    def set_burn_multiplier(self, caller: bytes, value: int) -> None:
        with self._operation("set_burn_multiplier"):
            self.access.require(FINANCE_ADMIN, caller)
            self.parameters.set_burn_multiplier(value)
            self._commit("set_burn_multiplier", caller, {"value": value}, [])

    def set_pool_weight(self, caller: bytes, kind: PoolKind, weight: int) -> None:
        with self._operation("set_pool_weight"):
            self.access.require(FINANCE_ADMIN, caller)
            self.parameters.set_pool_weight(kind, weight)
            self._commit("set_pool_weight", caller, {"pool": kind.name, "weight": weight}, [])

    # =========================================================================
    # Administration
    # =========================================================================

    def grant_role(self, caller: bytes, role: str, account: bytes) -> bool:
        with self._operation("grant_role"):
            self._check_account(account)
            granted = self.access.grant_role(caller, role, account)
            self._commit("grant_role", account, {"role": role}, [], roles_changed=True)
            return granted

    def revoke_role(self, caller: bytes, role: str, account: bytes) -> bool:
        with self._operation("revoke_role"):
            self._check_account(account)
            revoked = self.access.revoke_role(caller, role, account)
            self._commit("revoke_role", account, {"role": role}, [], roles_changed=True)
            return revoked

    def mint_asset(self, caller: bytes, symbol: str, account: bytes, amount: int) -> None:
        """Issue primary, LP or settlement asset (bonus is only minted by the ledger)."""
        with self._operation("mint_asset"):
            self.access.require(DEFAULT_ADMIN, caller)
            self._check_account(account)
            self._check_amount(amount)
            if symbol not in (PRIMARY_SYMBOL, LP_SYMBOL, SETTLEMENT_SYMBOL):
                raise InvalidParameter(f"Cannot mint {symbol}")
            self.tokens[symbol].mint(account, amount)
            self._commit("mint_asset", account, {"symbol": symbol, "amount": amount}, [account])

    def airdrop(self, sender: bytes, symbol: str, recipients: Sequence[bytes], amounts: Sequence[int]) -> int:
        """Distribute the sender's tokens to many recipients."""
        with self._operation("airdrop"):
            self._check_account(sender, "sender")
            for recipient in recipients:
                self._check_account(recipient, "recipient")
            token = self._token(symbol)
            total = token.airdrop(sender, recipients, amounts)
            self._commit(
                "airdrop", sender,
                {"symbol": symbol, "recipients": len(recipients), "total": total},
                [sender, *recipients],
            )
            return total

    def set_emergency_transfer(self, caller: bytes, symbol: str, destination: bytes, amount: int) -> EmergencyTransferRequest:
        """File a timelocked transfer of treasury-held funds."""
        with self._operation("set_emergency_transfer"):
            self.access.require(DEFAULT_ADMIN, caller)
            self._check_account(destination, "destination")
            self._check_amount(amount)
            self._token(symbol)
            request = self.timelock.set_request(symbol, destination, amount)
            self._commit("set_emergency_transfer", destination, request.to_dict(), [])
            return request

    def execute_emergency_transfer(self, caller: bytes) -> EmergencyTransferRequest:
        """Execute the pending emergency transfer inside its window."""
        with self._operation("execute_emergency_transfer"):
            self.access.require(DEFAULT_ADMIN, caller)
            request = self.timelock.check_executable()
            self._check_holding(self._token(request.token), request.amount)

            self.timelock.consume()
            self._token(request.token).transfer(self.address, request.destination, request.amount)

            logger.warning(
                f"Emergency transfer executed: {request.amount} {request.token} to {short_address(request.destination)}"
            )
            self._commit("execute_emergency_transfer", request.destination, request.to_dict(), [request.destination])
            return request

    # =========================================================================
    # Queries
    # =========================================================================

    def get_position(self, account: bytes, kind: PoolKind) -> StakePosition:
        with self._lock:
            return copy.copy(self.registry.get_position(account, kind))

    def pending_bonus(self, account: bytes) -> int:
        with self._lock:
            return self.bonus.pending_bonus(account)

    def total_bonus(self, account: bytes) -> int:
        with self._lock:
            return self.bonus.total_bonus(account)

    def get_burn_value_portions(self, account: bytes, burn_amount: int) -> Tuple[int, int]:
        with self._lock:
            return self.burn.get_burn_value_portions(account, burn_amount)

    def get_burn_value(self, account: bytes, burn_amount: int) -> int:
        with self._lock:
            return self.burn.get_burn_value(account, burn_amount)

    def max_burn_amount(self) -> int:
        with self._lock:
            return self.burn.max_burn_amount()

    def estimated_yield(self, kind: PoolKind, profit_amount: int) -> int:
        with self._lock:
            return self.rewards.estimated_yield(kind, profit_amount)

    def history(self, account: Optional[bytes] = None, limit: int = 100) -> List[dict]:
        """Journal of applied operations (requires storage)."""
        if not self.storage_manager:
            return []
        return self.storage_manager.get_history(account, limit)

    def check_invariants(self) -> List[str]:
        """
        Verify the ledger's accounting invariants.

        Returns:
            Human-readable violations (empty when consistent)
        """
        violations = []
        with self._lock:
            for kind in PoolKind:
                pool = self.registry.pool(kind)
                staked = sum(slots[kind].amount for slots in self.registry.positions.values())
                if staked != pool.total_staked:
                    violations.append(f"{kind.name}: positions sum {staked} != total_staked {pool.total_staked}")

                held = self._stake_token(kind).balance_of(self.address)
                if held < pool.total_staked:
                    violations.append(f"{kind.name}: treasury holds {held} < total_staked {pool.total_staked}")

                for account, slots in self.registry.positions.items():
                    position = slots[kind]
                    if accrued(position.amount, pool.acc_reward_per_share) < position.reward_tally:
                        violations.append(f"{kind.name}: negative pending for {short_address(account)}")

            held = self.settlement_token.balance_of(self.address)
            if self.balances.total > held:
                violations.append(f"endowment + bonus {self.balances.total} > settlement held {held}")
            if self.balances.endowment_balance < 0 or self.balances.bonus_balance < 0:
                violations.append(f"negative treasury balance: {self.balances.to_dict()}")
        return violations

    def stats(self) -> dict:
        """Get treasury statistics."""
        with self._lock:
            return {
                **self.registry.stats(),
                **self.balances.to_dict(),
                **self.parameters.to_dict(),
                "settlement_held": self.settlement_token.balance_of(self.address),
                "primary_supply": self.primary_token.total_supply,
                "bonus_supply": self.bonus_token.total_supply,
                "max_burn_amount": self.burn.max_burn_amount(),
            }

    # =========================================================================
    # Internals
    # =========================================================================

    @contextmanager
    def _operation(self, name: str):
        """Serialize an operation; undo its effects and log if it raises."""
        with self._lock:
            checkpoint = self._checkpoint()
            try:
                yield
            except TreasuryError as e:
                self._rollback(checkpoint)
                logger.warning(f"{name} rejected: {type(e).__name__}: {e}")
                raise
            except Exception as e:
                self._rollback(checkpoint)
                logger.error(f"{name} failed, ledger rolled back: {type(e).__name__}: {e}")
                raise

    def _stateful(self) -> list:
        return [self.registry, self.balances, self.parameters, self.access, *self.tokens.values()]

    def _checkpoint(self) -> tuple:
        """Copy every mutable component's state."""
        saved = [copy.deepcopy(vars(component)) for component in self._stateful()]
        return saved, self.timelock.request

    def _rollback(self, checkpoint: tuple) -> None:
        # Restore in place: the accounting components share these objects.
        saved, request = checkpoint
        for component, state in zip(self._stateful(), saved):
            vars(component).clear()
            vars(component).update(state)
        self.timelock.request = request

    def _token(self, symbol: str) -> FungibleToken:
        token = self.tokens.get(symbol)
        if token is None:
            raise InvalidParameter(f"Unknown token: {symbol}")
        return token

    def _check_holding(self, token: FungibleToken, amount: int) -> None:
        held = token.balance_of(self.address)
        if held < amount:
            raise InsufficientBalance(f"{token.symbol}: treasury holds {held}, needs {amount}")

    @staticmethod
    def _check_account(account, name: str = "account") -> None:
        valid, err = validate_address(account, name)
        if not valid:
            raise InvalidParameter(err)

    @staticmethod
    def _check_amount(amount, name: str = "amount") -> None:
        valid, err = validate_amount(amount, name)
        if not valid:
            raise InvalidParameter(err)

    def _commit(
        self,
        op: str,
        account: Optional[bytes],
        data: dict,
        touched: Iterable[bytes],
        roles_changed: bool = False,
    ) -> None:
        """Persist the effects of an operation, if storage is attached."""
        if not self.storage_manager:
            return

        accounts = sorted(set(touched) | {self.address})
        request = self.timelock.request
        self.storage_manager.persist_treasury_update(
            op=op,
            account=account,
            op_data=data,
            state={
                "balances": self.balances.to_dict(),
                "parameters": self.parameters.to_dict(),
                "emergency": request.to_dict() if request else None,
            },
            pools=[
                (int(kind), pool.total_staked, pool.acc_reward_per_share)
                for kind, pool in self.registry.pools.items()
            ],
            positions=self.registry.position_rows(accounts),
            roles=self.access.assignments() if roles_changed else None,
            token_balances=[
                (symbol, acct, token.balance_of(acct))
                for symbol, token in self.tokens.items()
                for acct in accounts
            ],
        )

    def _restore(self, stored: StoredTreasury) -> None:
        """Rebuild in-memory state from storage."""
        self.registry.load(stored.pools, stored.positions)
        for symbol, rows in stored.token_balances.items():
            self.tokens[symbol].load(rows)
        self.access.load(stored.roles)

        emergency = stored.state.get("emergency")
        if emergency:
            self.timelock.request = EmergencyTransferRequest.from_dict(emergency)

        logger.info(
            f"Loaded treasury: {len(self.registry.positions)} accounts, "
            f"endowment={self.balances.endowment_balance}, bonus={self.balances.bonus_balance}"
        )

    def __repr__(self) -> str:
        return (
            f"Treasury(stakers={len(self.registry.positions)}, "
            f"endowment={self.balances.endowment_balance}, bonus={self.balances.bonus_balance})"
        )
