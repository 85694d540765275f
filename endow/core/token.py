"""
Fungible token balances for the treasury's collaborators.

The treasury touches four fungible assets:
- the primary staked asset (its total supply drives burn redemption)
- the LP derivative staked asset
- the settlement asset profit is paid in
- the bonus token minted to stakers

This module keeps their balance ledgers. Allowances, metadata and
signature approvals are not modelled.
"""

from typing import Dict, List, Optional, Sequence

from endow.core.errors import ArrayLengthMismatch, InsufficientBalance, InvalidParameter
from endow.utils.logger import get_logger
from endow.utils.validation import validate_amount, validate_array

logger = get_logger("token")


class FungibleToken:
    """
    Balance ledger for a single fungible asset.

    Attributes:
        symbol: Ticker used in logs and persistence keys
        balances: account -> balance (absent means zero)
        total_supply: Sum of all balances
    """

    def __init__(self, symbol: str, initial_supply: int = 0, holder: Optional[bytes] = None):
        self.symbol = symbol
        self.balances: Dict[bytes, int] = {}
        self.total_supply = 0

        if initial_supply:
            if holder is None:
                raise InvalidParameter("initial_supply requires a holder")
            self.mint(holder, initial_supply)

    def balance_of(self, account: bytes) -> int:
        """Returns the token balance of the given account."""
        return self.balances.get(account, 0)

    def mint(self, recipient: bytes, amount: int) -> bool:
        """
        Mints new tokens to the recipient account.

        Returns:
            True if anything was minted
        """
        self._check_amount(amount)
        if amount == 0:
            return False

        self.balances[recipient] = self.balances.get(recipient, 0) + amount
        self.total_supply += amount
        return True

    def burn(self, from_account: bytes, amount: int) -> bool:
        """
        Burns tokens from the given account.

        Raises:
            InsufficientBalance: if the account holds less than amount
        """
        self._check_amount(amount)
        if amount == 0:
            return False

        from_balance = self.balances.get(from_account, 0)
        if from_balance < amount:
            raise InsufficientBalance(
                f"{self.symbol}: cannot burn {amount}, balance is {from_balance}"
            )

        self.balances[from_account] = from_balance - amount
        self.total_supply -= amount
        return True

    def transfer(self, sender: bytes, recipient: bytes, amount: int) -> bool:
        """
        Transfers tokens from sender to recipient.

        Raises:
            InsufficientBalance: if sender holds less than amount
        """
        self._check_amount(amount)
        if amount == 0:
            return False

        sender_balance = self.balances.get(sender, 0)
        if sender_balance < amount:
            raise InsufficientBalance(
                f"{self.symbol}: cannot transfer {amount}, balance is {sender_balance}"
            )

        self.balances[sender] = sender_balance - amount
        self.balances[recipient] = self.balances.get(recipient, 0) + amount
        return True

    def airdrop(
        self,
        sender: bytes,
        recipients: Sequence[bytes],
        amounts: Sequence[int],
    ) -> int:
        """
        Distribute tokens from sender to many recipients at once.

        All-or-nothing: shapes and the sender's balance are checked
        before any balance moves.

        Returns:
            Total amount distributed

        Raises:
            ArrayLengthMismatch: if recipients and amounts differ in length
            InsufficientBalance: if sender cannot cover the total
        """
        for name, data in (("recipients", recipients), ("amounts", amounts)):
            valid, err = validate_array(data, name)
            if not valid:
                raise InvalidParameter(err)

        if len(recipients) != len(amounts):
            raise ArrayLengthMismatch(
                f"{len(recipients)} recipients but {len(amounts)} amounts"
            )

        for amount in amounts:
            self._check_amount(amount)

        total = sum(amounts)
        if self.balance_of(sender) < total:
            raise InsufficientBalance(
                f"{self.symbol}: airdrop needs {total}, balance is {self.balance_of(sender)}"
            )

        for recipient, amount in zip(recipients, amounts):
            self.transfer(sender, recipient, amount)

        logger.info(f"{self.symbol} airdrop: {total} to {len(recipients)} recipients")
        return total

    def load(self, rows: Sequence[tuple]) -> None:
        """Restore (account, balance) rows from storage."""
        for account, balance in rows:
            self.balances[account] = balance
        self.total_supply = sum(self.balances.values())

    def holders(self) -> List[tuple]:
        """(account, balance) pairs with non-zero balance."""
        return [(acct, bal) for acct, bal in self.balances.items() if bal > 0]

    @staticmethod
    def _check_amount(amount: int) -> None:
        valid, err = validate_amount(amount)
        if not valid:
            raise InvalidParameter(err)

    def __repr__(self) -> str:
        return f"FungibleToken({self.symbol}, supply={self.total_supply}, holders={len(self.holders())})"
