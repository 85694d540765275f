"""
Treasury Balances - accounting subdivisions of the settlement asset.

endowment_balance and bonus_balance are disjoint slices of the settlement
asset the treasury holds. Their sum never exceeds that holding, and
neither ever goes negative.
"""

from dataclasses import asdict, dataclass

from endow.core.errors import InsufficientBalance, InsufficientBonus


@dataclass
class TreasuryBalances:
    """Endowment reserve and undistributed bonus pool."""
    endowment_balance: int = 0
    bonus_balance: int = 0

    @property
    def total(self) -> int:
        return self.endowment_balance + self.bonus_balance

    def credit(self, endowment: int = 0, bonus: int = 0) -> None:
        self.endowment_balance += endowment
        self.bonus_balance += bonus

    def debit_endowment(self, amount: int) -> None:
        if amount > self.endowment_balance:
            raise InsufficientBalance(
                f"Endowment holds {self.endowment_balance}, cannot pay {amount}"
            )
        self.endowment_balance -= amount

    def debit_bonus(self, amount: int) -> None:
        if amount > self.bonus_balance:
            raise InsufficientBonus(
                f"Bonus pool holds {self.bonus_balance}, cannot pay {amount}"
            )
        self.bonus_balance -= amount

    def to_dict(self) -> dict:
        return asdict(self)
