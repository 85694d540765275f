"""
Treasury error kinds.

Every error is raised by a precondition check before any state is
mutated, so a failed call leaves the ledger exactly as it was.
"""


class TreasuryError(Exception):
    """Base class for all ledger errors."""


class Unauthorized(TreasuryError):
    """Caller lacks the capability required by the operation."""

    def __init__(self, role: str, account: bytes):
        self.role = role
        self.account = account
        super().__init__(f"Account 0x{account.hex()} is missing role {role}")


class InsufficientBalance(TreasuryError):
    """A withdrawal, transfer or payout exceeds the available balance."""


class InsufficientBonus(TreasuryError):
    """A spend exceeds the account's total claimable bonus."""


class BurnLimitExceeded(TreasuryError):
    """Burn amount exceeds the configured share of primary supply."""


class ArrayLengthMismatch(TreasuryError):
    """Bulk operation received parallel arrays of different lengths."""


class InvalidParameter(TreasuryError, ValueError):
    """Malformed input or out-of-range configuration value."""


class TimelockError(TreasuryError):
    """Emergency transfer is missing or outside its execution window."""


__all__ = [
    "TreasuryError",
    "Unauthorized",
    "InsufficientBalance",
    "InsufficientBonus",
    "BurnLimitExceeded",
    "ArrayLengthMismatch",
    "InvalidParameter",
    "TimelockError",
]
