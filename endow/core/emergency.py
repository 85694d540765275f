"""
Emergency Transfer - timelocked recovery of funds held by the treasury.

An admin files a request (token, destination, amount). It can be executed
only strictly after `delay` and strictly before `expiry` seconds have
passed since filing. There is a single slot: a new request replaces the
previous one, and execution clears it.
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional

from endow.core.errors import TimelockError
from endow.utils.logger import get_logger

logger = get_logger("emergency")


EMERGENCY_DELAY = 24 * 60 * 60     # 24h
EMERGENCY_EXPIRY = 72 * 60 * 60    # 72h


@dataclass
class EmergencyTransferRequest:
    """A pending recovery transfer."""
    token: str
    destination: bytes
    amount: int
    timestamp: int

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "destination": self.destination.hex(),
            "amount": str(self.amount),
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EmergencyTransferRequest":
        return cls(
            token=data["token"],
            destination=bytes.fromhex(data["destination"]),
            amount=int(data["amount"]),
            timestamp=int(data["timestamp"]),
        )


class EmergencyTimelock:
    """
    Single-slot timelock gate.
    """

    def __init__(
        self,
        delay: int = EMERGENCY_DELAY,
        expiry: int = EMERGENCY_EXPIRY,
        clock: Callable[[], float] = time.time,
    ):
        self.delay = delay
        self.expiry = expiry
        self.clock = clock
        self.request: Optional[EmergencyTransferRequest] = None

    def set_request(self, token: str, destination: bytes, amount: int) -> EmergencyTransferRequest:
        """File a request, replacing any pending one."""
        if self.request is not None:
            logger.warning(f"Replacing pending emergency request for {self.request.amount} {self.request.token}")
        self.request = EmergencyTransferRequest(
            token=token,
            destination=destination,
            amount=amount,
            timestamp=int(self.clock()),
        )
        logger.warning(f"Emergency transfer filed: {amount} {token} to 0x{destination.hex()[:8]}...")
        return self.request

    def is_executable(self) -> bool:
        if self.request is None:
            return False
        elapsed = int(self.clock()) - self.request.timestamp
        return self.delay < elapsed < self.expiry

    def check_executable(self) -> EmergencyTransferRequest:
        """
        Raises:
            TimelockError: if no request is pending or outside the window
        """
        if self.request is None:
            raise TimelockError("No emergency transfer pending")
        if not self.is_executable():
            elapsed = int(self.clock()) - self.request.timestamp
            raise TimelockError(
                f"Emergency transfer not executable: {elapsed}s elapsed, "
                f"window is ({self.delay}, {self.expiry})"
            )
        return self.request

    def consume(self) -> EmergencyTransferRequest:
        """Return the executable request and clear the slot."""
        request = self.check_executable()
        self.request = None
        return request
