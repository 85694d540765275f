"""
Access Control - capability lookup for privileged operations.

Roles:
- DEFAULT_ADMIN: grants/revokes roles, manages emergency transfers
- FINANCE_ADMIN: updates treasury parameters
- DELEGATE: trusted operator that spends, rebates and burns on behalf
  of stakers, and records stakes whose transfer happened off-band

Privileged operations call `require(role, account)` as their first
precondition.
"""

from typing import Dict, Iterable, List, Optional, Set

from endow.core.errors import InvalidParameter, Unauthorized
from endow.utils.logger import get_logger

logger = get_logger("access")


DEFAULT_ADMIN = "DEFAULT_ADMIN"
FINANCE_ADMIN = "FINANCE_ADMIN"
DELEGATE = "DELEGATE"

ALL_ROLES = (DEFAULT_ADMIN, FINANCE_ADMIN, DELEGATE)


class AccessControl:
    """
    Role membership table.

    Attributes:
        members: role -> set of accounts holding it
    """

    def __init__(self, admin: Optional[bytes] = None):
        """
        Args:
            admin: Initial DEFAULT_ADMIN holder (None = no admin yet)
        """
        self.members: Dict[str, Set[bytes]] = {role: set() for role in ALL_ROLES}
        if admin is not None:
            self.members[DEFAULT_ADMIN].add(admin)

    def has_role(self, role: str, account: bytes) -> bool:
        """Check if account holds role."""
        return account in self.members.get(role, ())

    def require(self, role: str, account: bytes) -> None:
        """
        Raise Unauthorized unless account holds role.
        """
        if not self.has_role(role, account):
            logger.warning(f"Rejected: 0x{account.hex()[:8]}... lacks {role}")
            raise Unauthorized(role, account)

    def grant_role(self, caller: bytes, role: str, account: bytes) -> bool:
        """
        Grant a role. Only DEFAULT_ADMIN may grant.

        Returns:
            True if the account did not hold the role before
        """
        self.require(DEFAULT_ADMIN, caller)
        self._check_role_name(role)
        if account in self.members[role]:
            return False
        self.members[role].add(account)
        logger.info(f"Granted {role} to 0x{account.hex()[:8]}...")
        return True

    def revoke_role(self, caller: bytes, role: str, account: bytes) -> bool:
        """
        Revoke a role. Only DEFAULT_ADMIN may revoke.

        Returns:
            True if the account held the role
        """
        self.require(DEFAULT_ADMIN, caller)
        self._check_role_name(role)
        if account not in self.members[role]:
            return False
        self.members[role].discard(account)
        logger.info(f"Revoked {role} from 0x{account.hex()[:8]}...")
        return True

    def roles_of(self, account: bytes) -> List[str]:
        """All roles held by an account."""
        return [role for role in ALL_ROLES if account in self.members[role]]

    def load(self, assignments: Iterable[tuple]) -> None:
        """Restore (role, account) pairs from storage."""
        for role, account in assignments:
            self._check_role_name(role)
            self.members[role].add(account)

    def assignments(self) -> List[tuple]:
        """All (role, account) pairs, for persistence."""
        return [
            (role, account)
            for role in ALL_ROLES
            for account in sorted(self.members[role])
        ]

    @staticmethod
    def _check_role_name(role: str) -> None:
        if role not in ALL_ROLES:
            raise InvalidParameter(f"Unknown role: {role}")
