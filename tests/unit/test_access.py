"""
Unit tests for role-based access control.
"""

import pytest

from endow.core.access import DEFAULT_ADMIN, DELEGATE, FINANCE_ADMIN, AccessControl
from endow.core.errors import InvalidParameter, Unauthorized
from endow.crypto import address_from_label

ADMIN = address_from_label("admin")
ALICE = address_from_label("alice")


class TestAccessControl:
    """Tests for AccessControl."""

    def test_initial_admin(self):
        access = AccessControl(ADMIN)
        assert access.has_role(DEFAULT_ADMIN, ADMIN)
        assert not access.has_role(DELEGATE, ADMIN)

    def test_no_admin(self):
        access = AccessControl()
        assert access.assignments() == []

    def test_require(self):
        access = AccessControl(ADMIN)
        access.require(DEFAULT_ADMIN, ADMIN)
        with pytest.raises(Unauthorized) as exc:
            access.require(FINANCE_ADMIN, ALICE)
        assert exc.value.role == FINANCE_ADMIN
        assert exc.value.account == ALICE

    def test_grant_and_revoke(self):
        access = AccessControl(ADMIN)
        assert access.grant_role(ADMIN, DELEGATE, ALICE) is True
        assert access.grant_role(ADMIN, DELEGATE, ALICE) is False
        assert access.roles_of(ALICE) == [DELEGATE]

        assert access.revoke_role(ADMIN, DELEGATE, ALICE) is True
        assert access.revoke_role(ADMIN, DELEGATE, ALICE) is False
        assert access.roles_of(ALICE) == []

    def test_only_admin_grants(self):
        access = AccessControl(ADMIN)
        access.grant_role(ADMIN, FINANCE_ADMIN, ALICE)
        with pytest.raises(Unauthorized):
            access.grant_role(ALICE, DELEGATE, ALICE)
        assert not access.has_role(DELEGATE, ALICE)

    def test_unknown_role(self):
        access = AccessControl(ADMIN)
        with pytest.raises(InvalidParameter):
            access.grant_role(ADMIN, "OWNER", ALICE)
        assert not access.has_role("OWNER", ALICE)

    def test_assignments_reload(self):
        access = AccessControl(ADMIN)
        access.grant_role(ADMIN, DELEGATE, ALICE)
        access.grant_role(ADMIN, FINANCE_ADMIN, ADMIN)

        restored = AccessControl()
        restored.load(access.assignments())
        assert restored.members == access.members


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
