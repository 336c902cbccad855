"""
Test suite for RBAC module

Tests role capabilities, caller identity and the secondary verification
and admin secrets.
"""

import pytest

from collection_desk.errors import AuthorizationError
from collection_desk.rbac import (
    Caller, Permission, Role, ROLE_PERMISSIONS, VerificationGate
)


@pytest.fixture
def gate():
    """Gate with the default secrets"""
    return VerificationGate(verification_secret="6789", admin_secret="1234")


def caller_with(role: Role) -> Caller:
    return Caller(id=f"{role.name.lower()}-1", name=role.value, role=role)


class TestRoleCapabilities:
    """Test which roles hold which capabilities"""

    def test_admin_and_secretary_hold_everything(self):
        for role in (Role.ADMIN, Role.SECRETARY):
            assert ROLE_PERMISSIONS[role] == frozenset(Permission)

    def test_manager_cannot_delete(self):
        manager = caller_with(Role.MANAGER)
        assert manager.has_permission(Permission.VERIFY_AND_COMPLETE)
        assert manager.has_permission(Permission.EXPORT_REPORTS)
        assert not manager.has_permission(Permission.DELETE_COLLECTIONS)

    def test_field_roles_hold_nothing(self):
        for role in (Role.SALES_REP, Role.DRIVER):
            assert caller_with(role).permissions == frozenset()


class TestRoleParsing:
    """Test reading roles from forwarded identity"""

    def test_parse_by_value_or_name(self):
        assert Role.parse("Sales Rep") == Role.SALES_REP
        assert Role.parse("sales_rep") == Role.SALES_REP
        assert Role.parse(" admin ") == Role.ADMIN

    def test_unknown_role(self):
        with pytest.raises(AuthorizationError):
            Role.parse("Auditor")


class TestVerificationGate:
    """Test capability and secret checks"""

    def test_require_passes_for_allowed_role(self, gate):
        gate.require(caller_with(Role.MANAGER), Permission.VIEW_COLLECTIONS)

    def test_require_rejects_missing_capability(self, gate):
        with pytest.raises(AuthorizationError) as exc_info:
            gate.require(caller_with(Role.DRIVER), Permission.VIEW_COLLECTIONS)
        assert exc_info.value.capability == "view"

    def test_require_rejects_anonymous(self, gate):
        with pytest.raises(AuthorizationError, match="Authentication required"):
            gate.require(None, Permission.VIEW_COLLECTIONS)

    def test_verification_secret(self, gate):
        gate.check_verification_secret("6789")
        with pytest.raises(AuthorizationError, match="Incorrect verification password"):
            gate.check_verification_secret("0000")
        with pytest.raises(AuthorizationError):
            gate.check_verification_secret(None)

    def test_admin_secret_is_separate(self, gate):
        gate.check_admin_secret("1234")
        with pytest.raises(AuthorizationError, match="Incorrect admin password"):
            gate.check_admin_secret("6789")

    def test_custom_role_table(self):
        gate = VerificationGate("a", "b", role_permissions={Role.DRIVER: frozenset({Permission.VIEW_COLLECTIONS})})
        assert gate.allows(caller_with(Role.DRIVER), Permission.VIEW_COLLECTIONS)
        assert not gate.allows(caller_with(Role.ADMIN), Permission.VIEW_COLLECTIONS)
