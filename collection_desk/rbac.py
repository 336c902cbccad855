"""
Role-Based Access Control Module

Capability checks gating the collection lifecycle operations, plus the
secondary secrets (verification and admin delete) that are checked on top of
the caller's login.
"""

import hmac
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional

from .errors import AuthorizationError


class Permission(Enum):
    """Capabilities the core checks"""
    VIEW_COLLECTIONS = "view"
    VERIFY_AND_COMPLETE = "verify-and-complete"
    DELETE_COLLECTIONS = "delete"
    EXPORT_REPORTS = "export"


class Role(Enum):
    """Back-office user roles"""
    ADMIN = "Admin"
    SECRETARY = "Secretary"
    MANAGER = "Manager"
    SALES_REP = "Sales Rep"
    DRIVER = "Driver"

    @classmethod
    def parse(cls, value: str) -> 'Role':
        text = (value or "").strip().lower()
        for role in cls:
            if role.value.lower() == text or role.name.lower() == text:
                return role
        raise AuthorizationError(f"Unknown role: {value!r}")


ALL_PERMISSIONS: FrozenSet[Permission] = frozenset(Permission)

# Admin and Secretary may delete; Manager may review and complete but not delete
ROLE_PERMISSIONS: Dict[Role, FrozenSet[Permission]] = {
    Role.ADMIN: ALL_PERMISSIONS,
    Role.SECRETARY: ALL_PERMISSIONS,
    Role.MANAGER: frozenset({
        Permission.VIEW_COLLECTIONS,
        Permission.VERIFY_AND_COMPLETE,
        Permission.EXPORT_REPORTS,
    }),
    Role.SALES_REP: frozenset(),
    Role.DRIVER: frozenset(),
}


@dataclass(frozen=True)
class Caller:
    """Authenticated caller of a lifecycle operation"""
    id: str
    name: str
    role: Role

    @property
    def permissions(self) -> FrozenSet[Permission]:
        return ROLE_PERMISSIONS.get(self.role, frozenset())

    def has_permission(self, permission: Permission) -> bool:
        return permission in self.permissions


class VerificationGate:
    """Capability and secondary-secret checks"""

    def __init__(self, verification_secret: str, admin_secret: str,
                 role_permissions: Optional[Dict[Role, FrozenSet[Permission]]] = None):
        self._verification_secret = verification_secret
        self._admin_secret = admin_secret
        self.role_permissions = role_permissions or ROLE_PERMISSIONS

    @classmethod
    def from_config(cls, config) -> 'VerificationGate':
        return cls(config.verification_secret, config.admin_secret)

    def allows(self, caller: Optional[Caller], permission: Permission) -> bool:
        if caller is None:
            return False
        return permission in self.role_permissions.get(caller.role, frozenset())

    def require(self, caller: Optional[Caller], permission: Permission) -> None:
        """Raise AuthorizationError unless the caller holds ``permission``"""
        if caller is None:
            raise AuthorizationError("Authentication required", permission.value)
        if not self.allows(caller, permission):
            raise AuthorizationError(
                f"Role {caller.role.value} lacks the '{permission.value}' capability",
                permission.value
            )

    def check_verification_secret(self, secret: Optional[str]) -> None:
        if not _secret_matches(secret, self._verification_secret):
            raise AuthorizationError("Incorrect verification password", Permission.VERIFY_AND_COMPLETE.value)

    def check_admin_secret(self, secret: Optional[str]) -> None:
        if not _secret_matches(secret, self._admin_secret):
            raise AuthorizationError("Incorrect admin password", Permission.DELETE_COLLECTIONS.value)


def _secret_matches(supplied: Optional[str], expected: str) -> bool:
    if not supplied or not expected:
        return False
    return hmac.compare_digest(supplied.encode('utf-8'), expected.encode('utf-8'))
