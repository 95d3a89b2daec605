# Overview: Pure permission lookups over the static role grants.

from __future__ import annotations

from .definitions import PERMISSION_DEFINITIONS, Permission
from .roles import DEFAULT_ROLE_PERMISSIONS, Role


def permissions_for(role: Role | str) -> frozenset[Permission]:
    """All permissions granted to a role. Unknown role strings raise ValueError."""
    return DEFAULT_ROLE_PERMISSIONS[Role(role)]


def has(role: Role | str, permission: Permission | str) -> bool:
    return Permission(permission) in permissions_for(role)


def get_permission_definition(permission):
    """Get full definition for a permission."""
    for perm in PERMISSION_DEFINITIONS:
        if perm[0] == permission:
            return {
                "code": perm[0].value,
                "name": perm[1],
                "description": perm[2],
                "category": perm[3],
            }
    return None


def validate_permission_code(code):
    """Check if a permission code is valid."""
    return code in {perm.value for perm in Permission}
