# Overview: Permission system package.
# Re-exports the capability enum, roles and lookups.

from .categories import PermissionCategory
from .definitions import (
    Permission,
    PERMISSION_DEFINITIONS,
    TICKET_PERMISSIONS,
    PHOTO_PERMISSIONS,
    EMPLOYEE_PERMISSIONS,
    SYSTEM_PERMISSIONS,
)
from .roles import Role, DEFAULT_ROLE_PERMISSIONS
from .helpers import (
    permissions_for,
    has,
    get_permission_definition,
    validate_permission_code,
)

__all__ = [
    "PermissionCategory",
    "Permission",
    "PERMISSION_DEFINITIONS",
    "TICKET_PERMISSIONS",
    "PHOTO_PERMISSIONS",
    "EMPLOYEE_PERMISSIONS",
    "SYSTEM_PERMISSIONS",
    "Role",
    "DEFAULT_ROLE_PERMISSIONS",
    "permissions_for",
    "has",
    "get_permission_definition",
    "validate_permission_code",
]
