# Overview: Roles and the static role -> permission grants.

from __future__ import annotations

from enum import Enum

from .definitions import PERMISSION_DEFINITIONS, Permission


class Role(str, Enum):
    STAFF = "staff"
    ADMIN = "admin"


STAFF_PERMISSIONS = frozenset({
    Permission.CREATE_TICKET,
    Permission.VIEW_TICKET,
    Permission.MODIFY_OWN_TICKET,
    Permission.ADD_NOTES,
    Permission.UPLOAD_PHOTOS,
})

ADMIN_PERMISSIONS = frozenset(Permission)

DEFAULT_ROLE_PERMISSIONS: dict[Role, frozenset[Permission]] = {
    Role.STAFF: STAFF_PERMISSIONS,
    Role.ADMIN: ADMIN_PERMISSIONS,
}


def _check_role_grants() -> None:
    missing = set(Role) - set(DEFAULT_ROLE_PERMISSIONS)
    if missing:
        raise RuntimeError(f"Roles without permission grants: {sorted(r.value for r in missing)}")
    if not STAFF_PERMISSIONS < ADMIN_PERMISSIONS:
        raise RuntimeError("Staff permissions must be a strict subset of admin permissions")
    defined = {perm[0] for perm in PERMISSION_DEFINITIONS}
    if defined != set(Permission):
        raise RuntimeError("Every permission needs exactly one definition entry")


_check_role_grants()
