# Overview: The closed set of capabilities and their display metadata.
# Each definition is: (permission, name, description, category)

from __future__ import annotations

from enum import Enum

from .categories import PermissionCategory


class Permission(str, Enum):
    """
    Every capability the system checks.

    WHY an enum and not database rows: the set is closed and changes only
    with a code release, so role grants can be verified at import time
    instead of drifting in a table.
    """
    CREATE_TICKET = "CREATE_TICKET"
    VIEW_TICKET = "VIEW_TICKET"
    MODIFY_OWN_TICKET = "MODIFY_OWN_TICKET"
    ADD_NOTES = "ADD_NOTES"
    UPLOAD_PHOTOS = "UPLOAD_PHOTOS"
    CLOSE_ANY_TICKET = "CLOSE_ANY_TICKET"
    DELETE_PHOTOS = "DELETE_PHOTOS"
    DELETE_TICKETS = "DELETE_TICKETS"
    REASSIGN_TICKETS = "REASSIGN_TICKETS"
    MANAGE_EMPLOYEES = "MANAGE_EMPLOYEES"
    MANAGE_SETTINGS = "MANAGE_SETTINGS"
    MANAGE_LOCATIONS = "MANAGE_LOCATIONS"


# -- TICKETS --

TICKET_PERMISSIONS = [
    (
        Permission.CREATE_TICKET,
        "Create Ticket",
        "Take in a repair and open a ticket",
        PermissionCategory.TICKETS,
    ),
    (
        Permission.VIEW_TICKET,
        "View Ticket",
        "View tickets, notes and history",
        PermissionCategory.TICKETS,
    ),
    (
        Permission.MODIFY_OWN_TICKET,
        "Modify Own Ticket",
        "Edit, move or flag tickets the employee took in or is working",
        PermissionCategory.TICKETS,
    ),
    (
        Permission.ADD_NOTES,
        "Add Notes",
        "Append internal notes to a ticket",
        PermissionCategory.TICKETS,
    ),
    (
        Permission.CLOSE_ANY_TICKET,
        "Close Any Ticket",
        "Close out a ticket with the final amount",
        PermissionCategory.TICKETS,
    ),
    (
        Permission.DELETE_TICKETS,
        "Delete Tickets",
        "Soft delete and restore tickets",
        PermissionCategory.TICKETS,
    ),
    (
        Permission.REASSIGN_TICKETS,
        "Reassign Tickets",
        "Change who is recorded as having taken in a ticket",
        PermissionCategory.TICKETS,
    ),
]


# -- PHOTOS --

PHOTO_PERMISSIONS = [
    (
        Permission.UPLOAD_PHOTOS,
        "Upload Photos",
        "Attach photos to a ticket",
        PermissionCategory.PHOTOS,
    ),
    (
        Permission.DELETE_PHOTOS,
        "Delete Photos",
        "Remove photos from a ticket",
        PermissionCategory.PHOTOS,
    ),
]


# -- EMPLOYEES --

EMPLOYEE_PERMISSIONS = [
    (
        Permission.MANAGE_EMPLOYEES,
        "Manage Employees",
        "Create, edit and deactivate employees",
        PermissionCategory.EMPLOYEES,
    ),
]


# -- SYSTEM --

SYSTEM_PERMISSIONS = [
    (
        Permission.MANAGE_SETTINGS,
        "Manage Settings",
        "Change store settings",
        PermissionCategory.SYSTEM,
    ),
    (
        Permission.MANAGE_LOCATIONS,
        "Manage Locations",
        "Create and edit storage locations",
        PermissionCategory.SYSTEM,
    ),
]


PERMISSION_DEFINITIONS = (
    TICKET_PERMISSIONS
    + PHOTO_PERMISSIONS
    + EMPLOYEE_PERMISSIONS
    + SYSTEM_PERMISSIONS
)
