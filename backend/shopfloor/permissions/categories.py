# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    TICKETS = "TICKETS"
    PHOTOS = "PHOTOS"
    EMPLOYEES = "EMPLOYEES"
    SYSTEM = "SYSTEM"
