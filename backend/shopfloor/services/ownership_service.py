# Overview: Ticket ownership rules layered on top of role permissions.

"""
Ownership Resolver

A staff employee may act on a ticket only when they are one of its two
ownership anchors: taken_in_by (took the item in) or worked_by (is doing the
repair). Admins act on any ticket.

This is applied in addition to the permission check, never instead of it:
holding MODIFY_OWN_TICKET is necessary but not sufficient.

Closing is different. It requires CLOSE_ANY_TICKET, which only admins hold,
and ownership never substitutes for it.
"""

from __future__ import annotations

from ..errors import Reason, Rejection
from ..permissions import Permission, has
from .session_service import Principal


def can_act(principal: Principal, ticket) -> bool:
    if principal.is_admin:
        return True
    if principal.employee_id is None:
        return False
    return principal.employee_id in (ticket.taken_in_by, ticket.worked_by)


def can_close(principal: Principal) -> bool:
    return has(principal.role, Permission.CLOSE_ANY_TICKET)


def check_ownership(principal: Principal, ticket) -> Rejection | None:
    if can_act(principal, ticket):
        return None
    return Rejection(Reason.NOT_OWNER)
