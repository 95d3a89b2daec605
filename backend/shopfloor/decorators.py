# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import g

from .errors import error_response
from .permissions import Permission, permissions_for
from .services import request_gate
from .services.session_service import SessionKind


def _gate(kind: SessionKind, permission: Permission | None, ticket_arg: str | None, include_deleted: bool):
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            decision = request_gate.authorize(
                kind,
                request_gate.session_token(kind),
                permission=permission,
                ticket_id=kwargs.get(ticket_arg) if ticket_arg else None,
                include_deleted=include_deleted,
            )
            if not decision.allowed:
                return error_response(decision.rejection)

            # Store principal and ticket in Flask g for access in routes
            g.principal = decision.principal
            g.permissions = permissions_for(decision.principal.role)
            g.ticket = decision.ticket

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_admin_session(permission: Permission | None = None, ticket_arg: str | None = None):
    """
    Require a valid X-Admin-Session token.

    Sets the following Flask g attributes:
    - g.principal: Principal (kind=admin, role=admin)
    - g.permissions: frozenset of Permission
    - g.ticket: the ticket named by ticket_arg, if any

    SECURITY: Returns 401 for missing/expired/revoked tokens and for
    employee tokens presented in this header.
    """
    return _gate(SessionKind.ADMIN, permission, ticket_arg, include_deleted=True)


def require_employee_session(
    permission: Permission | None = None,
    ticket_arg: str | None = None,
    include_deleted: bool = False,
):
    """
    Require a valid X-Employee-Session token and, optionally, a permission.

    When ticket_arg names a URL parameter the ticket is loaded: 404 if it is
    missing or soft deleted (unless include_deleted), 403 if the permission
    is ownership scoped and the employee is not an owner.

    SECURITY: A deactivated employee's token fails here even before it expires.
    """
    return _gate(SessionKind.EMPLOYEE, permission, ticket_arg, include_deleted)
