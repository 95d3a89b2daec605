# Overview: Composition of session, permission and ownership checks for one request.

"""
Request Gate

Every protected route funnels through authorize():

    session (validate_and_touch) -> role permission -> ticket lookup
        -> ownership (OWNERSHIP_SCOPED permissions)

Each step either passes or produces a terminal Rejection; there is no
partial success. Ticket lookups hide soft-deleted tickets unless the caller
asks for them (restore).

client_source_key() is the one place that decides which address a request
comes from. Proxy headers are honored only when TRUST_PROXY_HEADERS is set,
otherwise any client could pick its own rate-limit bucket.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app, has_request_context, request

from ..errors import Reason, Rejection
from ..extensions import db
from ..models import Ticket
from ..permissions import Permission
from . import permission_service, session_service
from .auth_service import ClientContext
from .ownership_service import check_ownership
from .session_service import Principal, SessionKind


SESSION_HEADERS = {
    SessionKind.ADMIN: "X-Admin-Session",
    SessionKind.EMPLOYEE: "X-Employee-Session",
}

# Permissions whose holder must also own the ticket (admins always do).
OWNERSHIP_SCOPED = frozenset({
    Permission.MODIFY_OWN_TICKET,
    Permission.ADD_NOTES,
    Permission.UPLOAD_PHOTOS,
})


@dataclass(frozen=True)
class GateDecision:
    principal: Principal | None = None
    ticket: Ticket | None = None
    rejection: Rejection | None = None

    @property
    def allowed(self) -> bool:
        return self.rejection is None


def client_source_key() -> str:
    """Rate-limit key for the current request."""
    if current_app.config.get("TRUST_PROXY_HEADERS"):
        real_ip = (request.headers.get("X-Real-IP") or "").strip()
        if real_ip:
            return real_ip
        forwarded = request.headers.get("X-Forwarded-For") or ""
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.remote_addr or "unknown"


def client_context() -> ClientContext:
    return ClientContext(
        source_key=client_source_key(),
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
        resource=request.path,
    )


def session_token(kind: SessionKind) -> str | None:
    value = request.headers.get(SESSION_HEADERS[kind])
    if value is None:
        return None
    value = value.strip()
    return value or None


def _deny(principal: Principal | None, rejection: Rejection, permission: Permission | None) -> GateDecision:
    if rejection.reason in (Reason.INSUFFICIENT_PERMISSION, Reason.NOT_OWNER):
        in_request = has_request_context()
        permission_service.log_security_event(
            event_type="PERMISSION_DENIED",
            success=False,
            employee_id=principal.employee_id if principal else None,
            principal_kind=principal.kind.value if principal else None,
            resource=request.path if in_request else None,
            action=permission.value if permission else None,
            reason=rejection.reason.value,
            ip_address=request.remote_addr if in_request else None,
            user_agent=request.headers.get("User-Agent") if in_request else None,
        )
    return GateDecision(principal=principal, rejection=rejection)


def authorize(
    kind: SessionKind,
    token: str | None,
    permission: Permission | None = None,
    ticket_id: int | None = None,
    include_deleted: bool = False,
) -> GateDecision:
    """Run the full gate. See module docstring for order."""
    principal = session_service.validate_and_touch(token, kind)
    if principal is None:
        return GateDecision(rejection=Rejection(Reason.SESSION_EXPIRED_OR_INVALID))

    if permission is not None:
        denied = permission_service.check_permission(principal.role, permission)
        if denied is not None:
            return _deny(principal, denied, permission)

    ticket = None
    if ticket_id is not None:
        ticket = db.session.get(Ticket, ticket_id)
        if ticket is None:
            return GateDecision(principal=principal, rejection=Rejection(Reason.ENTITY_NOT_FOUND))
        if ticket.deleted_at is not None and not include_deleted:
            return GateDecision(principal=principal, rejection=Rejection(Reason.ENTITY_DELETED))
        if permission in OWNERSHIP_SCOPED:
            denied = check_ownership(principal, ticket)
            if denied is not None:
                return _deny(principal, denied, permission)

    return GateDecision(principal=principal, ticket=ticket)
