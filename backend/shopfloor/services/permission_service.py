# Overview: Service-layer operations for permission checks and security event logging.

"""
Permission Checking and Security Event Logging

WHY: Enforce role-based access control and keep an audit trail of
security-relevant events (PIN failures, throttling, denials, revocations).

DESIGN PRINCIPLES:
- Fail closed: deny unless the role's static grant includes the permission
- Log denials only: grants are not logged
- No database lookups for permission resolution: roles and grants are a
  closed, code-defined mapping (see shopfloor.permissions)
- Audit text is sanitized before it is stored, so a crafted header or
  request body cannot forge log lines or smuggle control characters
"""

from __future__ import annotations

import re

from ..errors import Reason, Rejection
from ..extensions import db
from ..models import SecurityEvent
from ..permissions import Permission, Role, has, permissions_for
from ..time_utils import utcnow


# Column limits for sanitized audit fields
MAX_REASON_LENGTH = 500
MAX_RESOURCE_LENGTH = 128
MAX_ACTION_LENGTH = 64
MAX_USER_AGENT_LENGTH = 512
MAX_IP_LENGTH = 45

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f-\x9f]")


def sanitize_audit_text(value: str | None, max_length: int) -> str | None:
    """
    Make untrusted text safe to store in the audit log.

    Control characters (including CR/LF) become spaces, runs of whitespace
    collapse, and the result is truncated to max_length.
    """
    if value is None:
        return None
    cleaned = _CONTROL_CHARS.sub(" ", str(value))
    cleaned = " ".join(cleaned.split())
    if not cleaned:
        return None
    return cleaned[:max_length]


def log_security_event(
    event_type: str,
    success: bool,
    employee_id: str | None = None,
    principal_kind: str | None = None,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    commit: bool = True,
) -> SecurityEvent:
    """
    Log security event to audit trail.

    WHY: Immutable audit log for spotting guessing and escalation attempts.

    event_type examples:
    - ADMIN_PIN_VERIFIED / ADMIN_PIN_FAILED
    - EMPLOYEE_PIN_VERIFIED / EMPLOYEE_PIN_FAILED
    - RATE_LIMITED
    - PERMISSION_DENIED
    - SESSION_REJECTED
    - SESSIONS_REVOKED
    - ADMIN_PIN_CHANGED
    """
    event = SecurityEvent(
        employee_id=employee_id,
        principal_kind=principal_kind,
        event_type=event_type,
        resource=sanitize_audit_text(resource, MAX_RESOURCE_LENGTH),
        action=sanitize_audit_text(action, MAX_ACTION_LENGTH),
        success=success,
        reason=sanitize_audit_text(reason, MAX_REASON_LENGTH),
        ip_address=sanitize_audit_text(ip_address, MAX_IP_LENGTH),
        user_agent=sanitize_audit_text(user_agent, MAX_USER_AGENT_LENGTH),
        occurred_at=utcnow(),
    )

    db.session.add(event)
    if commit:
        db.session.commit()

    return event


def get_role_permissions(role: Role | str) -> list[str]:
    """Sorted permission codes for a role (for API responses)."""
    return sorted(p.value for p in permissions_for(role))


def check_permission(role: Role | str, permission: Permission) -> Rejection | None:
    """
    Permission precondition for a handler.

    Returns None when granted, else an INSUFFICIENT_PERMISSION rejection.
    """
    if has(role, permission):
        return None
    return Rejection(Reason.INSUFFICIENT_PERMISSION, f"Missing permission: {permission.value}")
