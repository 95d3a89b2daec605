# Overview: PIN verification flows that turn a PIN into a session.

"""
Authentication Service

WHY: Every verification route runs the same pipeline and it must run in this
order:

    rate limiter -> setup deadline (admin only) -> PIN hash check
        -> record failure | record success + issue session

The rate limiter runs first so a throttled caller never reaches bcrypt: no
PIN comparison happens, and nothing about the PIN leaks through timing.

SECURITY NOTES:
- PINs are never logged. Audit events record the outcome, the source and
  (on success) the employee, nothing else.
- Employee PINs are not unique identifiers; verification compares against
  every active employee and does not stop at the first match, so response
  time does not reveal a match's position.
- Deactivated employees are never considered.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..errors import Reason, Rejection, validation_error
from ..extensions import db
from ..models import Employee
from . import permission_service, rate_limit_service, session_service, settings_service
from .pin_service import verify_pin
from .session_service import IssuedSession


@dataclass(frozen=True)
class ClientContext:
    """Where a verification attempt came from (already sanitized for audit at log time)."""
    source_key: str
    ip_address: str | None = None
    user_agent: str | None = None
    resource: str | None = None


def _throttled(client: ClientContext, event_prefix: str) -> Rejection | None:
    decision = rate_limit_service.check(client.source_key)
    if decision.allowed:
        return None

    current_app.logger.warning(
        "PIN verification throttled for %s (retry in %ss)", client.source_key, decision.retry_after
    )
    permission_service.log_security_event(
        event_type="RATE_LIMITED",
        success=False,
        resource=client.resource,
        action=event_prefix,
        reason=f"Retry after {decision.retry_after}s",
        ip_address=client.ip_address,
        user_agent=client.user_agent,
    )
    return Rejection(Reason.RATE_LIMITED, retry_after=decision.retry_after)


def _record_failure(client: ClientContext, event_type: str, reason: str) -> Rejection:
    record = rate_limit_service.record_failure(client.source_key)
    current_app.logger.warning(
        "%s from %s (%s consecutive failures)", event_type, client.source_key, record.consecutive_failures
    )
    permission_service.log_security_event(
        event_type=event_type,
        success=False,
        resource=client.resource,
        reason=reason,
        ip_address=client.ip_address,
        user_agent=client.user_agent,
    )
    return Rejection(Reason.INVALID_CREDENTIAL)


def verify_admin_pin(pin, client: ClientContext) -> IssuedSession | Rejection:
    """Verify the store admin PIN and open an admin session."""
    throttled = _throttled(client, "ADMIN_VERIFY")
    if throttled is not None:
        return throttled

    settings = settings_service.get_settings()
    if settings_service.is_setup_expired(settings):
        current_app.logger.warning("Admin verification attempted after setup deadline expiration")
        return Rejection(Reason.SETUP_EXPIRED)

    if not isinstance(pin, str) or not verify_pin(pin, settings.admin_pin_hash):
        return _record_failure(client, "ADMIN_PIN_FAILED", "Invalid admin PIN")

    if not settings.setup_complete:
        current_app.logger.warning("Admin session opened with default PIN - setup incomplete")

    rate_limit_service.record_success(client.source_key)
    issued = session_service.issue_admin_session()
    permission_service.log_security_event(
        event_type="ADMIN_PIN_VERIFIED",
        success=True,
        principal_kind=session_service.SessionKind.ADMIN.value,
        resource=client.resource,
        ip_address=client.ip_address,
        user_agent=client.user_agent,
    )
    return issued


def find_employee_by_pin(pin: str) -> Employee | None:
    """Compare against every active employee; return the first match."""
    match = None
    for employee in db.session.query(Employee).filter(Employee.is_active.is_(True)).all():
        if verify_pin(pin, employee.pin_hash) and match is None:
            match = employee
    return match


def verify_employee_pin(pin, client: ClientContext) -> IssuedSession | Rejection:
    """Identify an active employee by PIN and open an employee session."""
    throttled = _throttled(client, "EMPLOYEE_VERIFY")
    if throttled is not None:
        return throttled

    employee = find_employee_by_pin(pin) if isinstance(pin, str) and pin else None
    if employee is None:
        return _record_failure(client, "EMPLOYEE_PIN_FAILED", "Invalid employee PIN")

    rate_limit_service.record_success(client.source_key)
    issued = session_service.issue_employee_session(employee)
    permission_service.log_security_event(
        event_type="EMPLOYEE_PIN_VERIFIED",
        success=True,
        employee_id=employee.employee_id,
        principal_kind=session_service.SessionKind.EMPLOYEE.value,
        resource=client.resource,
        ip_address=client.ip_address,
        user_agent=client.user_agent,
    )
    return issued


def complete_admin_setup(current_pin, new_pin, client: ClientContext):
    """
    First-run replacement of the default admin PIN.

    Only allowed once, before the setup deadline, and rate limited like any
    other PIN verification. Returns the settings row or a Rejection.
    """
    throttled = _throttled(client, "ADMIN_SETUP")
    if throttled is not None:
        return throttled

    settings = settings_service.get_settings()
    if settings.setup_complete:
        return Rejection(Reason.INSUFFICIENT_PERMISSION, "Setup has already been completed")
    if settings_service.is_setup_expired(settings):
        current_app.logger.warning("Setup attempted after deadline expiration")
        return Rejection(Reason.SETUP_EXPIRED)

    if not isinstance(current_pin, str) or not verify_pin(current_pin, settings.admin_pin_hash):
        return _record_failure(client, "ADMIN_PIN_FAILED", "Invalid current PIN during setup")

    if not isinstance(new_pin, str):
        return validation_error("new_pin is required")
    try:
        settings = settings_service.set_admin_pin(new_pin, complete_setup=True)
    except settings_service.SettingsValidationError as exc:
        return validation_error(str(exc))

    rate_limit_service.record_success(client.source_key)
    permission_service.log_security_event(
        event_type="ADMIN_PIN_CHANGED",
        success=True,
        principal_kind=session_service.SessionKind.ADMIN.value,
        resource=client.resource,
        reason="Initial setup completed",
        ip_address=client.ip_address,
        user_agent=client.user_agent,
    )
    return settings
