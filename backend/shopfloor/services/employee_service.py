# Overview: Service-layer operations for employee management.

"""
Employee Management Service

WHY: Employees are created and managed from the admin session only. The PIN
is the employee's identity at the bench, so two active employees may not
share a PIN.

SECURITY: Deactivation flips is_active and deletes every session bound to
the employee in one transaction. Even without the deletion, session
validation re-checks is_active on every request; the deletion just stops
dead tokens from lingering. Role changes need no session work because the
role is read from the employee row on each request.

Employees are never hard deleted: tickets and history rows reference them.
"""

from __future__ import annotations

from typing import Any

from ..extensions import db
from ..models import Employee
from ..permissions import Role
from ..time_utils import utcnow
from ..validation import MAX_NAME_LENGTH, ValidationError, parse_bool, validate_required
from . import permission_service, session_service, settings_service
from .auth_service import find_employee_by_pin
from .pin_service import PinValidationError, hash_pin, validate_pin_complexity


class EmployeeError(ValueError):
    pass


class EmployeeValidationError(EmployeeError, ValidationError):
    pass


class EmployeeConflictError(EmployeeError):
    pass


def _parse_role(value: Any) -> Role:
    try:
        return Role(value)
    except ValueError:
        raise EmployeeValidationError(f"role must be one of: {', '.join(r.value for r in Role)}")


def _validated_pin(pin: Any, exclude_employee_id: str | None = None) -> str:
    if not isinstance(pin, str) or not pin:
        raise EmployeeValidationError("PIN is required")
    settings = settings_service.get_settings()
    try:
        validate_pin_complexity(pin, settings.min_pin_length)
    except PinValidationError as exc:
        raise EmployeeValidationError(str(exc))

    holder = find_employee_by_pin(pin)
    if holder is not None and holder.employee_id != exclude_employee_id:
        raise EmployeeConflictError("PIN is already in use by another employee")
    return pin


def list_employees(include_inactive: bool = False) -> list[Employee]:
    query = db.session.query(Employee)
    if not include_inactive:
        query = query.filter(Employee.is_active.is_(True))
    return query.order_by(Employee.name.asc()).all()


def get_employee(employee_id: str) -> Employee | None:
    return db.session.get(Employee, employee_id)


def get_active_employee(employee_id: Any) -> Employee | None:
    if not isinstance(employee_id, str):
        return None
    employee = db.session.get(Employee, employee_id)
    if employee is None or not employee.is_active:
        return None
    return employee


def create_employee(name: Any, pin: Any, role: Any = Role.STAFF.value) -> Employee:
    """
    Create an active employee with a hashed PIN.

    Raises EmployeeValidationError / EmployeeConflictError.
    """
    try:
        clean_name = validate_required(name, "name", MAX_NAME_LENGTH)
    except ValidationError as exc:
        raise EmployeeValidationError(str(exc))
    role_enum = _parse_role(role)
    clean_pin = _validated_pin(pin)

    employee = Employee(
        name=clean_name,
        pin_hash=hash_pin(clean_pin),
        role=role_enum.value,
        is_active=True,
    )
    db.session.add(employee)
    db.session.commit()
    return employee


def update_employee(employee_id: str, data: dict[str, Any]) -> Employee | None:
    """
    Partial update: name, role, pin, is_active.

    Setting is_active to false goes through deactivate_employee().
    """
    employee = get_employee(employee_id)
    if employee is None:
        return None

    # Settings row may be created (and committed) on first use; do it before
    # touching the employee so no partial update is flushed with it.
    settings_service.get_settings()

    try:
        if "name" in data:
            employee.name = validate_required(data["name"], "name", MAX_NAME_LENGTH)
        if "role" in data:
            employee.role = _parse_role(data["role"]).value
        if "pin" in data:
            employee.pin_hash = hash_pin(_validated_pin(data["pin"], exclude_employee_id=employee.employee_id))
        deactivate = False
        if "is_active" in data:
            active = parse_bool(data["is_active"], "is_active")
            if active:
                employee.is_active = True
            else:
                deactivate = True
    except ValidationError as exc:
        db.session.rollback()
        if isinstance(exc, EmployeeValidationError):
            raise
        raise EmployeeValidationError(str(exc))
    except EmployeeError:
        db.session.rollback()
        raise

    employee.updated_at = utcnow()
    if deactivate and employee.is_active:
        deactivate_employee(employee)
    else:
        db.session.commit()
    return employee


def deactivate_employee(employee: Employee, actor_kind: str | None = None) -> int:
    """
    Deactivate and revoke all sessions in one transaction.

    Returns the number of sessions revoked.
    """
    try:
        employee.is_active = False
        employee.updated_at = utcnow()
        revoked = session_service.revoke_all_for_employee(employee.employee_id)
        permission_service.log_security_event(
            event_type="SESSIONS_REVOKED",
            success=True,
            employee_id=employee.employee_id,
            principal_kind=actor_kind,
            action="DEACTIVATE_EMPLOYEE",
            reason=f"Employee deactivated; revoked {revoked} sessions",
            commit=False,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return revoked
