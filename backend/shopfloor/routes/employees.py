# Overview: Flask API routes for employee PIN login and employee management.

# backend/shopfloor/routes/employees.py
"""
Employee routes.

- POST /employees/verify and /employees/logout work with employee sessions
  (X-Employee-Session).
- Listing, creating, updating and deactivating employees is done from an
  admin session holding MANAGE_EMPLOYEES.

SECURITY: Deactivation revokes every session of the employee in the same
transaction; a revoked token is rejected on its very next request.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_admin_session, require_employee_session
from ..errors import Reason, Rejection, error_body, error_response, server_error_response, validation_error
from ..permissions import Permission
from ..services import auth_service, employee_service, permission_service, request_gate, session_service
from ..services.employee_service import EmployeeConflictError, EmployeeValidationError
from ..services.session_service import SessionKind
from .admin import session_payload

employees_bp = Blueprint("employees", __name__, url_prefix="/api/v1/employees")


def _json_error(exc: Exception):
    if isinstance(exc, EmployeeValidationError):
        return error_response(validation_error(str(exc)))
    if isinstance(exc, EmployeeConflictError):
        return jsonify(error_body("CONFLICT", str(exc))), 409
    return server_error_response()


@employees_bp.post("/verify")
def verify():
    """
    Identify an employee by PIN and open an employee session.

    Body: {"pin": "..."}
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return error_response(validation_error("Request body must be a JSON object"))

    try:
        result = auth_service.verify_employee_pin(payload.get("pin"), request_gate.client_context())
    except Exception:
        current_app.logger.exception("Employee PIN verification failed")
        return server_error_response()

    if isinstance(result, Rejection):
        return error_response(result)

    data = session_payload(result)
    employee = employee_service.get_employee(result.principal.employee_id)
    data["employee"] = employee.to_dict() if employee else None
    return jsonify(data), 200


@employees_bp.post("/logout")
@require_employee_session()
def logout():
    session_service.revoke(request_gate.session_token(SessionKind.EMPLOYEE), SessionKind.EMPLOYEE)
    return jsonify({"ok": True}), 200


@employees_bp.get("/me")
@require_employee_session()
def me():
    """Current employee and the permissions their role grants."""
    return jsonify({
        "principal": g.principal.to_dict(),
        "permissions": permission_service.get_role_permissions(g.principal.role),
    }), 200


@employees_bp.get("")
@require_admin_session(Permission.MANAGE_EMPLOYEES)
def list_employees():
    """
    Query params:
    - include_inactive: bool (default false)
    """
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    employees = employee_service.list_employees(include_inactive=include_inactive)
    return jsonify({"employees": [e.to_dict() for e in employees], "count": len(employees)}), 200


@employees_bp.post("")
@require_admin_session(Permission.MANAGE_EMPLOYEES)
def create_employee():
    """
    Body: {"name": "...", "pin": "...", "role": "staff" | "admin"}
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return error_response(validation_error("Request body must be a JSON object"))

    try:
        employee = employee_service.create_employee(
            payload.get("name"),
            payload.get("pin"),
            payload.get("role", "staff"),
        )
    except (EmployeeValidationError, EmployeeConflictError) as exc:
        return _json_error(exc)
    except Exception:
        current_app.logger.exception("Failed to create employee")
        return server_error_response()

    current_app.logger.info("Employee %s created with role %s", employee.employee_id, employee.role)
    return jsonify({"employee": employee.to_dict()}), 201


@employees_bp.get("/<employee_id>")
@require_admin_session(Permission.MANAGE_EMPLOYEES)
def get_employee(employee_id: str):
    employee = employee_service.get_employee(employee_id)
    if employee is None:
        return error_response(Rejection(Reason.ENTITY_NOT_FOUND))
    return jsonify({"employee": employee.to_dict()}), 200


@employees_bp.put("/<employee_id>")
@require_admin_session(Permission.MANAGE_EMPLOYEES)
def update_employee(employee_id: str):
    """
    Partial update. Body may contain: name, role, pin, is_active.
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return error_response(validation_error("Request body must be a JSON object"))

    try:
        employee = employee_service.update_employee(employee_id, payload)
    except (EmployeeValidationError, EmployeeConflictError) as exc:
        return _json_error(exc)
    except Exception:
        current_app.logger.exception("Failed to update employee %s", employee_id)
        return server_error_response()

    if employee is None:
        return error_response(Rejection(Reason.ENTITY_NOT_FOUND))
    return jsonify({"employee": employee.to_dict()}), 200


@employees_bp.post("/<employee_id>/deactivate")
@require_admin_session(Permission.MANAGE_EMPLOYEES)
def deactivate_employee(employee_id: str):
    employee = employee_service.get_employee(employee_id)
    if employee is None:
        return error_response(Rejection(Reason.ENTITY_NOT_FOUND))

    try:
        revoked = employee_service.deactivate_employee(employee, actor_kind=g.principal.kind.value)
    except Exception:
        current_app.logger.exception("Failed to deactivate employee %s", employee_id)
        return server_error_response()

    current_app.logger.warning("Employee %s deactivated; %s sessions revoked", employee_id, revoked)
    return jsonify({"employee": employee.to_dict(), "sessions_revoked": revoked}), 200
