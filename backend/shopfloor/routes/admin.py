# Overview: Flask API routes for the store admin PIN, admin sessions and admin overrides.

# backend/shopfloor/routes/admin.py
"""
Admin routes.

The admin is not an employee: it is whoever knows the store admin PIN.
Verifying it opens a short-lived admin session (X-Admin-Session header).

Provides endpoints for:
- PIN verification, logout, first-run setup and PIN change
- Hard delete of tickets (admin override)
- Rate-limit inspection for a source

SECURITY: verify and setup are rate limited per source before any PIN
comparison happens.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_admin_session
from ..errors import Rejection, error_response, server_error_response, validation_error
from ..permissions import Permission
from ..services import (
    auth_service,
    lifecycle_service,
    permission_service,
    photo_service,
    rate_limit_service,
    request_gate,
    session_service,
    settings_service,
)
from ..services.session_service import SessionKind
from ..time_utils import to_utc_z

admin_bp = Blueprint("admin", __name__, url_prefix="/api/v1/admin")


def session_payload(issued) -> dict:
    return {
        "session_token": issued.token,
        "expires_at": to_utc_z(issued.expires_at),
        "principal": issued.principal.to_dict(),
    }


@admin_bp.post("/verify")
def verify():
    """
    Exchange the admin PIN for an admin session token.

    Body: {"pin": "..."}
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return error_response(validation_error("Request body must be a JSON object"))

    try:
        result = auth_service.verify_admin_pin(payload.get("pin"), request_gate.client_context())
    except Exception:
        current_app.logger.exception("Admin PIN verification failed")
        return server_error_response()

    if isinstance(result, Rejection):
        return error_response(result)

    settings = settings_service.get_settings()
    data = session_payload(result)
    data["setup_complete"] = settings.setup_complete
    return jsonify(data), 200


@admin_bp.post("/logout")
@require_admin_session()
def logout():
    session_service.revoke(request_gate.session_token(SessionKind.ADMIN), SessionKind.ADMIN)
    return jsonify({"ok": True}), 200


@admin_bp.post("/setup")
def setup():
    """
    First-run replacement of the default admin PIN.

    Body: {"current_pin": "...", "new_pin": "..."}
    Allowed once, before the setup deadline.
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return error_response(validation_error("Request body must be a JSON object"))

    try:
        result = auth_service.complete_admin_setup(
            payload.get("current_pin"),
            payload.get("new_pin"),
            request_gate.client_context(),
        )
    except Exception:
        current_app.logger.exception("Admin setup failed")
        return server_error_response()

    if isinstance(result, Rejection):
        return error_response(result)
    return jsonify({"ok": True, "setup_complete": result.setup_complete}), 200


@admin_bp.post("/change-pin")
@require_admin_session(Permission.MANAGE_SETTINGS)
def change_pin():
    """
    Replace the admin PIN.

    Body: {"new_pin": "..."}
    Every admin session, including this one, stays valid until it expires.
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict) or not isinstance(payload.get("new_pin"), str):
        return error_response(validation_error("new_pin is required"))

    try:
        settings_service.set_admin_pin(payload["new_pin"])
        permission_service.log_security_event(
            event_type="ADMIN_PIN_CHANGED",
            success=True,
            principal_kind=g.principal.kind.value,
            resource=request.path,
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )
    except settings_service.SettingsValidationError as exc:
        return error_response(validation_error(str(exc)))
    except Exception:
        current_app.logger.exception("Admin PIN change failed")
        return server_error_response()

    return jsonify({"ok": True}), 200


@admin_bp.delete("/tickets/<int:ticket_id>")
@require_admin_session(Permission.DELETE_TICKETS)
def hard_delete_ticket(ticket_id: int):
    """
    Permanently delete a ticket.

    Refused (409) while the ticket has any status or field history.
    """
    try:
        result = lifecycle_service.hard_delete_ticket(ticket_id)
    except Exception:
        current_app.logger.exception("Hard delete of ticket %s failed", ticket_id)
        return server_error_response()

    if isinstance(result, Rejection):
        return error_response(result)

    for storage_key in result:
        photo_service.delete_stored_file(storage_key)
    current_app.logger.warning("Ticket %s permanently deleted by admin", ticket_id)
    permission_service.log_security_event(
        event_type="TICKET_HARD_DELETED",
        success=True,
        principal_kind=g.principal.kind.value,
        resource=request.path,
        action=Permission.DELETE_TICKETS.value,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )
    return jsonify({"ok": True, "ticket_id": ticket_id}), 200


@admin_bp.get("/rate-limits")
@require_admin_session(Permission.MANAGE_SETTINGS)
def rate_limit_status():
    """
    Limiter snapshot for one source.

    Query params:
    - source_key: str (required)
    """
    source_key = (request.args.get("source_key") or "").strip()
    if not source_key:
        return error_response(validation_error("source_key is required"))
    return jsonify(rate_limit_service.get_status(source_key)), 200
