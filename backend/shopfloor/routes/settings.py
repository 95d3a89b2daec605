from __future__ import annotations

from flask import Blueprint, jsonify, request, current_app

from ..decorators import require_admin_session
from ..errors import Reason, Rejection, error_body, error_response, server_error_response, validation_error
from ..permissions import Permission
from ..services import request_gate, settings_service
from ..services.settings_service import SettingsConflictError, SettingsValidationError
from ..services.session_service import SessionKind


settings_bp = Blueprint("settings", __name__, url_prefix="/api/v1")


def _json_error(exc: Exception):
    if isinstance(exc, SettingsValidationError):
        return error_response(validation_error(str(exc)))
    if isinstance(exc, SettingsConflictError):
        return jsonify(error_body("CONFLICT", str(exc))), 409
    return server_error_response()


@settings_bp.get("/settings")
@require_admin_session(Permission.MANAGE_SETTINGS)
def get_settings():
    return jsonify({"settings": settings_service.get_settings().to_dict()})


@settings_bp.put("/settings")
@require_admin_session(Permission.MANAGE_SETTINGS)
def update_settings():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return error_response(validation_error("Request body must be a JSON object"))
    try:
        settings = settings_service.update_settings(payload)
    except (SettingsValidationError, SettingsConflictError) as exc:
        return _json_error(exc)
    except Exception:
        current_app.logger.exception("Failed to update settings")
        return server_error_response()
    return jsonify({"settings": settings.to_dict()})


@settings_bp.get("/locations")
def list_locations():
    """
    Storage locations for intake forms.

    Readable from either session kind. Inactive locations are listed only
    for admin sessions asking with include_inactive=true.
    """
    kind = SessionKind.ADMIN if request_gate.session_token(SessionKind.ADMIN) else SessionKind.EMPLOYEE
    decision = request_gate.authorize(kind, request_gate.session_token(kind))
    if not decision.allowed:
        return error_response(decision.rejection)

    include_inactive = (
        kind is SessionKind.ADMIN
        and request.args.get("include_inactive", "false").lower() == "true"
    )
    locations = settings_service.list_locations(include_inactive=include_inactive)
    return jsonify({"locations": [loc.to_dict() for loc in locations], "count": len(locations)})


@settings_bp.post("/locations")
@require_admin_session(Permission.MANAGE_LOCATIONS)
def create_location():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return error_response(validation_error("Request body must be a JSON object"))
    try:
        location = settings_service.create_location(payload)
    except (SettingsValidationError, SettingsConflictError) as exc:
        return _json_error(exc)
    except Exception:
        current_app.logger.exception("Failed to create storage location")
        return server_error_response()
    return jsonify({"location": location.to_dict()}), 201


@settings_bp.put("/locations/<int:location_id>")
@require_admin_session(Permission.MANAGE_LOCATIONS)
def update_location(location_id: int):
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return error_response(validation_error("Request body must be a JSON object"))
    try:
        location = settings_service.update_location(location_id, payload)
    except (SettingsValidationError, SettingsConflictError) as exc:
        return _json_error(exc)
    except Exception:
        current_app.logger.exception("Failed to update storage location %s", location_id)
        return server_error_response()
    if location is None:
        return error_response(Rejection(Reason.ENTITY_NOT_FOUND))
    return jsonify({"location": location.to_dict()})
