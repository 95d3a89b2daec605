# Overview: Flask API routes for repair tickets; parses input and returns JSON responses.

# backend/shopfloor/routes/tickets.py
"""
Ticket routes.

Every route runs under an employee session (X-Employee-Session). The
decorator resolves the principal, checks the role permission, loads the
ticket named in the URL (404 for missing or soft-deleted tickets) and, for
MODIFY_OWN_TICKET, ADD_NOTES and UPLOAD_PHOTOS, checks ownership.

Permissions:
- CREATE_TICKET:     POST /tickets
- VIEW_TICKET:       GET /tickets, GET /tickets/<id>, history, photo files
- MODIFY_OWN_TICKET: PUT /tickets/<id>, status, rush, worker (owners and admins)
- CLOSE_ANY_TICKET:  close
- ADD_NOTES:         notes (owners and admins)
- UPLOAD_PHOTOS:     photo upload (owners and admins)
- DELETE_PHOTOS, DELETE_TICKETS, REASSIGN_TICKETS: admin role only
"""

from flask import Blueprint, request, jsonify, g, current_app, send_file

from ..decorators import require_employee_session
from ..errors import Reason, Rejection, error_response, server_error_response, validation_error
from ..extensions import db
from ..models import TicketPhoto
from ..permissions import Permission
from ..services import lifecycle_service, photo_service, ticket_service
from ..validation import ValidationError, parse_amount

tickets_bp = Blueprint("tickets", __name__, url_prefix="/api/v1/tickets")


def _ticket_response(result, status: int = 200):
    if isinstance(result, Rejection):
        return error_response(result)
    return jsonify({"ticket": result.to_dict()}), status


def _json_body():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return None
    return payload


@tickets_bp.post("")
@require_employee_session(Permission.CREATE_TICKET)
def create_ticket():
    """
    Intake a repair.

    Body:
    - customer: {name, phone?, email?} or customer_id: int
    - item_type, item_description, condition_notes, requested_work: str
    - storage_location_id: int (active location)
    - quote_amount?: number | str, promise_date?: YYYY-MM-DD, is_rush?: bool
    """
    try:
        result = ticket_service.create_ticket(g.principal, request.get_json(silent=True))
    except Exception:
        current_app.logger.exception("Failed to create ticket")
        return server_error_response()

    if not isinstance(result, Rejection):
        current_app.logger.info("Ticket %s taken in by %s", result.friendly_code, g.principal.employee_id)
    return _ticket_response(result, 201)


@tickets_bp.get("")
@require_employee_session(Permission.VIEW_TICKET)
def list_tickets():
    """
    Query params:
    - status: str (optional)
    - is_rush: bool (optional)
    - mine: bool (optional) - only tickets I took in or am working
    - open: bool (optional) - exclude closed and archived
    - q: str (optional) - friendly code, customer name or phone
    - limit: int (default 50, max 200), offset: int
    """
    is_rush_arg = request.args.get("is_rush")
    is_rush = None if is_rush_arg is None else is_rush_arg.lower() == "true"
    mine = request.args.get("mine", "false").lower() == "true"

    result = ticket_service.list_tickets(
        status=request.args.get("status"),
        is_rush=is_rush,
        employee_id=g.principal.employee_id if mine else None,
        search=request.args.get("q"),
        open_only=request.args.get("open", "false").lower() == "true",
        limit=request.args.get("limit", type=int),
        offset=request.args.get("offset", default=0, type=int),
    )
    if isinstance(result, Rejection):
        return error_response(result)

    return jsonify({
        "tickets": [t.to_dict() for t in result["items"]],
        "count": len(result["items"]),
        "total": result["total"],
        "limit": result["limit"],
        "offset": result["offset"],
    })


@tickets_bp.get("/<int:ticket_id>")
@require_employee_session(Permission.VIEW_TICKET, ticket_arg="ticket_id")
def get_ticket(ticket_id: int):
    ticket = g.ticket
    data = ticket.to_dict(include_history=True)
    data["notes"] = [n.to_dict() for n in ticket.notes]
    data["photos"] = [p.to_dict() for p in ticket.photos]
    return jsonify({"ticket": data})


@tickets_bp.put("/<int:ticket_id>")
@require_employee_session(Permission.MODIFY_OWN_TICKET, ticket_arg="ticket_id")
def update_ticket(ticket_id: int):
    try:
        result = ticket_service.update_ticket_fields(g.principal, g.ticket, request.get_json(silent=True))
    except Exception:
        current_app.logger.exception("Failed to update ticket %s", ticket_id)
        return server_error_response()
    return _ticket_response(result)


@tickets_bp.post("/<int:ticket_id>/status")
@require_employee_session(Permission.MODIFY_OWN_TICKET, ticket_arg="ticket_id")
def change_status(ticket_id: int):
    """Body: {"status": "in_progress" | "waiting_on_parts" | "ready_for_pickup" | "archived" | ...}"""
    payload = _json_body()
    if payload is None or "status" not in payload:
        return error_response(validation_error("status is required"))

    try:
        result = lifecycle_service.change_status(g.principal, g.ticket, payload["status"])
    except Exception:
        current_app.logger.exception("Failed to change status of ticket %s", ticket_id)
        return server_error_response()
    return _ticket_response(result)


@tickets_bp.post("/<int:ticket_id>/close")
@require_employee_session(Permission.CLOSE_ANY_TICKET, ticket_arg="ticket_id")
def close_ticket(ticket_id: int):
    """Body: {"actual_amount": number | str}"""
    payload = _json_body()
    if payload is None:
        return error_response(validation_error("Request body must be a JSON object"))
    try:
        actual_amount = parse_amount(payload.get("actual_amount"), "actual_amount")
    except ValidationError as exc:
        return error_response(validation_error(str(exc)))

    try:
        result = lifecycle_service.close_ticket(g.principal, g.ticket, actual_amount)
    except Exception:
        current_app.logger.exception("Failed to close ticket %s", ticket_id)
        return server_error_response()

    if not isinstance(result, Rejection):
        current_app.logger.info("Ticket %s closed by %s", result.friendly_code, g.principal.employee_id)
    return _ticket_response(result)


@tickets_bp.post("/<int:ticket_id>/rush")
@require_employee_session(Permission.MODIFY_OWN_TICKET, ticket_arg="ticket_id")
def set_rush(ticket_id: int):
    """Body: {"is_rush": bool}"""
    payload = _json_body()
    if payload is None:
        return error_response(validation_error("Request body must be a JSON object"))
    try:
        result = ticket_service.set_rush(g.principal, g.ticket, payload.get("is_rush"))
    except Exception:
        current_app.logger.exception("Failed to set rush on ticket %s", ticket_id)
        return server_error_response()
    return _ticket_response(result)


@tickets_bp.post("/<int:ticket_id>/notes")
@require_employee_session(Permission.ADD_NOTES, ticket_arg="ticket_id")
def add_note(ticket_id: int):
    """Body: {"content": str}"""
    payload = _json_body()
    if payload is None:
        return error_response(validation_error("Request body must be a JSON object"))
    try:
        result = ticket_service.add_note(g.principal, g.ticket, payload.get("content"))
    except Exception:
        current_app.logger.exception("Failed to add note to ticket %s", ticket_id)
        return server_error_response()

    if isinstance(result, Rejection):
        return error_response(result)
    return jsonify({"note": result.to_dict()}), 201


@tickets_bp.post("/<int:ticket_id>/photos")
@require_employee_session(Permission.UPLOAD_PHOTOS, ticket_arg="ticket_id")
def upload_photo(ticket_id: int):
    """multipart/form-data with a single "file" part (JPEG, PNG or WebP)."""
    upload = request.files.get("file")
    if upload is None:
        return error_response(validation_error("file is required"))

    try:
        result = photo_service.add_photo(g.principal, g.ticket, upload.read(), upload.mimetype)
    except Exception:
        current_app.logger.exception("Failed to store photo for ticket %s", ticket_id)
        return server_error_response()

    if isinstance(result, Rejection):
        return error_response(result)
    return jsonify({"photo": result.to_dict()}), 201


@tickets_bp.get("/<int:ticket_id>/photos/<int:photo_id>")
@require_employee_session(Permission.VIEW_TICKET, ticket_arg="ticket_id")
def get_photo(ticket_id: int, photo_id: int):
    photo = db.session.get(TicketPhoto, photo_id)
    if photo is None or photo.ticket_id != ticket_id:
        return error_response(Rejection(Reason.ENTITY_NOT_FOUND))
    try:
        return send_file(photo_service.photo_path(photo), mimetype=photo.content_type)
    except FileNotFoundError:
        current_app.logger.warning("Photo %s is missing from storage", photo.storage_key)
        return error_response(Rejection(Reason.ENTITY_NOT_FOUND))


@tickets_bp.delete("/<int:ticket_id>/photos/<int:photo_id>")
@require_employee_session(Permission.DELETE_PHOTOS, ticket_arg="ticket_id")
def delete_photo(ticket_id: int, photo_id: int):
    try:
        result = photo_service.delete_photo(g.ticket, photo_id)
    except Exception:
        current_app.logger.exception("Failed to delete photo %s of ticket %s", photo_id, ticket_id)
        return server_error_response()
    if isinstance(result, Rejection):
        return error_response(result)
    return jsonify({"ok": True}), 200


@tickets_bp.post("/<int:ticket_id>/worker")
@require_employee_session(Permission.MODIFY_OWN_TICKET, ticket_arg="ticket_id")
def assign_worker(ticket_id: int):
    """Body: {"employee_id": str | null}"""
    payload = _json_body()
    if payload is None or "employee_id" not in payload:
        return error_response(validation_error("employee_id is required"))
    try:
        result = ticket_service.assign_worker(g.principal, g.ticket, payload["employee_id"])
    except Exception:
        current_app.logger.exception("Failed to assign worker on ticket %s", ticket_id)
        return server_error_response()
    return _ticket_response(result)


@tickets_bp.post("/<int:ticket_id>/taken-in-by")
@require_employee_session(Permission.REASSIGN_TICKETS, ticket_arg="ticket_id")
def reassign_intake(ticket_id: int):
    """Body: {"employee_id": str}"""
    payload = _json_body()
    if payload is None or "employee_id" not in payload:
        return error_response(validation_error("employee_id is required"))
    try:
        result = ticket_service.reassign_intake(g.principal, g.ticket, payload["employee_id"])
    except Exception:
        current_app.logger.exception("Failed to reassign intake on ticket %s", ticket_id)
        return server_error_response()
    return _ticket_response(result)


@tickets_bp.delete("/<int:ticket_id>")
@require_employee_session(Permission.DELETE_TICKETS, ticket_arg="ticket_id")
def soft_delete_ticket(ticket_id: int):
    try:
        result = lifecycle_service.soft_delete_ticket(g.principal, g.ticket)
    except Exception:
        current_app.logger.exception("Failed to delete ticket %s", ticket_id)
        return server_error_response()
    return _ticket_response(result)


@tickets_bp.post("/<int:ticket_id>/restore")
@require_employee_session(Permission.DELETE_TICKETS, ticket_arg="ticket_id", include_deleted=True)
def restore_ticket(ticket_id: int):
    try:
        result = lifecycle_service.restore_ticket(g.principal, g.ticket)
    except Exception:
        current_app.logger.exception("Failed to restore ticket %s", ticket_id)
        return server_error_response()
    return _ticket_response(result)


@tickets_bp.get("/<int:ticket_id>/history")
@require_employee_session(Permission.VIEW_TICKET, ticket_arg="ticket_id")
def get_history(ticket_id: int):
    return jsonify(ticket_service.get_history(g.ticket))
