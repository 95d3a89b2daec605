# Overview: Domain rejection values and their single mapping onto the JSON error envelope.

"""
Rejections

WHY: Authentication, authorization and lifecycle checks are expected to fail
routinely (wrong PIN, wrong owner, ticket already closed). They return a
Rejection value instead of raising, and routes turn that value into a response
through error_response() so every endpoint speaks the same error vocabulary.

SECURITY: INSUFFICIENT_PERMISSION and NOT_OWNER render identically so a
caller cannot tell whether the ticket is someone else's or the action is
simply above their role. ENTITY_DELETED renders as NOT_FOUND.

Envelope:
    {"error": {"code": "FORBIDDEN", "message": "..."}}
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from flask import jsonify


class Reason(str, Enum):
    INVALID_CREDENTIAL = "INVALID_CREDENTIAL"
    RATE_LIMITED = "RATE_LIMITED"
    SESSION_EXPIRED_OR_INVALID = "SESSION_EXPIRED_OR_INVALID"
    INSUFFICIENT_PERMISSION = "INSUFFICIENT_PERMISSION"
    NOT_OWNER = "NOT_OWNER"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    ENTITY_NOT_FOUND = "ENTITY_NOT_FOUND"
    ENTITY_DELETED = "ENTITY_DELETED"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    PHOTO_LIMIT = "PHOTO_LIMIT"
    SETUP_EXPIRED = "SETUP_EXPIRED"


@dataclass(frozen=True)
class Rejection:
    """A refused operation. `detail` is only surfaced for safe reasons."""
    reason: Reason
    detail: str | None = None
    retry_after: int | None = None


# reason -> (wire code, HTTP status, default message)
WIRE_ERRORS: dict[Reason, tuple[str, int, str]] = {
    Reason.INVALID_CREDENTIAL: ("INVALID_PIN", 401, "Invalid PIN"),
    Reason.RATE_LIMITED: ("RATE_LIMITED", 429, "Too many attempts. Try again later."),
    Reason.SESSION_EXPIRED_OR_INVALID: ("UNAUTHORIZED", 401, "Session expired or invalid"),
    Reason.INSUFFICIENT_PERMISSION: ("FORBIDDEN", 403, "You do not have permission to perform this action"),
    Reason.NOT_OWNER: ("FORBIDDEN", 403, "You do not have permission to perform this action"),
    Reason.INVALID_TRANSITION: ("CONFLICT", 409, "Operation not allowed in the current state"),
    Reason.ENTITY_NOT_FOUND: ("NOT_FOUND", 404, "Resource not found"),
    Reason.ENTITY_DELETED: ("NOT_FOUND", 404, "Resource not found"),
    Reason.VALIDATION_FAILED: ("VALIDATION_ERROR", 400, "Invalid request"),
    Reason.PHOTO_LIMIT: ("PHOTO_LIMIT", 422, "Photo limit reached for this ticket"),
    Reason.SETUP_EXPIRED: ("SETUP_EXPIRED", 403, "Initial setup window has expired"),
}

# Reasons whose detail text is safe to show to the caller.
_DETAIL_VISIBLE = {
    Reason.INVALID_TRANSITION,
    Reason.VALIDATION_FAILED,
    Reason.PHOTO_LIMIT,
}


def error_body(code: str, message: str) -> dict:
    return {"error": {"code": code, "message": message}}


def error_response(rejection: Rejection):
    """Render a Rejection as (json, status[, headers])."""
    code, status, message = WIRE_ERRORS[rejection.reason]
    if rejection.detail and rejection.reason in _DETAIL_VISIBLE:
        message = rejection.detail

    body = error_body(code, message)
    if rejection.reason is Reason.RATE_LIMITED and rejection.retry_after is not None:
        body["error"]["retry_after"] = rejection.retry_after
        return jsonify(body), status, {"Retry-After": str(rejection.retry_after)}
    return jsonify(body), status


def server_error_response():
    return jsonify(error_body("SERVER_ERROR", "Internal server error")), 500


def validation_error(detail: str) -> Rejection:
    return Rejection(Reason.VALIDATION_FAILED, detail)
