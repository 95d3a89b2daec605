# Overview: Ticket intake, field edits, notes and ownership assignment.

"""
Ticket Service

Everything about a ticket except its status lives here: intake, field edits,
the rush flag, notes and the two ownership anchors (taken_in_by, worked_by).
Status moves are lifecycle_service's job.

AUDIT:
- Every changed field appends one TicketFieldHistory row in the same
  transaction as the change. Unchanged fields append nothing.
- Intake appends the first TicketStatusHistory row (None -> intake).
- Notes are append-only.

Functions take an already-authorized Principal and Ticket (see
request_gate.authorize) and return the result or a Rejection. Nothing here
re-checks role permissions; it only enforces the data rules.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import or_

from ..errors import Reason, Rejection, validation_error
from ..extensions import db
from ..models import (
    Customer,
    Ticket,
    TicketFieldHistory,
    TicketNote,
    TicketStatus,
    TicketStatusHistory,
)
from ..time_utils import utcnow
from ..validation import (
    MAX_DESCRIPTION_LENGTH,
    MAX_EMAIL_LENGTH,
    MAX_ITEM_TYPE_LENGTH,
    MAX_NAME_LENGTH,
    MAX_NOTE_LENGTH,
    MAX_PHONE_LENGTH,
    ValidationError,
    parse_amount,
    parse_bool,
    parse_promise_date,
    require_object,
    validate_optional,
    validate_required,
)
from . import employee_service, settings_service
from .lifecycle_service import is_open
from .session_service import Principal


DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200

# Free-text item fields and their maximum lengths.
TEXT_FIELDS = {
    "item_type": MAX_ITEM_TYPE_LENGTH,
    "item_description": MAX_DESCRIPTION_LENGTH,
    "condition_notes": MAX_DESCRIPTION_LENGTH,
    "requested_work": MAX_DESCRIPTION_LENGTH,
}


def _history_value(value) -> str | None:
    if value is None:
        return None
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _field_change(principal: Principal, ticket: Ticket, field: str, old, new, now) -> None:
    db.session.add(TicketFieldHistory(
        ticket_id=ticket.ticket_id,
        field_name=field,
        old_value=_history_value(old),
        new_value=_history_value(new),
        changed_by=principal.employee_id,
        changed_at=now,
    ))


def _resolve_customer(data: dict) -> Customer:
    customer_id = data.get("customer_id")
    if customer_id is not None:
        if isinstance(customer_id, bool) or not isinstance(customer_id, int):
            raise ValidationError("customer_id must be an integer")
        customer = db.session.get(Customer, customer_id)
        if customer is None:
            raise ValidationError("customer_id does not reference an existing customer")
        return customer

    raw = data.get("customer")
    if not isinstance(raw, dict):
        raise ValidationError("customer or customer_id is required")
    customer = Customer(
        name=validate_required(raw.get("name"), "customer.name", MAX_NAME_LENGTH),
        phone=validate_optional(raw.get("phone"), "customer.phone", MAX_PHONE_LENGTH),
        email=validate_optional(raw.get("email"), "customer.email", MAX_EMAIL_LENGTH),
    )
    if customer.email and "@" not in customer.email:
        raise ValidationError("customer.email must be a valid email address")
    db.session.add(customer)
    return customer


def create_ticket(principal: Principal, data: Any) -> Ticket | Rejection:
    """
    Intake a repair.

    The friendly code is allocated in the same transaction as the insert and
    the first status history row, so a failed intake rolls all three back.
    """
    try:
        data = require_object(data)
        fields = {
            name: validate_required(data.get(name), name, max_length)
            for name, max_length in TEXT_FIELDS.items()
        }
        quote_amount = parse_amount(data.get("quote_amount"), "quote_amount")
        promise_date = parse_promise_date(data.get("promise_date"))
        is_rush = parse_bool(data.get("is_rush", False), "is_rush")
    except ValidationError as exc:
        return validation_error(str(exc))

    # Settings row may be created on first use; keep that out of the intake transaction.
    settings_service.get_settings()

    location = settings_service.get_active_location(data.get("storage_location_id"))
    if location is None:
        return validation_error("storage_location_id must reference an active storage location")

    now = utcnow()
    try:
        try:
            customer = _resolve_customer(data)
        except ValidationError as exc:
            db.session.rollback()
            return validation_error(str(exc))

        ticket = Ticket(
            friendly_code=settings_service.allocate_friendly_code(),
            customer=customer,
            status=TicketStatus.INTAKE.value,
            is_rush=is_rush,
            promise_date=promise_date,
            storage_location_id=location.location_id,
            quote_amount=quote_amount,
            taken_in_by=principal.employee_id,
            last_modified_by=principal.employee_id,
            created_at=now,
            updated_at=now,
            **fields,
        )
        db.session.add(ticket)
        db.session.flush()
        db.session.add(TicketStatusHistory(
            ticket_id=ticket.ticket_id,
            from_status=None,
            to_status=TicketStatus.INTAKE.value,
            changed_by=principal.employee_id,
            changed_at=now,
        ))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return ticket


def get_ticket(ticket_id: int) -> Ticket | None:
    """Active (not soft-deleted) ticket by id."""
    return Ticket.active().filter(Ticket.ticket_id == ticket_id).first()


def list_tickets(
    status: str | None = None,
    is_rush: bool | None = None,
    employee_id: str | None = None,
    search: str | None = None,
    open_only: bool = False,
    limit: int | None = None,
    offset: int = 0,
) -> Rejection | dict:
    """
    Active tickets, rush first then oldest first.

    employee_id matches either ownership anchor. search matches the friendly
    code or the customer's name / phone.
    """
    query = Ticket.active()

    if status is not None:
        try:
            query = query.filter(Ticket.status == TicketStatus(status).value)
        except ValueError:
            return validation_error(f"Invalid status '{status}'")
    elif open_only:
        query = query.filter(Ticket.status.notin_([TicketStatus.CLOSED.value, TicketStatus.ARCHIVED.value]))

    if is_rush is not None:
        query = query.filter(Ticket.is_rush.is_(is_rush))
    if employee_id:
        query = query.filter(or_(Ticket.taken_in_by == employee_id, Ticket.worked_by == employee_id))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.join(Customer, Ticket.customer_id == Customer.customer_id).filter(
            or_(
                Ticket.friendly_code.ilike(pattern),
                Customer.name.ilike(pattern),
                Customer.phone.ilike(pattern),
            )
        )

    total = query.count()
    limit = max(1, min(limit or DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE))
    items = (
        query.order_by(Ticket.is_rush.desc(), Ticket.created_at.asc(), Ticket.ticket_id.asc())
        .offset(max(offset, 0))
        .limit(limit)
        .all()
    )
    return {"items": items, "total": total, "limit": limit, "offset": max(offset, 0)}


def _read_only(principal: Principal, ticket: Ticket) -> Rejection | None:
    if not is_open(ticket) and not principal.is_admin:
        return Rejection(Reason.INVALID_TRANSITION, f"Ticket is {ticket.status} and can no longer be edited")
    return None


def update_ticket_fields(principal: Principal, ticket: Ticket, data: Any) -> Ticket | Rejection:
    """
    Partial update of item fields, promise date, storage location and quote.

    Status, amounts charged, ownership and deletion are not writable here.
    """
    blocked = _read_only(principal, ticket)
    if blocked is not None:
        return blocked

    try:
        data = require_object(data)
        changes: dict[str, Any] = {}
        for name, max_length in TEXT_FIELDS.items():
            if name in data:
                changes[name] = validate_required(data[name], name, max_length)
        if "promise_date" in data:
            changes["promise_date"] = parse_promise_date(data["promise_date"])
        if "quote_amount" in data:
            changes["quote_amount"] = parse_amount(data["quote_amount"], "quote_amount")
    except ValidationError as exc:
        return validation_error(str(exc))

    if "storage_location_id" in data:
        location = settings_service.get_active_location(data["storage_location_id"])
        if location is None:
            return validation_error("storage_location_id must reference an active storage location")
        changes["storage_location_id"] = location.location_id

    now = utcnow()
    changed = False
    try:
        for field, new_value in changes.items():
            old_value = getattr(ticket, field)
            if old_value == new_value:
                continue
            _field_change(principal, ticket, field, old_value, new_value, now)
            setattr(ticket, field, new_value)
            changed = True
        if changed:
            ticket.updated_at = now
            ticket.last_modified_by = principal.employee_id
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return ticket


def set_rush(principal: Principal, ticket: Ticket, is_rush: Any) -> Ticket | Rejection:
    try:
        is_rush = parse_bool(is_rush, "is_rush")
    except ValidationError as exc:
        return validation_error(str(exc))
    if not is_open(ticket):
        return Rejection(Reason.INVALID_TRANSITION, "Rush can only be set on open tickets")
    if ticket.is_rush == is_rush:
        return ticket

    now = utcnow()
    try:
        _field_change(principal, ticket, "is_rush", ticket.is_rush, is_rush, now)
        ticket.is_rush = is_rush
        ticket.updated_at = now
        ticket.last_modified_by = principal.employee_id
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return ticket


def add_note(principal: Principal, ticket: Ticket, content: Any) -> TicketNote | Rejection:
    try:
        content = validate_required(content, "content", MAX_NOTE_LENGTH)
    except ValidationError as exc:
        return validation_error(str(exc))

    note = TicketNote(
        ticket_id=ticket.ticket_id,
        content=content,
        created_by=principal.employee_id,
        created_at=utcnow(),
    )
    try:
        db.session.add(note)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return note


def _reassign(principal: Principal, ticket: Ticket, field: str, employee_id: Any, allow_clear: bool):
    blocked = _read_only(principal, ticket)
    if blocked is not None:
        return blocked

    if employee_id is None and allow_clear:
        new_value = None
    else:
        employee = employee_service.get_active_employee(employee_id)
        if employee is None:
            return validation_error("employee_id must reference an active employee")
        new_value = employee.employee_id

    old_value = getattr(ticket, field)
    if old_value == new_value:
        return ticket

    now = utcnow()
    try:
        _field_change(principal, ticket, field, old_value, new_value, now)
        setattr(ticket, field, new_value)
        ticket.updated_at = now
        ticket.last_modified_by = principal.employee_id
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return ticket


def assign_worker(principal: Principal, ticket: Ticket, employee_id: Any) -> Ticket | Rejection:
    """Set (or clear, with None) worked_by. Target must be an active employee."""
    return _reassign(principal, ticket, "worked_by", employee_id, allow_clear=True)


def reassign_intake(principal: Principal, ticket: Ticket, employee_id: Any) -> Ticket | Rejection:
    """Move taken_in_by to another active employee. Admin only (REASSIGN_TICKETS)."""
    return _reassign(principal, ticket, "taken_in_by", employee_id, allow_clear=False)


def get_history(ticket: Ticket) -> dict:
    return {
        "ticket_id": ticket.ticket_id,
        "status_history": [h.to_dict() for h in ticket.status_history],
        "field_history": [h.to_dict() for h in ticket.field_history],
        "notes": [n.to_dict() for n in ticket.notes],
    }
