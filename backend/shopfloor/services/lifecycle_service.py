# Overview: Ticket status state machine, soft delete / restore, and hard delete.

"""
Ticket Lifecycle Service

================================================================================
PURPOSE: Move tickets through their statuses without ever losing audit history
================================================================================

STATE MACHINE (change_status):

    intake           -> in_progress, waiting_on_parts, ready_for_pickup
    in_progress      -> waiting_on_parts, ready_for_pickup
    waiting_on_parts -> in_progress, ready_for_pickup
    ready_for_pickup -> in_progress, waiting_on_parts
    closed           -> archived            (CLOSE_ANY_TICKET only)
    archived         -> (terminal)

    ready_for_pickup -> closed only through close_ticket(), which also
    records actual_amount, closed_by and closed_at.

RULES (NON-NEGOTIABLE):
1. Every status change appends exactly one TicketStatusHistory row in the
   same transaction as the status UPDATE. Both land or neither does.
2. The UPDATE is a compare-and-swap on (ticket_id, expected status, not
   deleted). If someone else moved the ticket first, nothing is written and
   the caller gets INVALID_TRANSITION.
3. Staying on the same status is not a transition.
4. Soft delete (deleted_at + deleted_by) never touches status or history and
   is undone only by restore_ticket(). Archived tickets cannot be soft
   deleted.
5. Hard delete is refused while any status or field history exists. The
   RESTRICT foreign keys enforce the same rule in the database.

All functions return the updated Ticket or a Rejection. They assume the
caller has already authenticated the principal and checked role permission
(see request_gate.authorize).
"""

from __future__ import annotations

from sqlalchemy import delete, func
from sqlalchemy.exc import IntegrityError

from ..errors import Reason, Rejection, validation_error
from ..extensions import db
from ..models import (
    OPEN_STATUSES,
    Ticket,
    TicketFieldHistory,
    TicketPhoto,
    TicketStatus,
    TicketStatusHistory,
)
from ..time_utils import utcnow
from .concurrency import compare_and_swap
from .ownership_service import can_close
from .session_service import Principal


TRANSITIONS: dict[TicketStatus, frozenset[TicketStatus]] = {
    TicketStatus.INTAKE: frozenset({
        TicketStatus.IN_PROGRESS,
        TicketStatus.WAITING_ON_PARTS,
        TicketStatus.READY_FOR_PICKUP,
    }),
    TicketStatus.IN_PROGRESS: frozenset({
        TicketStatus.WAITING_ON_PARTS,
        TicketStatus.READY_FOR_PICKUP,
    }),
    TicketStatus.WAITING_ON_PARTS: frozenset({
        TicketStatus.IN_PROGRESS,
        TicketStatus.READY_FOR_PICKUP,
    }),
    TicketStatus.READY_FOR_PICKUP: frozenset({
        TicketStatus.IN_PROGRESS,
        TicketStatus.WAITING_ON_PARTS,
    }),
    TicketStatus.CLOSED: frozenset({TicketStatus.ARCHIVED}),
    TicketStatus.ARCHIVED: frozenset(),
}

CLOSABLE_FROM = frozenset({TicketStatus.READY_FOR_PICKUP})


def can_transition(from_status: TicketStatus | str, to_status: TicketStatus | str) -> bool:
    """True if change_status may move a ticket from from_status to to_status."""
    return TicketStatus(to_status) in TRANSITIONS[TicketStatus(from_status)]


def _parse_status(value) -> TicketStatus | None:
    try:
        return TicketStatus(value)
    except ValueError:
        return None


def _explain_lost_race(ticket_id: int) -> Rejection:
    """After a failed compare-and-swap, work out what changed underneath us."""
    current = db.session.get(Ticket, ticket_id)
    if current is None:
        return Rejection(Reason.ENTITY_NOT_FOUND)
    if current.deleted_at is not None:
        return Rejection(Reason.ENTITY_DELETED)
    return Rejection(
        Reason.INVALID_TRANSITION,
        f"Ticket status changed concurrently (now '{current.status}')",
    )


def _apply_transition(
    principal: Principal,
    ticket: Ticket,
    from_status: TicketStatus,
    to_status: TicketStatus,
    extra_values: dict | None = None,
) -> Ticket | Rejection:
    now = utcnow()
    values = {
        "status": to_status.value,
        "updated_at": now,
        "last_modified_by": principal.employee_id,
    }
    if extra_values:
        values.update(extra_values)

    ticket_id = ticket.ticket_id
    try:
        swapped = compare_and_swap(
            Ticket,
            [
                Ticket.ticket_id == ticket_id,
                Ticket.status == from_status.value,
                Ticket.deleted_at.is_(None),
            ],
            values,
        )
        if not swapped:
            db.session.rollback()
            return _explain_lost_race(ticket_id)

        db.session.add(TicketStatusHistory(
            ticket_id=ticket_id,
            from_status=from_status.value,
            to_status=to_status.value,
            changed_by=principal.employee_id,
            changed_at=now,
        ))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    db.session.refresh(ticket)
    return ticket


def change_status(principal: Principal, ticket: Ticket, to_status) -> Ticket | Rejection:
    """
    Generic status move along TRANSITIONS.

    Closing goes through close_ticket(); archiving needs CLOSE_ANY_TICKET.
    """
    target = _parse_status(to_status)
    if target is None:
        return validation_error(
            f"Invalid status '{to_status}'. Must be one of: {', '.join(s.value for s in TicketStatus)}"
        )

    current = TicketStatus(ticket.status)
    if target is TicketStatus.CLOSED:
        return Rejection(Reason.INVALID_TRANSITION, "Use the close operation to close a ticket")
    if current is target:
        return Rejection(Reason.INVALID_TRANSITION, f"Ticket is already '{current.value}'")
    if not can_transition(current, target):
        return Rejection(
            Reason.INVALID_TRANSITION,
            f"Cannot transition from '{current.value}' to '{target.value}'",
        )
    if target is TicketStatus.ARCHIVED and not can_close(principal):
        return Rejection(Reason.INSUFFICIENT_PERMISSION)

    return _apply_transition(principal, ticket, current, target)


def close_ticket(principal: Principal, ticket: Ticket, actual_amount) -> Ticket | Rejection:
    """
    Close a ready_for_pickup ticket with the final amount charged.

    Ownership never authorizes this; only CLOSE_ANY_TICKET does.
    actual_amount must already be a validated Decimal (or None).
    """
    if not can_close(principal):
        return Rejection(Reason.INSUFFICIENT_PERMISSION)
    if actual_amount is None:
        return validation_error("actual_amount is required to close a ticket")

    current = TicketStatus(ticket.status)
    if current not in CLOSABLE_FROM:
        return Rejection(
            Reason.INVALID_TRANSITION,
            f"Only tickets with status 'ready_for_pickup' can be closed, current status is '{current.value}'",
        )

    now = utcnow()
    return _apply_transition(
        principal,
        ticket,
        current,
        TicketStatus.CLOSED,
        {"actual_amount": actual_amount, "closed_by": principal.employee_id, "closed_at": now},
    )


def soft_delete_ticket(principal: Principal, ticket: Ticket) -> Ticket | Rejection:
    """Mark deleted_at/deleted_by together. Status and history stay as they are."""
    if TicketStatus(ticket.status) is TicketStatus.ARCHIVED:
        return Rejection(Reason.INVALID_TRANSITION, "Archived tickets cannot be deleted")

    now = utcnow()
    ticket_id = ticket.ticket_id
    try:
        swapped = compare_and_swap(
            Ticket,
            [
                Ticket.ticket_id == ticket_id,
                Ticket.deleted_at.is_(None),
                Ticket.status != TicketStatus.ARCHIVED.value,
            ],
            {"deleted_at": now, "deleted_by": principal.employee_id, "updated_at": now},
        )
        if not swapped:
            db.session.rollback()
            return _explain_lost_race(ticket_id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    db.session.refresh(ticket)
    return ticket


def restore_ticket(principal: Principal, ticket: Ticket) -> Ticket | Rejection:
    """Clear deleted_at/deleted_by together."""
    now = utcnow()
    ticket_id = ticket.ticket_id
    try:
        swapped = compare_and_swap(
            Ticket,
            [Ticket.ticket_id == ticket_id, Ticket.deleted_at.is_not(None)],
            {"deleted_at": None, "deleted_by": None, "updated_at": now, "last_modified_by": principal.employee_id},
        )
        if not swapped:
            db.session.rollback()
            return Rejection(Reason.INVALID_TRANSITION, "Ticket is not deleted")
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    db.session.refresh(ticket)
    return ticket


def history_count(ticket_id: int) -> int:
    status_rows = db.session.query(func.count(TicketStatusHistory.history_id)).filter(
        TicketStatusHistory.ticket_id == ticket_id
    ).scalar()
    field_rows = db.session.query(func.count(TicketFieldHistory.history_id)).filter(
        TicketFieldHistory.ticket_id == ticket_id
    ).scalar()
    return (status_rows or 0) + (field_rows or 0)


def hard_delete_ticket(ticket_id: int) -> list[str] | Rejection:
    """
    Permanently remove a ticket (admin override).

    Refused with INVALID_TRANSITION while any history row references it.
    Notes and photo rows cascade in the database. Returns the storage keys of
    the removed photos so the caller can delete the files.
    """
    ticket = db.session.get(Ticket, ticket_id)
    if ticket is None:
        return Rejection(Reason.ENTITY_NOT_FOUND)

    if history_count(ticket_id) > 0:
        return Rejection(
            Reason.INVALID_TRANSITION,
            "Ticket has audit history and cannot be permanently deleted",
        )

    storage_keys = [
        key for (key,) in db.session.query(TicketPhoto.storage_key).filter(TicketPhoto.ticket_id == ticket_id)
    ]
    try:
        db.session.execute(delete(Ticket).where(Ticket.ticket_id == ticket_id))
        db.session.commit()
    except IntegrityError:
        # History appeared between the count and the delete.
        db.session.rollback()
        return Rejection(
            Reason.INVALID_TRANSITION,
            "Ticket has audit history and cannot be permanently deleted",
        )
    return storage_keys


def is_open(ticket: Ticket) -> bool:
    return TicketStatus(ticket.status) in OPEN_STATUSES
