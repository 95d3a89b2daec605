from __future__ import annotations

from enum import Enum

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class TicketStatus(str, Enum):
    INTAKE = "intake"
    IN_PROGRESS = "in_progress"
    WAITING_ON_PARTS = "waiting_on_parts"
    READY_FOR_PICKUP = "ready_for_pickup"
    CLOSED = "closed"
    ARCHIVED = "archived"


OPEN_STATUSES = frozenset({
    TicketStatus.INTAKE,
    TicketStatus.IN_PROGRESS,
    TicketStatus.WAITING_ON_PARTS,
    TicketStatus.READY_FOR_PICKUP,
})

_STATUS_SQL = ", ".join(f"'{s.value}'" for s in TicketStatus)


class AppendOnlyError(RuntimeError):
    """Raised when code tries to UPDATE or DELETE an audit row through the ORM."""


def _money(value):
    return None if value is None else str(value)


class Ticket(db.Model):
    """
    Repair ticket.

    Ownership anchors: taken_in_by (who accepted the item) and worked_by (who
    is doing the repair). A staff employee may mutate a ticket only when they
    are one of the two.

    SOFT DELETE: deleted_at and deleted_by are set together or not at all
    (CHECK constraint). Soft-deleted tickets drop out of active() queries but
    keep their status and every history row.

    STATUS: only lifecycle_service writes status, and only through a
    compare-and-swap UPDATE paired with a history insert.
    """
    __tablename__ = "tickets"
    __table_args__ = (
        db.CheckConstraint(f"status IN ({_STATUS_SQL})", name="ck_tickets_status"),
        db.CheckConstraint(
            "(deleted_at IS NULL AND deleted_by IS NULL) OR "
            "(deleted_at IS NOT NULL AND deleted_by IS NOT NULL)",
            name="ck_tickets_deleted_pair",
        ),
        db.CheckConstraint("quote_amount IS NULL OR quote_amount >= 0", name="ck_tickets_quote_nonneg"),
        db.CheckConstraint("actual_amount IS NULL OR actual_amount >= 0", name="ck_tickets_actual_nonneg"),
        db.Index("ix_tickets_status", "status"),
        db.Index("ix_tickets_deleted_at", "deleted_at"),
        db.Index("ix_tickets_taken_in_by", "taken_in_by"),
        db.Index("ix_tickets_worked_by", "worked_by"),
        {"sqlite_autoincrement": True},
    )

    ticket_id = db.Column(db.Integer, primary_key=True)
    friendly_code = db.Column(db.String(20), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.customer_id"), nullable=False)

    item_type = db.Column(db.String(100), nullable=False)
    item_description = db.Column(db.Text, nullable=False)
    condition_notes = db.Column(db.Text, nullable=False)
    requested_work = db.Column(db.Text, nullable=False)

    status = db.Column(db.String(32), nullable=False, default=TicketStatus.INTAKE.value)
    is_rush = db.Column(db.Boolean, nullable=False, default=False)
    promise_date = db.Column(db.Date, nullable=True)
    storage_location_id = db.Column(db.Integer, db.ForeignKey("storage_locations.location_id"), nullable=False)

    quote_amount = db.Column(db.Numeric(10, 2), nullable=True)
    actual_amount = db.Column(db.Numeric(10, 2), nullable=True)

    taken_in_by = db.Column(db.String(36), db.ForeignKey("employees.employee_id"), nullable=False)
    worked_by = db.Column(db.String(36), db.ForeignKey("employees.employee_id"), nullable=True)
    closed_by = db.Column(db.String(36), db.ForeignKey("employees.employee_id"), nullable=True)
    last_modified_by = db.Column(db.String(36), db.ForeignKey("employees.employee_id"), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    closed_at = db.Column(db.DateTime, nullable=True)

    deleted_at = db.Column(db.DateTime, nullable=True)
    deleted_by = db.Column(db.String(36), db.ForeignKey("employees.employee_id"), nullable=True)

    customer = db.relationship("Customer", backref=db.backref("tickets", lazy=True))
    storage_location = db.relationship("StorageLocation")

    # passive_deletes="all": the ORM never touches children on delete; the
    # database decides (RESTRICT for history, CASCADE for notes/photos).
    status_history = db.relationship(
        "TicketStatusHistory",
        order_by="TicketStatusHistory.history_id",
        passive_deletes="all",
        lazy=True,
    )
    field_history = db.relationship(
        "TicketFieldHistory",
        order_by="TicketFieldHistory.history_id",
        passive_deletes="all",
        lazy=True,
    )
    notes = db.relationship(
        "TicketNote",
        order_by="TicketNote.note_id",
        passive_deletes="all",
        lazy=True,
    )
    photos = db.relationship(
        "TicketPhoto",
        order_by="TicketPhoto.photo_id",
        passive_deletes="all",
        lazy=True,
    )

    @classmethod
    def active(cls):
        """Default query: excludes soft-deleted tickets."""
        return db.session.query(cls).filter(cls.deleted_at.is_(None))

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def to_dict(self, include_history: bool = False) -> dict:
        data = {
            "ticket_id": self.ticket_id,
            "friendly_code": self.friendly_code,
            "customer_id": self.customer_id,
            "customer": self.customer.to_dict() if self.customer else None,
            "item_type": self.item_type,
            "item_description": self.item_description,
            "condition_notes": self.condition_notes,
            "requested_work": self.requested_work,
            "status": self.status,
            "is_rush": self.is_rush,
            "promise_date": self.promise_date.isoformat() if self.promise_date else None,
            "storage_location_id": self.storage_location_id,
            "quote_amount": _money(self.quote_amount),
            "actual_amount": _money(self.actual_amount),
            "taken_in_by": self.taken_in_by,
            "worked_by": self.worked_by,
            "closed_by": self.closed_by,
            "last_modified_by": self.last_modified_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "closed_at": to_utc_z(self.closed_at),
            "deleted_at": to_utc_z(self.deleted_at),
            "deleted_by": self.deleted_by,
        }
        if include_history:
            data["status_history"] = [h.to_dict() for h in self.status_history]
        return data


class TicketStatusHistory(db.Model):
    """
    One row per status change, including the initial (None -> intake).

    IMMUTABLE: Never update or delete. Append-only for audit integrity.
    The FK is ON DELETE RESTRICT so a ticket with history cannot be hard
    deleted out from under its audit trail.
    """
    __tablename__ = "ticket_status_history"
    __table_args__ = (
        db.Index("ix_ticket_status_history_ticket", "ticket_id", "changed_at"),
        {"sqlite_autoincrement": True},
    )

    history_id = db.Column(db.Integer, primary_key=True)
    ticket_id = db.Column(
        db.Integer,
        db.ForeignKey("tickets.ticket_id", ondelete="RESTRICT"),
        nullable=False,
    )
    from_status = db.Column(db.String(32), nullable=True)
    to_status = db.Column(db.String(32), nullable=False)
    changed_by = db.Column(db.String(36), db.ForeignKey("employees.employee_id"), nullable=False)
    changed_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "history_id": self.history_id,
            "ticket_id": self.ticket_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "changed_by": self.changed_by,
            "changed_at": to_utc_z(self.changed_at),
        }


class TicketFieldHistory(db.Model):
    """
    One row per changed field (pricing, assignment, rush flag, ...).

    IMMUTABLE: same guarantees as TicketStatusHistory.
    """
    __tablename__ = "ticket_field_history"
    __table_args__ = (
        db.Index("ix_ticket_field_history_ticket", "ticket_id", "changed_at"),
        {"sqlite_autoincrement": True},
    )

    history_id = db.Column(db.Integer, primary_key=True)
    ticket_id = db.Column(
        db.Integer,
        db.ForeignKey("tickets.ticket_id", ondelete="RESTRICT"),
        nullable=False,
    )
    field_name = db.Column(db.String(100), nullable=False)
    old_value = db.Column(db.Text, nullable=True)
    new_value = db.Column(db.Text, nullable=True)
    changed_by = db.Column(db.String(36), db.ForeignKey("employees.employee_id"), nullable=False)
    changed_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "history_id": self.history_id,
            "ticket_id": self.ticket_id,
            "field_name": self.field_name,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "changed_by": self.changed_by,
            "changed_at": to_utc_z(self.changed_at),
        }


class TicketNote(db.Model):
    """Internal note. Append-only; removed only with its ticket."""
    __tablename__ = "ticket_notes"
    __table_args__ = (
        db.Index("ix_ticket_notes_ticket", "ticket_id"),
        {"sqlite_autoincrement": True},
    )

    note_id = db.Column(db.Integer, primary_key=True)
    ticket_id = db.Column(
        db.Integer,
        db.ForeignKey("tickets.ticket_id", ondelete="CASCADE"),
        nullable=False,
    )
    content = db.Column(db.Text, nullable=False)
    created_by = db.Column(db.String(36), db.ForeignKey("employees.employee_id"), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "note_id": self.note_id,
            "ticket_id": self.ticket_id,
            "content": self.content,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


class TicketPhoto(db.Model):
    """Photo metadata. The bytes live under UPLOAD_FOLDER at storage_key."""
    __tablename__ = "ticket_photos"
    __table_args__ = (
        db.Index("ix_ticket_photos_ticket", "ticket_id"),
        {"sqlite_autoincrement": True},
    )

    photo_id = db.Column(db.Integer, primary_key=True)
    ticket_id = db.Column(
        db.Integer,
        db.ForeignKey("tickets.ticket_id", ondelete="CASCADE"),
        nullable=False,
    )
    storage_key = db.Column(db.String(255), nullable=False, unique=True)
    content_type = db.Column(db.String(32), nullable=False)
    size_bytes = db.Column(db.Integer, nullable=False)
    uploaded_by = db.Column(db.String(36), db.ForeignKey("employees.employee_id"), nullable=False)
    uploaded_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "photo_id": self.photo_id,
            "ticket_id": self.ticket_id,
            "content_type": self.content_type,
            "size_bytes": self.size_bytes,
            "uploaded_by": self.uploaded_by,
            "uploaded_at": to_utc_z(self.uploaded_at),
        }


def _refuse_mutation(mapper, connection, target):
    raise AppendOnlyError(f"{target.__tablename__} rows are append-only")


for _model in (TicketStatusHistory, TicketFieldHistory, TicketNote):
    event.listen(_model, "before_update", _refuse_mutation)
    event.listen(_model, "before_delete", _refuse_mutation)
