from __future__ import annotations

import uuid

from ..extensions import db
from ..permissions import Role
from ..time_utils import to_utc_z, utcnow


def _new_id() -> str:
    return str(uuid.uuid4())


class Employee(db.Model):
    """
    Shop-floor employee identified by PIN.

    WHY: Every ticket mutation is attributed to the employee whose session
    performed it. No shared logins.

    SECURITY: Deactivating an employee must also revoke every session bound
    to them (see employee_service.deactivate_employee); session validation
    re-checks is_active on every request.
    """
    __tablename__ = "employees"
    __table_args__ = (
        db.CheckConstraint("role IN ('staff', 'admin')", name="ck_employees_role"),
        db.Index("ix_employees_active", "is_active"),
    )

    employee_id = db.Column(db.String(36), primary_key=True, default=_new_id)
    name = db.Column(db.String(255), nullable=False)

    # bcrypt hash of the employee PIN (never the PIN itself)
    pin_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(16), nullable=False, default=Role.STAFF.value)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def role_enum(self) -> Role:
        return Role(self.role)

    def to_dict(self) -> dict:
        return {
            "employee_id": self.employee_id,
            "name": self.name,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
