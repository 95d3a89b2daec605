from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class SessionColumnsMixin:
    """
    Shape shared by admin and employee sessions.

    SECURITY: Only the SHA-256 of the bearer token is stored. The plaintext
    token exists on the client and, once, in the issue() return value.

    expires_at is always last_activity_at + the kind's sliding window.
    """
    session_id = db.Column(db.Integer, primary_key=True)
    token_hash = db.Column(db.String(64), nullable=False, unique=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    last_activity_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "created_at": to_utc_z(self.created_at),
            "last_activity_at": to_utc_z(self.last_activity_at),
            "expires_at": to_utc_z(self.expires_at),
        }


class AdminSession(SessionColumnsMixin, db.Model):
    """Admin-PIN session (X-Admin-Session). Not bound to an employee."""
    __tablename__ = "admin_sessions"
    __table_args__ = ({"sqlite_autoincrement": True},)


class EmployeeSession(SessionColumnsMixin, db.Model):
    """Employee-PIN session (X-Employee-Session)."""
    __tablename__ = "employee_sessions"
    __table_args__ = (
        db.Index("ix_employee_sessions_employee", "employee_id"),
        {"sqlite_autoincrement": True},
    )

    employee_id = db.Column(
        db.String(36),
        db.ForeignKey("employees.employee_id", ondelete="CASCADE"),
        nullable=False,
    )

    employee = db.relationship("Employee", backref=db.backref("sessions", lazy=True, passive_deletes=True))

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["employee_id"] = self.employee_id
        return data
