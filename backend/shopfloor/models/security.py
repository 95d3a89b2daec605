from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class SecurityEvent(db.Model):
    """
    Security event audit log.

    WHY: Track PIN verifications, throttled requests, denials and session
    revocations. Critical for spotting guessing attempts after the fact.

    IMMUTABLE: Never update or delete (except retention cleanup).
    Free-text fields are sanitized before insert; see
    permission_service.sanitize_audit_text.
    """
    __tablename__ = "security_events"
    __table_args__ = (
        db.Index("ix_security_events_type_occurred", "event_type", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Nullable for pre-auth events and admin-PIN sessions
    employee_id = db.Column(db.String(36), nullable=True, index=True)
    principal_kind = db.Column(db.String(16), nullable=True)  # "admin" | "employee"

    # Event classification
    event_type = db.Column(db.String(64), nullable=False)  # PIN_VERIFY_FAILED, RATE_LIMITED, PERMISSION_DENIED, ...
    resource = db.Column(db.String(128), nullable=True)  # e.g., "/api/v1/tickets/12/close"
    action = db.Column(db.String(64), nullable=True)     # e.g., "POST", "CLOSE_ANY_TICKET"

    # Event details
    success = db.Column(db.Boolean, nullable=False, index=True)
    reason = db.Column(db.Text, nullable=True)

    # Client context
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    occurred_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "principal_kind": self.principal_kind,
            "event_type": self.event_type,
            "resource": self.resource,
            "action": self.action,
            "success": self.success,
            "reason": self.reason,
            "ip_address": self.ip_address,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class RateLimitRecord(db.Model):
    """
    Backoff state for one source key (usually a client IP).

    consecutive_failures resets to 0 on success. next_allowed_at only moves
    forward while failures accumulate.
    """
    __tablename__ = "rate_limit_records"

    source_key = db.Column(db.String(128), primary_key=True)
    consecutive_failures = db.Column(db.Integer, nullable=False, default=0)
    last_failure_at = db.Column(db.DateTime, nullable=True)
    next_allowed_at = db.Column(db.DateTime, nullable=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "source_key": self.source_key,
            "consecutive_failures": self.consecutive_failures,
            "last_failure_at": to_utc_z(self.last_failure_at),
            "next_allowed_at": to_utc_z(self.next_allowed_at),
        }


class RateLimitAttempt(db.Model):
    """One allowed verification attempt; the sliding-window counter reads these."""
    __tablename__ = "rate_limit_attempts"
    __table_args__ = (
        db.Index("ix_rate_limit_attempts_key_at", "source_key", "attempted_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    source_key = db.Column(db.String(128), nullable=False)
    attempted_at = db.Column(db.DateTime, nullable=False, default=utcnow)
