# Overview: Service-layer operations for admin and employee sessions.

"""
Session Token Management Service

WHY: PIN verification happens once; every later request presents an opaque
bearer token instead. The token is the whole authentication factor for that
request, so it is random, stored only as a hash, and short-lived.

One store implementation, two kinds:

    kind       table               header               sliding window
    ADMIN      admin_sessions      X-Admin-Session      30 minutes
    EMPLOYEE   employee_sessions   X-Employee-Session   8 hours

The tables are separate, so a token presented under the other kind's header
never validates.

SECURITY FEATURES:
- 32 random bytes per token (secrets.token_urlsafe)
- Tokens hashed with SHA-256 before storage (fast, one-way; tokens are
  high-entropy so a slow hash buys nothing)
- Sliding expiration: every successful validation pushes expires_at to
  now + window
- validate_and_touch() is one conditional UPDATE (token hash matches, not
  expired, and for employees the bound employee is active right now). There
  is no window between "checked" and "extended" for a revoke or deactivation
  to slip through.
- Expired rows are deleted lazily when presented and by sweep_expired()
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from sqlalchemy import exists, select

from ..extensions import db
from ..models import AdminSession, Employee, EmployeeSession
from ..permissions import Role
from ..time_utils import utcnow
from .concurrency import compare_and_swap, run_with_retry


# Configuration constants
ADMIN_SESSION_WINDOW = timedelta(minutes=30)
EMPLOYEE_SESSION_WINDOW = timedelta(hours=8)
TOKEN_BYTES = 32


class SessionKind(str, Enum):
    ADMIN = "admin"
    EMPLOYEE = "employee"


@dataclass(frozen=True)
class Principal:
    """
    Who is acting. Admin-PIN sessions carry the admin role but no employee;
    employee sessions carry the employee's current role.
    """
    kind: SessionKind
    role: Role
    employee_id: str | None = None
    name: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "role": self.role.value,
            "employee_id": self.employee_id,
            "name": self.name,
        }


@dataclass(frozen=True)
class IssuedSession:
    token: str
    expires_at: datetime
    principal: Principal


def generate_token() -> str:
    """
    Generate cryptographically secure random token.

    This is the plaintext token sent to client (never stored).
    """
    return secrets.token_urlsafe(TOKEN_BYTES)


def hash_token(token: str) -> str:
    """Hex SHA-256 of the token, the only form that is persisted."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class SessionStore:
    """Issue / validate / revoke for one session kind."""

    def __init__(self, kind: SessionKind, model, window: timedelta):
        self.kind = kind
        self.model = model
        self.window = window

    def _liveness_conditions(self, token_hash: str, now: datetime) -> list:
        conditions = [
            self.model.token_hash == token_hash,
            self.model.expires_at > now,
        ]
        if self.kind is SessionKind.EMPLOYEE:
            conditions.append(
                exists()
                .where(
                    Employee.employee_id == EmployeeSession.employee_id,
                    Employee.is_active.is_(True),
                )
                .correlate(EmployeeSession)
            )
        return conditions

    def issue(self, employee: Employee | None = None) -> IssuedSession:
        """Create a session and commit it. Employee sessions need an active employee."""
        if self.kind is SessionKind.EMPLOYEE:
            if employee is None or not employee.is_active:
                raise ValueError("Employee sessions require an active employee")
            principal = Principal(self.kind, employee.role_enum, employee.employee_id, employee.name)
        else:
            principal = Principal(self.kind, Role.ADMIN)

        token = generate_token()
        now = utcnow()
        row = self.model(
            token_hash=hash_token(token),
            created_at=now,
            last_activity_at=now,
            expires_at=now + self.window,
        )
        if employee is not None and self.kind is SessionKind.EMPLOYEE:
            row.employee_id = employee.employee_id

        db.session.add(row)
        db.session.commit()
        return IssuedSession(token=token, expires_at=row.expires_at, principal=principal)

    def validate_and_touch(self, token: str | None) -> Principal | None:
        """
        Return the acting Principal and slide the expiry, or None.

        None covers: missing/unknown token, expired, revoked, and (employee
        kind) a bound employee that is no longer active.
        """
        if not token:
            return None

        token_hash = hash_token(token)

        def _op() -> Principal | None:
            now = utcnow()
            touched = compare_and_swap(
                self.model,
                self._liveness_conditions(token_hash, now),
                {"last_activity_at": now, "expires_at": now + self.window},
            )
            if not touched:
                # Lazy cleanup: whatever row this token maps to is dead.
                db.session.query(self.model).filter(
                    self.model.token_hash == token_hash
                ).delete(synchronize_session=False)
                db.session.commit()
                return None

            if self.kind is SessionKind.ADMIN:
                db.session.commit()
                return Principal(self.kind, Role.ADMIN)

            employee = (
                db.session.query(Employee)
                .join(EmployeeSession, EmployeeSession.employee_id == Employee.employee_id)
                .filter(EmployeeSession.token_hash == token_hash)
                .first()
            )
            db.session.commit()
            if employee is None or not employee.is_active:
                return None
            return Principal(self.kind, employee.role_enum, employee.employee_id, employee.name)

        return run_with_retry(_op)

    def revoke(self, token: str | None) -> bool:
        """Delete the session for token. True if a row was removed."""
        if not token:
            return False
        removed = db.session.query(self.model).filter(
            self.model.token_hash == hash_token(token)
        ).delete(synchronize_session=False)
        db.session.commit()
        return removed > 0

    def sweep_expired(self, now: datetime | None = None) -> int:
        """Delete rows already past expiry. Does not commit."""
        now = now or utcnow()
        return db.session.query(self.model).filter(
            self.model.expires_at <= now
        ).delete(synchronize_session=False)


ADMIN_SESSIONS = SessionStore(SessionKind.ADMIN, AdminSession, ADMIN_SESSION_WINDOW)
EMPLOYEE_SESSIONS = SessionStore(SessionKind.EMPLOYEE, EmployeeSession, EMPLOYEE_SESSION_WINDOW)

_STORES = {
    SessionKind.ADMIN: ADMIN_SESSIONS,
    SessionKind.EMPLOYEE: EMPLOYEE_SESSIONS,
}


def store_for(kind: SessionKind | str) -> SessionStore:
    return _STORES[SessionKind(kind)]


def issue_admin_session() -> IssuedSession:
    return ADMIN_SESSIONS.issue()


def issue_employee_session(employee: Employee) -> IssuedSession:
    return EMPLOYEE_SESSIONS.issue(employee)


def validate_and_touch(token: str | None, kind: SessionKind | str) -> Principal | None:
    return store_for(kind).validate_and_touch(token)


def revoke(token: str | None, kind: SessionKind | str) -> bool:
    return store_for(kind).revoke(token)


def revoke_all_for_employee(employee_id: str) -> int:
    """
    Delete every session bound to employee_id.

    Does not commit: deactivation calls this inside its own transaction so the
    flag flip and the revocation land together.
    """
    return db.session.query(EmployeeSession).filter(
        EmployeeSession.employee_id == employee_id
    ).delete(synchronize_session=False)


def sweep_expired(now: datetime | None = None) -> dict:
    """
    Remove expired sessions of both kinds plus employee sessions whose
    employee is inactive. Idempotent; only ever deletes rows that would fail
    validate_and_touch anyway. Commits.
    """
    now = now or utcnow()
    admin_removed = ADMIN_SESSIONS.sweep_expired(now)
    employee_removed = EMPLOYEE_SESSIONS.sweep_expired(now)

    inactive_ids = select(Employee.employee_id).where(Employee.is_active.is_(False))
    orphaned = db.session.query(EmployeeSession).filter(
        EmployeeSession.employee_id.in_(inactive_ids)
    ).delete(synchronize_session=False)

    db.session.commit()
    return {
        "admin_sessions": admin_removed,
        "employee_sessions": employee_removed + orphaned,
    }


def count_active(now: datetime | None = None) -> dict:
    now = now or utcnow()
    return {
        "admin_sessions": db.session.query(AdminSession).filter(AdminSession.expires_at > now).count(),
        "employee_sessions": db.session.query(EmployeeSession).filter(EmployeeSession.expires_at > now).count(),
    }
