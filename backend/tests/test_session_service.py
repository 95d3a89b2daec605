"""
Session store tests.

Verifies:
- Tokens are random and stored only as SHA-256 hashes
- Sliding expiry: 30 minutes for admin, 8 hours for employees
- Expired, revoked and wrong-kind tokens never validate
- Deactivating an employee kills their sessions immediately
- The sweep removes only dead rows
"""

from datetime import timedelta

import pytest

from shopfloor.models import AdminSession, EmployeeSession
from shopfloor.permissions import Role
from shopfloor.services import employee_service, session_service
from shopfloor.services.session_service import SessionKind, hash_token


class TestIssue:

    def test_token_is_stored_hashed(self, db_session, staff):
        issued = session_service.issue_employee_session(staff)
        row = db_session.query(EmployeeSession).one()
        assert row.token_hash == hash_token(issued.token)
        assert issued.token not in row.token_hash
        assert len(row.token_hash) == 64

    def test_tokens_are_unique(self, db_session, staff):
        tokens = {session_service.issue_employee_session(staff).token for _ in range(5)}
        assert len(tokens) == 5

    def test_inactive_employee_cannot_get_a_session(self, db_session, staff):
        employee_service.deactivate_employee(staff)
        with pytest.raises(ValueError):
            session_service.issue_employee_session(staff)


class TestValidateAndTouch:

    def test_employee_principal_carries_current_role(self, db_session, staff):
        issued = session_service.issue_employee_session(staff)
        principal = session_service.validate_and_touch(issued.token, SessionKind.EMPLOYEE)
        assert principal.kind is SessionKind.EMPLOYEE
        assert principal.role is Role.STAFF
        assert principal.employee_id == staff.employee_id

        employee_service.update_employee(staff.employee_id, {"role": "admin"})
        principal = session_service.validate_and_touch(issued.token, SessionKind.EMPLOYEE)
        assert principal.role is Role.ADMIN

    def test_admin_principal(self, db_session, store):
        issued = session_service.issue_admin_session()
        principal = session_service.validate_and_touch(issued.token, SessionKind.ADMIN)
        assert principal.is_admin
        assert principal.employee_id is None

    def test_wrong_kind_never_validates(self, db_session, staff):
        employee_token = session_service.issue_employee_session(staff).token
        admin_token = session_service.issue_admin_session().token
        assert session_service.validate_and_touch(employee_token, SessionKind.ADMIN) is None
        assert session_service.validate_and_touch(admin_token, SessionKind.EMPLOYEE) is None

    def test_unknown_and_empty_tokens(self, db_session, store):
        assert session_service.validate_and_touch(None, SessionKind.ADMIN) is None
        assert session_service.validate_and_touch("", SessionKind.ADMIN) is None
        assert session_service.validate_and_touch("nope", SessionKind.EMPLOYEE) is None

    def test_admin_window_slides(self, clock, db_session, store):
        issued = session_service.issue_admin_session()
        assert issued.expires_at == clock.now + timedelta(minutes=30)

        clock.advance(minutes=29)
        assert session_service.validate_and_touch(issued.token, SessionKind.ADMIN) is not None
        row = db_session.query(AdminSession).one()
        db_session.refresh(row)
        assert row.expires_at == clock.now + timedelta(minutes=30)

        # 29 minutes after the last touch: still alive because the window slid.
        clock.advance(minutes=29)
        assert session_service.validate_and_touch(issued.token, SessionKind.ADMIN) is not None

    def test_admin_session_expires(self, clock, db_session, store):
        issued = session_service.issue_admin_session()
        clock.advance(minutes=30)
        assert session_service.validate_and_touch(issued.token, SessionKind.ADMIN) is None
        # Dead row is cleaned up lazily.
        assert db_session.query(AdminSession).count() == 0

    def test_employee_window_is_eight_hours(self, clock, db_session, staff):
        issued = session_service.issue_employee_session(staff)
        clock.advance(hours=7, minutes=59)
        assert session_service.validate_and_touch(issued.token, SessionKind.EMPLOYEE) is not None
        clock.advance(hours=8)
        assert session_service.validate_and_touch(issued.token, SessionKind.EMPLOYEE) is None

    def test_deactivated_employee_token_is_rejected(self, db_session, staff):
        issued = session_service.issue_employee_session(staff)
        employee_service.deactivate_employee(staff)
        assert session_service.validate_and_touch(issued.token, SessionKind.EMPLOYEE) is None
        assert db_session.query(EmployeeSession).count() == 0


class TestRevoke:

    def test_revoke(self, db_session, staff):
        issued = session_service.issue_employee_session(staff)
        assert session_service.revoke(issued.token, SessionKind.EMPLOYEE) is True
        assert session_service.validate_and_touch(issued.token, SessionKind.EMPLOYEE) is None
        assert session_service.revoke(issued.token, SessionKind.EMPLOYEE) is False

    def test_revoke_all_for_employee(self, db_session, staff, other_staff):
        session_service.issue_employee_session(staff)
        session_service.issue_employee_session(staff)
        keep = session_service.issue_employee_session(other_staff)

        removed = session_service.revoke_all_for_employee(staff.employee_id)
        db_session.commit()

        assert removed == 2
        assert session_service.validate_and_touch(keep.token, SessionKind.EMPLOYEE) is not None


class TestSweep:

    def test_sweep_removes_only_dead_rows(self, clock, db_session, staff, other_staff):
        session_service.issue_admin_session()
        session_service.issue_employee_session(staff)
        clock.advance(minutes=31)
        live_admin = session_service.issue_admin_session()
        live_employee = session_service.issue_employee_session(other_staff)

        # Flip the flag without the revoking service call to leave an orphan.
        staff.is_active = False
        db_session.commit()

        removed = session_service.sweep_expired(clock.now)

        assert removed == {"admin_sessions": 1, "employee_sessions": 1}
        assert session_service.validate_and_touch(live_admin.token, SessionKind.ADMIN) is not None
        assert session_service.validate_and_touch(live_employee.token, SessionKind.EMPLOYEE) is not None

    def test_sweep_is_idempotent(self, clock, db_session, store):
        session_service.issue_admin_session()
        clock.advance(hours=1)
        assert session_service.sweep_expired(clock.now)["admin_sessions"] == 1
        assert session_service.sweep_expired(clock.now)["admin_sessions"] == 0
