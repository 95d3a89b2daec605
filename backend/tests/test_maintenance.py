"""
Maintenance sweep and CLI tests.
"""

from datetime import timedelta

from shopfloor.models import Employee, RateLimitAttempt, SecurityEvent, StorageLocation
from shopfloor.services import maintenance_service, permission_service, rate_limit_service, session_service
from shopfloor.services.session_service import SessionKind

from conftest import STAFF_PIN


class TestSweep:

    def test_run_sweep(self, clock, db_session, staff):
        session_service.issue_admin_session()
        live = session_service.issue_employee_session(staff)
        rate_limit_service.check("10.0.0.7")

        clock.advance(minutes=45)
        removed = maintenance_service.run_sweep(clock.now)

        assert removed == {"admin_sessions": 1, "employee_sessions": 0, "rate_limit_rows": 1}
        assert db_session.query(RateLimitAttempt).count() == 0
        assert session_service.validate_and_touch(live.token, SessionKind.EMPLOYEE) is not None

    def test_sweeper_disabled_without_interval(self, app):
        assert maintenance_service.start_background_sweeper(app) is None

    def test_cleanup_security_events(self, db_session):
        old = permission_service.log_security_event(event_type="PERMISSION_DENIED", success=False)
        old.occurred_at = old.occurred_at - timedelta(days=120)
        db_session.commit()
        permission_service.log_security_event(event_type="PERMISSION_DENIED", success=False)

        assert maintenance_service.cleanup_security_events(retention_days=90) == 1
        assert db_session.query(SecurityEvent).count() == 1


class TestCli:

    def test_system_init(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["system", "init", "--location", "Bench"])
        assert result.exit_code == 0
        assert "DONE" in result.output
        assert db_session.query(StorageLocation).filter_by(name="Bench").count() == 1

        again = runner.invoke(args=["system", "init"])
        assert "Storage locations already exist" in again.output

    def test_employees_create_and_deactivate(self, app, db_session, store):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["employees", "create", "--name", "Dana", "--pin", "602417", "--role", "staff"])
        assert "PASS" in result.output

        employee = db_session.query(Employee).filter_by(name="Dana").one()
        result = runner.invoke(args=["employees", "deactivate", employee.employee_id])
        assert "PASS" in result.output
        db_session.refresh(employee)
        assert employee.is_active is False

    def test_duplicate_pin_is_reported(self, app, staff):
        result = app.test_cli_runner().invoke(
            args=["employees", "create", "--name", "Copy", "--pin", STAFF_PIN]
        )
        assert "FAIL" in result.output

    def test_perms_check(self, app):
        runner = app.test_cli_runner()
        assert "does NOT have" in runner.invoke(args=["perms", "check", "staff", "CLOSE_ANY_TICKET"]).output
        assert "PASS" in runner.invoke(args=["perms", "check", "admin", "close_any_ticket"]).output

    def test_maintenance_sweep(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["maintenance", "sweep"])
        assert result.exit_code == 0
        assert "Removed 0 admin sessions" in result.output
