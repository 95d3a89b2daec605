"""
Pytest fixtures for shop-floor backend tests.

Provides the application, a clean database per test, employees of both
roles, live sessions and header helpers.

Sessions are issued directly through session_service rather than via the
verify endpoints, so fixtures never consume rate-limit attempts. Tests that
exercise the verify endpoints do so explicitly.
"""

import threading
from datetime import datetime, timedelta

import pytest

from shopfloor import create_app
from shopfloor.extensions import db
from shopfloor.services import (
    employee_service,
    rate_limit_service,
    session_service,
    settings_service,
    ticket_service,
)


ADMIN_PIN = "739184"
STAFF_PIN = "482913"
OTHER_STAFF_PIN = "573028"
ADMIN_EMPLOYEE_PIN = "918273"

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 24


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'PIN_HASH_ROUNDS': 4,
        'SESSION_SWEEP_INTERVAL_SECONDS': 0,
        'UPLOAD_FOLDER': str(tmp_path_factory.mktemp('uploads')),
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Clear all data but keep schema."""
    db.session.rollback()
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()
    db.session.expunge_all()


@pytest.fixture(scope='function')
def store(db_session):
    """Store settings with the admin PIN already set (setup complete)."""
    settings_service.get_settings()
    return settings_service.set_admin_pin(ADMIN_PIN, complete_setup=True)


@pytest.fixture(scope='function')
def location(store):
    return settings_service.create_location({"name": "Shelf A"})


@pytest.fixture(scope='function')
def staff(store):
    return employee_service.create_employee("Sam Staff", STAFF_PIN, "staff")


@pytest.fixture(scope='function')
def other_staff(store):
    return employee_service.create_employee("Olive Other", OTHER_STAFF_PIN, "staff")


@pytest.fixture(scope='function')
def admin_employee(store):
    return employee_service.create_employee("Avery Admin", ADMIN_EMPLOYEE_PIN, "admin")


@pytest.fixture(scope='function')
def staff_session(staff):
    return session_service.issue_employee_session(staff)


@pytest.fixture(scope='function')
def other_staff_session(other_staff):
    return session_service.issue_employee_session(other_staff)


@pytest.fixture(scope='function')
def admin_employee_session(admin_employee):
    return session_service.issue_employee_session(admin_employee)


@pytest.fixture(scope='function')
def admin_session(store):
    return session_service.issue_admin_session()


@pytest.fixture(scope='function')
def staff_headers(staff_session):
    return employee_headers(staff_session.token)


@pytest.fixture(scope='function')
def other_staff_headers(other_staff_session):
    return employee_headers(other_staff_session.token)


@pytest.fixture(scope='function')
def admin_employee_headers(admin_employee_session):
    return employee_headers(admin_employee_session.token)


@pytest.fixture(scope='function')
def admin_headers(admin_session):
    return {'X-Admin-Session': admin_session.token}


@pytest.fixture(scope='function')
def ticket(staff_session, location):
    """An intake ticket taken in by `staff`."""
    return ticket_service.create_ticket(staff_session.principal, ticket_payload(location))


@pytest.fixture(scope='function')
def file_app(tmp_path):
    """
    Separate application on a file-backed SQLite database.

    Threads each get their own connection here, unlike the shared in-memory
    database, so concurrent requests really race.
    """
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'shopfloor.db'}",
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'PIN_HASH_ROUNDS': 4,
        'SESSION_SWEEP_INTERVAL_SECONDS': 0,
        'UPLOAD_FOLDER': str(tmp_path / 'uploads'),
    })
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.engine.dispose()


def run_concurrently(app, func, count: int) -> list:
    """Call func() from `count` threads at once, each in its own app context."""
    start = threading.Barrier(count)
    results = []
    errors = []

    def worker():
        with app.app_context():
            start.wait()
            try:
                results.append(func())
            except Exception as exc:
                errors.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert errors == []
    return results


def employee_headers(token: str) -> dict:
    return {'X-Employee-Session': token}


def ticket_payload(location, **overrides) -> dict:
    payload = {
        "customer": {"name": "Casey Customer", "phone": "555-0100"},
        "item_type": "Watch",
        "item_description": "Steel chronograph",
        "condition_notes": "Scratched bezel",
        "requested_work": "Replace battery",
        "storage_location_id": location.location_id,
    }
    payload.update(overrides)
    return payload


class Clock:
    """Callable stand-in for utcnow() that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(scope='function')
def clock(monkeypatch):
    """Freeze time for the limiter, the session store and the setup deadline."""
    frozen = Clock(datetime(2026, 3, 2, 9, 0, 0))
    monkeypatch.setattr(rate_limit_service, "utcnow", frozen)
    monkeypatch.setattr(session_service, "utcnow", frozen)
    monkeypatch.setattr(settings_service, "utcnow", frozen)
    return frozen
