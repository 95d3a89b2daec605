# Overview: Periodic cleanup of expired sessions, rate-limit rows and old audit events.

from __future__ import annotations

import threading
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SecurityEvent
from ..time_utils import utcnow
from . import rate_limit_service, session_service


DEFAULT_EVENT_RETENTION_DAYS = 90


def run_sweep(now=None) -> dict:
    """
    One maintenance pass: expired sessions, dead employee sessions and stale
    rate-limit rows.

    Only deletes rows that live validation would already refuse, so it can
    run at any time alongside requests.
    """
    now = now or utcnow()
    try:
        removed = session_service.sweep_expired(now)
        removed["rate_limit_rows"] = rate_limit_service.purge_stale(now)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Maintenance sweep removed %s admin sessions, %s employee sessions, %s rate-limit rows",
        removed["admin_sessions"],
        removed["employee_sessions"],
        removed["rate_limit_rows"],
    )
    return removed


def cleanup_security_events(*, retention_days: int = DEFAULT_EVENT_RETENTION_DAYS) -> int:
    """Delete security events older than retention_days."""
    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = db.session.query(SecurityEvent).filter(
        SecurityEvent.occurred_at < cutoff
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted


def start_background_sweeper(app) -> threading.Thread | None:
    """
    Run run_sweep() every SESSION_SWEEP_INTERVAL_SECONDS on a daemon thread.

    Disabled when the interval is 0 (tests, CLI commands).
    """
    interval = int(app.config.get("SESSION_SWEEP_INTERVAL_SECONDS", 0) or 0)
    if interval <= 0:
        return None

    stop = threading.Event()

    def _loop():
        while not stop.wait(interval):
            with app.app_context():
                try:
                    run_sweep()
                except Exception:
                    app.logger.exception("Background maintenance sweep failed")
                finally:
                    db.session.remove()

    thread = threading.Thread(target=_loop, name="shopfloor-sweeper", daemon=True)
    thread.stop_event = stop
    thread.start()
    app.logger.info("Background maintenance sweep every %ss", interval)
    return thread
