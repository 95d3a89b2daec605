# backend/shopfloor/routes/system.py
"""
System health endpoint.

Checks the database, the session tables and the store setup state so a
deployment probe can tell "up" from "up but not usable".
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Employee, StoreSettings
from ..services import session_service
from ..services.settings_service import is_setup_expired
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api/v1")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        active_employees = db.session.query(Employee).filter(Employee.is_active.is_(True)).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"active_employees": active_employees},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_session_service_health() -> dict:
    """Session tables are readable; report live session counts."""
    start_time = time.time()
    try:
        counts = session_service.count_active()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": counts,
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Session service health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Session service error",
        }


def check_setup_health() -> dict:
    """
    Degraded until the default admin PIN has been replaced; unhealthy once
    the setup deadline has passed (admin login is locked out).
    """
    try:
        settings = db.session.query(StoreSettings).order_by(StoreSettings.id.asc()).first()
        if settings is None:
            return {"status": "degraded", "warning": "Store has not been initialized"}
        if settings.setup_complete:
            return {"status": "healthy"}
        if is_setup_expired(settings):
            return {"status": "unhealthy", "error": "Setup deadline expired"}
        return {
            "status": "degraded",
            "warning": "Default admin PIN still in use",
            "setup_deadline": to_utc_z(settings.setup_deadline),
        }
    except Exception:
        current_app.logger.exception("Setup health check failed")
        return {"status": "unhealthy", "error": "Setup check error"}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    session_health = check_session_service_health()
    setup_health = check_setup_health()

    all_checks = [database_health, session_health, setup_health]
    unhealthy_count = sum(1 for check in all_checks if check["status"] == "unhealthy")
    degraded_count = sum(1 for check in all_checks if check["status"] == "degraded")

    if unhealthy_count > 0:
        overall_status = "unhealthy"
        http_status = 503
    elif degraded_count > 0:
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "session_service": session_health,
            "setup": setup_health,
        },
    }

    return response, http_status
