# backend/backoffice/routes/system.py
"""
System health endpoint.

Reports database reachability and whether the reference data the workflow
engine and permission checks depend on has been seeded.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Role, Permission, WorkflowStatus, RoleItemTransition
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(db.text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_reference_data_health() -> dict:
    """Roles, permissions and the workflow graph must be seeded (`flask system init`)."""
    start_time = time.time()
    try:
        details = {
            "roles": db.session.query(Role).count(),
            "permissions": db.session.query(Permission).count(),
            "workflow_statuses": db.session.query(WorkflowStatus).count(),
            "role_transitions": db.session.query(RoleItemTransition).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        missing = [name for name, count in details.items() if count == 0]
        if missing:
            return {
                "status": "degraded",
                "latency_ms": round(elapsed_ms, 2),
                "warning": f"Not seeded: {', '.join(missing)}",
                "details": details,
            }
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2), "details": details}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Reference data health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Reference data error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded (still operational)
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    reference_health = check_reference_data_health()

    all_checks = [database_health, reference_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "reference_data": reference_health,
        }
    }, http_status
