# backend/playtime/routes/system.py
"""
System health endpoint.

Reports database connectivity and the size of the live floor for
deployment debugging.
"""

import time
from flask import Blueprint, current_app, jsonify

from ..extensions import db, session_feed
from ..models import ActiveSession, CashSession
from ..models.cash import DRAWER_OPEN
from playtime.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        active_sessions = db.session.query(ActiveSession).count()
        open_drawers = db.session.query(CashSession).filter_by(status=DRAWER_OPEN).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "active_sessions": active_sessions,
                "drawer_open": open_drawers > 0,
            },
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    body = {
        "status": "ok" if healthy else "degraded",
        "time": to_utc_z(utcnow()),
        "checks": {
            "database": database,
            "session_feed": {"status": "healthy", "subscribers": session_feed.subscriber_count},
        },
    }
    return jsonify(body), (200 if healthy else 503)
