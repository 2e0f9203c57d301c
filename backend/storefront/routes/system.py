# backend/storefront/routes/system.py
"""
System endpoints: health check and CSRF token issuance.
"""

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..extensions import db
from ..middleware import generate_csrf_token, set_csrf_cookie
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        return {
            "status": "healthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
        }
    except Exception:
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    return jsonify({
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }), 200 if healthy else 503


@system_bp.get("/api/csrf")
def issue_csrf_token():
    """
    Issue a CSRF token.

    The token is returned in the body and set as the `csrf_token` cookie;
    clients send it back in the X-CSRF-Token header on mutating requests.
    """
    token = generate_csrf_token()
    response = jsonify({"csrf_token": token})
    return set_csrf_cookie(response, token)
