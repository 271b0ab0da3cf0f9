# Overview: System health endpoint.

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api/system")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        return {
            "status": "healthy",
            "response_time_ms": round((time.time() - start_time) * 1000, 2),
        }
    except Exception as exc:
        current_app.logger.warning("database health check failed: %s", exc)
        return {"status": "unhealthy", "error": str(exc)}


@system_bp.get("/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    return jsonify({
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }), 200 if healthy else 503
