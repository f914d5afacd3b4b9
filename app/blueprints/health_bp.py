"""
Health check blueprint.

    GET /api/v1/health/ready  — process is up (no I/O)
    GET /api/v1/health/live   — database round trip; 503 when it fails
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from app.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


def _database_check() -> dict:
    started = time.perf_counter()
    try:
        db.session.execute(db.text("SELECT 1"))
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Health check: database unreachable: %s", exc)
        return {"status": "error", "detail": str(exc.__class__.__name__)}
    return {"status": "ok", "latency_ms": round((time.perf_counter() - started) * 1000, 1)}


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    database = _database_check()
    healthy = database["status"] == "ok"
    body = {
        "status": "ok" if healthy else "degraded",
        "checks": {
            "database": database,
            "app": {
                "name": "Stage Review Platform",
                "debug": current_app.debug,
                "testing": current_app.testing,
            },
        },
    }
    return jsonify(body), 200 if healthy else 503
