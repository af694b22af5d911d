"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — detailed system health (DB, upload folder, generator)
"""

import logging
import os
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from app.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple liveness check — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with dependency status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except SQLAlchemyError as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    # ── Blob store ───────────────────────────────────────────────────
    upload_folder = current_app.config.get("UPLOAD_FOLDER", "")
    if os.path.isdir(upload_folder):
        writable = os.access(upload_folder, os.W_OK)
        checks["blob_store"] = {"status": "ok" if writable else "read_only"}
        if not writable:
            overall = False
    else:
        # Created on first upload
        checks["blob_store"] = {"status": "not_created"}

    # ── Draft generator ──────────────────────────────────────────────
    checks["draft_generator"] = {
        "status": "configured" if current_app.config.get("DRAFT_GENERATOR_URL") else "disabled",
    }

    # ── App info ─────────────────────────────────────────────────────
    checks["app"] = {
        "name": "Admissions Portal",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
