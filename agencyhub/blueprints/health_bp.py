"""
Health check and stored-file blueprint.

Endpoints:
    GET /api/v1/health        — {status: ok}
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — detailed system health (DB, Redis, app info)
    GET /files/<path>         — serve an uploaded object from UPLOAD_FOLDER
"""

import logging
import os
import time

from flask import Blueprint, current_app, jsonify, send_from_directory

from agencyhub.models import db
from agencyhub.services import storage_service

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")
files_bp = Blueprint("files_bp", __name__)


@health_bp.route("", methods=["GET"])
def health():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe — always 200 if app is running."""
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
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    # ── Redis (rate limiter storage) ─────────────────────────────────
    redis_url = current_app.config.get("REDIS_URL", "")
    if redis_url and redis_url.startswith("redis"):
        try:
            import redis as redis_lib
            t0 = time.perf_counter()
            r = redis_lib.from_url(redis_url, socket_timeout=2)
            r.ping()
            redis_ms = (time.perf_counter() - t0) * 1000
            checks["redis"] = {"status": "ok", "latency_ms": round(redis_ms, 1)}
        except Exception as exc:
            # Redis only backs rate limiting; it never fails overall health
            checks["redis"] = {"status": "error", "detail": str(exc)}
    else:
        checks["redis"] = {"status": "skipped", "detail": "no REDIS_URL configured"}

    # ── Upload storage ───────────────────────────────────────────────
    upload_root = current_app.config.get("UPLOAD_FOLDER", "")
    checks["storage"] = {
        "status": "ok" if os.path.isdir(upload_root) else "missing",
        "path": upload_root,
    }

    # ── App info ─────────────────────────────────────────────────────
    checks["app"] = {
        "name": "Agency Hub",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({"status": "ok" if overall else "degraded", "checks": checks}), status_code


# ═════════════════════════════════════════════════════════════════════════
# Stored files
# ═════════════════════════════════════════════════════════════════════════


@files_bp.route("/files/<path:path>", methods=["GET"])
def serve_file(path):
    if storage_service.resolve_path(path) is None:
        return jsonify({"error": "File not found"}), 404
    return send_from_directory(storage_service.upload_root(), path)
