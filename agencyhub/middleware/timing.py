"""
Request timing middleware.

before_request  stamps g.request_start and g.request_id (inbound X-Request-ID
                or a fresh 12-hex id)
after_request   sets X-Request-ID / X-Request-Duration-Ms, records a metric
                sample and logs the request line:
                    > 1000 ms  WARNING
                    5xx        ERROR
                    otherwise  DEBUG
Health probes are timed but not logged.
"""

import logging
import threading
import time
import uuid
from collections import deque

from flask import Flask, g, request

logger = logging.getLogger(__name__)

SLOW_THRESHOLD_MS = 1000
_QUIET_PREFIX = "/api/v1/health"

_MAX_SAMPLES = 10_000
_samples: deque = deque(maxlen=_MAX_SAMPLES)
_samples_lock = threading.Lock()


def _project_id_from_view_args():
    view_args = request.view_args or {}
    return view_args.get("pid") or view_args.get("project_id")


def init_request_timing(app: Flask):
    """Register the timing hooks on ``app``."""

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _finish_timer(response):
        started = g.get("request_start")
        if started is None:
            return response

        duration_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.get("request_id", "")
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"

        project_id = _project_id_from_view_args()
        _record(request.method, request.path, response.status_code, duration_ms, project_id)

        if request.path.startswith(_QUIET_PREFIX):
            return response

        extra = {
            "method": request.method,
            "path": request.path,
            "status": response.status_code,
            "duration_ms": duration_ms,
            "remote_addr": request.remote_addr,
            "project_id": project_id,
        }
        args = (request.method, request.path, response.status_code, duration_ms)
        if duration_ms > SLOW_THRESHOLD_MS:
            logger.warning("Slow request: %s %s %d (%.0fms)", *args, extra=extra)
        elif response.status_code >= 500:
            logger.error("Server error: %s %s %d (%.0fms)", *args, extra=extra)
        else:
            logger.debug("%s %s %d (%.0fms)", *args, extra=extra)
        return response


# ── Metric samples ──────────────────────────────────────────────────────────


def _record(method, path, status_code, duration_ms, project_id=None):
    with _samples_lock:
        _samples.append({
            "ts": time.time(),
            "method": method,
            "path": path,
            "status": status_code,
            "ms": round(duration_ms, 1),
            "project_id": project_id,
        })


def get_recent_metrics(seconds: int = 3600) -> list[dict]:
    """Samples recorded in the last ``seconds``, oldest first."""
    cutoff = time.time() - seconds
    with _samples_lock:
        return [s for s in _samples if s["ts"] >= cutoff]


def reset_metrics():
    with _samples_lock:
        _samples.clear()
