"""
Request timing middleware.

Every response gets ``X-Request-ID`` (echoed from the caller or freshly
generated) and ``X-Request-Duration-Ms``. Each API request is logged once
with the workflow scope it touched (user, project, stage), so one grep on
a stage id shows everything that happened to it.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

# Polled by clients and load balancers; timing them only adds noise
QUIET_PREFIXES = ("/api/v1/health", "/api/v1/notifications/unread-count")

SLOW_THRESHOLD_MS = 1000


def _request_scope() -> dict:
    view_args = request.view_args or {}
    user = getattr(g, "current_user", None)
    return {
        "user_id": user.id if user is not None else None,
        "project_id": view_args.get("project_id") or request.args.get("project_id", type=int),
        "stage_id": view_args.get("stage_id"),
    }


def init_request_timing(app: Flask):
    """Register before/after hooks for request timing."""

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _log_request(response):
        start = getattr(g, "request_start", None)
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        response.headers["X-Request-ID"] = g.request_id

        if not request.path.startswith("/api/") or request.path.startswith(QUIET_PREFIXES):
            return response

        extra = {
            "method": request.method,
            "path": request.path,
            "status": response.status_code,
            "duration_ms": duration_ms,
            "remote_addr": request.remote_addr,
            "request_id": g.request_id,
            **_request_scope(),
        }
        if response.status_code >= 500:
            level = logging.ERROR
        elif duration_ms > SLOW_THRESHOLD_MS:
            level = logging.WARNING
        else:
            level = logging.DEBUG
        logger.log(level, "%s %s %d (%.0fms)", request.method, request.path,
                   response.status_code, duration_ms, extra=extra)
        return response
