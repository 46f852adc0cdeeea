"""
Request timing middleware.

Every response carries ``X-Request-ID`` (echoed from the caller or generated)
and ``X-Request-Duration-Ms``. Repairs (POST/PUT/DELETE) are logged at INFO
so the request log lines up with the audit trail; reads only surface when
slow or failing.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

_PROBE_PATHS = frozenset({"/api/v1/health/ready", "/api/v1/health/live"})
_MUTATING = frozenset({"POST", "PUT", "PATCH", "DELETE"})

# A full-dataset health report is the usual culprit above this
SLOW_THRESHOLD_MS = 1000


def _request_scope() -> tuple[str | None, str | None]:
    """(organization_id, checkin_id) the request is about, when known."""
    checkin_id = (request.view_args or {}).get("checkin_id")
    organization_id = request.args.get("organizationId")
    if organization_id is None and request.is_json:
        body = request.get_json(silent=True)
        if isinstance(body, dict):
            organization_id = body.get("organizationId")
    return organization_id, checkin_id


def init_request_timing(app: Flask):
    """Register before/after hooks for request ids and timing."""

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _log_request(response):
        start = g.get("request_start")
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = g.get("request_id", "")
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        if request.path in _PROBE_PATHS:
            return response

        organization_id, checkin_id = _request_scope()
        extra = {
            "method": request.method,
            "path": request.path,
            "status": response.status_code,
            "duration_ms": duration_ms,
            "remote_addr": request.remote_addr,
            "organization_id": organization_id,
            "checkin_id": checkin_id,
        }
        if response.status_code >= 500:
            level, label = logging.ERROR, "Server error"
        elif duration_ms > SLOW_THRESHOLD_MS:
            level, label = logging.WARNING, "Slow request"
        elif request.method in _MUTATING:
            level, label = logging.INFO, "Repair request"
        else:
            level, label = logging.DEBUG, "Request"
        logger.log(level, "%s: %s %s %d (%.0fms)", label,
                   request.method, request.path, response.status_code, duration_ms, extra=extra)
        return response
