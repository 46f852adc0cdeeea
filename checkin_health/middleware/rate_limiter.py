"""
Rate limiting for the data-management API.

The Limiter instance lives in ``checkin_health/__init__.py`` with no default
limits; this module attaches the per-blueprint ones. Limits are keyed by the
admin actor when the basic-auth gate identified one, else by remote address,
so several admins behind one proxy do not share a bucket.

Usage:
    from checkin_health.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request

logger = logging.getLogger(__name__)

# Every GET on the blueprint scans or pages the check-in table
DATA_MANAGEMENT_READ_LIMIT = "120/minute"
# Repairs touch one record each
DATA_MANAGEMENT_REPAIR_LIMIT = "30/minute"


def admin_rate_limit_key() -> str:
    actor = g.get("admin_actor")
    if actor:
        return f"admin:{actor}"
    return request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply limits after blueprints are registered.

        data_management   reads 120/minute, repairs 30/minute
        health_bp         exempt

    Skipped entirely under TESTING.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("data_management")
    if bp:
        limiter.limit(DATA_MANAGEMENT_READ_LIMIT, key_func=admin_rate_limit_key, methods=["GET"])(bp)
        limiter.limit(
            DATA_MANAGEMENT_REPAIR_LIMIT,
            key_func=admin_rate_limit_key,
            methods=["POST", "PUT", "DELETE"],
        )(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: reads %s, repairs %s",
        DATA_MANAGEMENT_READ_LIMIT, DATA_MANAGEMENT_REPAIR_LIMIT,
    )
