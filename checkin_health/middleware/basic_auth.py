"""HTTP Basic gate in front of the data-management API.

Active only when both SITE_USERNAME and SITE_PASSWORD are set. The health
probes stay reachable so an orchestrator can poll them without credentials.
The authenticated username becomes ``g.admin_actor``; audit rows and the
rate-limit key read it from there.
"""
import hmac
import os

from flask import Response, g, request

_OPEN_PATHS = frozenset({"/api/v1/health/ready", "/api/v1/health/live"})
REALM = "Check-in Data Health"


def _same(given, expected):
    return hmac.compare_digest((given or "").encode(), expected.encode())


def _challenge():
    return Response(
        "Admin credentials required.", 401,
        {"WWW-Authenticate": f'Basic realm="{REALM}"'},
    )


def init_basic_auth(app):
    """Register the gate. Must run before the rate limiter hooks in."""
    expected_user = os.environ.get("SITE_USERNAME")
    expected_password = os.environ.get("SITE_PASSWORD")
    if not (expected_user and expected_password):
        app.logger.info("Basic auth: disabled (no SITE_USERNAME/SITE_PASSWORD)")
        return

    app.logger.info("Basic auth: enabled for all routes except health probes")

    @app.before_request
    def _admin_gate():
        if request.path in _OPEN_PATHS:
            return None
        creds = request.authorization
        if creds is None:
            return _challenge()
        if not (_same(creds.username, expected_user) and _same(creds.password, expected_password)):
            app.logger.warning("Basic auth: rejected credentials for %r", creds.username)
            return _challenge()
        g.admin_actor = creds.username
        return None
