"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready   200 as soon as the app is serving
    GET /api/v1/health/live    database, slot constraint and timezone checks

``/live`` degrades to 503 when the database is unreachable or the
``uq_checkin_org_user_week`` constraint is missing: without it concurrent
repairs could create duplicate check-ins.
"""

import logging
import time
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flask import Blueprint, current_app, jsonify
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError

from checkin_health.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")

SLOT_CONSTRAINT = "uq_checkin_org_user_week"


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


def _check_database() -> dict:
    t0 = time.perf_counter()
    rows = db.session.execute(db.text("SELECT COUNT(*) FROM checkins")).scalar()
    return {
        "status": "ok",
        "latency_ms": round((time.perf_counter() - t0) * 1000, 1),
        "checkins": int(rows or 0),
    }


def _check_slot_constraint() -> dict:
    inspector = sa_inspect(db.engine)
    names = {u.get("name") for u in inspector.get_unique_constraints("checkins")}
    names |= {i.get("name") for i in inspector.get_indexes("checkins") if i.get("unique")}
    if SLOT_CONSTRAINT in names:
        return {"status": "ok", "name": SLOT_CONSTRAINT}
    return {"status": "error", "detail": f"{SLOT_CONSTRAINT} missing on checkins"}


def _check_timezone() -> dict:
    name = current_app.config.get("CHECKIN_TIMEZONE")
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, TypeError):
        return {"status": "error", "detail": f"unknown timezone {name!r}"}
    return {"status": "ok", "name": name}


@health_bp.route("/live", methods=["GET"])
def live():
    """Dependency status for the report and repair paths."""
    checks = {}
    try:
        checks["database"] = _check_database()
        checks["slot_constraint"] = _check_slot_constraint()
    except SQLAlchemyError as exc:
        db.session.rollback()
        checks["database"] = {"status": "error", "detail": str(exc)}
        logger.error("Health check: database unavailable: %s", exc)
    checks["timezone"] = _check_timezone()

    overall = all(c.get("status") == "ok" for c in checks.values())
    if not overall:
        logger.warning("Health check degraded: %s", {k: v["status"] for k, v in checks.items()})

    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
        "app": {"debug": current_app.debug, "testing": current_app.testing},
    }), 200 if overall else 503
