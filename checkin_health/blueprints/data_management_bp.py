"""Data Management blueprint: super-admin check-in health report and repairs.

Endpoint groups:
  Health report    GET    /api/v1/data-management/health-report
  Listing          GET    /api/v1/data-management/checkins
                   GET    /api/v1/data-management/checkins/<id>
  Repairs          PUT    /api/v1/data-management/checkins/<id>/week
                   DELETE /api/v1/data-management/checkins/<id>
                   POST   /api/v1/data-management/checkins
  Audit trail      GET    /api/v1/data-management/audit

Callers are pre-authorised super admins (role gating happens upstream).
Payload keys are camelCase. The service layer owns all business rules and
commits; this module only parses requests and maps exceptions to statuses.
After any repair the console must re-fetch the health report.
"""

from __future__ import annotations

import logging
from datetime import datetime

from flask import Blueprint, g, jsonify, request
from sqlalchemy import select
from werkzeug.exceptions import HTTPException

from checkin_health.blueprints import page_args
from checkin_health.core.exceptions import (
    ConflictError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from checkin_health.models import db
from checkin_health.models.audit import AuditLog
from checkin_health.services import integrity_scanner, reconciler
from checkin_health.services.checkin_store import CheckinFilters, CheckinStore
from checkin_health.utils.errors import E, api_error, api_error_from
from checkin_health.utils.helpers import parse_bool, parse_date_input

logger = logging.getLogger(__name__)

data_management_bp = Blueprint("data_management", __name__, url_prefix="/api/v1/data-management")

_AUDIT_MAX_LIMIT = 200


# ── Request helpers ───────────────────────────────────────────────────────────


class _BadRequest(Exception):
    """Malformed request (wrong types, unparsable values): HTTP 400."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


def _actor() -> str:
    """Audit identity: the basic-auth username, else the generic super admin."""
    return g.get("admin_actor") or "super_admin"


def _date_arg(name: str):
    raw = request.args.get(name)
    try:
        value = parse_date_input(raw)
    except ValueError as exc:
        raise _BadRequest(f"{name}: {exc}", field=name) from exc
    if isinstance(value, datetime):
        value = value.date()
    return value


def _filters_from_request() -> CheckinFilters:
    status = (request.args.get("status") or "").strip().lower() or None
    if status == "all":
        status = None
    return CheckinFilters(
        organization_id=(request.args.get("organizationId") or "").strip() or None,
        user_id=(request.args.get("userId") or "").strip() or None,
        status=status,
        start_date=_date_arg("startDate"),
        end_date=_date_arg("endDate"),
    )


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise _BadRequest("Request body must be a JSON object")
    return data


# ── Error handlers ────────────────────────────────────────────────────────────


@data_management_bp.errorhandler(_BadRequest)
def _handle_bad_request(error: _BadRequest):
    details = {error.field: "invalid"} if error.field else None
    return api_error(E.VALIDATION_INVALID, str(error), details=details)


@data_management_bp.errorhandler(NotFoundError)
@data_management_bp.errorhandler(ValidationError)
@data_management_bp.errorhandler(ConflictError)
def _handle_rejected(error: Exception):
    return api_error_from(error)


@data_management_bp.errorhandler(InternalError)
def _handle_internal(error: InternalError):
    logger.error("Store failure in data_management endpoint=%s: %s", request.endpoint, error)
    return api_error_from(error)


@data_management_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    if isinstance(error, HTTPException):
        return error
    logger.exception("Unexpected error in data_management endpoint=%s", request.endpoint)
    return api_error_from(error)


# ═════════════════════════════════════════════════════════════════════════
# Health report
# ═════════════════════════════════════════════════════════════════════════


@data_management_bp.route("/health-report", methods=["GET"])
def get_health_report():
    """Run the four integrity checks over the filtered check-in set.

    Query params: organizationId?, userId?, startDate?, endDate?,
                  status? (complete | incomplete | all)
    Returns: DataHealthReport dict.
    """
    filters = _filters_from_request()
    report = integrity_scanner.compute_health_report(filters)
    return jsonify(report.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════
# Listing
# ═════════════════════════════════════════════════════════════════════════


@data_management_bp.route("/checkins", methods=["GET"])
def list_checkins():
    """Paginated check-in listing using the health-report filters.

    Query params: same as health-report, plus page, perPage.
    """
    filters = _filters_from_request()
    page, per_page = page_args()
    items, total = CheckinStore().page(filters, page=page, per_page=per_page)
    return jsonify({
        "items": [c.to_dict() for c in items],
        "total": total,
        "page": page,
        "perPage": per_page,
    }), 200


@data_management_bp.route("/checkins/<checkin_id>", methods=["GET"])
def get_checkin(checkin_id):
    return jsonify(CheckinStore().get(checkin_id).to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════
# Repairs
# ═════════════════════════════════════════════════════════════════════════


@data_management_bp.route("/checkins/<checkin_id>/week", methods=["PUT"])
def edit_checkin_week(checkin_id):
    """Move a check-in to another week; due dates are re-derived.

    Body: { weekStartDate }
    Returns: updated check-in (200).
    """
    data = _json_body()
    if not data.get("weekStartDate"):
        return api_error(E.VALIDATION_REQUIRED, "weekStartDate is required")
    checkin = reconciler.edit_checkin_week(checkin_id, data["weekStartDate"], actor=_actor())
    return jsonify(checkin.to_dict()), 200


@data_management_bp.route("/checkins/<checkin_id>", methods=["DELETE"])
def delete_checkin(checkin_id):
    """Delete a check-in.

    An id that is already gone is not a failure for the console: the
    response says so instead of returning 404.
    Returns: { id, deleted: true } or { id, deleted: false, reason: "not_found" }
    """
    deleted = reconciler.delete_checkin(checkin_id, missing_ok=True, actor=_actor())
    if deleted:
        return jsonify({"id": checkin_id, "deleted": True}), 200
    return jsonify({"id": checkin_id, "deleted": False, "reason": "not_found"}), 200


@data_management_bp.route("/checkins", methods=["POST"])
def create_manual_checkin():
    """Backfill a check-in for a user and week.

    Body: { organizationId, userId, weekStartDate, isComplete?, responses?, overallMood? }
    Returns: created check-in (201).
    """
    data = _json_body()
    missing = [k for k in ("organizationId", "userId", "weekStartDate") if not data.get(k)]
    if missing:
        return api_error(
            E.VALIDATION_REQUIRED,
            f"Missing required fields: {', '.join(missing)}",
            details={k: "required" for k in missing},
        )
    try:
        is_complete = parse_bool(data.get("isComplete"), default=False)
    except ValueError as exc:
        raise _BadRequest(str(exc), field="isComplete") from exc

    checkin = reconciler.create_manual_checkin(
        data["organizationId"],
        data["userId"],
        data["weekStartDate"],
        is_complete=is_complete,
        responses=data.get("responses"),
        overall_mood=data.get("overallMood"),
        actor=_actor(),
    )
    return jsonify(checkin.to_dict()), 201


# ═════════════════════════════════════════════════════════════════════════
# Audit trail
# ═════════════════════════════════════════════════════════════════════════


@data_management_bp.route("/audit", methods=["GET"])
def list_audit():
    """Most recent repair audit rows.

    Query params: entityId?, organizationId?, limit (default 50, max 200)
    """
    limit = min(max(request.args.get("limit", 50, type=int), 1), _AUDIT_MAX_LIMIT)
    stmt = select(AuditLog).order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
    entity_id = request.args.get("entityId")
    if entity_id:
        stmt = stmt.where(AuditLog.entity_id == entity_id)
    organization_id = request.args.get("organizationId")
    if organization_id:
        stmt = stmt.where(AuditLog.organization_id == organization_id)
    rows = db.session.execute(stmt.limit(limit)).scalars().all()
    return jsonify({"items": [r.to_dict() for r in rows]}), 200
