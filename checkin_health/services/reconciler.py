"""Repair operations for check-in data (super-admin Data Management).

Three single-record operations, each all-or-nothing:

  edit_checkin_week      move a record to another week, re-deriving due dates
  delete_checkin         remove a record
  create_manual_checkin  backfill a missing record for a user/week

Rules:
  - Every check is evaluated against the store at commit time, never against
    an earlier health report. The store's unique index is the final arbiter
    when two admins race for the same slot.
  - Due dates are always re-derived from the (possibly new) week start, so a
    repair cannot reintroduce a mismatched-date anomaly.
  - No silent retries: a conflict is a legitimate outcome for the caller.
  - db.session.commit() happens here (via the store) and nowhere else.
  - Callers must re-fetch the health report after a repair.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from checkin_health.core.exceptions import (
    ConflictError,
    NotFoundError,
    ReferenceNotFoundError,
    ValidationError,
)
from checkin_health.models import audit
from checkin_health.models.checkin import Checkin
from checkin_health.services import week_normalizer as wn
from checkin_health.services.checkin_store import CheckinStore
from checkin_health.services.directory_lookup import DirectoryLookup

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _reject_future(week_start: date, now: date | datetime | None, tz: str, field: str) -> None:
    reference = now if now is not None else wn.local_today(tz)
    if wn.is_future_week(week_start, reference, tz):
        current = wn.current_week_start(reference, tz)
        raise ValidationError(
            f"{field} {week_start.isoformat()} is in a future week "
            f"(current week starts {current.isoformat()})",
            details={field: week_start.isoformat(), "currentWeekStart": current.isoformat()},
        )


def _slot_conflict(organization_id: str, user_id: str, week_start: date) -> ConflictError:
    return ConflictError(
        resource="Checkin",
        field="organization_id/user_id/week_start",
        value=f"{organization_id}/{user_id}/{week_start.isoformat()}",
    )


# ── EditWeek ──────────────────────────────────────────────────────────────────


def edit_checkin_week(
    checkin_id: str,
    new_week_start_raw,
    *,
    now: date | datetime | None = None,
    actor: str = "system",
    store: CheckinStore | None = None,
) -> Checkin:
    """Move a check-in to the week containing *new_week_start_raw*.

    ``week_start``, ``due_date`` and ``review_due_date`` are written together.
    Re-assigning a record to its own week is allowed and simply re-derives
    the due dates, which is how a mismatched-date anomaly is repaired.

    Raises:
        ValidationError: malformed date or a week that has not started yet.
        NotFoundError:   the check-in no longer exists.
        ConflictError:   another record already holds the target slot.
    """
    store = store or CheckinStore()
    tz = wn.governing_timezone()

    new_week_start = wn.parse_week_start(new_week_start_raw, tz=tz)
    _reject_future(new_week_start, now, tz, "weekStartDate")

    checkin = store.get(checkin_id)
    if store.find_slot(checkin.organization_id, checkin.user_id, new_week_start, exclude_id=checkin.id):
        logger.warning(
            "Edit week rejected: slot taken checkin_id=%s week_start=%s",
            checkin_id, new_week_start,
        )
        raise _slot_conflict(checkin.organization_id, checkin.user_id, new_week_start)

    due_date = wn.derive_due_date(new_week_start)
    before = {
        "week_start": checkin.week_start,
        "due_date": checkin.due_date,
        "review_due_date": checkin.review_due_date,
        "submitted_on_time": checkin.submitted_on_time,
    }
    changes = {
        "week_start": new_week_start,
        "due_date": due_date,
        "review_due_date": wn.derive_review_due_date(new_week_start),
    }
    if checkin.submitted_at is not None:
        changes["submitted_on_time"] = wn.is_submitted_on_time(checkin.submitted_at, due_date, tz)

    slot = (checkin.organization_id, checkin.user_id, new_week_start)
    updated = store.update(checkin.id, changes)
    audit.write_audit(
        entity_id=updated.id,
        action=audit.EDIT_WEEK,
        actor=actor,
        organization_id=updated.organization_id,
        diff={k: {"old": before[k], "new": v} for k, v in changes.items()},
    )
    store.commit(slot)

    logger.info(
        "Checkin week edited checkin_id=%s week_start=%s->%s due_date=%s actor=%s",
        updated.id, before["week_start"], new_week_start, due_date, actor,
    )
    return updated


# ── Delete ────────────────────────────────────────────────────────────────────


def delete_checkin(
    checkin_id: str,
    *,
    missing_ok: bool = False,
    actor: str = "system",
    store: CheckinStore | None = None,
) -> bool:
    """Remove a check-in.

    Returns True when a row was deleted. With ``missing_ok`` an id that is
    already gone returns False instead of raising, so cleanup callers can
    treat it as "already resolved" while still seeing the difference.

    Raises:
        NotFoundError: the id does not exist and ``missing_ok`` is False.
    """
    store = store or CheckinStore()
    try:
        checkin = store.get(checkin_id)
    except NotFoundError:
        if missing_ok:
            logger.info("Checkin delete: already absent checkin_id=%s actor=%s", checkin_id, actor)
            return False
        raise

    snapshot = checkin.to_dict()
    slot = checkin.slot
    store.delete(checkin.id)
    audit.write_audit(
        entity_id=checkin_id,
        action=audit.DELETE,
        actor=actor,
        organization_id=snapshot["organizationId"],
        diff={"deleted": {"old": snapshot, "new": None}},
    )
    store.commit(slot)
    logger.info(
        "Checkin deleted checkin_id=%s org=%s user=%s week_start=%s actor=%s",
        checkin_id, snapshot["organizationId"], snapshot["userId"], snapshot["weekStart"], actor,
    )
    return True


# ── ManualCreate ──────────────────────────────────────────────────────────────


def _validate_payload(organization_id, user_id, responses, overall_mood) -> None:
    missing = {}
    if not isinstance(organization_id, str) or not organization_id.strip():
        missing["organizationId"] = "required"
    if not isinstance(user_id, str) or not user_id.strip():
        missing["userId"] = "required"
    if missing:
        raise ValidationError("organizationId and userId are required", details=missing)
    if responses is not None and not isinstance(responses, dict):
        raise ValidationError("responses must be an object", details={"responses": type(responses).__name__})
    if overall_mood is not None:
        if isinstance(overall_mood, bool) or not isinstance(overall_mood, int) or not 1 <= overall_mood <= 5:
            raise ValidationError("overallMood must be an integer between 1 and 5", details={"overallMood": overall_mood})


def create_manual_checkin(
    organization_id: str,
    user_id: str,
    week_start_raw,
    *,
    is_complete: bool = False,
    responses: dict | None = None,
    overall_mood: int | None = None,
    now: date | datetime | None = None,
    actor: str = "system",
    store: CheckinStore | None = None,
    directory: DirectoryLookup | None = None,
) -> Checkin:
    """Backfill a check-in for a user and week.

    A completed backfill is stamped ``submitted_at = now`` and its on-time
    flag derived from the due date, like a normal submission.

    Raises:
        ValidationError:        malformed input or a future week.
        ReferenceNotFoundError: organization or user does not resolve.
        ConflictError:          the slot is already taken (propagated from
                                the store's unique constraint).
    """
    _validate_payload(organization_id, user_id, responses, overall_mood)
    store = store or CheckinStore()
    directory = directory or DirectoryLookup()
    tz = wn.governing_timezone()

    if not directory.organization_exists(organization_id):
        raise ReferenceNotFoundError("Organization", organization_id)
    if not directory.user_exists(user_id, organization_id):
        raise ReferenceNotFoundError("User", user_id)

    week_start = wn.parse_week_start(week_start_raw, tz=tz)
    _reject_future(week_start, now, tz, "weekStartDate")

    if store.find_slot(organization_id, user_id, week_start):
        logger.warning(
            "Manual create rejected: slot taken org=%s user=%s week_start=%s",
            organization_id, user_id, week_start,
        )
        raise _slot_conflict(organization_id, user_id, week_start)

    due_date = wn.derive_due_date(week_start)
    submitted_at = None
    if is_complete:
        submitted_at = now if isinstance(now, datetime) else _utcnow()

    checkin = Checkin(
        organization_id=organization_id,
        user_id=user_id,
        week_start=week_start,
        due_date=due_date,
        review_due_date=wn.derive_review_due_date(week_start),
        overall_mood=overall_mood,
        responses=dict(responses or {}),
        is_complete=bool(is_complete),
        submitted_at=submitted_at,
        submitted_on_time=wn.is_submitted_on_time(submitted_at, due_date, tz),
        review_status="pending",
    )
    slot = checkin.slot
    store.insert(checkin)
    audit.write_audit(
        entity_id=checkin.id,
        action=audit.MANUAL_CREATE,
        actor=actor,
        organization_id=organization_id,
        diff={
            "week_start": {"old": None, "new": week_start},
            "due_date": {"old": None, "new": due_date},
            "is_complete": {"old": None, "new": bool(is_complete)},
        },
    )
    store.commit(slot)

    logger.info(
        "Manual checkin created checkin_id=%s org=%s user=%s week_start=%s complete=%s actor=%s",
        checkin.id, organization_id, user_id, week_start, bool(is_complete), actor,
    )
    return checkin
