"""
Reconciler (repair operations) tests.

Covers:
  - end-to-end backfill / move / report scenario for org1/u1
  - edit week: due-date re-derivation, conflicts, future weeks, on-time flag
  - delete: success, missing ids with and without missing_ok
  - manual create: directory checks, payload validation, completion stamp
  - unique-index arbitration when the slot pre-check is bypassed
  - audit rows written in the same transaction as the repair
"""

from datetime import date, datetime, timezone

import pytest

from checkin_health.core.exceptions import (
    ConflictError,
    NotFoundError,
    ReferenceNotFoundError,
    ValidationError,
)
from checkin_health.models import db
from checkin_health.models.audit import AuditLog
from checkin_health.models.checkin import Checkin
from checkin_health.models.directory import Organization
from checkin_health.services import reconciler
from checkin_health.services.checkin_store import CheckinFilters, CheckinStore
from checkin_health.services.integrity_scanner import compute_health_report

TODAY = date(2024, 6, 5)


def _audit_actions():
    return [a.action for a in AuditLog.query.order_by(AuditLog.id).all()]


# ── End-to-end ───────────────────────────────────────────────────────────────


def test_backfill_move_and_report_scenario(u1):
    with pytest.raises(ValidationError):
        reconciler.create_manual_checkin("org1", "u1", "2024-06-10", now=TODAY)

    created = reconciler.create_manual_checkin("org1", "u1", "2024-05-27", now=TODAY)
    assert created.week_start == date(2024, 5, 27)
    assert created.due_date == date(2024, 6, 2)

    with pytest.raises(ConflictError):
        reconciler.create_manual_checkin("org1", "u1", "2024-05-27", now=TODAY)

    moved = reconciler.edit_checkin_week(created.id, "2024-05-20", now=TODAY)
    assert moved.week_start == date(2024, 5, 20)
    assert moved.due_date == date(2024, 5, 26)
    assert moved.review_due_date == date(2024, 5, 26)

    report = compute_health_report(CheckinFilters(organization_id="org1"), now=TODAY)
    assert report.scanned == 1
    assert report.total_issues == 0
    assert _audit_actions() == ["checkin.manual_create", "checkin.edit_week"]


# ── EditWeek ─────────────────────────────────────────────────────────────────


class TestEditWeek:
    def test_same_week_repairs_mismatched_dates(self, u1, make_checkin):
        bad = make_checkin(week_start=date(2024, 5, 27), due_date=date(2024, 5, 29), review_due_date=date(2024, 6, 5))
        assert [e["id"] for e in compute_health_report(now=TODAY).mismatched_dates] == [bad.id]

        reconciler.edit_checkin_week(bad.id, "2024-05-27", now=TODAY)

        assert compute_health_report(now=TODAY).mismatched_dates == []
        refreshed = CheckinStore().get(bad.id)
        assert refreshed.due_date == date(2024, 6, 2)
        assert refreshed.review_due_date == date(2024, 6, 2)

    def test_misaligned_input_is_normalized(self, u1, make_checkin):
        checkin = make_checkin(week_start=date(2024, 5, 27))
        moved = reconciler.edit_checkin_week(checkin.id, "2024-05-16", now=TODAY)
        assert moved.week_start == date(2024, 5, 13)
        assert moved.due_date == date(2024, 5, 19)

    def test_future_week_rejected_before_lookup(self, u1):
        with pytest.raises(ValidationError) as exc:
            reconciler.edit_checkin_week("does-not-exist", "2024-06-12", now=TODAY)
        assert exc.value.details["currentWeekStart"] == "2024-06-03"

    def test_current_week_allowed(self, u1, make_checkin):
        checkin = make_checkin(week_start=date(2024, 5, 27))
        moved = reconciler.edit_checkin_week(checkin.id, "2024-06-07", now=TODAY)
        assert moved.week_start == date(2024, 6, 3)

    def test_malformed_date(self, u1, make_checkin):
        checkin = make_checkin()
        with pytest.raises(ValidationError):
            reconciler.edit_checkin_week(checkin.id, "last tuesday", now=TODAY)

    def test_missing_record(self):
        with pytest.raises(NotFoundError):
            reconciler.edit_checkin_week("nope", "2024-05-20", now=TODAY)

    def test_target_slot_taken(self, u1, make_checkin):
        make_checkin(week_start=date(2024, 5, 20))
        mover = make_checkin(week_start=date(2024, 5, 27))
        with pytest.raises(ConflictError):
            reconciler.edit_checkin_week(mover.id, "2024-05-22", now=TODAY)
        assert CheckinStore().get(mover.id).week_start == date(2024, 5, 27)
        assert _audit_actions() == []

    def test_on_time_flag_recomputed(self, u1, make_checkin):
        checkin = make_checkin(
            week_start=date(2024, 5, 27),
            is_complete=True,
            submitted_at=datetime(2024, 5, 29, 15, 0, tzinfo=timezone.utc),
            submitted_on_time=True,
        )
        moved = reconciler.edit_checkin_week(checkin.id, "2024-05-20", now=TODAY)
        assert moved.submitted_on_time is False

        moved_back = reconciler.edit_checkin_week(checkin.id, "2024-05-27", now=TODAY)
        assert moved_back.submitted_on_time is True

    def test_audit_diff(self, u1, make_checkin):
        checkin = make_checkin(week_start=date(2024, 5, 27))
        reconciler.edit_checkin_week(checkin.id, "2024-05-20", now=TODAY, actor="admin@acme.test")
        entry = AuditLog.query.one()
        assert entry.action == "checkin.edit_week"
        assert entry.actor == "admin@acme.test"
        assert entry.entity_id == checkin.id
        assert entry.organization_id == "org1"
        assert entry.diff["week_start"] == {"old": "2024-05-27", "new": "2024-05-20"}
        assert entry.diff["due_date"] == {"old": "2024-06-02", "new": "2024-05-26"}


# ── Delete ───────────────────────────────────────────────────────────────────


class TestDelete:
    def test_delete_existing(self, u1, make_checkin):
        checkin_id = make_checkin().id
        assert reconciler.delete_checkin(checkin_id) is True
        assert db.session.get(Checkin, checkin_id) is None
        entry = AuditLog.query.one()
        assert entry.action == "checkin.delete"
        assert entry.diff["deleted"]["old"]["weekStart"] == "2024-05-27"

    def test_delete_missing_raises(self):
        with pytest.raises(NotFoundError):
            reconciler.delete_checkin("nope")

    def test_delete_missing_ok(self):
        assert reconciler.delete_checkin("nope", missing_ok=True) is False
        assert _audit_actions() == []

    def test_delete_twice(self, u1, make_checkin):
        checkin_id = make_checkin().id
        assert reconciler.delete_checkin(checkin_id, missing_ok=True) is True
        assert reconciler.delete_checkin(checkin_id, missing_ok=True) is False

    def test_delete_clears_duplicate_group(self, u1, make_checkin):
        make_checkin(week_start=date(2024, 5, 27))
        extra = make_checkin(week_start=date(2024, 5, 29), due_date=date(2024, 6, 2), review_due_date=date(2024, 6, 2))
        assert len(compute_health_report(now=TODAY).duplicate_checkins) == 1

        reconciler.delete_checkin(extra.id)
        assert compute_health_report(now=TODAY).total_issues == 0


# ── ManualCreate ─────────────────────────────────────────────────────────────


class TestManualCreate:
    def test_unknown_organization(self, u1):
        with pytest.raises(ReferenceNotFoundError) as exc:
            reconciler.create_manual_checkin("ghost", "u1", "2024-05-27", now=TODAY)
        assert exc.value.details == {"organizationId": "ghost"}

    def test_unknown_user(self, org1):
        with pytest.raises(ReferenceNotFoundError) as exc:
            reconciler.create_manual_checkin("org1", "ghost", "2024-05-27", now=TODAY)
        assert exc.value.details == {"userId": "ghost"}

    def test_reference_error_is_a_validation_error(self, org1):
        with pytest.raises(ValidationError):
            reconciler.create_manual_checkin("org1", "ghost", "2024-05-27", now=TODAY)

    def test_user_in_other_organization(self, u1):
        db.session.add(Organization(id="org2", name="Other", slug="other"))
        db.session.commit()
        with pytest.raises(ReferenceNotFoundError):
            reconciler.create_manual_checkin("org2", "u1", "2024-05-27", now=TODAY)

    @pytest.mark.parametrize("kwargs", [
        {"responses": ["not", "a", "dict"]},
        {"overall_mood": 7},
        {"overall_mood": True},
    ])
    def test_payload_validation(self, u1, kwargs):
        with pytest.raises(ValidationError):
            reconciler.create_manual_checkin("org1", "u1", "2024-05-27", now=TODAY, **kwargs)

    def test_blank_ids(self):
        with pytest.raises(ValidationError) as exc:
            reconciler.create_manual_checkin("  ", "", "2024-05-27", now=TODAY)
        assert exc.value.details == {"organizationId": "required", "userId": "required"}

    def test_incomplete_backfill(self, u1):
        checkin = reconciler.create_manual_checkin("org1", "u1", "2024-05-29", now=TODAY)
        assert checkin.week_start == date(2024, 5, 27)
        assert checkin.is_complete is False
        assert checkin.submitted_at is None
        assert checkin.submitted_on_time is False
        assert checkin.review_status == "pending"
        assert checkin.review_due_date == date(2024, 6, 2)

    def test_complete_backfill_is_stamped_now(self, u1):
        now = datetime(2024, 6, 1, 14, 0, tzinfo=timezone.utc)
        checkin = reconciler.create_manual_checkin(
            "org1", "u1", "2024-05-27",
            is_complete=True, responses={"q1": "shipped"}, overall_mood=4, now=now,
        )
        assert checkin.is_complete is True
        # SQLite hands back naive UTC values
        assert checkin.submitted_at.replace(tzinfo=timezone.utc) == now
        assert checkin.submitted_on_time is True
        assert checkin.responses == {"q1": "shipped"}
        assert checkin.overall_mood == 4

    def test_complete_backfill_for_old_week_is_late(self, u1):
        now = datetime(2024, 6, 5, 14, 0, tzinfo=timezone.utc)
        checkin = reconciler.create_manual_checkin("org1", "u1", "2024-05-20", is_complete=True, now=now)
        assert checkin.submitted_on_time is False

    def test_audit_row(self, u1):
        checkin = reconciler.create_manual_checkin("org1", "u1", "2024-05-27", now=TODAY, actor="ops")
        entry = AuditLog.query.one()
        assert entry.action == "checkin.manual_create"
        assert entry.entity_id == checkin.id
        assert entry.actor == "ops"
        assert entry.diff["week_start"] == {"old": None, "new": "2024-05-27"}


# ── Unique-index arbitration ─────────────────────────────────────────────────


class TestUniqueIndexArbitration:
    """Pre-check bypassed, so the unique index alone rejects the second write."""

    def test_second_create_rejected_when_precheck_misses(self, u1, monkeypatch):
        monkeypatch.setattr(CheckinStore, "find_slot", lambda self, *a, **kw: None)

        outcomes = []
        for _ in range(2):
            try:
                reconciler.create_manual_checkin("org1", "u1", "2024-05-27", now=TODAY)
                outcomes.append("ok")
            except ConflictError:
                outcomes.append("conflict")

        assert sorted(outcomes) == ["conflict", "ok"]
        assert Checkin.query.count() == 1
        assert _audit_actions() == ["checkin.manual_create"]

    def test_edit_into_taken_slot_rejected_by_unique_index(self, u1, make_checkin, monkeypatch):
        make_checkin(week_start=date(2024, 5, 20))
        mover = make_checkin(week_start=date(2024, 5, 27))
        monkeypatch.setattr(CheckinStore, "find_slot", lambda self, *a, **kw: None)

        with pytest.raises(ConflictError):
            reconciler.edit_checkin_week(mover.id, "2024-05-20", now=TODAY)
        assert CheckinStore().get(mover.id).week_start == date(2024, 5, 27)
        assert _audit_actions() == []
