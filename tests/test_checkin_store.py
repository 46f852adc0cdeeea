"""
Checkin store tests.

Covers:
  - scan filters and ordering
  - paginated listing
  - get / find_slot
  - insert / update / delete with the (org, user, week) unique index
  - rollback after a rejected write
"""

from datetime import date, timedelta

import pytest

from checkin_health.core.exceptions import ConflictError, NotFoundError, ValidationError
from checkin_health.models import db
from checkin_health.models.checkin import Checkin
from checkin_health.services.checkin_store import CheckinFilters, CheckinStore


def _new(week_start, organization_id="org1", user_id="u1"):
    return Checkin(
        organization_id=organization_id,
        user_id=user_id,
        week_start=week_start,
        due_date=week_start + timedelta(days=6),
        responses={},
    )


class TestFilters:
    def test_unknown_status(self):
        with pytest.raises(ValidationError):
            CheckinFilters(status="late")

    def test_inverted_range(self):
        with pytest.raises(ValidationError):
            CheckinFilters(start_date=date(2024, 6, 1), end_date=date(2024, 5, 1))

    def test_to_dict(self):
        f = CheckinFilters(organization_id="org1", start_date=date(2024, 5, 1))
        assert f.to_dict() == {
            "organizationId": "org1",
            "userId": None,
            "status": None,
            "startDate": "2024-05-01",
            "endDate": None,
        }


class TestScan:
    def test_scan_is_ordered_and_filtered(self, make_checkin):
        make_checkin(user_id="u2", week_start=date(2024, 5, 20))
        make_checkin(user_id="u1", week_start=date(2024, 5, 27), is_complete=True)
        make_checkin(user_id="u1", week_start=date(2024, 5, 20))
        make_checkin(organization_id="org2", user_id="u9", week_start=date(2024, 5, 20))

        store = CheckinStore()
        rows = store.scan(CheckinFilters(organization_id="org1"))
        assert [(c.user_id, c.week_start) for c in rows] == [
            ("u1", date(2024, 5, 20)),
            ("u1", date(2024, 5, 27)),
            ("u2", date(2024, 5, 20)),
        ]

        complete = store.scan(CheckinFilters(status="complete"))
        assert [c.week_start for c in complete] == [date(2024, 5, 27)]

        incomplete = store.scan(CheckinFilters(status="incomplete", user_id="u1"))
        assert [c.week_start for c in incomplete] == [date(2024, 5, 20)]

    def test_scan_date_range_is_inclusive(self, make_checkin):
        for offset in range(4):
            make_checkin(week_start=date(2024, 5, 6) + timedelta(weeks=offset))
        rows = CheckinStore().scan(
            CheckinFilters(start_date=date(2024, 5, 13), end_date=date(2024, 5, 20))
        )
        assert [c.week_start for c in rows] == [date(2024, 5, 13), date(2024, 5, 20)]

    def test_scan_empty_store(self):
        assert CheckinStore().scan() == []


class TestPage:
    def test_newest_week_first_with_total(self, make_checkin):
        for offset in range(5):
            make_checkin(week_start=date(2024, 4, 1) + timedelta(weeks=offset))
        items, total = CheckinStore().page(CheckinFilters(), page=1, per_page=2)
        assert total == 5
        assert [c.week_start for c in items] == [date(2024, 4, 29), date(2024, 4, 22)]

        items, total = CheckinStore().page(CheckinFilters(), page=3, per_page=2)
        assert total == 5
        assert [c.week_start for c in items] == [date(2024, 4, 1)]


class TestReadsAndWrites:
    def test_get_missing(self):
        with pytest.raises(NotFoundError):
            CheckinStore().get("nope")

    def test_insert_and_find_slot(self):
        store = CheckinStore()
        new_id = store.insert(_new(date(2024, 5, 27)))
        store.commit()

        found = store.find_slot("org1", "u1", date(2024, 5, 27))
        assert found is not None and found.id == new_id
        assert store.find_slot("org1", "u1", date(2024, 5, 27), exclude_id=new_id) is None
        assert store.find_slot("org1", "u2", date(2024, 5, 27)) is None

    def test_insert_duplicate_slot_conflicts_and_rolls_back(self):
        store = CheckinStore()
        store.insert(_new(date(2024, 5, 27)))
        store.commit()

        with pytest.raises(ConflictError) as exc:
            store.insert(_new(date(2024, 5, 27)))
        assert exc.value.value == "org1/u1/2024-05-27"
        assert db.session.query(Checkin).count() == 1

    def test_same_week_for_other_user_is_fine(self):
        store = CheckinStore()
        store.insert(_new(date(2024, 5, 27)))
        store.insert(_new(date(2024, 5, 27), user_id="u2"))
        store.commit()
        assert db.session.query(Checkin).count() == 2

    def test_update_onto_taken_slot_conflicts(self, make_checkin):
        make_checkin(week_start=date(2024, 5, 20))
        other = make_checkin(week_start=date(2024, 5, 27))
        store = CheckinStore()
        with pytest.raises(ConflictError):
            store.update(other.id, {"week_start": date(2024, 5, 20)})
        assert store.get(other.id).week_start == date(2024, 5, 27)

    def test_update_rejects_identity_fields(self, make_checkin):
        checkin = make_checkin()
        with pytest.raises(ValueError):
            CheckinStore().update(checkin.id, {"user_id": "u2"})

    def test_delete(self, make_checkin):
        checkin = make_checkin()
        store = CheckinStore()
        store.delete(checkin.id)
        store.commit()
        with pytest.raises(NotFoundError):
            store.get(checkin.id)

    def test_delete_missing(self):
        with pytest.raises(NotFoundError):
            CheckinStore().delete("nope")
