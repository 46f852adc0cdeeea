"""Integrity scanner for weekly check-in data (report-only).

Builds the Data Health Report shown in the super-admin Data Management
console. Four independent checks run over one snapshot of the store:

  - future check-ins     week_start is later than the current week's Monday
  - mismatched dates     due dates disagree with the week they belong to,
                         or week_start is not a Monday
  - duplicate check-ins  more than one record per (org, user, ISO week)
  - orphaned check-ins   organization or user no longer in the directory

A record is listed in every bucket it violates; ``total_issues`` counts it
once per bucket. Anomalies are report data. Only store or directory failures
raise (InternalError).

The report carries no wall-clock timestamp, so two runs with no repair in
between serialise to identical JSON.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime

from checkin_health.models.checkin import Checkin
from checkin_health.services import week_normalizer as wn
from checkin_health.services.checkin_store import CheckinFilters, CheckinStore
from checkin_health.services.directory_lookup import DirectoryLookup

logger = logging.getLogger(__name__)


@dataclass
class DataHealthReport:
    as_of_week_start: date
    filters: CheckinFilters
    scanned: int
    future_checkins: list[dict] = field(default_factory=list)
    mismatched_dates: list[dict] = field(default_factory=list)
    duplicate_checkins: list[dict] = field(default_factory=list)
    orphaned_checkins: list[dict] = field(default_factory=list)

    @property
    def duplicate_record_count(self) -> int:
        return sum(len(group["checkins"]) for group in self.duplicate_checkins)

    @property
    def total_issues(self) -> int:
        return (
            len(self.future_checkins)
            + len(self.mismatched_dates)
            + self.duplicate_record_count
            + len(self.orphaned_checkins)
        )

    def to_dict(self) -> dict:
        return {
            "asOfWeekStart": self.as_of_week_start.isoformat(),
            "filters": self.filters.to_dict(),
            "scanned": self.scanned,
            "futureCheckins": self.future_checkins,
            "mismatchedDates": self.mismatched_dates,
            "duplicateCheckins": self.duplicate_checkins,
            "orphanedCheckins": self.orphaned_checkins,
            "counts": {
                "future": len(self.future_checkins),
                "mismatched": len(self.mismatched_dates),
                "duplicateGroups": len(self.duplicate_checkins),
                "duplicateRecords": self.duplicate_record_count,
                "orphaned": len(self.orphaned_checkins),
            },
            "totalIssues": self.total_issues,
        }


def _entry(checkin: Checkin, directory: DirectoryLookup, **extra) -> dict:
    user = directory.describe_user(checkin.user_id)
    org = directory.describe_organization(checkin.organization_id)
    entry = checkin.to_dict()
    entry["userName"] = user["name"] if user else None
    entry["organizationName"] = org["name"] if org else None
    entry.update(extra)
    return entry


# ── Individual checks ─────────────────────────────────────────────────────────


def _mismatch_reasons(checkin: Checkin) -> list[str]:
    reasons = []
    expected_due = wn.derive_due_date(checkin.week_start)
    if not wn.is_aligned(checkin.week_start):
        reasons.append("week_start_not_monday")
    if checkin.due_date != expected_due:
        reasons.append("due_date")
    if checkin.review_due_date is not None and checkin.review_due_date != wn.derive_review_due_date(checkin.week_start):
        reasons.append("review_due_date")
    return reasons


def _group_duplicates(checkins: list[Checkin]) -> list[tuple[tuple, list[Checkin]]]:
    groups: dict[tuple, list[Checkin]] = defaultdict(list)
    for checkin in checkins:
        key = (checkin.organization_id, checkin.user_id, wn.normalize_week_start(checkin.week_start))
        groups[key].append(checkin)
    return sorted(
        ((key, members) for key, members in groups.items() if len(members) > 1),
        key=lambda item: item[0],
    )


def _orphan_reasons(checkin: Checkin, directory: DirectoryLookup) -> list[str]:
    reasons = []
    if not directory.organization_exists(checkin.organization_id):
        reasons.append("organization")
    if not directory.user_exists(checkin.user_id, checkin.organization_id):
        reasons.append("user")
    return reasons


# ── Report assembly ───────────────────────────────────────────────────────────


def compute_health_report(
    filters: CheckinFilters | None = None,
    *,
    now: date | datetime | None = None,
    store: CheckinStore | None = None,
    directory: DirectoryLookup | None = None,
) -> DataHealthReport:
    """
    Scan check-ins matching *filters* and classify every invariant violation.

    Args:
        filters:   Narrow the scan (organization, user, status, week range).
        now:       Reference instant for the future-week check. Defaults to
                   today in the governing timezone.
        store:     Injected CheckinStore (defaults to the request session).
        directory: Injected DirectoryLookup; a fresh one is built otherwise.

    Returns:
        DataHealthReport; call ``to_dict()`` for the API payload.
    """
    filters = filters or CheckinFilters()
    store = store or CheckinStore()
    directory = directory or DirectoryLookup()
    tz = wn.governing_timezone()
    as_of = wn.current_week_start(now if now is not None else wn.local_today(tz), tz)

    checkins = store.scan(filters)
    directory.preload(
        (c.organization_id for c in checkins),
        (c.user_id for c in checkins),
    )

    report = DataHealthReport(as_of_week_start=as_of, filters=filters, scanned=len(checkins))

    for checkin in checkins:
        if wn.is_future_week(checkin.week_start, as_of, tz):
            report.future_checkins.append(_entry(checkin, directory))

        reasons = _mismatch_reasons(checkin)
        if reasons:
            expected_week = wn.normalize_week_start(checkin.week_start)
            report.mismatched_dates.append(_entry(
                checkin,
                directory,
                reasons=reasons,
                expectedWeekStart=expected_week.isoformat(),
                expectedDueDate=wn.derive_due_date(expected_week).isoformat(),
            ))

        missing = _orphan_reasons(checkin, directory)
        if missing:
            report.orphaned_checkins.append(_entry(checkin, directory, missing=missing))

    for (organization_id, user_id, week_start), members in _group_duplicates(checkins):
        report.duplicate_checkins.append({
            "organizationId": organization_id,
            "userId": user_id,
            "weekStart": week_start.isoformat(),
            "userName": (directory.describe_user(user_id) or {}).get("name"),
            "checkins": [_entry(c, directory) for c in members],
        })

    logger.info(
        "Data health report scanned=%d future=%d mismatched=%d duplicate_groups=%d orphaned=%d total=%d",
        report.scanned,
        len(report.future_checkins),
        len(report.mismatched_dates),
        len(report.duplicate_checkins),
        len(report.orphaned_checkins),
        report.total_issues,
    )
    return report
