"""Week arithmetic for the weekly check-in cadence.

Single source of truth for what a "correct" week slot looks like. The
integrity scanner uses it to detect anomalies and the reconciler uses it to
repair them, so detection and repair can never disagree.

Conventions:
  - A week starts on Monday (ISO week). ``week_start`` is a calendar date.
  - ``due_date`` is the last day of that week: ``week_start + 6 days``.
  - Timezone-aware datetimes are resolved to a calendar day in the governing
    timezone (``CHECKIN_TIMEZONE``, default America/Chicago) before any
    arithmetic. Naive datetimes and plain dates are taken at face value.

Everything here is pure apart from two helpers: ``local_today`` reads the
clock and ``governing_timezone`` reads the app config.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flask import current_app, has_app_context

from checkin_health.core.exceptions import ValidationError
from checkin_health.utils.helpers import parse_date_input

DEFAULT_TIMEZONE = "America/Chicago"
DUE_OFFSET_DAYS = 6


def _zone(tz: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(tz or DEFAULT_TIMEZONE)
    except ZoneInfoNotFoundError as exc:
        raise ValidationError(f"Unknown timezone: {tz}", details={"timezone": tz}) from exc


def to_calendar_date(value: date | datetime, tz: str | None = None) -> date:
    """Resolve a date or datetime to the calendar day it falls on."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(_zone(tz))
        return value.date()
    if isinstance(value, date):
        return value
    raise TypeError(f"Expected date or datetime, got {type(value).__name__}")


def normalize_week_start(value: date | datetime, tz: str | None = None) -> date:
    """Map any date to the Monday of its ISO week. Idempotent."""
    day = to_calendar_date(value, tz)
    return day - timedelta(days=day.weekday())


def derive_due_date(week_start: date | datetime, tz: str | None = None) -> date:
    """Canonical due date for the week beginning on (or containing) *week_start*."""
    return normalize_week_start(week_start, tz) + timedelta(days=DUE_OFFSET_DAYS)


# Reviews fall due on the same day as the check-in itself.
derive_review_due_date = derive_due_date


def current_week_start(now: date | datetime, tz: str | None = None) -> date:
    return normalize_week_start(now, tz)


def is_future_week(week_start: date | datetime, now: date | datetime, tz: str | None = None) -> bool:
    """True iff *week_start* falls after the Monday of the current week at *now*.

    The stored day is compared as-is: a misaligned Thursday in the current
    week is already in the future.
    """
    return to_calendar_date(week_start, tz) > current_week_start(now, tz)


def is_aligned(week_start: date) -> bool:
    return week_start.weekday() == 0


def is_submitted_on_time(
    submitted_at: datetime | None,
    due_date: date,
    tz: str | None = None,
) -> bool:
    """True iff a submission exists and landed on or before the due day.

    ``submitted_at`` is an instant; naive values (SQLite drops tzinfo on
    read) are interpreted as UTC.
    """
    if submitted_at is None:
        return False
    if submitted_at.tzinfo is None:
        submitted_at = submitted_at.replace(tzinfo=timezone.utc)
    return to_calendar_date(submitted_at, tz) <= due_date


def governing_timezone() -> str:
    """``CHECKIN_TIMEZONE`` of the running app, or the default outside one."""
    if has_app_context():
        return current_app.config.get("CHECKIN_TIMEZONE", DEFAULT_TIMEZONE)
    return DEFAULT_TIMEZONE


def local_today(tz: str | None = None) -> date:
    return datetime.now(_zone(tz)).date()


def parse_week_start(raw, field: str = "weekStartDate", tz: str | None = None) -> date:
    """Parse raw admin input and normalize it to a Monday.

    Raises:
        ValidationError: if *raw* is empty or not a recognisable date.
    """
    try:
        parsed = parse_date_input(raw)
    except ValueError as exc:
        raise ValidationError(str(exc), details={field: raw}) from exc
    if parsed is None:
        raise ValidationError(f"{field} is required", details={field: raw})
    return normalize_week_start(parsed, tz)
