"""Persistence layer for check-in records.

The store owns two things only: reading/writing ``checkins`` rows and
enforcing the (organization_id, user_id, week_start) uniqueness rule. It runs
no detection logic.

Rules:
  - The database unique index ``uq_checkin_org_user_week`` is the final
    arbiter of slot ownership. An IntegrityError on flush or commit is
    surfaced as ConflictError, never retried.
  - A rejected write rolls the session back, leaving the store unchanged.
  - Other driver failures surface as InternalError.
  - ``scan`` materialises its result: callers get a snapshot, not a cursor.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from checkin_health.core.exceptions import (
    ConflictError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from checkin_health.models import db
from checkin_health.models.checkin import CHECKIN_STATUSES, Checkin

logger = logging.getLogger(__name__)

# Fields a caller may change through ``update``. Identity columns are immutable.
_UPDATABLE_FIELDS = frozenset({
    "week_start",
    "due_date",
    "review_due_date",
    "submitted_on_time",
    "is_complete",
    "submitted_at",
    "overall_mood",
    "responses",
    "winning_next_week",
})


@dataclass(frozen=True)
class CheckinFilters:
    """Filter set shared by scan, the listing endpoint and the health report."""

    organization_id: str | None = None
    user_id: str | None = None
    status: str | None = None
    start_date: date | None = None
    end_date: date | None = None

    def __post_init__(self):
        if self.status is not None and self.status not in CHECKIN_STATUSES:
            raise ValidationError(
                f"status must be one of: {', '.join(CHECKIN_STATUSES)}",
                details={"status": self.status},
            )
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValidationError(
                "startDate must not be after endDate",
                details={"startDate": self.start_date.isoformat(), "endDate": self.end_date.isoformat()},
            )

    def to_dict(self) -> dict:
        return {
            "organizationId": self.organization_id,
            "userId": self.user_id,
            "status": self.status,
            "startDate": self.start_date.isoformat() if self.start_date else None,
            "endDate": self.end_date.isoformat() if self.end_date else None,
        }


class CheckinStore:
    """Session-bound repository over the ``checkins`` table."""

    def __init__(self, session=None):
        self.session = session if session is not None else db.session

    # ── Reads ────────────────────────────────────────────────────────────

    def _filtered(self, filters: CheckinFilters | None):
        stmt = select(Checkin)
        f = filters or CheckinFilters()
        if f.organization_id:
            stmt = stmt.where(Checkin.organization_id == f.organization_id)
        if f.user_id:
            stmt = stmt.where(Checkin.user_id == f.user_id)
        if f.status == "complete":
            stmt = stmt.where(Checkin.is_complete.is_(True))
        elif f.status == "incomplete":
            stmt = stmt.where(Checkin.is_complete.is_(False))
        if f.start_date:
            stmt = stmt.where(Checkin.week_start >= f.start_date)
        if f.end_date:
            stmt = stmt.where(Checkin.week_start <= f.end_date)
        return stmt

    @staticmethod
    def _ordered(stmt):
        return stmt.order_by(
            Checkin.organization_id,
            Checkin.user_id,
            Checkin.week_start,
            Checkin.created_at,
            Checkin.id,
        )

    def scan(self, filters: CheckinFilters | None = None) -> list[Checkin]:
        """Return every record matching *filters* in a stable order."""
        try:
            return list(self.session.execute(self._ordered(self._filtered(filters))).scalars().all())
        except SQLAlchemyError as exc:
            logger.exception("Checkin scan failed filters=%s", filters)
            raise InternalError("checkin scan", str(exc)) from exc

    def page(
        self,
        filters: CheckinFilters | None = None,
        page: int = 1,
        per_page: int = 50,
    ) -> tuple[list[Checkin], int]:
        """Return one page of matching records (newest weeks first) and the total count."""
        stmt = self._filtered(filters)
        try:
            total = self.session.scalar(select(func.count()).select_from(stmt.subquery()))
            items = self.session.execute(
                stmt.order_by(Checkin.week_start.desc(), Checkin.user_id, Checkin.id)
                .offset((page - 1) * per_page)
                .limit(per_page)
            ).scalars().all()
        except SQLAlchemyError as exc:
            logger.exception("Checkin page query failed filters=%s", filters)
            raise InternalError("checkin listing", str(exc)) from exc
        return list(items), int(total or 0)

    def get(self, checkin_id: str) -> Checkin:
        try:
            checkin = self.session.get(Checkin, checkin_id)
        except SQLAlchemyError as exc:
            logger.exception("Checkin lookup failed id=%s", checkin_id)
            raise InternalError("checkin lookup", str(exc)) from exc
        if checkin is None:
            raise NotFoundError(resource="Checkin", resource_id=checkin_id)
        return checkin

    def find_slot(
        self,
        organization_id: str,
        user_id: str,
        week_start: date,
        exclude_id: str | None = None,
    ) -> Checkin | None:
        """Return a record currently holding the slot, ignoring *exclude_id*."""
        stmt = select(Checkin).where(
            Checkin.organization_id == organization_id,
            Checkin.user_id == user_id,
            Checkin.week_start == week_start,
        )
        if exclude_id is not None:
            stmt = stmt.where(Checkin.id != exclude_id)
        try:
            return self.session.execute(stmt.limit(1)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.exception("Checkin slot lookup failed org=%s user=%s", organization_id, user_id)
            raise InternalError("checkin slot lookup", str(exc)) from exc

    # ── Writes (flush only; callers commit) ──────────────────────────────

    def _flush(self, operation: str, slot: tuple):
        try:
            self.session.flush()
        except IntegrityError as exc:
            self.session.rollback()
            logger.warning("Checkin %s rejected by unique constraint slot=%s", operation, slot)
            raise _slot_conflict(slot) from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Checkin %s failed slot=%s", operation, slot)
            raise InternalError(f"checkin {operation}", str(exc)) from exc

    def insert(self, record: Checkin) -> str:
        """Add *record*; raises ConflictError if its slot is already taken."""
        slot = record.slot
        self.session.add(record)
        self._flush("insert", slot)
        return record.id

    def update(self, checkin_id: str, changes: dict) -> Checkin:
        """Apply *changes* to an existing record.

        Raises:
            NotFoundError: the record does not exist.
            ConflictError: the change moves the record onto an occupied slot.
        """
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable through the store: {sorted(unknown)}")
        checkin = self.get(checkin_id)
        for field, value in changes.items():
            setattr(checkin, field, value)
        self._flush("update", checkin.slot)
        return checkin

    def delete(self, checkin_id: str) -> None:
        checkin = self.get(checkin_id)
        self.session.delete(checkin)
        self._flush("delete", checkin.slot)

    def commit(self, slot: tuple | None = None) -> None:
        """Commit the unit of work, mapping late constraint failures like ``_flush``."""
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            logger.warning("Checkin commit rejected by unique constraint slot=%s", slot)
            raise _slot_conflict(slot) from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Checkin commit failed slot=%s", slot)
            raise InternalError("checkin commit", str(exc)) from exc


def _slot_conflict(slot: tuple | None) -> ConflictError:
    value = None
    if slot:
        organization_id, user_id, week_start = slot
        value = f"{organization_id}/{user_id}/{week_start.isoformat() if week_start else None}"
    return ConflictError(
        resource="Checkin",
        field="organization_id/user_id/week_start",
        value=value,
    )
