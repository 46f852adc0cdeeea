"""
Check-in domain model.

Models:
    - Checkin: one expected weekly submission per (organization, user, week).

``week_start`` is the Monday of the ISO week the row covers. ``due_date`` and
``review_due_date`` are derived from it by ``services.week_normalizer`` and are
only ever written together with ``week_start``.

``organization_id`` / ``user_id`` carry no foreign key: the
directory is reference data that may be removed independently, and the
integrity scanner reports the resulting orphans instead of the database
refusing the delete.
"""

import uuid
from datetime import datetime, timezone

from checkin_health.models import db

CHECKIN_STATUSES = ("complete", "incomplete")
REVIEW_STATUSES = ("pending", "reviewed")


def _uuid() -> str:
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() if value else None


class Checkin(db.Model):
    __tablename__ = "checkins"
    __table_args__ = (
        db.UniqueConstraint(
            "organization_id", "user_id", "week_start",
            name="uq_checkin_org_user_week",
        ),
        db.Index("ix_checkins_week_start", "week_start"),
        db.Index("ix_checkins_org_week_start", "organization_id", "week_start"),
        db.Index("ix_checkins_due_date", "due_date"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    organization_id = db.Column(db.String(36), nullable=False)
    user_id = db.Column(db.String(36), nullable=False)

    # Weekly slot
    week_start = db.Column(db.Date, nullable=False, comment="Monday of the ISO week")
    due_date = db.Column(db.Date, nullable=False, comment="week_start + 6 days")
    review_due_date = db.Column(db.Date, nullable=True)

    # Submission
    overall_mood = db.Column(db.Integer, nullable=True, comment="1-5 weekly pulse rating")
    responses = db.Column(db.JSON, nullable=False, default=dict)
    winning_next_week = db.Column(db.Text, nullable=True)
    is_complete = db.Column(db.Boolean, nullable=False, default=False)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    submitted_on_time = db.Column(db.Boolean, nullable=False, default=False)

    # Review workflow (owned by the review flow, passed through untouched here)
    review_status = db.Column(db.String(20), nullable=False, default="pending")
    reviewed_by = db.Column(db.String(36), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    review_comments = db.Column(db.Text, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    @property
    def slot(self) -> tuple:
        """The (organization, user, week) key the unique constraint is built on."""
        return (self.organization_id, self.user_id, self.week_start)

    def to_dict(self):
        return {
            "id": self.id,
            "organizationId": self.organization_id,
            "userId": self.user_id,
            "weekStart": _iso(self.week_start),
            "dueDate": _iso(self.due_date),
            "reviewDueDate": _iso(self.review_due_date),
            "overallMood": self.overall_mood,
            "responses": self.responses or {},
            "winningNextWeek": self.winning_next_week,
            "isComplete": bool(self.is_complete),
            "submittedAt": _iso(self.submitted_at),
            "submittedOnTime": bool(self.submitted_on_time),
            "reviewStatus": self.review_status,
            "reviewedBy": self.reviewed_by,
            "reviewedAt": _iso(self.reviewed_at),
            "reviewComments": self.review_comments,
            "createdAt": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<Checkin {self.id}: {self.user_id}@{self.organization_id} week={self.week_start}>"
