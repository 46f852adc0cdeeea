"""
Check-in Data Health
Repair audit trail.

Every Reconciler action appends one ``AuditLog`` row inside the same
transaction as the repair, so a rolled-back repair leaves no trace.
"""

import json
from datetime import UTC, datetime

from checkin_health.models import db

EDIT_WEEK = "checkin.edit_week"
DELETE = "checkin.delete"
MANUAL_CREATE = "checkin.manual_create"
AUDIT_ACTIONS = frozenset({EDIT_WEEK, DELETE, MANUAL_CREATE})


def _utcnow():
    return datetime.now(UTC)


class AuditLog(db.Model):
    """One applied repair. Rows are never updated.

    ``diff_json`` holds ``{field: {"old": ..., "new": ...}}`` for the fields
    the repair touched; a delete stores the whole removed row under
    ``"deleted"``.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_org", "organization_id"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.String(36), nullable=True)
    entity_type = db.Column(db.String(30), nullable=False, default="checkin")
    entity_id = db.Column(db.String(36), nullable=False)
    action = db.Column(db.String(60), nullable=False)
    actor = db.Column(db.String(150), nullable=False, default="system")
    diff_json = db.Column(db.Text, default="{}")
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    @property
    def diff(self) -> dict:
        if not self.diff_json:
            return {}
        try:
            value = json.loads(self.diff_json)
        except ValueError:
            return {}
        return value if isinstance(value, dict) else {}

    def to_dict(self) -> dict:
        stamp = self.timestamp
        return {
            "id": self.id,
            "action": self.action,
            "actor": self.actor,
            "organizationId": self.organization_id,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "diff": self.diff,
            "timestamp": stamp.isoformat() if stamp else None,
        }

    def __repr__(self):
        return f"<AuditLog #{self.id} {self.action} {self.entity_id} by {self.actor}>"


def write_audit(*, entity_id, action, actor="system", organization_id=None,
                entity_type="checkin", diff=None) -> AuditLog:
    """Append an audit row and flush it; the caller owns the commit."""
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action: {action}")

    row = AuditLog(
        organization_id=organization_id,
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor=actor or "system",
        diff_json=json.dumps(diff or {}, default=str, sort_keys=True),
    )
    db.session.add(row)
    db.session.flush()
    return row
