"""
SLAM - SLA Record Store
Activity log model (``SLA_ACTIVITY_LOG``).

Models:
    - ActivityLog: immutable, append-only audit trail for SLA lifecycle events.
"""

import json
import uuid
from datetime import UTC, datetime

from slam.models import db

# ── Constants ────────────────────────────────────────────────────────────────

ACTIVITY_ACTIONS = {
    "created",
    "updated",
    "deleted",
    "relationship-added",
    "relationship-removed",
}


def _dump(value):
    if value is None:
        return ""
    return json.dumps(value, default=str, ensure_ascii=False)


class ActivityLog(db.Model):
    """
    One row per lifecycle action on an SLA.

    ``old_value`` / ``new_value`` carry JSON snapshots of the fields the
    action touched.
    """

    __tablename__ = "sla_activity_log"
    __table_args__ = (
        db.Index("idx_activity_sla", "sla_id"),
        db.Index("idx_activity_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    log_id = db.Column(db.String(40), unique=True, nullable=False)
    sla_id = db.Column(db.String(30), nullable=False)
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )
    user_id = db.Column(db.String(200), nullable=False, default="system")
    user_name = db.Column(db.String(200), default="")
    action_type = db.Column(db.String(40), nullable=False)
    action_details = db.Column(db.Text, default="")
    old_value = db.Column(db.Text, default="")
    new_value = db.Column(db.Text, default="")

    @staticmethod
    def _load(raw):
        if not raw:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return raw

    def to_dict(self) -> dict:
        return {
            "logId": self.log_id,
            "slaId": self.sla_id,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "userId": self.user_id,
            "userName": self.user_name,
            "actionType": self.action_type,
            "actionDetails": self.action_details,
            "oldValue": self._load(self.old_value),
            "newValue": self._load(self.new_value),
        }

    def __repr__(self):
        return f"<ActivityLog {self.log_id}: {self.action_type} on {self.sla_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_activity(
    *,
    sla_id: str,
    action_type: str,
    action_details: str = "",
    actor: str = "system",
    old_value=None,
    new_value=None,
) -> ActivityLog:
    """
    Append a single activity row.  Uses ``flush`` so callers keep
    transaction control.
    """
    if action_type not in ACTIVITY_ACTIONS:
        raise ValueError(f"Unknown activity action: {action_type}")

    entry = ActivityLog(
        log_id=f"LOG-{uuid.uuid4().hex[:16].upper()}",
        sla_id=sla_id,
        user_id=actor,
        user_name=actor,
        action_type=action_type,
        action_details=action_details,
        old_value=_dump(old_value),
        new_value=_dump(new_value),
    )
    db.session.add(entry)
    db.session.flush()
    return entry
