"""
SLAM - SLA Record Store
SLA master table.

Models:
    - Sla: one Service Level Agreement row (the ``SLA_MASTER`` table)

Two columns belong to the store rather than to the application:
    - progress:    derived from current/target values on every flush
    - row_version: optimistic-concurrency token maintained by the ORM
                   (``version_id_col``); every UPDATE is issued as
                   ``... WHERE row_version = :loaded_version``
"""

from sqlalchemy import event

from slam.models import db


# ── Constants ────────────────────────────────────────────────────────────────

SLA_TYPES = {
    "quantity", "percentage", "timeliness", "availability",
    "compliance", "composite", "multi-metric", "recurring",
}

SLA_STATUSES = {
    "met", "at-risk", "ontrack", "exceeded", "missed",
    "pending", "not-started", "deleted",
}
DELETED_STATUS = "deleted"
DEFAULT_STATUS = "not-started"

FREQUENCIES = {"once", "daily", "weekly", "biweekly", "monthly", "quarterly", "annually"}
DEFAULT_FREQUENCY = "once"

PROGRESS_CAP = 200.0

# compliance SLAs record 0 = non-compliant, 1 = compliant, 2 = not applicable
COMPLIANCE_NOT_APPLICABLE = 2


# ── Progress formula ─────────────────────────────────────────────────────────

def compute_progress(sla_type, current, target, range_min=None, range_max=None, use_range=False):
    """
    Progress percentage for a row, rounded to 2 decimals and capped at 200.

    Returns None (blank cell) when the inputs do not allow a ratio.
    """
    if current is None:
        return None

    if use_range:
        if range_min is None or range_max is None:
            return None
        if current < range_min:
            if range_min == 0:
                return None
            pct = current / range_min * 100
        elif current <= range_max:
            pct = 100.0
        elif range_max == range_min:
            pct = PROGRESS_CAP
        else:
            pct = 100 + (current - range_max) / (range_max - range_min) * 100
    elif sla_type == "timeliness":
        if target is None:
            return None
        pct = 100.0 if current <= target else 0.0
    elif sla_type == "compliance":
        if current == COMPLIANCE_NOT_APPLICABLE:
            return None
        pct = 100.0 if current == target else 0.0
    else:
        if not target:
            return None
        pct = current / target * 100

    return round(min(pct, PROGRESS_CAP), 2)


# ═══════════════════════════════════════════════════════════════════════════
#  SLA
# ═══════════════════════════════════════════════════════════════════════════

class Sla(db.Model):
    """
    A Service Level Agreement tracked for a team.

    ``row_number`` is the physical insertion order; ``sla_id`` is the
    business key (``SLA-000001``) and is never reused or changed.
    """

    __tablename__ = "sla_master"

    row_number = db.Column(db.Integer, primary_key=True)
    sla_id = db.Column(db.String(30), unique=True, nullable=False, index=True)
    parent_id = db.Column(db.String(30), nullable=True, index=True, comment="Parent SLA (no cycle check)")
    sla_name = db.Column(db.String(300), nullable=False, default="")
    sla_type = db.Column(db.String(30), nullable=False, default="")
    description = db.Column(db.Text, default="")
    team_id = db.Column(db.String(50), index=True)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(30), default=DEFAULT_STATUS, index=True)
    progress = db.Column(db.Float, nullable=True, comment="Store-computed, read-only")
    current_value = db.Column(db.Float, default=0)
    target_value = db.Column(db.Float, nullable=True)
    target_range_min = db.Column(db.Float, nullable=True)
    target_range_max = db.Column(db.Float, nullable=True)
    use_range = db.Column(db.Boolean, default=False)
    frequency = db.Column(db.String(20), default=DEFAULT_FREQUENCY)
    notification_emails = db.Column(db.Text, default="", comment="';'-joined")
    external_tracker_url = db.Column(db.String(500), default="")
    tags = db.Column(db.Text, default="", comment="','-joined")
    custom_fields = db.Column(db.Text, default="", comment="JSON object")
    is_active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_by = db.Column(db.String(200), default="")
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_by = db.Column(db.String(200), default="")
    row_version = db.Column(db.Integer, nullable=False)

    __mapper_args__ = {"version_id_col": row_version}

    def recalculate_progress(self):
        self.progress = compute_progress(
            self.sla_type,
            self.current_value,
            self.target_value,
            self.target_range_min,
            self.target_range_max,
            bool(self.use_range),
        )

    def __repr__(self):
        return f"<Sla {self.sla_id} v{self.row_version}>"


@event.listens_for(Sla, "before_insert")
@event.listens_for(Sla, "before_update")
def _derive_progress(mapper, connection, target):
    target.recalculate_progress()
