"""
SLAM - SLA Record Store
Lookup and permission tables.

Models:
    - LookupTeam:      teams that own SLAs (``LOOKUP_TEAMS``)
    - LookupStatus:    display metadata for statuses (``LOOKUP_STATUSES``)
    - LookupTask:      work streams that teams are grouped under (``LOOKUP_TASKS``)
    - UserPermission:  per-user access grants (``USER_PERMISSIONS``)
"""

from datetime import datetime, timezone

from slam.models import db

PERMISSION_TYPES = ("viewer", "commenter", "editor", "admin")


def _split_ids(raw):
    return [part.strip() for part in (raw or "").split(",") if part.strip()]


class LookupTeam(db.Model):
    __tablename__ = "lookup_teams"

    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(db.String(50), unique=True, nullable=False)
    team_name = db.Column(db.String(200), nullable=False)
    department = db.Column(db.String(200), default="")
    manager_email = db.Column(db.String(200), default="")
    is_active = db.Column(db.Boolean, default=True)

    def to_dict(self):
        return {
            "id": self.team_id,
            "name": self.team_name,
            "department": self.department or "",
            "managerEmail": self.manager_email or "",
            "isActive": bool(self.is_active),
        }


class LookupStatus(db.Model):
    __tablename__ = "lookup_statuses"

    id = db.Column(db.Integer, primary_key=True)
    status_id = db.Column(db.String(30), unique=True, nullable=False)
    status_name = db.Column(db.String(50), nullable=False)
    display_color = db.Column(db.String(10), default="#6C757D")
    sort_order = db.Column(db.Integer, default=0)

    def to_dict(self):
        return {
            "statusId": self.status_id,
            "statusName": self.status_name,
            "displayColor": self.display_color,
            "sortOrder": self.sort_order,
        }


class LookupTask(db.Model):
    __tablename__ = "lookup_tasks"

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(db.String(30), unique=True, nullable=False)
    task_name = db.Column(db.String(100), nullable=False, comment="matched against LookupTeam.department")

    def to_dict(self):
        return {"id": self.task_id, "name": self.task_name}


class UserPermission(db.Model):
    """
    Access grant for one user.

    Empty ``team_ids`` / ``sla_ids`` mean "no restriction".
    """

    __tablename__ = "user_permissions"

    id = db.Column(db.Integer, primary_key=True)
    permission_id = db.Column(db.String(40), unique=True, nullable=False)
    user_email = db.Column(db.String(200), nullable=False, index=True)
    permission_type = db.Column(db.String(20), nullable=False, default="viewer")
    team_ids = db.Column(db.Text, default="", comment="','-joined team ids")
    sla_ids = db.Column(db.Text, default="", comment="','-joined SLA ids")
    granted_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    granted_by = db.Column(db.String(200), default="")
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self):
        return {
            "permissionId": self.permission_id,
            "userEmail": self.user_email,
            "permissionType": self.permission_type,
            "teamIds": _split_ids(self.team_ids),
            "slaIds": _split_ids(self.sla_ids),
            "grantedAt": self.granted_at.isoformat() if self.granted_at else None,
            "grantedBy": self.granted_by or "",
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
        }
