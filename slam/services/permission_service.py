"""
Permission Service - per-user SLA access grants.

Role hierarchy:
  viewer < commenter < editor < admin

Evaluation:
  - admins may do anything
  - otherwise the user's role must be allowed for the action
  - a non-empty ``slaIds`` grant restricts the user to those SLAs
  - else a non-empty ``teamIds`` grant restricts the user to those teams
  - empty grants mean no restriction

Users without a (current) permission row are viewers.
"""

import logging

from flask import current_app

from slam.core.exceptions import ForbiddenError
from slam.models.lookup import PERMISSION_TYPES, UserPermission
from slam.models.sla import Sla
from slam.utils.helpers import utcnow

logger = logging.getLogger(__name__)

DEFAULT_ROLE = "viewer"

ACTION_ROLES = {
    "read": {"viewer", "commenter", "editor", "admin"},
    "comment": {"commenter", "editor", "admin"},
    "edit": {"editor", "admin"},
    "delete": {"admin"},
}


def default_permissions(email: str | None = None) -> dict:
    return {
        "userEmail": email or "",
        "permissionType": DEFAULT_ROLE,
        "teamIds": [],
        "slaIds": [],
    }


def get_user_permissions(email: str | None) -> dict:
    """Permission grant for ``email``; expired or missing grants fall back to viewer."""
    if not email:
        return default_permissions()

    row = (
        UserPermission.query
        .filter(UserPermission.user_email.ilike(email.strip()))
        .order_by(UserPermission.id.desc())
        .first()
    )
    if row is None:
        return default_permissions(email)

    expires_at = row.expires_at
    if expires_at is not None:
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=utcnow().tzinfo)
        if expires_at <= utcnow():
            logger.info("Permission %s for %s expired at %s", row.permission_id, email, expires_at)
            return default_permissions(email)

    perms = row.to_dict()
    if perms["permissionType"] not in PERMISSION_TYPES:
        logger.warning("Unknown permission type %r for %s; using viewer", perms["permissionType"], email)
        perms["permissionType"] = DEFAULT_ROLE
    return perms


def can_access(perms: dict, action: str, sla_id: str | None = None, team_id: str | None = None) -> bool:
    """Pure check of a permission dict against one action on one SLA."""
    role = perms.get("permissionType", DEFAULT_ROLE)
    if role == "admin":
        return True
    if role not in ACTION_ROLES.get(action, set()):
        return False

    sla_ids = perms.get("slaIds") or []
    if sla_ids:
        return sla_id in sla_ids

    team_ids = perms.get("teamIds") or []
    if team_ids:
        return team_id in team_ids

    return True


def check_permission(email: str | None, action: str, sla_id: str | None = None, team_id: str | None = None) -> bool:
    """Resolve ``email``'s grant and check it.

    When ``team_id`` is not given but ``sla_id`` is, the SLA's team is
    looked up so team-scoped grants can be evaluated.
    """
    if team_id is None and sla_id:
        sla = Sla.query.filter_by(sla_id=sla_id).first()
        team_id = sla.team_id if sla else None
    return can_access(get_user_permissions(email), action, sla_id=sla_id, team_id=team_id)


def enforcement_enabled() -> bool:
    return bool(current_app.config.get("ENFORCE_PERMISSIONS"))


def require_permission(email: str | None, action: str, sla_id: str | None = None, team_id: str | None = None) -> None:
    """Raise ForbiddenError when enforcement is on and the check fails."""
    if not enforcement_enabled():
        return
    if not check_permission(email, action, sla_id=sla_id, team_id=team_id):
        logger.info("Denied %s on %s for %s", action, sla_id or team_id or "-", email)
        raise ForbiddenError(action, email)
