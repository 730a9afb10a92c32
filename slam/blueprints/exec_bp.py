"""
Action-dispatched SLA endpoint.

    GET  /api/v1/exec?action=<name>&...     read-only actions
    POST /api/v1/exec  {"action": <name>, ...}   mutations
    GET  /api/v1/exec/export.xlsx            workbook download

Every JSON response carries ``success``; failures add ``error`` and
``code``.  The HTTP status mirrors ``code`` (400/403/404/409/500, 207 for
partially failed batches) so plain HTTP clients can branch on it, but the
body alone is always sufficient.  No exception escapes this module.

GET actions:
    read              id
    query             filters, sort, pagination (JSON-encoded)
    getRelationships  id
    getActivity       id
    getPermissions    [email]
    checkPermission   id, operation (read|comment|edit|delete)
    getTeams
    getStatuses
    getTasks
    getTaskTeamMapping

POST actions:
    create              {sla}
    update              {slaId, updates}
    delete              {slaId, rowVersion?}
    bulkCreate          {slas}
    bulkUpdate          {updates: [{slaId, data}]}
    createRelationship  {relationship}
    removeRelationship  {relationshipId}
"""

import json
import logging
from datetime import datetime, timezone

from flask import Blueprint, Response, jsonify, request

from slam.auth import get_acting_user
from slam.core.exceptions import ValidationError
from slam.models import db
from slam.services import lookup_service, permission_service, relationship_service, sla_service
from slam.services.export_service import export_slas_xlsx
from slam.services.helpers.results import to_failure
from slam.utils.errors import E, failure, status_for

logger = logging.getLogger(__name__)

exec_bp = Blueprint("exec", __name__, url_prefix="/api/v1/exec")

SERVICE_VERSION = "1.0.0"


# ── Request helpers ──────────────────────────────────────────────────────────

def _json_param(name):
    """Decode a JSON-encoded query-string parameter (None when absent)."""
    raw = request.args.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        raise ValidationError(f"Parameter '{name}' must be valid JSON") from None


def _require(value, name):
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{name} is required")
    return value


def _respond(result: dict):
    status = 200 if result.get("success") else status_for(result.get("code", E.INTERNAL))
    return jsonify(result), status


def _guarded(handler):
    """Run ``handler`` and convert anything it raises into a failure body."""
    try:
        return _respond(handler())
    except Exception as exc:
        db.session.rollback()
        if isinstance(exc, ValidationError):
            logger.info("Rejected request: %s", exc)
        else:
            logger.exception("Unhandled error in exec endpoint")
        return _respond(to_failure(exc))


def _descriptor():
    return {
        "success": True,
        "data": {
            "service": "SLAM",
            "version": SERVICE_VERSION,
            "actions": {
                "GET": sorted(GET_ACTIONS),
                "POST": sorted(POST_ACTIONS),
            },
            "export": "/api/v1/exec/export.xlsx",
        },
    }


# ── GET actions ──────────────────────────────────────────────────────────────

def _get_read(actor):
    return sla_service.read_sla(_require(request.args.get("id"), "id"), actor=actor)


def _get_query(actor):
    return sla_service.query_slas(
        filters=_json_param("filters"),
        sort=_json_param("sort"),
        pagination=_json_param("pagination"),
        actor=actor,
    )


def _get_relationships(actor):
    sla_id = _require(request.args.get("id"), "id")
    return {"success": True, "data": relationship_service.relationships_for(sla_id)}


def _get_activity(actor):
    return sla_service.get_activity(_require(request.args.get("id"), "id"))


def _get_permissions(actor):
    email = request.args.get("email") or actor
    return {"success": True, "data": permission_service.get_user_permissions(email)}


def _check_permission(actor):
    sla_id = _require(request.args.get("id"), "id")
    operation = _require(request.args.get("operation"), "operation")
    if operation not in permission_service.ACTION_ROLES:
        raise ValidationError(f"operation must be one of: {', '.join(permission_service.ACTION_ROLES)}")
    allowed = permission_service.check_permission(actor, operation, sla_id=sla_id)
    return {"success": True, "data": {"slaId": sla_id, "operation": operation, "allowed": allowed}}


def _get_teams(actor):
    return {"success": True, "data": lookup_service.get_teams()}


def _get_statuses(actor):
    return {"success": True, "data": lookup_service.get_statuses()}


def _get_tasks(actor):
    return {"success": True, "data": lookup_service.get_tasks()}


def _get_task_team_mapping(actor):
    return {"success": True, "data": lookup_service.get_task_team_mapping()}


GET_ACTIONS = {
    "read": _get_read,
    "query": _get_query,
    "getRelationships": _get_relationships,
    "getActivity": _get_activity,
    "getPermissions": _get_permissions,
    "checkPermission": _check_permission,
    "getTeams": _get_teams,
    "getStatuses": _get_statuses,
    "getTasks": _get_tasks,
    "getTaskTeamMapping": _get_task_team_mapping,
}


# ── POST actions ─────────────────────────────────────────────────────────────

def _post_create(body, actor):
    return sla_service.create_sla(body.get("sla", body.get("data")), actor=actor)


def _post_update(body, actor):
    sla_id = _require(body.get("slaId"), "slaId")
    return sla_service.update_sla(sla_id, body.get("updates", {}), actor=actor)


def _post_delete(body, actor):
    sla_id = _require(body.get("slaId"), "slaId")
    return sla_service.delete_sla(sla_id, row_version=body.get("rowVersion"), actor=actor)


def _post_bulk_create(body, actor):
    return sla_service.bulk_create_slas(body.get("slas"), actor=actor)


def _post_bulk_update(body, actor):
    return sla_service.bulk_update_slas(body.get("updates"), actor=actor)


def _post_create_relationship(body, actor):
    return relationship_service.create_relationship(body.get("relationship"), actor=actor)


def _post_remove_relationship(body, actor):
    rel_id = _require(body.get("relationshipId"), "relationshipId")
    return relationship_service.remove_relationship(rel_id, actor=actor)


POST_ACTIONS = {
    "create": _post_create,
    "update": _post_update,
    "delete": _post_delete,
    "bulkCreate": _post_bulk_create,
    "bulkUpdate": _post_bulk_update,
    "createRelationship": _post_create_relationship,
    "removeRelationship": _post_remove_relationship,
}


# ── Routes ───────────────────────────────────────────────────────────────────

@exec_bp.route("", methods=["GET"])
def exec_get():
    """Dispatch a read-only action from the query string."""
    action = request.args.get("action")
    if not action:
        return jsonify(_descriptor()), 200

    handler = GET_ACTIONS.get(action)
    if handler is None:
        return _respond(failure(E.INVALID_ACTION, "Invalid action"))
    return _guarded(lambda: handler(get_acting_user()))


@exec_bp.route("", methods=["POST"])
def exec_post():
    """Dispatch a mutation from a JSON body ``{"action": ..., ...}``."""
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return _respond(failure(E.VALIDATION_INVALID, "Request body must be a JSON object"))

    handler = POST_ACTIONS.get(body.get("action"))
    if handler is None:
        return _respond(failure(E.INVALID_ACTION, "Invalid action"))
    return _guarded(lambda: handler(body, get_acting_user()))


@exec_bp.route("/export.xlsx", methods=["GET"])
def export_xlsx():
    """Download the (optionally filtered and sorted) SLA table as a workbook."""
    try:
        records = sla_service.load_records(get_acting_user())
        content = export_slas_xlsx(records, filters=_json_param("filters"), sort=_json_param("sort"))
    except ValidationError as exc:
        return _respond(to_failure(exc))
    except Exception:
        db.session.rollback()
        logger.exception("SLA export failed")
        return _respond(failure(E.INTERNAL, "Export failed. Please try again."))

    date_str = datetime.now(timezone.utc).strftime("%Y%m%d")
    filename = f"SLA_Export_{date_str}.xlsx"
    return Response(
        content.getvalue(),
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
