"""SLA service layer - CRUD, soft delete, query and bulk operations.

Transaction policy: every public operation owns its transaction and
commits before returning.  The activity-log entry is written in a second,
independent commit so a logging failure can never undo the data change.

Concurrency: ``Sla.row_version`` is the ORM ``version_id_col``.  The
explicit ``rowVersion`` comparison rejects callers holding an old copy;
the versioned ``UPDATE ... WHERE row_version = :loaded`` rejects a writer
that slipped in between that comparison and the commit.

Every public function returns ``{"success": bool, ...}`` and never raises
(see ``slam.services.helpers.results.service_result``).
"""
import logging

from flask import current_app
from sqlalchemy.orm.exc import StaleDataError

from slam.core.exceptions import NotFoundError, ValidationError, VersionConflictError
from slam.models import db
from slam.models.audit import ActivityLog, write_activity
from slam.models.sla import DEFAULT_FREQUENCY, DEFAULT_STATUS, DELETED_STATUS, Sla
from slam.services.field_codec import (
    BY_NAME,
    COMPUTED_HEADERS,
    KEY_HEADER,
    PROTECTED_UPDATE_FIELDS,
    SLA_FIELDS,
    FieldCodecError,
    decode_row,
    decode_value,
    encode_value,
    normalize_payload,
)
from slam.services.helpers.results import service_result
from slam.services.id_generator import next_sla_id
from slam.services.permission_service import (
    can_access,
    enforcement_enabled,
    get_user_permissions,
    require_permission,
)
from slam.services.query_engine import apply_filters, apply_pagination, apply_sorting
from slam.services.relationship_service import relationships_for
from slam.services.row_store import RowStore
from slam.services.validation import validate_sla_data, validate_updates
from slam.utils.errors import E
from slam.utils.helpers import commit_or_raise, is_blank, to_bool, to_number, utcnow

logger = logging.getLogger(__name__)

store = RowStore(Sla, SLA_FIELDS, KEY_HEADER, computed=COMPUTED_HEADERS)


def _actor(actor):
    return actor or current_app.config.get("DEFAULT_ACTOR", "system")


def _encode(spec, value):
    try:
        return encode_value(spec, value)
    except FieldCodecError as exc:
        raise ValidationError(str(exc), details={spec.name: str(exc)}) from exc


def _log_activity(sla_id, action_type, details, actor, old_value=None, new_value=None):
    """Record an activity entry in its own commit; failures are logged, never raised."""
    try:
        write_activity(
            sla_id=sla_id,
            action_type=action_type,
            action_details=details,
            actor=actor,
            old_value=old_value,
            new_value=new_value,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.warning("Activity log write failed for %s (%s)", sla_id, action_type, exc_info=True)


# ── Create ───────────────────────────────────────────────────────────────


@service_result
def create_sla(data, actor=None):
    """Validate a payload, assign the next SLA id and append the row.

    Args:
        data: Wire-format SLA fields (aliases ``name``/``type`` accepted).
        actor: Identity recorded in the audit columns.

    Returns:
        ``{"success": True, "slaId", "message"}`` or a failure dict.
    """
    actor = _actor(actor)
    if not isinstance(data, dict):
        raise ValidationError("SLA payload must be an object")
    data = normalize_payload(data)
    validate_sla_data(data)
    require_permission(actor, "edit", team_id=str(data.get("teamId")).strip())

    if to_bool(data.get("useRange")) and is_blank(data.get("targetValue")):
        low = to_number(data.get("targetRangeMin"))
        high = to_number(data.get("targetRangeMax"))
        data["targetValue"] = (low + high) / 2

    if is_blank(data.get("status")):
        data["status"] = DEFAULT_STATUS
    if is_blank(data.get("frequency")):
        data["frequency"] = DEFAULT_FREQUENCY
    if is_blank(data.get("currentValue")):
        data["currentValue"] = 0
    if data.get("isActive") is None:
        data["isActive"] = True

    values = {}
    for key, value in data.items():
        spec = BY_NAME.get(key)
        if spec is None:
            logger.info("Ignoring unknown field %r on create", key)
            continue
        if not spec.writable:
            continue
        values[spec.header] = _encode(spec, value)

    sla_id = next_sla_id()
    now = utcnow()
    values.update({
        KEY_HEADER: sla_id,
        "Created At": now,
        "Created By": actor,
        "Updated At": now,
        "Updated By": actor,
    })

    store.append_row(values)
    store.flush()
    commit_or_raise()
    logger.info("SLA created", extra={"sla_id": sla_id, "action": "create", "actor": actor})

    _log_activity(sla_id, "created", f"Created SLA: {data.get('slaName')}", actor, new_value=data)
    return {"success": True, "slaId": sla_id, "message": "SLA created successfully"}


# ── Read ─────────────────────────────────────────────────────────────────


@service_result
def read_sla(sla_id, actor=None):
    """Decoded SLA record with its relationships attached."""
    row = store.find_row_by_key(sla_id)
    if row is None:
        raise NotFoundError("SLA", sla_id)
    require_permission(_actor(actor), "read", sla_id=row.sla_id, team_id=row.team_id)

    record = decode_row(store.read_row(row))
    record["relationships"] = relationships_for(row.sla_id)
    return {"success": True, "data": record}


# ── Update / soft delete ─────────────────────────────────────────────────


def _coerce_row_version(supplied):
    """Integral rowVersion or ValidationError; ``2.0`` and ``"2"`` are accepted."""
    if isinstance(supplied, bool):
        supplied = None
    elif isinstance(supplied, float):
        supplied = int(supplied) if supplied.is_integer() else None
    elif isinstance(supplied, str):
        supplied = supplied.strip()
    try:
        return int(supplied)
    except (TypeError, ValueError):
        raise ValidationError("rowVersion must be an integer", details={"rowVersion": "invalid"}) from None


def _check_row_version(row, supplied):
    if is_blank(supplied):
        if current_app.config.get("REQUIRE_ROW_VERSION"):
            raise ValidationError("rowVersion is required", details={"rowVersion": "required"})
        logger.debug("No rowVersion supplied for %s; applying last-write-wins", row.sla_id)
        return
    expected = _coerce_row_version(supplied)
    if expected != row.row_version:
        raise VersionConflictError(row.sla_id, expected=expected, actual=row.row_version)


def _apply_update(sla_id, updates, actor, allow_deleted=False, action="edit"):
    """Version-check, validate and write one update in a single transaction.

    Returns:
        (row, old_values, new_values) after commit.
    """
    if not isinstance(updates, dict):
        raise ValidationError("updates must be an object")
    updates = normalize_payload(updates)

    row = store.find_row_by_key(sla_id, for_update=True)
    if row is None:
        raise NotFoundError("SLA", sla_id)
    require_permission(actor, action, sla_id=row.sla_id, team_id=row.team_id)

    _check_row_version(row, updates.get("rowVersion"))

    fields = {}
    for key, value in updates.items():
        if key in PROTECTED_UPDATE_FIELDS:
            continue
        if key not in BY_NAME or not BY_NAME[key].writable:
            logger.info("Ignoring unknown field %r on update of %s", key, sla_id)
            continue
        fields[key] = value

    validate_updates(
        fields,
        allow_deleted=allow_deleted,
        sla_type=str(fields.get("slaType") or row.sla_type or "").strip(),
    )

    # Encode everything before the first write so a bad value leaves the row untouched.
    encoded = [(BY_NAME[key], _encode(BY_NAME[key], value)) for key, value in fields.items()]

    old_values, new_values = {}, {}
    for spec, value in encoded:
        old_values[spec.name] = decode_value(spec, getattr(row, spec.attr))
        store.write_cell(row, spec.header, value)
        new_values[spec.name] = decode_value(spec, value)

    store.write_cell(row, "Updated At", utcnow())
    store.write_cell(row, "Updated By", actor)

    try:
        store.flush()
    except StaleDataError as exc:
        db.session.rollback()
        raise VersionConflictError(sla_id) from exc
    commit_or_raise()
    return row, old_values, new_values


@service_result
def update_sla(sla_id, updates, actor=None):
    """Apply a partial update under optimistic locking.

    ``updates["rowVersion"]`` must match the stored version when supplied;
    the protected fields (row version, audit columns, progress) are
    dropped silently.  The row version advances by exactly one, even for
    an empty update.
    """
    actor = _actor(actor)
    row, old_values, new_values = _apply_update(sla_id, updates, actor)
    row_version = row.row_version
    logger.info("SLA updated", extra={"sla_id": sla_id, "action": "update", "actor": actor})

    changed = ", ".join(new_values) or "none"
    _log_activity(sla_id, "updated", f"Updated fields: {changed}", actor, old_values, new_values)
    return {"success": True, "message": "SLA updated successfully", "rowVersion": row_version}


@service_result
def delete_sla(sla_id, row_version=None, actor=None):
    """Soft delete: ``status`` → deleted, ``isActive`` → False; nothing else changes."""
    actor = _actor(actor)
    payload = {"isActive": False, "status": DELETED_STATUS}
    if row_version is not None:
        payload["rowVersion"] = row_version

    row, old_values, new_values = _apply_update(
        sla_id, payload, actor, allow_deleted=True, action="delete",
    )
    new_version = row.row_version
    logger.info("SLA deleted", extra={"sla_id": sla_id, "action": "delete", "actor": actor})

    _log_activity(sla_id, "deleted", "Soft deleted SLA", actor, old_values, new_values)
    return {"success": True, "message": "SLA deleted successfully", "rowVersion": new_version}


# ── Query ────────────────────────────────────────────────────────────────


def load_records(actor=None):
    """Every keyed row decoded, restricted to readable rows when permissions are enforced."""
    records = [decode_row(store.read_row(row)) for row in store.iter_rows()]
    if enforcement_enabled():
        perms = get_user_permissions(_actor(actor))
        records = [
            r for r in records
            if can_access(perms, "read", sla_id=r.get("slaId"), team_id=r.get("teamId"))
        ]
    return records


@service_result
def query_slas(filters=None, sort=None, pagination=None, actor=None):
    """Filter (AND) → total → stable sort → paginate.

    Returns:
        ``{"success": True, "data", "total", "page", "pageSize"}``
    """
    matched = apply_filters(load_records(actor), filters)
    total = len(matched)
    ordered = apply_sorting(matched, sort)
    page_rows, page, page_size = apply_pagination(ordered, pagination)
    return {
        "success": True,
        "data": page_rows,
        "total": total,
        "page": page,
        "pageSize": page_size,
    }


@service_result
def get_activity(sla_id):
    """Activity log entries for one SLA, oldest first."""
    entries = (
        ActivityLog.query
        .filter_by(sla_id=sla_id)
        .order_by(ActivityLog.timestamp, ActivityLog.id)
        .all()
    )
    return {"success": True, "data": [e.to_dict() for e in entries]}


# ── Bulk ─────────────────────────────────────────────────────────────────


def _batch_result(done_key, done, errors, attempted):
    result = {"success": not errors, done_key: done, "errors": errors}
    if errors:
        result["error"] = f"{len(errors)} of {attempted} items failed"
        result["code"] = E.PARTIAL
    return result


@service_result
def bulk_create_slas(payloads, actor=None):
    """Create each payload independently; one failure never stops the rest."""
    if not isinstance(payloads, list):
        raise ValidationError("slas must be a list")
    actor = _actor(actor)

    created, errors = [], []
    for index, payload in enumerate(payloads):
        result = create_sla(payload, actor=actor)
        if result["success"]:
            created.append(result["slaId"])
        else:
            errors.append({"index": index, "error": result["error"]})

    logger.info("Bulk create: %d created, %d failed", len(created), len(errors))
    return _batch_result("created", created, errors, len(payloads))


@service_result
def bulk_update_slas(items, actor=None):
    """Apply ``[{slaId, data}]`` updates independently, best effort."""
    if not isinstance(items, list):
        raise ValidationError("updates must be a list")
    actor = _actor(actor)

    updated, errors = [], []
    for item in items:
        item = item if isinstance(item, dict) else {}
        sla_id = item.get("slaId")
        if is_blank(sla_id):
            errors.append({"slaId": sla_id, "error": "slaId is required"})
            continue
        data = item.get("data", item.get("updates", {}))
        result = update_sla(sla_id, data, actor=actor)
        if result["success"]:
            updated.append(sla_id)
        else:
            errors.append({"slaId": sla_id, "error": result["error"]})

    logger.info("Bulk update: %d updated, %d failed", len(updated), len(errors))
    return _batch_result("updated", updated, errors, len(items))
