"""
SLAM - Field codec.

Declarative mapping between the SLA table's column headers, the camelCase
field names used on the wire, and the ORM attributes that back them.  Every
column is one ``FieldSpec`` row; there is no runtime string munging.

    header "Target Range Max"  ↔  field "targetRangeMax"  ↔  attr target_range_max

Encoding turns wire values into storage values (dates, floats, joined
strings, JSON text); decoding turns storage values back into JSON-friendly
wire values.
"""

import json
import logging
from dataclasses import dataclass

from slam.utils.helpers import is_blank, parse_date, parse_datetime, to_bool, to_number

logger = logging.getLogger(__name__)

EMAIL_DELIMITER = ";"
TAG_DELIMITER = ","


@dataclass(frozen=True)
class FieldSpec:
    header: str
    name: str
    attr: str
    kind: str
    writable: bool = True


# Store (sheet) order.  ``writable=False`` columns never accept client input.
SLA_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("SLA ID", "slaId", "sla_id", "key", writable=False),
    FieldSpec("Parent ID", "parentId", "parent_id", "key"),
    FieldSpec("SLA Name", "slaName", "sla_name", "text"),
    FieldSpec("SLA Type", "slaType", "sla_type", "enum"),
    FieldSpec("Description", "description", "description", "text"),
    FieldSpec("Team ID", "teamId", "team_id", "key"),
    FieldSpec("Start Date", "startDate", "start_date", "date"),
    FieldSpec("End Date", "endDate", "end_date", "date"),
    FieldSpec("Status", "status", "status", "enum"),
    FieldSpec("Progress %", "progress", "progress", "computed", writable=False),
    FieldSpec("Current Value", "currentValue", "current_value", "number"),
    FieldSpec("Target Value", "targetValue", "target_value", "number"),
    FieldSpec("Target Range Min", "targetRangeMin", "target_range_min", "number"),
    FieldSpec("Target Range Max", "targetRangeMax", "target_range_max", "number"),
    FieldSpec("Use Range", "useRange", "use_range", "bool"),
    FieldSpec("Frequency", "frequency", "frequency", "enum"),
    FieldSpec("Notification Emails", "notificationEmails", "notification_emails", "emails"),
    FieldSpec("External Tracker URL", "externalTrackerUrl", "external_tracker_url", "text"),
    FieldSpec("Tags", "tags", "tags", "tags"),
    FieldSpec("Custom Fields", "customFields", "custom_fields", "json"),
    FieldSpec("Is Active", "isActive", "is_active", "bool"),
    FieldSpec("Created At", "createdAt", "created_at", "datetime", writable=False),
    FieldSpec("Created By", "createdBy", "created_by", "text", writable=False),
    FieldSpec("Updated At", "updatedAt", "updated_at", "datetime", writable=False),
    FieldSpec("Updated By", "updatedBy", "updated_by", "text", writable=False),
    FieldSpec("Row Version", "rowVersion", "row_version", "version", writable=False),
)

BY_HEADER = {spec.header: spec for spec in SLA_FIELDS}
BY_NAME = {spec.name: spec for spec in SLA_FIELDS}

SLA_COLUMNS = tuple(spec.header for spec in SLA_FIELDS)
KEY_HEADER = "SLA ID"
COMPUTED_HEADERS = frozenset({"Progress %", "Row Version"})

LIST_KINDS = frozenset({"emails", "tags"})
TEXT_KINDS = frozenset({"text"})

FIELD_ALIASES = {
    "name": "slaName",
    "type": "slaType",
    "id": "slaId",
}

# Dropped silently from update payloads.
PROTECTED_UPDATE_FIELDS = frozenset({
    "rowVersion",
    "updatedAt",
    "updatedBy",
    "progress",
    "progressPercent",
    "slaId",
    "createdAt",
    "createdBy",
})


class FieldCodecError(ValueError):
    """A wire value could not be converted to its storage type."""

    def __init__(self, spec: FieldSpec, value):
        self.spec = spec
        self.value = value
        super().__init__(f"{spec.header} has an invalid value: {value!r}")


def header_to_field(header: str) -> str | None:
    spec = BY_HEADER.get(header)
    return spec.name if spec else None


def field_to_header(name: str) -> str | None:
    spec = BY_NAME.get(FIELD_ALIASES.get(name, name))
    return spec.header if spec else None


def normalize_payload(payload: dict | None) -> dict:
    """Return a copy of ``payload`` with input aliases resolved to field names.

    When both an alias and its canonical name are present the canonical
    name wins.
    """
    result = {}
    for key, value in (payload or {}).items():
        canonical = FIELD_ALIASES.get(key, key)
        if canonical != key and canonical in payload:
            continue
        result[canonical] = value
    return result


# ── List / JSON helpers ──────────────────────────────────────────────────────

def split_list(raw, delimiter: str) -> list[str]:
    """Split a delimiter-joined cell, stripping entries and dropping empties."""
    if raw is None:
        return []
    if isinstance(raw, list | tuple):
        items = raw
    else:
        items = str(raw).split(delimiter)
    return [str(item).strip() for item in items if not is_blank(item)]


def join_list(values, delimiter: str) -> str:
    if values is None:
        return ""
    if isinstance(values, str):
        values = values.split(delimiter)
    return delimiter.join(str(v).strip() for v in values if not is_blank(v))


def decode_json(raw):
    """Parse stored JSON; blank → ``{}``, unparseable → the raw string."""
    if isinstance(raw, dict | list):
        return raw
    if is_blank(raw):
        return {}
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.debug("Leaving unparseable JSON cell as text: %.60r", raw)
        return raw


def encode_json(value) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str, ensure_ascii=False)


# ── Per-kind conversion ──────────────────────────────────────────────────────

def _delimiter_for(kind: str) -> str:
    return EMAIL_DELIMITER if kind == "emails" else TAG_DELIMITER


def encode_value(spec: FieldSpec, value):
    """Convert a wire value for ``spec`` to the value stored in its column.

    Raises FieldCodecError when a date or number does not parse.
    """
    kind = spec.kind
    if kind in ("computed", "version"):
        return None
    if kind in LIST_KINDS:
        return join_list(value, _delimiter_for(kind))
    if kind == "json":
        return encode_json(value)
    if kind == "bool":
        return to_bool(value)
    if kind == "number":
        if is_blank(value):
            return None
        number = to_number(value)
        if number is None:
            raise FieldCodecError(spec, value)
        return number
    if kind == "date":
        if is_blank(value):
            return None
        parsed = parse_date(value)
        if parsed is None:
            raise FieldCodecError(spec, value)
        return parsed
    if kind == "datetime":
        if is_blank(value):
            return None
        parsed = parse_datetime(value)
        if parsed is None:
            raise FieldCodecError(spec, value)
        return parsed
    # key / text / enum
    if value is None:
        return ""
    return str(value).strip() if kind in ("key", "enum") else str(value)


def decode_value(spec: FieldSpec, raw):
    """Convert a stored cell into its wire representation."""
    kind = spec.kind
    if kind in LIST_KINDS:
        return split_list(raw, _delimiter_for(kind))
    if kind == "json":
        return decode_json(raw)
    if kind == "bool":
        return bool(raw) if raw is not None else False
    if kind == "date":
        parsed = parse_date(raw)
        return parsed.isoformat() if parsed else ""
    if kind == "datetime":
        parsed = parse_datetime(raw)
        return parsed.isoformat() if parsed else ""
    if kind in ("number", "computed"):
        return raw if raw is not None else ""
    if kind == "version":
        return int(raw) if raw is not None else ""
    return raw if raw is not None else ""


def decode_row(cells: dict) -> dict:
    """Decode a ``{header: raw}`` mapping into a ``{field: value}`` record."""
    record = {}
    for header, raw in cells.items():
        spec = BY_HEADER.get(header)
        if spec is None:
            continue
        record[spec.name] = decode_value(spec, raw)
    return record
