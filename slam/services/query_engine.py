"""
SLAM - Query engine: filter → sort → paginate over decoded SLA records.

Operates on plain ``{field: value}`` dicts as produced by the field codec,
so the same helpers serve the query action and the xlsx export.

Filter semantics (AND across keys, ``None`` values ignored):
    {"start": .., "end": ..}   inclusive range (dates, datetimes or numbers);
                               an unparseable bound is a ValidationError
    "dateRange": {...}         range on ``endDate``
    "customFields": {...}      every given key equal
    [a, b]                     list field: any element present;
                               scalar field: value is one of the candidates
    True / False               exact boolean match
    3 / 2.5                    numeric equality
    "text"                     free text: case-insensitive contains;
                               list field: element present; other: exact
"""

import logging
from datetime import timedelta

from flask import current_app

from slam.core.exceptions import ValidationError
from slam.services.field_codec import BY_NAME, LIST_KINDS, TEXT_KINDS
from slam.utils.helpers import is_blank, parse_date, parse_datetime, to_bool, to_number

logger = logging.getLogger(__name__)

DATE_RANGE_KEY = "dateRange"
DATE_RANGE_FIELD = "endDate"


def _kind(field):
    spec = BY_NAME.get(field)
    return spec.kind if spec else None


def _is_range(value):
    return isinstance(value, dict) and ("start" in value or "end" in value)


# ── Filtering ────────────────────────────────────────────────────────────────

def _bound(parse, field, value):
    """Parse one non-blank range bound; ``None`` for an open bound."""
    if is_blank(value):
        return None
    parsed = parse(value)
    if parsed is None:
        raise ValidationError(
            f"{field} range bound {value!r} is not a valid date",
            details={field: "invalid range bound"},
        )
    return parsed


def _in_range(kind, field, actual, bounds):
    start, end = bounds.get("start"), bounds.get("end")

    if kind in ("number", "computed", "version"):
        low, high = to_number(start), to_number(end)
        for raw, parsed in ((start, low), (end, high)):
            if parsed is None and not is_blank(raw):
                raise ValidationError(
                    f"{field} range bound {raw!r} is not a valid number",
                    details={field: "invalid range bound"},
                )
        value = to_number(actual)
        if value is None:
            return False
        return (low is None or value >= low) and (high is None or value <= high)

    if kind == "datetime":
        low = _bound(parse_datetime, field, start)
        high = _bound(parse_datetime, field, end)
        if high is not None and isinstance(end, str) and len(end.strip()) == 10:
            # date-only upper bound covers the whole day
            high += timedelta(days=1)
            inclusive = False
        else:
            inclusive = True
        value = parse_datetime(actual)
        if value is None:
            return False
        if low is not None and value < low:
            return False
        if high is None:
            return True
        return value <= high if inclusive else value < high

    low, high = _bound(parse_date, field, start), _bound(parse_date, field, end)
    value = parse_date(actual)
    if value is None:
        return False
    return (low is None or value >= low) and (high is None or value <= high)


def _scalar_equals(kind, actual, expected):
    if kind == "bool" or isinstance(expected, bool):
        return to_bool(actual) == to_bool(expected)
    if kind in ("number", "computed", "version") or isinstance(expected, int | float):
        a, e = to_number(actual), to_number(expected)
        return a is not None and a == e
    if kind == "date":
        a, e = parse_date(actual), parse_date(expected)
        return a is not None and a == e
    return str(actual if actual is not None else "").strip() == str(expected).strip()


def _matches(record, field, expected):
    if field == DATE_RANGE_KEY:
        if not isinstance(expected, dict):
            raise ValidationError("dateRange filter must be an object with start/end")
        return _in_range("date", DATE_RANGE_KEY, record.get(DATE_RANGE_FIELD), expected)

    actual = record.get(field)
    kind = _kind(field)

    if field == "customFields" and isinstance(expected, dict):
        if not isinstance(actual, dict):
            return False
        return all(actual.get(k) == v for k, v in expected.items())

    if _is_range(expected):
        return _in_range(kind, field, actual, expected)

    if isinstance(expected, list | tuple):
        if not expected:
            return True
        if kind in LIST_KINDS or isinstance(actual, list):
            present = set(actual or [])
            return any(str(item) in present for item in expected)
        return any(_scalar_equals(kind, actual, item) for item in expected)

    if isinstance(expected, str):
        if kind in LIST_KINDS or isinstance(actual, list):
            return expected.strip() in (actual or [])
        if kind in TEXT_KINDS:
            return expected.strip().lower() in str(actual or "").lower()

    return _scalar_equals(kind, actual, expected)


def apply_filters(records, filters):
    """Records matching every non-None filter, in their original order."""
    if not filters:
        return list(records)
    if not isinstance(filters, dict):
        raise ValidationError("filters must be an object")
    active = {k: v for k, v in filters.items() if v is not None}
    for field, expected in active.items():
        # reject malformed bounds even when there is nothing to match
        if field == DATE_RANGE_KEY and isinstance(expected, dict):
            _in_range("date", field, None, expected)
        elif field != "customFields" and _is_range(expected):
            _in_range(_kind(field), field, None, expected)
    return [r for r in records if all(_matches(r, k, v) for k, v in active.items())]


# ── Sorting ──────────────────────────────────────────────────────────────────

def _sort_key(kind, value):
    if is_blank(value):
        return (0, 0)
    if isinstance(value, bool):
        return (1, int(value))
    if isinstance(value, int | float):
        return (1, value)
    if kind == "date":
        parsed = parse_date(value)
        if parsed is not None:
            return (2, parsed.toordinal())
    if kind == "datetime":
        parsed = parse_datetime(value)
        if parsed is not None:
            return (2, parsed.timestamp())
    if isinstance(value, list):
        return (3, ",".join(value).lower())
    return (3, str(value).lower())


def apply_sorting(records, sort):
    """Stable sort by ``sort["field"]``; ``direction`` "desc" reverses.

    Blanks sort first ascending, then numbers, dates, and case-insensitive
    strings.  Ties keep their incoming order in both directions.
    """
    if not sort:
        return list(records)
    if not isinstance(sort, dict) or is_blank(sort.get("field")):
        raise ValidationError("sort must be an object with a field")
    field = sort["field"]
    direction = str(sort.get("direction") or "asc").lower()
    if direction not in ("asc", "desc"):
        raise ValidationError("sort direction must be 'asc' or 'desc'")

    kind = _kind(field)
    return sorted(
        records,
        key=lambda r: _sort_key(kind, r.get(field)),
        reverse=direction == "desc",
    )


# ── Pagination ───────────────────────────────────────────────────────────────

def _positive_int(value, name):
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a positive integer") from None
    if number < 1:
        raise ValidationError(f"{name} must be a positive integer")
    return number


def apply_pagination(records, pagination):
    """Slice one 1-indexed page.

    Returns ``(page_records, page, page_size)``.  Without pagination every
    record is returned and ``page_size`` is the record count.
    """
    records = list(records)
    if not pagination:
        return records, 1, len(records)
    if not isinstance(pagination, dict):
        raise ValidationError("pagination must be an object")

    default_size = current_app.config.get("DEFAULT_PAGE_SIZE", 50)
    max_size = current_app.config.get("MAX_PAGE_SIZE", 1000)

    page = _positive_int(pagination.get("page", 1), "page")
    page_size = _positive_int(pagination.get("pageSize", default_size), "pageSize")
    if page_size > max_size:
        logger.debug("pageSize %d capped at %d", page_size, max_size)
        page_size = max_size

    start = (page - 1) * page_size
    return records[start:start + page_size], page, page_size
