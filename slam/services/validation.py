"""
SLAM - SLA business-rule validation.

Both entry points collect every problem first and raise a single
``ValidationError`` whose message joins them with ``"; "`` and whose
``details`` maps wire field names to their individual messages.
"""

import logging

from email_validator import EmailNotValidError, validate_email

from slam.core.exceptions import ValidationError
from slam.models.sla import DELETED_STATUS, FREQUENCIES, SLA_STATUSES, SLA_TYPES
from slam.services.field_codec import BY_NAME, EMAIL_DELIMITER, split_list
from slam.utils.helpers import is_blank, parse_date, to_bool, to_number

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("slaName", "slaType", "teamId", "startDate", "endDate")
DATE_FIELDS = ("startDate", "endDate")
NUMBER_FIELDS = ("currentValue", "targetValue", "targetRangeMin", "targetRangeMax")
PERCENT_FIELDS = ("targetValue", "targetRangeMin", "targetRangeMax")

CLIENT_STATUSES = SLA_STATUSES - {DELETED_STATUS}


class _Collector:
    def __init__(self):
        self.errors = []
        self.details = {}

    def add(self, field, message):
        self.errors.append(message)
        self.details.setdefault(field, message)

    def raise_if_any(self):
        if self.errors:
            raise ValidationError("; ".join(self.errors), details=self.details)


def _label(field):
    spec = BY_NAME.get(field)
    return spec.header if spec else field


def _check_enum(errors, data, field, allowed):
    value = data.get(field)
    if is_blank(value):
        return
    if str(value).strip() not in allowed:
        errors.add(field, f"{_label(field)} must be one of: {', '.join(sorted(allowed))}")


def _check_formats(errors, data, allow_deleted=False):
    _check_enum(errors, data, "slaType", SLA_TYPES)
    _check_enum(errors, data, "status", SLA_STATUSES if allow_deleted else CLIENT_STATUSES)
    _check_enum(errors, data, "frequency", FREQUENCIES)

    for field in DATE_FIELDS:
        value = data.get(field)
        if not is_blank(value) and parse_date(value) is None:
            errors.add(field, f"{_label(field)} is not a valid date (use YYYY-MM-DD)")

    for field in NUMBER_FIELDS:
        value = data.get(field)
        if not is_blank(value) and to_number(value) is None:
            errors.add(field, f"{_label(field)} must be a number")

    if "notificationEmails" in data:
        for email in split_list(data.get("notificationEmails"), EMAIL_DELIMITER):
            try:
                validate_email(email, check_deliverability=False)
            except EmailNotValidError as exc:
                errors.add("notificationEmails", f"Invalid email {email!r}: {exc}")


def _check_targets(errors, data, sla_type):
    if sla_type == "percentage":
        for field in PERCENT_FIELDS:
            number = to_number(data.get(field))
            if number is not None and not 0 <= number <= 100:
                errors.add(field, f"{_label(field)} must be between 0 and 100 for percentage SLAs")

    low = to_number(data.get("targetRangeMin"))
    high = to_number(data.get("targetRangeMax"))
    if low is not None and high is not None and low > high:
        errors.add("targetRangeMin", "Target Range Min must not exceed Target Range Max")


def validate_sla_data(data: dict) -> None:
    """Validate a create payload (field names already normalised).

    Raises:
        ValidationError: with every problem found.
    """
    errors = _Collector()

    for field in REQUIRED_FIELDS:
        if is_blank(data.get(field)):
            errors.add(field, f"{_label(field)} is required")

    if to_bool(data.get("useRange")):
        for field in ("targetRangeMin", "targetRangeMax"):
            if is_blank(data.get(field)):
                errors.add(field, f"{_label(field)} is required when Use Range is set")
    elif is_blank(data.get("targetValue")):
        errors.add("targetValue", f"{_label('targetValue')} is required")

    _check_formats(errors, data)
    _check_targets(errors, data, str(data.get("slaType") or "").strip())
    errors.raise_if_any()


def validate_updates(updates: dict, allow_deleted: bool = False, sla_type: str | None = None) -> None:
    """Validate only the fields present in a partial update.

    ``sla_type`` is the record's effective type after the update and drives
    the percentage bounds check.
    """
    errors = _Collector()

    for field in REQUIRED_FIELDS:
        if field in updates and is_blank(updates[field]):
            errors.add(field, f"{_label(field)} cannot be empty")

    _check_formats(errors, updates, allow_deleted=allow_deleted)
    _check_targets(errors, updates, sla_type)
    errors.raise_if_any()
