"""Shared parsing and session helpers.

parse_date:      tolerant date parser (returns None on bad input)
parse_datetime:  tolerant datetime parser, normalised to UTC
to_number:       float coercion (returns None on blank/bad input)
to_bool:         spreadsheet-style boolean coercion
commit_or_raise: commit the session, translating store errors to domain errors
"""
import logging
from datetime import UTC, date, datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from slam.core.exceptions import ConflictError, VersionConflictError
from slam.models import db

logger = logging.getLogger(__name__)

_TRUE_STRINGS = {"true", "yes", "y", "1", "on"}
_FALSE_STRINGS = {"false", "no", "n", "0", "off", ""}


def utcnow() -> datetime:
    return datetime.now(UTC)


def is_blank(value) -> bool:
    """True for None, empty strings and whitespace-only strings."""
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS[+HH:MM] (datetime ISO → .date())
    - DD.MM.YYYY
    """
    if is_blank(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    try:
        return datetime.strptime(text, "%d.%m.%Y").date()
    except ValueError:
        return None


def parse_datetime(value):
    """Parse an ISO datetime (or bare date) into an aware UTC datetime.

    Naive inputs are taken to be UTC.  Returns None for empty/invalid input.
    """
    if is_blank(value):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def to_number(value):
    """Coerce to float; None for blank or unparseable input. Booleans are rejected."""
    if is_blank(value) or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return None


def to_bool(value, default=False) -> bool:
    """Coerce checkbox-ish input ("TRUE", "yes", 1, ...) to bool."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int | float):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    return default


# ── Database commit helper ───────────────────────────────────────────────────

def commit_or_raise(resource="SLA"):
    """Commit the current session; roll back and raise a domain error on failure.

    StaleDataError  → VersionConflictError (row changed since it was loaded)
    IntegrityError  → ConflictError (unique key collision)
    Anything else is rolled back and re-raised unchanged.
    """
    try:
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        logger.warning("Concurrent modification detected on commit: %s", exc)
        raise VersionConflictError() from exc
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        raise ConflictError(resource, "key") from exc
    except Exception:
        db.session.rollback()
        raise
