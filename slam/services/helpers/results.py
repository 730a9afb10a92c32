"""Uniform service results.

Public SLA operations never raise past their own boundary.  Decorating
them with ``@service_result`` turns the domain exceptions from
``slam.core.exceptions`` into ``{"success": False, "error", "code"}`` dicts,
rolls back the session, and logs unexpected errors with a traceback.
"""

import functools
import logging

from sqlalchemy.exc import SQLAlchemyError

from slam.core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
    VersionConflictError,
)
from slam.models import db
from slam.utils.errors import E, failure

logger = logging.getLogger(__name__)


def to_failure(exc: Exception) -> dict:
    """Map an exception to its failure dict."""
    if isinstance(exc, NotFoundError):
        return failure(E.NOT_FOUND, exc.public_message)
    if isinstance(exc, ValidationError):
        return failure(E.VALIDATION_INVALID, str(exc), details=exc.details)
    if isinstance(exc, VersionConflictError):
        return failure(E.CONFLICT_VERSION, str(exc))
    if isinstance(exc, ConflictError):
        return failure(E.CONFLICT_DUPLICATE, str(exc))
    if isinstance(exc, ForbiddenError):
        return failure(E.FORBIDDEN, str(exc))
    if isinstance(exc, SQLAlchemyError):
        return failure(E.DATABASE, "Database error")
    return failure(E.INTERNAL, str(exc) or exc.__class__.__name__)


def service_result(func):
    """Decorator: convert exceptions raised by ``func`` into failure results."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (NotFoundError, ValidationError, VersionConflictError, ConflictError, ForbiddenError) as exc:
            db.session.rollback()
            logger.info("%s rejected: %s", func.__name__, exc)
            return to_failure(exc)
        except Exception as exc:
            db.session.rollback()
            logger.exception("%s failed unexpectedly", func.__name__)
            return to_failure(exc)

    return wrapper
