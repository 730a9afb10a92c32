"""Standardised error responses.

Usage
-----
    from slam.utils.errors import api_error, failure, E

    return api_error(E.NOT_FOUND, "SLA not found")
    return failure(E.VALIDATION_INVALID, "SLA Type is invalid")
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants (``ERR_`` prefix)."""

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    INVALID_ACTION = "ERR_INVALID_ACTION"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_VERSION = "ERR_CONFLICT_VERSION"

    # Permissions – HTTP 403
    FORBIDDEN = "ERR_FORBIDDEN"

    # Batch with some failed items – HTTP 207
    PARTIAL = "ERR_PARTIAL"

    # Server – HTTP 500
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.INVALID_ACTION: 400,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_VERSION: 409,
    E.FORBIDDEN: 403,
    E.PARTIAL: 207,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def status_for(code: str | None) -> int:
    """HTTP status for an error code; results without a code are 200."""
    if code is None:
        return 200
    return _DEFAULT_STATUS.get(code, 400)


def failure(code: str, message: str, *, details: dict | None = None) -> dict:
    """Build the uniform failure result dict used by every service."""
    body: dict = {
        "success": False,
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details
    return body


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload.

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """
    http_status = status or status_for(code)
    return jsonify(failure(code, message, details=details)), http_status
