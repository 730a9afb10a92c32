"""
SLAM-wide exception hierarchy.

Services raise these types; ``slam.services.helpers.results`` turns them
into ``{success: False, error, code}`` result dicts so the HTTP facade
never has to know about individual services.

Usage:
    from slam.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="SLA", resource_id="SLA-000042")
    raise ValidationError("SLA Name is required", details={"slaName": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested record does not exist.

    Args:
        resource: Human-readable entity name (e.g. "SLA", "Relationship").
        resource_id: The key that was looked up.  Logged, not returned.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.public_message = f"{resource} not found"
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails a business rule.

    Args:
        message: Human-readable explanation; multiple problems are joined
                 with ``"; "``.
        details: Optional field-level breakdown.  Keys are wire field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique value.

    Args:
        resource: Entity name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class VersionConflictError(Exception):
    """Raised when the caller's ``rowVersion`` no longer matches the stored row.

    The message is shown to end users verbatim.
    """

    MESSAGE = "SLA has been modified by another user. Please refresh and try again."

    def __init__(self, sla_id: str | None = None, expected=None, actual=None) -> None:
        self.sla_id = sla_id
        self.expected = expected
        self.actual = actual
        super().__init__(self.MESSAGE)


class ForbiddenError(Exception):
    """Raised when the acting user lacks the role required for an action."""

    def __init__(self, action: str, user: str | None = None) -> None:
        self.action = action
        self.user = user
        super().__init__(f"Permission denied: cannot {action} this SLA")
