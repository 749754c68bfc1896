"""
Engine-wide exception hierarchy.

Services raise these types; blueprints register handlers against them
once and get consistent HTTP status codes everywhere.

Usage:
    from makerlab.core.exceptions import NotFoundError, PreconditionNotMet

    raise NotFoundError(resource="StudentProject", resource_id=project_id)
    raise PreconditionNotMet("submit", "building", "Finish all tasks before submitting")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "StudentProject", "Badge").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed but violates a business rule.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class PreconditionNotMet(Exception):
    """Raised when a guarded transition is attempted without its guard.

    Recoverable: ``reason`` is an actionable sentence meant for the user
    ("Finish all tasks before submitting").  Maps to HTTP 409.

    Args:
        action: The requested transition or operation (e.g. "submit").
        current_status: Status of the entity when the action was attempted.
        reason: The specific unmet condition.
    """

    def __init__(self, action: str, current_status: str | None, reason: str) -> None:
        self.action = action
        self.current_status = current_status
        self.reason = reason
        msg = f"Cannot '{action}'"
        if current_status is not None:
            msg += f" (status={current_status})"
        msg += f": {reason}"
        super().__init__(msg)


class PersistenceFailure(Exception):
    """Raised when the store rejected a write.

    Retryable by the caller; the engine never retries on its own.
    Maps to HTTP 503.
    """

    def __init__(self, operation: str, cause: Exception | None = None) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"Could not persist '{operation}'")


class InvariantViolation(Exception):
    """Raised when a write would break a system-wide invariant.

    Example: a second ProcessTemplate flagged as default.  Maps to HTTP 409.
    """

    def __init__(self, invariant: str, message: str) -> None:
        self.invariant = invariant
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would create a duplicate unique value.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")
