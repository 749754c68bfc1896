"""
MakerLab Mission Engine
Blueprint registry and shared view helpers.
"""

import logging

from flask import request

from makerlab.core.exceptions import (
    ConflictError,
    InvariantViolation,
    NotFoundError,
    PersistenceFailure,
    PreconditionNotMet,
    ValidationError,
)
from makerlab.services.permission import PermissionDenied
from makerlab.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def paginate_query(query, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Query params:
        limit  — max items (default 200, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (items_list, total_count)
    """
    total = query.count()
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, total


def register_error_handlers(bp):
    """Map engine exceptions to the JSON error envelope on one blueprint."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_RULE, str(error), details=error.details)

    @bp.errorhandler(PreconditionNotMet)
    def _handle_precondition(error: PreconditionNotMet):
        return api_error(
            E.PRECONDITION, error.reason,
            details={"action": error.action, "current_status": error.current_status},
        )

    @bp.errorhandler(InvariantViolation)
    def _handle_invariant(error: InvariantViolation):
        return api_error(E.INVARIANT, str(error), details={"invariant": error.invariant})

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(error), details={"field": error.field})

    @bp.errorhandler(PermissionDenied)
    def _handle_forbidden(error: PermissionDenied):
        return api_error(E.FORBIDDEN, str(error), details={"action": error.action})

    @bp.errorhandler(PersistenceFailure)
    def _handle_persistence(error: PersistenceFailure):
        logger.error("Persistence failure in %s: %s", request.endpoint, error.cause)
        return api_error(E.PERSISTENCE, "The change could not be saved, please retry",
                         details={"operation": error.operation})

    return bp


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
