"""Shared helpers for services and blueprints.

commit_or_raise:   commit the session, mapping store errors to PersistenceFailure
clean_str_list:    normalise a JSON list of strings (skills, media, step titles)
"""
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from makerlab.core.exceptions import InvariantViolation, PersistenceFailure
from makerlab.models import db

logger = logging.getLogger(__name__)


def commit_or_raise(operation: str):
    """Commit the current SQLAlchemy session or raise a typed failure.

    The session is rolled back before raising so the caller can retry the
    whole operation.  Nothing is retried here.
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit (%s): %s", operation, exc.orig)
        raise InvariantViolation(operation, f"Constraint violated during '{operation}'") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Database error on commit (%s)", operation)
        raise PersistenceFailure(operation, exc) from exc


def clean_str_list(values) -> list[str]:
    """Strip entries and drop blanks; None → []."""
    if not values:
        return []
    if isinstance(values, str):
        values = [values]
    return [str(v).strip() for v in values if v is not None and str(v).strip()]
