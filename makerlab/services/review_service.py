"""
Review Coordinator — the instructor's decision on a submitted project.

Flow:
    1. Validate: project is ``submitted``; request_changes carries feedback.
    2. Write status + feedback + reviewer + audit row, commit as one unit.
    3. On approve, evaluate and award badges in a second unit of work.  A
       failure there is logged and reported in the result; the approval
       stands.
    4. Notify the student (decision, then one notice per new badge).

Authorization (``can_manage_learning``) is the caller's job; the HTTP
layer enforces it before calling in.
"""

import logging

from makerlab.core.exceptions import PreconditionNotMet, ValidationError
from makerlab.models import _utcnow, db
from makerlab.models.audit import write_audit
from makerlab.models.badge import Badge
from makerlab.models.project import REVIEW_TRANSITIONS, StudentProject
from makerlab.services import badge_service
from makerlab.services.notification import NotificationService
from makerlab.services.project_lifecycle import get_project
from makerlab.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)

REVIEW_DECISIONS = tuple(REVIEW_TRANSITIONS)


def review_queue():
    """Submitted projects, oldest submission first."""
    return (
        StudentProject.query.filter_by(status="submitted")
        .order_by(StudentProject.updated_at.asc())
        .all()
    )


def review_project(project_id, decision, reviewer_id, feedback=None) -> dict:
    """
    Apply an instructor decision.

    Returns:
        {"project_id", "previous_status", "new_status", "decision",
         "new_badge_ids", "badge_error"}

    Raises:
        NotFoundError, ValidationError, PreconditionNotMet, PersistenceFailure
    """
    rule = REVIEW_TRANSITIONS.get(decision)
    if rule is None:
        raise ValidationError(
            f"Unknown review decision: {decision}",
            details={"decision": f"must be one of: {', '.join(REVIEW_DECISIONS)}"},
        )

    feedback = (feedback or "").strip() or None
    if decision == "request_changes" and not feedback:
        raise ValidationError(
            "Feedback is required when requesting changes", details={"feedback": "required"},
        )

    project = get_project(project_id)
    if project.status not in rule["from"]:
        raise PreconditionNotMet(decision, project.status, "Only submitted projects can be reviewed")

    previous = project.status
    project.status = rule["to"]
    project.instructor_feedback = feedback
    project.reviewed_by = str(reviewer_id)
    project.reviewed_at = _utcnow()

    write_audit(
        entity_type="project", entity_id=project.id, action=f"project.{decision}",
        actor=str(reviewer_id),
        diff={"status": {"old": previous, "new": project.status}, "feedback": feedback},
    )
    commit_or_raise(f"project.{decision}")

    logger.info(
        "Review %s: %s → %s", decision, previous, project.status,
        extra={"project_id": project.id, "event_type": f"project.{decision}"},
    )

    new_badge_ids = []
    badge_error = None
    if decision == "approve":
        try:
            new_badge_ids = badge_service.evaluate_and_award(project, actor=str(reviewer_id))
        except Exception as exc:  # approval is already committed
            db.session.rollback()
            badge_error = str(exc) or exc.__class__.__name__
            logger.exception(
                "Badge evaluation failed after approval",
                extra={"project_id": project_id, "event_type": "badge.failed"},
            )

    events = [NotificationService.review_event(project, decision, feedback)]
    if new_badge_ids:
        badges = Badge.query.filter(Badge.id.in_(new_badge_ids)).all()
        by_id = {b.id: b for b in badges}
        events.extend(
            NotificationService.badge_event(project.student_id, by_id[bid])
            for bid in new_badge_ids if bid in by_id
        )
    NotificationService.dispatch(events)

    return {
        "project_id": project.id,
        "previous_status": previous,
        "new_status": project.status,
        "decision": decision,
        "new_badge_ids": new_badge_ids,
        "badge_error": badge_error,
    }
