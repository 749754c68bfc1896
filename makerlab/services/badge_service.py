"""
Badge catalogue & award service.

Awarding is a set-union on the ``student_badges`` ledger: each badge is
written with ``INSERT … ON CONFLICT DO NOTHING`` against the
``(student_id, badge_id)`` unique constraint.  Two publishes for the same
student racing each other therefore commute; neither loses the other's
award and no award is ever duplicated.
"""

import logging

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from makerlab.core.exceptions import (
    NotFoundError,
    PersistenceFailure,
    PreconditionNotMet,
    ValidationError,
)
from makerlab.models import _utcnow, _uuid, db
from makerlab.models.audit import write_audit
from makerlab.models.badge import BADGE_DESCRIPTIVE_FIELDS, Badge, StudentBadge
from makerlab.models.project import StudentProject
from makerlab.services.badge_evaluator import criterion_from_dict, criterion_to_dict, evaluate_badges
from makerlab.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)


# ── Catalogue ────────────────────────────────────────────────────────────────


def get_badge(badge_id) -> Badge:
    badge = db.session.get(Badge, badge_id)
    if not badge:
        raise NotFoundError(resource="Badge", resource_id=badge_id)
    return badge


def list_badges() -> list[Badge]:
    return Badge.query.order_by(Badge.created_at, Badge.id).all()


def _is_earned(badge_id) -> bool:
    return db.session.query(StudentBadge.id).filter_by(badge_id=badge_id).first() is not None


def _apply_criteria(badge, criteria):
    parsed = criterion_to_dict(criterion_from_dict(criteria))
    badge.criteria_type = parsed["type"]
    badge.criteria_target = parsed["target"]
    badge.criteria_count = parsed.get("count")


def create_badge(data, actor="system") -> Badge:
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Badge name is required", details={"name": "required"})
    if "criteria" not in data:
        raise ValidationError("Badge criteria are required", details={"criteria": "required"})

    badge = Badge(name=name)
    for field in BADGE_DESCRIPTIVE_FIELDS[1:]:
        if field in data:
            setattr(badge, field, data[field])
    _apply_criteria(badge, data["criteria"])

    db.session.add(badge)
    db.session.flush()
    write_audit(
        entity_type="badge", entity_id=badge.id, action="create",
        actor=actor, diff={"name": name, "criteria": badge.criteria_dict()},
    )
    commit_or_raise("badge.create")
    return badge


def update_badge(badge_id, data, actor="system") -> Badge:
    """
    Update a badge.  Criteria are frozen once anyone has earned the badge;
    descriptive fields stay editable.
    """
    badge = get_badge(badge_id)
    changes = {}

    if "criteria" in data:
        new_criteria = criterion_to_dict(criterion_from_dict(data["criteria"]))
        if new_criteria != badge.criteria_dict():
            if _is_earned(badge.id):
                raise PreconditionNotMet(
                    "update_badge", None,
                    "Criteria cannot change once the badge has been earned",
                )
            changes["criteria"] = {"old": badge.criteria_dict(), "new": new_criteria}
            _apply_criteria(badge, new_criteria)

    for field in BADGE_DESCRIPTIVE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == "name":
            value = (value or "").strip()
            if not value:
                raise ValidationError("Badge name is required", details={"name": "required"})
        changes[field] = {"old": getattr(badge, field), "new": value}
        setattr(badge, field, value)

    write_audit(entity_type="badge", entity_id=badge.id, action="update", actor=actor, diff=changes)
    commit_or_raise("badge.update")
    return badge


def delete_badge(badge_id, actor="system") -> None:
    badge = get_badge(badge_id)
    if _is_earned(badge.id):
        raise PreconditionNotMet("delete_badge", None, "Earned badges cannot be deleted")
    write_audit(entity_type="badge", entity_id=badge.id, action="delete", actor=actor,
                diff={"name": badge.name})
    db.session.delete(badge)
    commit_or_raise("badge.delete")


# ── Ledger queries ───────────────────────────────────────────────────────────


def held_badge_ids(student_id) -> set[str]:
    rows = db.session.query(StudentBadge.badge_id).filter_by(student_id=student_id).all()
    return {r[0] for r in rows}


def earned_badge_ids(project_id) -> list[str]:
    rows = (
        db.session.query(StudentBadge.badge_id)
        .filter_by(project_id=project_id)
        .order_by(StudentBadge.earned_at)
        .all()
    )
    return [r[0] for r in rows]


def badges_for_student(student_id) -> list[dict]:
    rows = (
        db.session.query(StudentBadge, Badge)
        .join(Badge, Badge.id == StudentBadge.badge_id)
        .filter(StudentBadge.student_id == student_id)
        .order_by(StudentBadge.earned_at)
        .all()
    )
    return [{**badge.to_dict(), **award.to_dict()} for award, badge in rows]


def published_projects(student_id) -> list[StudentProject]:
    return StudentProject.query.filter_by(student_id=student_id, status="published").all()


# ── Award ────────────────────────────────────────────────────────────────────


def _insert_or_ignore(values):
    dialect = db.session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(StudentBadge).values(**values).on_conflict_do_nothing(
            constraint="uq_student_badge",
        )
    if dialect == "sqlite":
        return sqlite_insert(StudentBadge).values(**values).on_conflict_do_nothing(
            index_elements=["student_id", "badge_id"],
        )
    raise PersistenceFailure("badge.award", RuntimeError(f"Unsupported dialect: {dialect}"))


def award_badges(student_id, badge_ids, project_id=None) -> list[str]:
    """
    Add badges to a student's ledger (flush-level; caller commits).

    Returns:
        The ids actually inserted.  Badges the student already held are
        silently skipped.
    """
    inserted = []
    for badge_id in dict.fromkeys(badge_ids):
        stmt = _insert_or_ignore({
            "id": _uuid(),
            "student_id": student_id,
            "badge_id": badge_id,
            "project_id": project_id,
            "earned_at": _utcnow(),
        })
        result = db.session.execute(stmt)
        if result.rowcount:
            inserted.append(badge_id)
    return inserted


def evaluate_and_award(project, actor="system") -> list[str]:
    """
    Evaluate the owning student's published history and award new badges.

    Commits on its own; runs after the approval that published ``project``
    has been committed.
    """
    student_id = project.student_id
    badges = list_badges()
    candidates = evaluate_badges(published_projects(student_id), badges, held_badge_ids(student_id))
    if not candidates:
        return []

    awarded = award_badges(student_id, candidates, project_id=project.id)
    if awarded:
        write_audit(
            entity_type="project", entity_id=project.id, action="badge.award",
            actor=actor, diff={"student_id": student_id, "badge_ids": awarded},
        )
    commit_or_raise("badge.award")
    db.session.expire(project, ["badge_awards"])

    logger.info(
        "Awarded %d badge(s) to student %s", len(awarded), student_id,
        extra={"project_id": project.id, "event_type": "badge.award"},
    )
    return awarded
