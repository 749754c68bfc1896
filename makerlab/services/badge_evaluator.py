"""
Badge Evaluator — pure criteria evaluation over a student's published work.

Criteria are a tagged variant with two cases:

    ProjectCountCriterion(target, count)
        target == "all"  → count every published project
        target == station → count published projects in that station
    SkillCriterion(target)
        earned when any published project lists the skill in skills_acquired

The evaluator reads nothing but its arguments: no session, no clock, no
counters.  Given the same snapshot and the same held set it always returns
the same list, and once the result is added to the held set a second run
returns [].

Usage:
    from makerlab.services.badge_evaluator import evaluate_badges

    new_ids = evaluate_badges(published_projects, badges, held_badge_ids)
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Union

from makerlab.core.exceptions import ValidationError

ALL_STATIONS = "all"


@dataclass(frozen=True)
class ProjectCountCriterion:
    target: str
    count: int


@dataclass(frozen=True)
class SkillCriterion:
    target: str


Criterion = Union[ProjectCountCriterion, SkillCriterion]


@dataclass(frozen=True)
class ProjectSnapshot:
    """The slice of a project the evaluator needs."""

    id: str
    station: str
    skills_acquired: tuple[str, ...] = ()
    status: str = "published"

    @classmethod
    def of(cls, project: Any) -> "ProjectSnapshot":
        if isinstance(project, cls):
            return project
        return cls(
            id=str(project.id),
            station=project.station or "",
            skills_acquired=tuple(project.skills_acquired or ()),
            status=project.status,
        )


# ── Serialisation ────────────────────────────────────────────────────────────


def criterion_from_dict(data: dict) -> Criterion:
    """Build a criterion from its stored shape ``{type, target, count?}``."""
    if not isinstance(data, dict):
        raise ValidationError("criteria must be an object")

    kind = data.get("type")
    target = str(data.get("target") or "").strip()
    if not target:
        raise ValidationError("criteria.target is required", details={"target": "required"})

    if kind == "project_count":
        try:
            count = int(data.get("count"))
        except (TypeError, ValueError):
            raise ValidationError(
                "criteria.count must be an integer", details={"count": "invalid"},
            ) from None
        if count < 1:
            raise ValidationError("criteria.count must be at least 1", details={"count": "min 1"})
        if target.lower() == ALL_STATIONS:
            target = ALL_STATIONS
        return ProjectCountCriterion(target=target, count=count)
    if kind == "skill":
        return SkillCriterion(target=target)

    raise ValidationError(
        f"Unknown criteria type: {kind!r}",
        details={"type": "must be one of: project_count, skill"},
    )


def criterion_to_dict(criterion: Criterion) -> dict:
    match criterion:
        case ProjectCountCriterion(target=target, count=count):
            return {"type": "project_count", "target": target, "count": count}
        case SkillCriterion(target=target):
            return {"type": "skill", "target": target}
    raise TypeError(f"Unsupported criterion: {criterion!r}")


# ── Evaluation ───────────────────────────────────────────────────────────────


def count_projects(projects: Iterable[ProjectSnapshot], target: str) -> int:
    if target == ALL_STATIONS:
        return sum(1 for _ in projects)
    return sum(1 for p in projects if p.station == target)


def acquired_skills(projects: Iterable[ProjectSnapshot]) -> set[str]:
    skills: set[str] = set()
    for p in projects:
        skills.update(p.skills_acquired)
    return skills


def is_satisfied(criterion: Criterion, projects: list[ProjectSnapshot]) -> bool:
    """Evaluate one criterion against published projects."""
    match criterion:
        case ProjectCountCriterion(target=target, count=count):
            return count_projects(projects, target) >= count
        case SkillCriterion(target=target):
            return target in acquired_skills(projects)
    raise TypeError(f"Unsupported criterion: {criterion!r}")


def evaluate_badges(published_projects, badges, held_badge_ids) -> list[str]:
    """
    Return ids of badges newly satisfied by the student's published history.

    Args:
        published_projects: StudentProject rows or ProjectSnapshot values.
            Anything not in ``published`` status is ignored.
        badges: Badge rows (anything with ``id`` and ``criterion``) or
            ``(badge_id, Criterion)`` pairs.
        held_badge_ids: ids the student already holds; never re-emitted.

    Returns:
        Badge ids in catalogue order.
    """
    snapshots = [ProjectSnapshot.of(p) for p in published_projects]
    snapshots = [p for p in snapshots if p.status == "published"]
    held = set(held_badge_ids or ())

    earned = []
    for badge_id, criterion in _iter_criteria(badges):
        if badge_id in held or badge_id in earned:
            continue
        if is_satisfied(criterion, snapshots):
            earned.append(badge_id)
    return earned


def _iter_criteria(badges):
    for badge in badges:
        if isinstance(badge, tuple):
            badge_id, criterion = badge
        else:
            badge_id, criterion = badge.id, badge.criterion
        yield str(badge_id), criterion
