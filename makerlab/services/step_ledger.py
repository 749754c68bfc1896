"""
Step Ledger — the ordered steps of one project.

Rules:
  - Planning-only edits: add, delete, rename, (un)lock.
  - Moves happen only while the project is building / testing / delivered.
  - Forward moves only: todo → doing, doing → done, todo → done.
    done → doing is ``reopen_step``, never a plain move.
  - Locked steps came from a workflow or template and cannot be deleted.
  - A move to the status the step already has is refused.
  - ``done`` needs proof of work in the same call unless the guided
    wizard drives the move.  Without proof the move is deferred, not
    failed: ``StepMoveResult(committed=False, proof_required=True)``.

Every mutation bumps ``project.updated_at`` and flushes; the caller owns
the commit.

Usage:
    from makerlab.services.step_ledger import move_step, all_done

    result = move_step(project, step_id, "done", proof_url="https://…")
    if result.proof_required:
        ...  # ask the student for evidence
"""

import logging
from dataclasses import dataclass

from makerlab.core.exceptions import NotFoundError, PreconditionNotMet, ValidationError
from makerlab.models import _utcnow, _uuid, db
from makerlab.models.audit import write_audit
from makerlab.models.project import (
    STEP_EDITABLE_STATUSES,
    STEP_STATUSES,
    ProjectCommit,
    ProjectStep,
    validate_step_transition,
)

logger = logging.getLogger(__name__)


@dataclass
class StepMoveResult:
    committed: bool
    proof_required: bool = False
    step: ProjectStep | None = None
    previous_status: str | None = None

    def to_dict(self):
        return {
            "committed": self.committed,
            "proof_required": self.proof_required,
            "previous_status": self.previous_status,
            "step": self.step.to_dict() if self.step is not None else None,
        }


# ── Internal helpers ─────────────────────────────────────────────────────────


def _find_step(project, step_id) -> ProjectStep:
    for step in project.steps:
        if step.id == step_id:
            return step
    raise NotFoundError(resource="ProjectStep", resource_id=step_id)


def _require_planning(project, action):
    if project.status != "planning":
        raise PreconditionNotMet(action, project.status, "Steps can only be edited while planning")


def _require_building(project, action):
    if project.status not in STEP_EDITABLE_STATUSES:
        raise PreconditionNotMet(
            action, project.status,
            "Steps can only be moved while the project is being built",
        )


def _clean_title(title) -> str:
    title = (title or "").strip()
    if not title:
        raise ValidationError("Step title is required", details={"title": "required"})
    if len(title) > 200:
        raise ValidationError("Step title is too long", details={"title": "max 200 characters"})
    return title


def _renumber(project):
    for index, step in enumerate(sorted(project.steps, key=lambda s: s.position)):
        step.position = index


def _add_commit(project, step, message, evidence_link=None):
    commit = ProjectCommit(
        project_id=project.id,
        step_id=step.id,
        message=message,
        evidence_link=evidence_link,
    )
    db.session.add(commit)
    return commit


# ── Planning edits ───────────────────────────────────────────────────────────


def add_step(project, title) -> ProjectStep:
    """Append an unlocked todo step (planning only)."""
    _require_planning(project, "add_step")
    step = ProjectStep(
        id=_uuid(),
        position=len(project.steps),
        title=_clean_title(title),
        status="todo",
        is_locked=False,
    )
    project.steps.append(step)
    project.touch()
    db.session.flush()
    return step


def delete_step(project, step_id) -> None:
    """Remove an unlocked step (planning only) and compact the remaining positions."""
    _require_planning(project, "delete_step")
    step = _find_step(project, step_id)
    if step.is_locked:
        raise PreconditionNotMet(
            "delete_step", project.status, f"'{step.title}' is part of the workflow and cannot be deleted",
        )
    project.steps.remove(step)
    _renumber(project)
    project.touch()
    db.session.flush()


def rename_step(project, step_id, title) -> ProjectStep:
    _require_planning(project, "rename_step")
    step = _find_step(project, step_id)
    step.title = _clean_title(title)
    project.touch()
    db.session.flush()
    return step


def set_step_locked(project, step_id, locked) -> ProjectStep:
    _require_planning(project, "set_step_locked")
    step = _find_step(project, step_id)
    step.is_locked = bool(locked)
    project.touch()
    db.session.flush()
    return step


# ── Moves ────────────────────────────────────────────────────────────────────


def move_step(project, step_id, new_status, proof_url=None, via_wizard=False,
              actor="system") -> StepMoveResult:
    """
    Move a step forward.

    Raises:
        ValidationError: unknown target status.
        PreconditionNotMet: wrong project state, a backward move, or a move
            to the status the step already has.

    Returns:
        StepMoveResult; ``committed`` is False when proof is required.
    """
    if new_status not in STEP_STATUSES:
        raise ValidationError(
            f"Invalid step status: {new_status}",
            details={"status": f"must be one of: {', '.join(STEP_STATUSES)}"},
        )

    _require_building(project, "move_step")
    step = _find_step(project, step_id)
    old_status = step.status

    if old_status == new_status:
        raise PreconditionNotMet("move_step", project.status, f"Step is already '{old_status}'")

    if not validate_step_transition(old_status, new_status):
        reason = f"Step cannot move from '{old_status}' to '{new_status}'"
        if old_status == "done":
            reason += "; reopen the step instead"
        raise PreconditionNotMet("move_step", project.status, reason)

    proof_url = (proof_url or "").strip() or None
    if new_status == "done" and not via_wizard and proof_url is None:
        logger.info(
            "Step %s needs proof before completion", step.id,
            extra={"project_id": project.id, "event_type": "step.proof_required"},
        )
        return StepMoveResult(
            committed=False, proof_required=True, step=step, previous_status=old_status,
        )

    step.status = new_status
    if new_status == "done":
        step.completed_at = _utcnow()
        if proof_url is not None:
            step.proof_url = proof_url
            step.proof_status = "pending"
        _add_commit(project, step, f"Completed: {step.title}", evidence_link=proof_url)

    project.touch()
    write_audit(
        entity_type="project",
        entity_id=project.id,
        action="step.move",
        actor=actor,
        diff={"step_id": step.id, "status": {"old": old_status, "new": new_status},
              "via_wizard": bool(via_wizard)},
    )
    db.session.flush()

    logger.info(
        "Step %s moved %s → %s", step.id, old_status, new_status,
        extra={"project_id": project.id, "event_type": "step.move"},
    )
    return StepMoveResult(committed=True, step=step, previous_status=old_status)


def reopen_step(project, step_id, reason=None, actor="system") -> ProjectStep:
    """Explicit done → doing.  Proof reference is kept."""
    _require_building(project, "reopen_step")
    step = _find_step(project, step_id)
    if step.status != "done":
        raise PreconditionNotMet(
            "reopen_step", project.status, f"Only done steps can be reopened (step is '{step.status}')",
        )

    step.status = "doing"
    step.completed_at = None
    message = f"Reopened: {step.title}"
    if reason:
        message += f" ({reason.strip()})"
    _add_commit(project, step, message[:500])

    project.touch()
    write_audit(
        entity_type="project",
        entity_id=project.id,
        action="step.reopen",
        actor=actor,
        diff={"step_id": step.id, "status": {"old": "done", "new": "doing"}, "reason": reason},
    )
    db.session.flush()
    return step


# ── Queries ──────────────────────────────────────────────────────────────────


def all_done(project) -> bool:
    steps = project.steps
    return bool(steps) and all(s.status == "done" for s in steps)


def progress(project) -> dict:
    counts = {status: 0 for status in STEP_STATUSES}
    for step in project.steps:
        counts[step.status] = counts.get(step.status, 0) + 1
    total = len(project.steps)
    return {
        "total": total,
        "done": counts["done"],
        "doing": counts["doing"],
        "todo": counts["todo"],
        "percent": round(counts["done"] * 100 / total) if total else 0,
    }
