"""
Project Lifecycle Service — student-side state machine.

Manages StudentProject status transitions with:
  - Transition validation against PROJECT_TRANSITIONS
  - Guards (steps planned, all steps done)
  - Audit row per transition
  - Submission notifications to instructors (after commit)

5 student actions:
  start_building, start_testing, deliver, submit, reopen

approve / request_changes belong to the review coordinator and are refused
here.

Usage:
    from makerlab.services.project_lifecycle import transition_project

    result = transition_project(project_id, "submit", actor="student-1")
"""

import logging

from flask import current_app, has_app_context

from makerlab.core.exceptions import NotFoundError, PreconditionNotMet, ValidationError
from makerlab.models import db
from makerlab.models.audit import write_audit
from makerlab.models.project import (
    PROJECT_STATUSES,
    PROJECT_TRANSITIONS,
    REVIEW_TRANSITIONS,
    StudentProject,
)
from makerlab.models.workflow import ProcessTemplate, ProjectTemplate
from makerlab.services import step_ledger
from makerlab.services.notification import NotificationService
from makerlab.services.student_service import get_student
from makerlab.services.workflow_resolver import resolve_for_project_template, resolve_steps
from makerlab.utils.helpers import clean_str_list, commit_or_raise

logger = logging.getLogger(__name__)

# Fields a student may edit at any stage, published included.
PRESENTATION_FIELDS = ("title", "description", "media_urls")

# Fields frozen once the project is under review or published.
CONTENT_FIELDS = ("station", "skills_acquired")
CONTENT_LOCKED_STATUSES = frozenset({"submitted", "published"})


def get_project(project_id) -> StudentProject:
    project = db.session.get(StudentProject, project_id)
    if not project:
        raise NotFoundError(resource="StudentProject", resource_id=project_id)
    return project


def list_projects(student_id=None, status=None) -> list[StudentProject]:
    q = StudentProject.query
    if student_id:
        q = q.filter_by(student_id=student_id)
    if status:
        if status not in PROJECT_STATUSES:
            raise ValidationError(
                f"Invalid status filter: {status}",
                details={"status": f"must be one of: {', '.join(PROJECT_STATUSES)}"},
            )
        q = q.filter_by(status=status)
    return q.order_by(StudentProject.updated_at.desc()).all()


def instructor_recipients() -> list[str]:
    if not has_app_context():
        return []
    raw = current_app.config.get("MAKERLAB_INSTRUCTOR_RECIPIENTS") or ""
    if isinstance(raw, str):
        raw = raw.split(",")
    return clean_str_list(raw)


# ── Create ───────────────────────────────────────────────────────────────────


def create_project(student_id, title=None, *, description=None, station=None,
                   skills_acquired=None, media_urls=None, template_id=None,
                   workflow_id=None, steps=None, actor="system") -> StudentProject:
    """
    Start a project in ``planning``.

    Step seeding, first match wins:
      1. ``workflow_id``  → that ProcessTemplate's phases (locked)
      2. ``template_id``  → the ProjectTemplate's workflow or default_steps (locked)
      3. ``steps``        → explicit titles (unlocked, as if added by hand)

    The system default workflow is never applied implicitly.
    """
    get_student(student_id)

    template = None
    if template_id:
        template = db.session.get(ProjectTemplate, template_id)
        if not template:
            raise NotFoundError(resource="ProjectTemplate", resource_id=template_id)

    title = (title or (template.title if template else "") or "").strip()
    if not title:
        raise ValidationError("Project title is required", details={"title": "required"})

    project = StudentProject(
        student_id=student_id,
        title=title,
        description=description if description is not None else (template.description if template else ""),
        station=(station or (template.station if template else "") or "general").strip(),
        skills_acquired=clean_str_list(
            skills_acquired if skills_acquired is not None else (template.skills if template else []),
        ),
        media_urls=clean_str_list(
            media_urls if media_urls is not None
            else ([template.thumbnail_url] if template and template.thumbnail_url else []),
        ),
        template_id=template.id if template else None,
        status="planning",
    )

    if workflow_id:
        workflow = db.session.get(ProcessTemplate, workflow_id)
        if not workflow:
            raise NotFoundError(resource="ProcessTemplate", resource_id=workflow_id)
        project.steps = resolve_steps(process_template=workflow)
        project.workflow_id = workflow.id
    elif template is not None:
        project.steps, project.workflow_id = resolve_for_project_template(template)
    else:
        project.steps = resolve_steps(default_steps=steps)
        for step in project.steps:
            step.is_locked = False

    db.session.add(project)
    db.session.flush()

    write_audit(
        entity_type="project", entity_id=project.id, action="project.create", actor=actor,
        diff={"status": {"old": None, "new": "planning"}, "template_id": project.template_id,
              "workflow_id": project.workflow_id, "steps": len(project.steps)},
    )
    commit_or_raise("project.create")

    logger.info(
        "Project created for student %s with %d step(s)", student_id, len(project.steps),
        extra={"project_id": project.id, "event_type": "project.create"},
    )
    return project


# ── Transitions ──────────────────────────────────────────────────────────────


def validate_transition(project: StudentProject, action: str) -> dict:
    """Validate whether an action is valid for the project's current state."""
    rule = PROJECT_TRANSITIONS.get(action)
    if not rule:
        return {"valid": False, "from": project.status, "to": None,
                "reason": f"Unknown action: {action}"}

    if project.status not in rule["from"]:
        return {"valid": False, "from": project.status, "to": rule["to"],
                "reason": f"Cannot '{action}' from status '{project.status}'"}

    if action == "start_building" and not project.steps:
        return {"valid": False, "from": project.status, "to": rule["to"],
                "reason": "Plan at least one step before building"}

    if action == "submit" and not step_ledger.all_done(project):
        return {"valid": False, "from": project.status, "to": rule["to"],
                "reason": "Finish all tasks before submitting"}

    return {"valid": True, "from": project.status, "to": rule["to"], "reason": None}


def transition_project(project_id, action, actor="system") -> dict:
    """
    Execute a student-side lifecycle transition.

    Returns:
        {"project_id", "previous_status", "new_status", "action", "progress"}

    Raises:
        NotFoundError, ValidationError (unknown action), PreconditionNotMet
    """
    project = get_project(project_id)

    if action in REVIEW_TRANSITIONS:
        raise PreconditionNotMet(action, project.status, "Only an instructor review can do this")
    if action not in PROJECT_TRANSITIONS:
        raise ValidationError(
            f"Unknown action: {action}",
            details={"action": f"must be one of: {', '.join(PROJECT_TRANSITIONS)}"},
        )

    validation = validate_transition(project, action)
    if not validation["valid"]:
        raise PreconditionNotMet(action, project.status, validation["reason"])

    previous = project.status
    project.status = validation["to"]
    project.touch()

    write_audit(
        entity_type="project", entity_id=project.id, action=f"project.{action}", actor=actor,
        diff={"status": {"old": previous, "new": project.status}},
    )
    commit_or_raise(f"project.{action}")

    logger.info(
        "Project %s: %s → %s", action, previous, project.status,
        extra={"project_id": project.id, "event_type": f"project.{action}"},
    )

    if action == "submit":
        NotificationService.dispatch(
            NotificationService.submission_events(project, instructor_recipients()),
        )

    return {
        "project_id": project.id,
        "previous_status": previous,
        "new_status": project.status,
        "action": action,
        "progress": step_ledger.progress(project),
    }


# ── Presentation edits ───────────────────────────────────────────────────────


def update_project(project_id, data, actor="system") -> StudentProject:
    """
    Edit a project's descriptive fields.

    Title, description and media may change in any state.  Station and
    skills freeze once the project is submitted or published.
    """
    project = get_project(project_id)
    changes = {}

    for field in PRESENTATION_FIELDS + CONTENT_FIELDS:
        if field not in data:
            continue
        if field in CONTENT_FIELDS and project.status in CONTENT_LOCKED_STATUSES:
            raise PreconditionNotMet(
                "update_project", project.status, f"'{field}' cannot change after submission",
            )
        value = data[field]
        if field in ("media_urls", "skills_acquired"):
            value = clean_str_list(value)
        elif field in ("title", "station"):
            value = (value or "").strip()
            if not value:
                raise ValidationError(f"{field} is required", details={field: "required"})
        elif field == "description":
            value = value or ""
        changes[field] = {"old": getattr(project, field), "new": value}

    for field, change in changes.items():
        setattr(project, field, change["new"])

    if changes:
        write_audit(entity_type="project", entity_id=project.id, action="update",
                    actor=actor, diff=changes)
        commit_or_raise("project.update")
    return project


def update_presentation(project_id, title=None, description=None, media_urls=None,
                        actor="system") -> StudentProject:
    data = {}
    if title is not None:
        data["title"] = title
    if description is not None:
        data["description"] = description
    if media_urls is not None:
        data["media_urls"] = media_urls
    return update_project(project_id, data, actor=actor)
