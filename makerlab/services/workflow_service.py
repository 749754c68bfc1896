"""
Workflow catalogue service.

ProcessTemplate (ordered phases) and ProjectTemplate (mission blueprint)
CRUD, plus the atomic default-workflow switch.

Default switch:
    One transaction: unset every current default, set the new one, count
    the defaults, commit.  Any failure rolls the whole thing back so the
    previous default survives.  The partial unique index on
    ``process_templates.is_default`` rejects a second default even from a
    writer that bypasses this service.
"""

import logging

from sqlalchemy.exc import IntegrityError

from makerlab.core.exceptions import (
    InvariantViolation,
    NotFoundError,
    PreconditionNotMet,
    ValidationError,
)
from makerlab.models import db
from makerlab.models.audit import write_audit
from makerlab.models.project import StudentProject
from makerlab.models.workflow import (
    PROJECT_TEMPLATE_STATUSES,
    ProcessPhase,
    ProcessTemplate,
    ProjectTemplate,
)
from makerlab.utils.helpers import clean_str_list, commit_or_raise

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Process templates
# ═════════════════════════════════════════════════════════════════════════════


def _build_phases(phases) -> list[ProcessPhase]:
    """Accept a list of names or ``{name, order?, description?}`` dicts."""
    built = []
    for index, raw in enumerate(phases or []):
        if isinstance(raw, str):
            raw = {"name": raw}
        if not isinstance(raw, dict):
            raise ValidationError("Each phase must be a name or an object", details={"phases": index})
        name = str(raw.get("name") or "").strip()
        if not name:
            raise ValidationError("Phase name is required", details={f"phases[{index}].name": "required"})
        try:
            order = int(raw.get("order", index))
        except (TypeError, ValueError):
            raise ValidationError(
                "Phase order must be an integer", details={f"phases[{index}].order": "invalid"},
            ) from None
        built.append(ProcessPhase(name=name, order=order, description=raw.get("description")))
    return built


def get_process_template(template_id) -> ProcessTemplate:
    template = db.session.get(ProcessTemplate, template_id)
    if not template:
        raise NotFoundError(resource="ProcessTemplate", resource_id=template_id)
    return template


def list_process_templates() -> list[ProcessTemplate]:
    return ProcessTemplate.query.order_by(ProcessTemplate.name).all()


def get_default_process_template() -> ProcessTemplate | None:
    return ProcessTemplate.query.filter_by(is_default=True).first()


def create_process_template(name, phases=None, description="", is_default=False,
                            actor="system") -> ProcessTemplate:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Workflow name is required", details={"name": "required"})

    template = ProcessTemplate(name=name, description=description or "", is_default=False)
    template.phases = _build_phases(phases)
    db.session.add(template)
    db.session.flush()
    write_audit(
        entity_type="process_template", entity_id=template.id, action="create",
        actor=actor, diff={"name": name, "phases": len(template.phases)},
    )
    commit_or_raise("process_template.create")

    if is_default:
        set_default_process_template(template.id, actor=actor)
    return template


def update_process_template(template_id, data, actor="system") -> ProcessTemplate:
    """Update name / description / phases.  Existing project steps are untouched."""
    template = get_process_template(template_id)
    changes = {}

    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("Workflow name is required", details={"name": "required"})
        changes["name"] = {"old": template.name, "new": name}
        template.name = name
    if "description" in data:
        template.description = data.get("description") or ""
    if "phases" in data:
        template.phases = _build_phases(data.get("phases"))
        changes["phases"] = len(template.phases)

    write_audit(
        entity_type="process_template", entity_id=template.id, action="update",
        actor=actor, diff=changes,
    )
    commit_or_raise("process_template.update")

    if data.get("is_default") is True and not template.is_default:
        set_default_process_template(template.id, actor=actor)
    return template


def delete_process_template(template_id, actor="system") -> None:
    """Delete a workflow.  Projects keep their steps; their workflow_id is nulled."""
    template = get_process_template(template_id)
    StudentProject.query.filter_by(workflow_id=template.id).update(
        {"workflow_id": None}, synchronize_session="fetch",
    )
    ProjectTemplate.query.filter_by(default_workflow_id=template.id).update(
        {"default_workflow_id": None}, synchronize_session="fetch",
    )
    write_audit(
        entity_type="process_template", entity_id=template.id, action="delete",
        actor=actor, diff={"name": template.name, "was_default": template.is_default},
    )
    db.session.delete(template)
    commit_or_raise("process_template.delete")


def set_default_process_template(template_id, actor="system") -> ProcessTemplate:
    """
    Make ``template_id`` the single system default.

    Raises:
        NotFoundError: unknown template.
        InvariantViolation: the store ended up with other than one default.
        PersistenceFailure: commit rejected; nothing changed.
    """
    template = get_process_template(template_id)
    previous = get_default_process_template()
    previous_id = previous.id if previous else None

    if previous_id == template.id:
        return template

    try:
        ProcessTemplate.query.filter(
            ProcessTemplate.is_default.is_(True),
            ProcessTemplate.id != template.id,
        ).update({"is_default": False}, synchronize_session="fetch")
        db.session.flush()

        template.is_default = True
        db.session.flush()

        defaults = ProcessTemplate.query.filter_by(is_default=True).count()
        if defaults != 1:
            raise InvariantViolation(
                "single_default_workflow",
                f"Expected exactly one default workflow, found {defaults}",
            )

        write_audit(
            entity_type="process_template", entity_id=template.id,
            action="process_template.set_default", actor=actor,
            diff={"is_default": {"old": previous_id, "new": template.id}},
        )
    except IntegrityError as exc:
        db.session.rollback()
        raise InvariantViolation(
            "single_default_workflow", "Another workflow is already the default",
        ) from exc
    except InvariantViolation:
        db.session.rollback()
        raise

    commit_or_raise("process_template.set_default")
    logger.info(
        "Default workflow switched %s → %s", previous_id, template.id,
        extra={"event_type": "process_template.set_default"},
    )
    return template


# ═════════════════════════════════════════════════════════════════════════════
# Project templates
# ═════════════════════════════════════════════════════════════════════════════

_PROJECT_TEMPLATE_FIELDS = (
    "title", "description", "station", "difficulty", "skills",
    "default_steps", "default_workflow_id", "thumbnail_url", "status",
)


def get_project_template(template_id) -> ProjectTemplate:
    template = db.session.get(ProjectTemplate, template_id)
    if not template:
        raise NotFoundError(resource="ProjectTemplate", resource_id=template_id)
    return template


def list_project_templates(station=None, status=None) -> list[ProjectTemplate]:
    q = ProjectTemplate.query
    if station:
        q = q.filter(db.func.lower(ProjectTemplate.station) == station.strip().lower())
    if status:
        q = q.filter_by(status=status)
    return q.order_by(ProjectTemplate.created_at.desc()).all()


def _apply_project_template_fields(template, data):
    for field in _PROJECT_TEMPLATE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field in ("skills", "default_steps"):
            value = clean_str_list(value)
        elif field == "status":
            if value not in PROJECT_TEMPLATE_STATUSES:
                raise ValidationError(
                    f"Invalid template status: {value}",
                    details={"status": f"must be one of: {', '.join(sorted(PROJECT_TEMPLATE_STATUSES))}"},
                )
        elif field == "default_workflow_id" and value:
            get_process_template(value)
        elif field in ("title", "station"):
            value = (value or "").strip()
            if not value:
                raise ValidationError(f"{field} is required", details={field: "required"})
        setattr(template, field, value)


def create_project_template(data, actor="system") -> ProjectTemplate:
    if not (data.get("title") or "").strip():
        raise ValidationError("Template title is required", details={"title": "required"})
    template = ProjectTemplate()
    _apply_project_template_fields(template, data)
    db.session.add(template)
    db.session.flush()
    write_audit(
        entity_type="project_template", entity_id=template.id, action="create",
        actor=actor, diff={"title": template.title},
    )
    commit_or_raise("project_template.create")
    return template


def update_project_template(template_id, data, actor="system") -> ProjectTemplate:
    template = get_project_template(template_id)
    _apply_project_template_fields(template, data)
    write_audit(
        entity_type="project_template", entity_id=template.id, action="update",
        actor=actor, diff={k: data[k] for k in _PROJECT_TEMPLATE_FIELDS if k in data},
    )
    commit_or_raise("project_template.update")
    return template


def delete_project_template(template_id, cascade=False, actor="system") -> dict:
    """
    Delete a blueprint.

    Student projects started from it block the delete unless ``cascade``
    is set, in which case they are removed in the same transaction.
    """
    template = get_project_template(template_id)
    projects = StudentProject.query.filter_by(template_id=template.id).all()

    if projects and not cascade:
        raise PreconditionNotMet(
            "delete_project_template", template.status,
            f"{len(projects)} student project(s) were started from this template",
        )

    for project in projects:
        db.session.delete(project)
    write_audit(
        entity_type="project_template", entity_id=template.id, action="delete",
        actor=actor, diff={"title": template.title, "deleted_projects": [p.id for p in projects]},
    )
    db.session.delete(template)
    commit_or_raise("project_template.delete")

    logger.info("Project template %s deleted with %d project(s)", template_id, len(projects))
    return {"deleted": template_id, "deleted_projects": len(projects)}
