"""
Workflow Resolver — turns a workflow choice into a project's initial steps.

Policy:
  1. A ProcessTemplate wins: its phases, sorted by ``order``, become steps
     1:1 titled after the phase name.
  2. Otherwise a project template's flat ``default_steps`` titles are used
     in their given order.
  3. Neither: no steps.  The student plans free-form with ``add_step``,
     and those manually added steps are not locked.

Resolved steps start in ``todo`` and are locked against deletion.

Re-resolving a project that already has steps (switching workflow during
planning) is destructive.  ``replace_steps`` refuses to run unless the
caller passes ``confirm=True``, and archives the discarded steps into the
audit trail before removing them.

Usage:
    from makerlab.services.workflow_resolver import resolve_steps, replace_steps

    steps = resolve_steps(process_template=wf)
    result = replace_steps(project, wf, confirm=True, actor="student-1")
"""

import logging

from makerlab.core.exceptions import PreconditionNotMet
from makerlab.models import _uuid, db
from makerlab.models.audit import write_audit
from makerlab.models.project import ProjectStep
from makerlab.models.workflow import ProcessTemplate
from makerlab.utils.helpers import clean_str_list

logger = logging.getLogger(__name__)


def resolve_steps(process_template=None, default_steps=None) -> list[ProjectStep]:
    """
    Build the initial ordered steps (transient, not yet added to a session).

    Args:
        process_template: ProcessTemplate whose phases become steps.
        default_steps: Flat list of step titles from a project template.

    Returns:
        list[ProjectStep] with contiguous positions starting at 0.
    """
    if process_template is not None:
        titles = [phase.name for phase in process_template.ordered_phases()]
    else:
        titles = clean_str_list(default_steps)

    return [
        ProjectStep(
            id=_uuid(),
            position=index,
            title=title,
            status="todo",
            is_locked=True,
        )
        for index, title in enumerate(titles)
    ]


def resolve_for_project_template(project_template):
    """
    Resolve steps for a project started from a ProjectTemplate.

    Returns:
        (steps, workflow_id); workflow_id is None when the flat step list
        was used.
    """
    workflow = None
    if project_template.default_workflow_id:
        workflow = db.session.get(ProcessTemplate, project_template.default_workflow_id)
        if workflow is None:
            logger.warning(
                "Project template %s references missing workflow %s; using default steps",
                project_template.id, project_template.default_workflow_id,
            )

    if workflow is not None and workflow.phases:
        return resolve_steps(process_template=workflow), workflow.id
    return resolve_steps(default_steps=project_template.default_steps), None


def replace_steps(project, process_template, *, confirm: bool = False, actor: str = "system") -> dict:
    """
    Replace a planning project's entire step list with the template's phases.

    Raises:
        PreconditionNotMet: project is past planning, or it already has
            steps and ``confirm`` is false.

    Returns:
        {"project_id", "workflow_id", "discarded", "steps"}
    """
    if project.status != "planning":
        raise PreconditionNotMet(
            "replace_steps", project.status,
            "The workflow can only be changed while planning",
        )

    existing = list(project.steps)
    if existing and not confirm:
        raise PreconditionNotMet(
            "replace_steps", project.status,
            f"Switching workflow discards {len(existing)} existing step(s); confirm to proceed",
        )

    archived = [
        {
            "id": s.id,
            "title": s.title,
            "status": s.status,
            "proof_url": s.proof_url,
            "proof_status": s.proof_status,
        }
        for s in existing
    ]

    new_steps = resolve_steps(process_template=process_template)
    previous_workflow = project.workflow_id

    # Clearing the collection deletes the orphans (delete-orphan cascade).
    project.steps = []
    db.session.flush()
    project.steps = new_steps
    project.workflow_id = process_template.id
    project.touch()
    db.session.flush()

    write_audit(
        entity_type="project",
        entity_id=project.id,
        action="project.replace_steps",
        actor=actor,
        diff={
            "workflow_id": {"old": previous_workflow, "new": process_template.id},
            "archived_steps": archived,
        },
    )
    logger.info(
        "Replaced %d step(s) with %d phase(s) from workflow %s",
        len(existing), len(new_steps), process_template.id,
        extra={"project_id": project.id, "event_type": "project.replace_steps"},
    )

    return {
        "project_id": project.id,
        "workflow_id": process_template.id,
        "discarded": len(existing),
        "steps": [s.to_dict() for s in new_steps],
    }
