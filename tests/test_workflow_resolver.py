"""
Workflow resolution and workflow replacement tests.

Covers:
    - Phase → step mapping (order, lock flag, positions)
    - default_steps fallback and the empty case
    - Project creation from a workflow, a template, or free-form steps
    - replace_steps confirm guard, planning-only rule, archived audit row
"""

import pytest

from makerlab.core.exceptions import PreconditionNotMet
from makerlab.models import db
from makerlab.models.audit import AuditLog
from makerlab.models.project import ProjectStep
from makerlab.models.workflow import ProcessPhase, ProcessTemplate, ProjectTemplate
from makerlab.services.project_lifecycle import create_project
from makerlab.services.workflow_resolver import (
    replace_steps,
    resolve_for_project_template,
    resolve_steps,
)


class TestResolveSteps:
    def test_phases_become_locked_todo_steps_in_order(self):
        wf = ProcessTemplate(name="Engineering")
        wf.phases = [
            ProcessPhase(name="Build", order=2),
            ProcessPhase(name="Research", order=0),
            ProcessPhase(name="Design", order=1),
        ]

        steps = resolve_steps(process_template=wf)

        assert [s.title for s in steps] == ["Research", "Design", "Build"]
        assert [s.position for s in steps] == [0, 1, 2]
        assert all(s.status == "todo" for s in steps)
        assert all(s.is_locked for s in steps)
        assert len({s.id for s in steps}) == 3

    def test_default_steps_used_without_template(self):
        steps = resolve_steps(default_steps=["Sketch", "  ", "Prototype"])
        assert [s.title for s in steps] == ["Sketch", "Prototype"]
        assert all(s.is_locked for s in steps)

    def test_nothing_to_resolve_gives_empty_list(self):
        assert resolve_steps() == []

    def test_template_workflow_preferred_over_default_steps(self, make_workflow):
        wf = make_workflow(phases=("Plan", "Make"))
        pt = ProjectTemplate(title="Robot Arm", default_steps=["A", "B", "C"],
                             default_workflow_id=wf.id)
        db.session.add(pt)
        db.session.commit()

        steps, workflow_id = resolve_for_project_template(pt)

        assert [s.title for s in steps] == ["Plan", "Make"]
        assert workflow_id == wf.id

    def test_template_without_workflow_uses_default_steps(self):
        pt = ProjectTemplate(title="Website", default_steps=["HTML", "CSS"])
        db.session.add(pt)
        db.session.commit()

        steps, workflow_id = resolve_for_project_template(pt)

        assert [s.title for s in steps] == ["HTML", "CSS"]
        assert workflow_id is None


class TestCreateProjectSeeding:
    def test_create_with_workflow(self, student, make_workflow):
        wf = make_workflow()
        project = create_project(student.id, "Ideas", workflow_id=wf.id)

        assert project.status == "planning"
        assert project.workflow_id == wf.id
        assert [s.title for s in project.steps] == ["Empathize", "Define", "Ideate"]
        assert all(s.is_locked for s in project.steps)

    def test_create_with_free_form_steps_is_unlocked(self, student):
        project = create_project(student.id, "Game", steps=["Story", "Code"])
        assert [s.title for s in project.steps] == ["Story", "Code"]
        assert not any(s.is_locked for s in project.steps)

    def test_default_workflow_not_applied_implicitly(self, student, make_workflow):
        make_workflow(is_default=True)
        project = create_project(student.id, "Blank")
        assert project.steps == []
        assert project.workflow_id is None

    def test_create_from_project_template_copies_fields(self, student):
        pt = ProjectTemplate(title="Line Follower", description="Follow the line",
                             station="Robotics", skills=["Sensors"],
                             default_steps=["Wire", "Code", "Race"])
        db.session.add(pt)
        db.session.commit()

        project = create_project(student.id, template_id=pt.id)

        assert project.title == "Line Follower"
        assert project.station == "Robotics"
        assert project.skills_acquired == ["Sensors"]
        assert project.template_id == pt.id
        assert len(project.steps) == 3


class TestReplaceSteps:
    def test_requires_confirm_when_steps_exist(self, make_project, make_workflow):
        project = make_project(steps=("todo", "todo"))
        wf = make_workflow()

        with pytest.raises(PreconditionNotMet) as exc:
            replace_steps(project, wf)
        assert "2 existing step(s)" in str(exc.value)
        assert len(project.steps) == 2

    def test_replaces_every_step(self, make_project, make_workflow):
        project = make_project(steps=("todo", "todo", "todo", "todo"))
        old_ids = {s.id for s in project.steps}
        wf = make_workflow(phases=("One", "Two"))

        result = replace_steps(project, wf, confirm=True, actor="student-1")
        db.session.commit()

        assert result["discarded"] == 4
        assert [s.title for s in project.steps] == ["One", "Two"]
        assert project.workflow_id == wf.id
        assert not old_ids & {s.id for s in project.steps}
        assert ProjectStep.query.filter(ProjectStep.id.in_(old_ids)).count() == 0

    def test_archives_discarded_steps_in_audit(self, make_project, make_workflow):
        project = make_project(steps=("todo",))
        wf = make_workflow()

        replace_steps(project, wf, confirm=True)
        db.session.commit()

        log = AuditLog.query.filter_by(action="project.replace_steps").one()
        assert log.entity_id == project.id
        assert log.diff["archived_steps"][0]["title"] == "Step 1"

    def test_no_confirm_needed_for_empty_ledger(self, make_project, make_workflow):
        project = make_project(steps=())
        wf = make_workflow(phases=("Only",))

        replace_steps(project, wf)

        assert [s.title for s in project.steps] == ["Only"]

    def test_refused_after_planning(self, make_project, make_workflow):
        project = make_project(status="building", steps=("todo",))
        wf = make_workflow()

        with pytest.raises(PreconditionNotMet):
            replace_steps(project, wf, confirm=True)
