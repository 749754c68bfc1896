"""
Exhaustive state-machine transition tests for StudentProject.

Student actions (PROJECT_TRANSITIONS):
    planning          -> building            start_building  (>= 1 step)
    building          -> testing             start_testing
    testing           -> delivered           deliver
    building|testing|delivered -> submitted  submit          (all steps done)
    changes_requested -> building            reopen

For every action:
    - Every VALID source status moves to the expected target.
    - Every other source status raises PreconditionNotMet.
    - Guards are enforced with an actionable reason.
"""

import pytest

from makerlab.core.exceptions import NotFoundError, PreconditionNotMet, ValidationError
from makerlab.models import db
from makerlab.models.audit import AuditLog
from makerlab.models.notification import Notification
from makerlab.models.project import (
    PROJECT_STATUSES,
    PROJECT_TRANSITIONS,
    StudentProject,
    status_graph,
)
from makerlab.services.project_lifecycle import (
    create_project,
    transition_project,
    update_presentation,
    update_project,
)

VALID = [
    (action, src, rule["to"])
    for action, rule in PROJECT_TRANSITIONS.items()
    for src in sorted(rule["from"])
]

INVALID = [
    (action, src)
    for action, rule in PROJECT_TRANSITIONS.items()
    for src in PROJECT_STATUSES
    if src not in rule["from"]
]


@pytest.mark.parametrize("action,src,dst", VALID)
def test_valid_transition(make_project, action, src, dst):
    project = make_project(status=src, steps=("done", "done"))

    result = transition_project(project.id, action, actor="student-1")

    assert result["previous_status"] == src
    assert result["new_status"] == dst
    assert db.session.get(StudentProject, project.id).status == dst


@pytest.mark.parametrize("action,src", INVALID)
def test_invalid_transition(make_project, action, src):
    project = make_project(status=src, steps=("done",))

    with pytest.raises(PreconditionNotMet) as exc:
        transition_project(project.id, action)

    assert exc.value.current_status == src
    assert db.session.get(StudentProject, project.id).status == src


class TestGuards:
    def test_start_building_needs_a_step(self, make_project):
        project = make_project(steps=())
        with pytest.raises(PreconditionNotMet) as exc:
            transition_project(project.id, "start_building")
        assert exc.value.reason == "Plan at least one step before building"

    @pytest.mark.parametrize("status", ["building", "testing", "delivered"])
    def test_submit_needs_all_steps_done(self, make_project, status):
        project = make_project(status=status, steps=("done", "doing"))
        with pytest.raises(PreconditionNotMet) as exc:
            transition_project(project.id, "submit")
        assert exc.value.reason == "Finish all tasks before submitting"

    @pytest.mark.parametrize("action", ["approve", "request_changes"])
    def test_review_actions_refused(self, make_project, action):
        project = make_project(status="submitted", steps=("done",))
        with pytest.raises(PreconditionNotMet):
            transition_project(project.id, action)

    def test_unknown_action(self, make_project):
        project = make_project()
        with pytest.raises(ValidationError):
            transition_project(project.id, "teleport")

    def test_unknown_project(self):
        with pytest.raises(NotFoundError):
            transition_project("nope", "submit")


class TestSideEffects:
    def test_transition_writes_audit_row(self, make_project):
        project = make_project(steps=("todo",))
        transition_project(project.id, "start_building", actor="student-1")

        log = AuditLog.query.filter_by(entity_id=project.id, action="project.start_building").one()
        assert log.actor == "student-1"
        assert log.diff["status"] == {"old": "planning", "new": "building"}

    def test_submit_notifies_instructors(self, make_project):
        project = make_project(status="building", steps=("done",))
        transition_project(project.id, "submit")

        notes = Notification.query.filter_by(title="New Project Submission").all()
        assert sorted(n.recipient for n in notes) == ["instructor-1", "instructor-2"]
        assert all(n.severity == "info" and n.entity_id == project.id for n in notes)

    def test_reopen_keeps_completed_steps_and_proofs(self, make_project):
        project = make_project(status="changes_requested", steps=("done", "done"))
        before = [(s.id, s.status, s.proof_url) for s in project.steps]

        transition_project(project.id, "reopen")

        project = db.session.get(StudentProject, project.id)
        assert project.status == "building"
        assert [(s.id, s.status, s.proof_url) for s in project.steps] == before


class TestCreateAndEdit:
    def test_create_requires_existing_student(self):
        with pytest.raises(NotFoundError):
            create_project("ghost", "Mission")

    def test_create_requires_title(self, student):
        with pytest.raises(ValidationError):
            create_project(student.id, "  ")

    def test_presentation_editable_after_publish(self, make_project):
        project = make_project(status="published", steps=("done",))
        update_presentation(project.id, description="Now with video",
                            media_urls=["https://video.example/1"])

        project = db.session.get(StudentProject, project.id)
        assert project.description == "Now with video"
        assert project.media_urls == ["https://video.example/1"]
        assert project.status == "published"

    def test_station_frozen_after_submit(self, make_project):
        project = make_project(status="submitted", steps=("done",))
        with pytest.raises(PreconditionNotMet):
            update_project(project.id, {"station": "Coding"})

    def test_station_editable_while_building(self, make_project):
        project = make_project(status="building")
        update_project(project.id, {"station": "Coding", "skills_acquired": ["Python", " "]})

        project = db.session.get(StudentProject, project.id)
        assert project.station == "Coding"
        assert project.skills_acquired == ["Python"]

    def test_rejected_edit_changes_nothing(self, make_project):
        project = make_project(status="building")
        with pytest.raises(ValidationError):
            update_project(project.id, {"title": "Renamed", "station": "   "})

        assert project.title == "Mission (building)"
        assert project.station == "Robotics"

    def test_frozen_field_blocks_whole_edit(self, make_project):
        project = make_project(status="published", steps=("done",))
        with pytest.raises(PreconditionNotMet):
            update_project(project.id, {"title": "Renamed", "skills_acquired": ["CAD"]})

        assert project.title == "Mission (published)"


def test_status_graph_matches_lifecycle_table():
    assert status_graph() == {
        "planning": {"building"},
        "building": {"testing", "submitted"},
        "testing": {"delivered", "submitted"},
        "delivered": {"submitted"},
        "submitted": {"published", "changes_requested"},
        "changes_requested": {"building"},
        "published": set(),
    }
