"""
Review coordinator tests: decisions, feedback rule, badge awarding on
approval, notification fan-out and badge-failure isolation.
"""

import pytest

from makerlab.core.exceptions import PreconditionNotMet, ValidationError
from makerlab.models import db
from makerlab.models.badge import Badge, StudentBadge
from makerlab.models.notification import Notification
from makerlab.models.project import StudentProject
from makerlab.services import badge_service
from makerlab.services.review_service import review_project, review_queue


def _badge(name, criteria_type, target, count=None):
    b = Badge(name=name, criteria_type=criteria_type, criteria_target=target, criteria_count=count)
    db.session.add(b)
    db.session.commit()
    return b


class TestDecisions:
    def test_approve_publishes(self, make_project):
        project = make_project(status="submitted", steps=("done",))

        result = review_project(project.id, "approve", "instructor-1", feedback="Great work")

        assert result["previous_status"] == "submitted"
        assert result["new_status"] == "published"
        assert result["badge_error"] is None
        project = db.session.get(StudentProject, project.id)
        assert project.status == "published"
        assert project.instructor_feedback == "Great work"
        assert project.reviewed_by == "instructor-1"
        assert project.reviewed_at is not None

    def test_approve_notifies_student(self, make_project, student):
        project = make_project(status="submitted", steps=("done",))
        review_project(project.id, "approve", "instructor-1")

        note = Notification.query.filter_by(recipient=student.id, title="Mission Accomplished!").one()
        assert note.severity == "success"

    def test_request_changes(self, make_project, student):
        project = make_project(status="submitted", steps=("done",))

        result = review_project(project.id, "request_changes", "instructor-1",
                                feedback="Add a wiring photo")

        assert result["new_status"] == "changes_requested"
        assert result["new_badge_ids"] == []
        note = Notification.query.filter_by(recipient=student.id, title="Mission Update").one()
        assert note.severity == "warning"
        assert "Add a wiring photo" in note.message

    def test_request_changes_needs_feedback(self, make_project):
        project = make_project(status="submitted", steps=("done",))
        with pytest.raises(ValidationError):
            review_project(project.id, "request_changes", "instructor-1", feedback="  ")
        assert db.session.get(StudentProject, project.id).status == "submitted"

    @pytest.mark.parametrize("status", ["planning", "building", "published", "changes_requested"])
    def test_only_submitted_projects(self, make_project, status):
        project = make_project(status=status, steps=("done",))
        with pytest.raises(PreconditionNotMet):
            review_project(project.id, "approve", "instructor-1")

    def test_unknown_decision(self, make_project):
        project = make_project(status="submitted", steps=("done",))
        with pytest.raises(ValidationError):
            review_project(project.id, "maybe", "instructor-1")

    def test_review_queue(self, make_project):
        submitted = make_project(status="submitted", steps=("done",))
        make_project(status="building")
        assert [p.id for p in review_queue()] == [submitted.id]


class TestBadgesOnApproval:
    def test_first_project_badge(self, make_project, student):
        badge = _badge("First Steps", "project_count", "all", 1)
        project = make_project(status="submitted", steps=("done",))

        result = review_project(project.id, "approve", "instructor-1")

        assert result["new_badge_ids"] == [badge.id]
        award = StudentBadge.query.filter_by(student_id=student.id).one()
        assert award.badge_id == badge.id
        assert award.project_id == project.id
        assert db.session.get(StudentProject, project.id).earned_badge_ids == [badge.id]
        assert Notification.query.filter_by(recipient=student.id, title="New Badge Earned!").count() == 1

    def test_skill_badge_and_no_repeat(self, make_project, student):
        badge = _badge("Solderer", "skill", "Soldering")
        first = make_project(status="submitted", steps=("done",), skills=("Soldering",))
        second = make_project(status="submitted", steps=("done",), skills=("Soldering",))

        assert review_project(first.id, "approve", "instructor-1")["new_badge_ids"] == [badge.id]
        assert review_project(second.id, "approve", "instructor-1")["new_badge_ids"] == []
        assert StudentBadge.query.filter_by(student_id=student.id).count() == 1

    def test_request_changes_never_awards(self, make_project, student):
        _badge("First Steps", "project_count", "all", 1)
        project = make_project(status="submitted", steps=("done",))

        review_project(project.id, "request_changes", "instructor-1", feedback="Redo")

        assert StudentBadge.query.count() == 0

    def test_badge_failure_does_not_revert_approval(self, make_project, monkeypatch):
        project = make_project(status="submitted", steps=("done",))

        def _boom(*args, **kwargs):
            raise RuntimeError("badge store offline")

        monkeypatch.setattr(badge_service, "evaluate_and_award", _boom)

        result = review_project(project.id, "approve", "instructor-1")

        assert result["new_status"] == "published"
        assert result["new_badge_ids"] == []
        assert result["badge_error"] == "badge store offline"
        assert db.session.get(StudentProject, project.id).status == "published"
