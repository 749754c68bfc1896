"""
Badge catalogue and set-union award tests.
"""

import pytest

from makerlab.core.exceptions import PreconditionNotMet, ValidationError
from makerlab.models import db
from makerlab.models.audit import AuditLog
from makerlab.models.badge import StudentBadge
from makerlab.services import badge_service


@pytest.fixture()
def first_steps():
    return badge_service.create_badge({
        "name": "First Steps",
        "icon": "Rocket",
        "criteria": {"type": "project_count", "target": "all", "count": 1},
    })


class TestAward:
    def test_award_is_set_union(self, student, first_steps, make_project):
        project = make_project(status="published", steps=("done",))

        first = badge_service.award_badges(student.id, [first_steps.id], project.id)
        second = badge_service.award_badges(student.id, [first_steps.id], project.id)
        db.session.commit()

        assert first == [first_steps.id]
        assert second == []
        assert StudentBadge.query.filter_by(student_id=student.id).count() == 1

    def test_duplicate_ids_in_one_call(self, student, first_steps):
        awarded = badge_service.award_badges(student.id, [first_steps.id, first_steps.id])
        db.session.commit()
        assert awarded == [first_steps.id]
        assert badge_service.held_badge_ids(student.id) == {first_steps.id}

    def test_evaluate_and_award_idempotent(self, student, first_steps, make_project):
        project = make_project(status="published", steps=("done",))

        assert badge_service.evaluate_and_award(project) == [first_steps.id]
        assert badge_service.evaluate_and_award(project) == []
        assert badge_service.earned_badge_ids(project.id) == [first_steps.id]
        assert AuditLog.query.filter_by(action="badge.award").count() == 1

    def test_badges_for_student(self, student, first_steps, make_project):
        project = make_project(status="published", steps=("done",))
        badge_service.evaluate_and_award(project)

        items = badge_service.badges_for_student(student.id)
        assert [i["name"] for i in items] == ["First Steps"]
        assert items[0]["project_id"] == project.id


class TestCatalogue:
    def test_create_validates_criteria(self):
        with pytest.raises(ValidationError):
            badge_service.create_badge({"name": "Bad", "criteria": {"type": "streak", "target": "x"}})

    def test_criteria_editable_until_earned(self, first_steps):
        badge = badge_service.update_badge(
            first_steps.id, {"criteria": {"type": "project_count", "target": "all", "count": 2}},
        )
        assert badge.criteria_count == 2

    def test_criteria_frozen_once_earned(self, student, first_steps):
        badge_service.award_badges(student.id, [first_steps.id])
        db.session.commit()

        with pytest.raises(PreconditionNotMet):
            badge_service.update_badge(
                first_steps.id, {"criteria": {"type": "skill", "target": "CAD"}},
            )

    def test_descriptive_fields_editable_once_earned(self, student, first_steps):
        badge_service.award_badges(student.id, [first_steps.id])
        db.session.commit()

        badge = badge_service.update_badge(first_steps.id, {"name": "Launch!", "color": "gold"})
        assert badge.name == "Launch!"
        assert badge.color == "gold"

    def test_earned_badge_cannot_be_deleted(self, student, first_steps):
        badge_service.award_badges(student.id, [first_steps.id])
        db.session.commit()
        with pytest.raises(PreconditionNotMet):
            badge_service.delete_badge(first_steps.id)

    def test_unearned_badge_can_be_deleted(self, first_steps):
        badge_service.delete_badge(first_steps.id)
        assert badge_service.list_badges() == []
