"""Student registry — the minimum the engine needs to own projects and badges."""

import logging

from makerlab.core.exceptions import ConflictError, NotFoundError, ValidationError
from makerlab.models import db
from makerlab.models.student import Student
from makerlab.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)


def get_student(student_id) -> Student:
    student = db.session.get(Student, student_id)
    if not student:
        raise NotFoundError(resource="Student", resource_id=student_id)
    return student


def create_student(name, email=None, student_id=None) -> Student:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Student name is required", details={"name": "required"})

    email = (email or "").strip().lower() or None
    if email and Student.query.filter_by(email=email).first():
        raise ConflictError(resource="Student", field="email", value=email)

    student = Student(name=name, email=email)
    if student_id:
        student.id = str(student_id)
    db.session.add(student)
    commit_or_raise("student.create")
    logger.info("Student created: %s", student.id)
    return student
