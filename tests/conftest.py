"""
Shared pytest fixtures for the MakerLab mission engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - student: Pre-created Student entity
    - instructor_headers / student_headers: actor headers for the API
    - make_project / make_workflow: ORM factories that bypass guards
"""

import pytest

from makerlab import create_app
from makerlab.models import db as _db
from makerlab.models.project import ProjectStep, StudentProject
from makerlab.models.student import Student
from makerlab.models.workflow import ProcessPhase, ProcessTemplate

INSTRUCTOR_HEADERS = {"X-Actor-Id": "instructor-1", "X-Actor-Role": "instructor"}


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def student():
    s = Student(id="student-1", name="Ada", email="ada@example.org")
    _db.session.add(s)
    _db.session.commit()
    return s


@pytest.fixture()
def instructor_headers():
    return dict(INSTRUCTOR_HEADERS)


@pytest.fixture()
def student_headers(student):
    return {"X-Actor-Id": student.id, "X-Actor-Role": "student"}


@pytest.fixture()
def make_workflow():
    """Factory: ProcessTemplate with the given phase names (ORM level)."""

    def _make(name="Design Thinking", phases=("Empathize", "Define", "Ideate"), is_default=False):
        wf = ProcessTemplate(name=name, is_default=is_default)
        wf.phases = [ProcessPhase(name=p, order=i) for i, p in enumerate(phases)]
        _db.session.add(wf)
        _db.session.commit()
        return wf

    return _make


@pytest.fixture()
def make_project(student):
    """Factory: StudentProject at an arbitrary status (bypasses guards).

    ``steps`` is a list of step statuses; every done step carries proof.
    """

    def _make(status="planning", steps=("todo",), station="Robotics", skills=(),
              locked=False, student_id=None):
        project = StudentProject(
            student_id=student_id or student.id,
            title=f"Mission ({status})",
            station=station,
            status=status,
            skills_acquired=list(skills),
        )
        project.steps = [
            ProjectStep(
                position=i,
                title=f"Step {i + 1}",
                status=s,
                is_locked=locked,
                proof_url=f"https://proof.example/{i}" if s == "done" else None,
                proof_status="pending" if s == "done" else None,
            )
            for i, s in enumerate(steps)
        ]
        _db.session.add(project)
        _db.session.commit()
        return project

    return _make
