"""
MakerLab Mission Engine
Student project (mission) domain models.

Models:
    - StudentProject:  one student's mission, tracked through the lifecycle
    - ProjectStep:     ordered unit of work inside a project (proof-gated)
    - ProjectCommit:   append-only build log entry

Architecture:
    Student ──1:N──▶ StudentProject ──1:N──▶ ProjectStep
                     StudentProject ──1:N──▶ ProjectCommit
    StudentProject ──N:1──▶ ProjectTemplate   (weak, via template_id)
    StudentProject ──N:1──▶ ProcessTemplate   (weak, via workflow_id)

Lifecycle states:
    StudentProject: planning → building → (testing → delivered) → submitted
                    → published | changes_requested → building
    ProjectStep:    todo → doing → done   (done → doing only via reopen)
"""

from makerlab.models import _utcnow, _uuid, db


# ── Constants ────────────────────────────────────────────────────────────────

PROJECT_STATUSES = (
    "planning", "building", "testing", "delivered",
    "submitted", "changes_requested", "published",
)

# States in which the student may move steps.
STEP_EDITABLE_STATUSES = frozenset({"building", "testing", "delivered"})

# Student-triggered transitions. Instructor decisions live in REVIEW_TRANSITIONS.
PROJECT_TRANSITIONS = {
    "start_building": {"from": {"planning"}, "to": "building"},
    "start_testing": {"from": {"building"}, "to": "testing"},
    "deliver": {"from": {"testing"}, "to": "delivered"},
    "submit": {"from": {"building", "testing", "delivered"}, "to": "submitted"},
    "reopen": {"from": {"changes_requested"}, "to": "building"},
}

REVIEW_TRANSITIONS = {
    "approve": {"from": {"submitted"}, "to": "published"},
    "request_changes": {"from": {"submitted"}, "to": "changes_requested"},
}

STEP_STATUSES = ("todo", "doing", "done")

# Forward-only moves. done → doing is an explicit re-open, not a move.
STEP_TRANSITIONS = {
    "todo": ["doing", "done"],
    "doing": ["done"],
    "done": [],
}


def status_graph() -> dict[str, set[str]]:
    """Return every legal (from → to) status edge across both actor surfaces."""
    graph: dict[str, set[str]] = {s: set() for s in PROJECT_STATUSES}
    for rule in list(PROJECT_TRANSITIONS.values()) + list(REVIEW_TRANSITIONS.values()):
        for src in rule["from"]:
            graph[src].add(rule["to"])
    return graph


def validate_step_transition(old_status, new_status):
    """Return True if a forward step move old_status → new_status is allowed."""
    return new_status in STEP_TRANSITIONS.get(old_status, [])


class StudentProject(db.Model):
    """
    A student's mission.

    ``status`` is written only by the lifecycle and review services; every
    write there is paired with an audit row.
    """

    __tablename__ = "student_projects"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('planning','building','testing','delivered',"
            "'submitted','changes_requested','published')",
            name="ck_student_project_status",
        ),
        db.Index("ix_student_projects_student_status", "student_id", "status"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    student_id = db.Column(
        db.String(36), db.ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )

    # Core
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    station = db.Column(db.String(60), nullable=False, default="general",
                        comment="Subject area, e.g. robotics, coding")
    status = db.Column(db.String(20), nullable=False, default="planning")

    # Strategy (weak references, never owned)
    template_id = db.Column(
        db.String(36), db.ForeignKey("project_templates.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    workflow_id = db.Column(
        db.String(36), db.ForeignKey("process_templates.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Media & meta
    media_urls = db.Column(db.JSON, default=list)
    skills_acquired = db.Column(db.JSON, default=list)

    # Review
    instructor_feedback = db.Column(db.Text, nullable=True)
    reviewed_by = db.Column(db.String(150), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # ── Relationships ────────────────────────────────────────────────────
    steps = db.relationship(
        "ProjectStep", backref="project", lazy="select",
        cascade="all, delete-orphan", order_by="ProjectStep.position",
    )
    commits = db.relationship(
        "ProjectCommit", backref="project", lazy="dynamic",
        cascade="all, delete-orphan", order_by="ProjectCommit.created_at",
    )
    badge_awards = db.relationship(
        "StudentBadge", backref="project", lazy="select",
        order_by="StudentBadge.earned_at",
    )

    @property
    def earned_badge_ids(self) -> list[str]:
        """Badges attributed to this project's publish event."""
        return [award.badge_id for award in self.badge_awards]

    def touch(self):
        """Bump ``updated_at`` after a child (step) mutation."""
        self.updated_at = _utcnow()

    def to_dict(self, include_steps=True):
        result = {
            "id": self.id,
            "student_id": self.student_id,
            "title": self.title,
            "description": self.description,
            "station": self.station,
            "status": self.status,
            "template_id": self.template_id,
            "workflow_id": self.workflow_id,
            "media_urls": list(self.media_urls or []),
            "skills_acquired": list(self.skills_acquired or []),
            "instructor_feedback": self.instructor_feedback,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "earned_badge_ids": self.earned_badge_ids,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_steps:
            result["steps"] = [s.to_dict() for s in self.steps]
        return result

    def __repr__(self):
        return f"<StudentProject {self.id}: {self.title[:40]} ({self.status})>"


class ProjectStep(db.Model):
    """One ordered unit of work. Locked steps cannot be deleted."""

    __tablename__ = "project_steps"
    __table_args__ = (
        db.CheckConstraint("status IN ('todo','doing','done')", name="ck_project_step_status"),
        db.Index("ix_project_steps_project_position", "project_id", "position"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    project_id = db.Column(
        db.String(36), db.ForeignKey("student_projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    position = db.Column(db.Integer, nullable=False, default=0)
    title = db.Column(db.String(200), nullable=False)
    status = db.Column(db.String(10), nullable=False, default="todo")
    is_locked = db.Column(db.Boolean, nullable=False, default=False)

    # Proof of work
    proof_url = db.Column(db.Text, nullable=True, comment="Opaque artifact reference (URL or data URI)")
    proof_status = db.Column(db.String(10), nullable=True, comment="pending | approved | rejected")
    note = db.Column(db.Text, nullable=True, comment="Student reflection")
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "position": self.position,
            "title": self.title,
            "status": self.status,
            "is_locked": self.is_locked,
            "proof_url": self.proof_url,
            "proof_status": self.proof_status,
            "note": self.note,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    def __repr__(self):
        return f"<ProjectStep {self.position}: {self.title[:30]} ({self.status})>"


class ProjectCommit(db.Model):
    """Build log entry. Never updated or deleted on its own."""

    __tablename__ = "project_commits"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    project_id = db.Column(
        db.String(36), db.ForeignKey("student_projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    step_id = db.Column(db.String(36), nullable=True)
    message = db.Column(db.String(500), nullable=False)
    evidence_link = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "step_id": self.step_id,
            "message": self.message,
            "evidence_link": self.evidence_link,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
