"""
MakerLab Mission Engine
Workflow catalogue models.

Models:
    - ProcessTemplate:  instructor-defined workflow (ordered phases)
    - ProcessPhase:     one ordered stage of a ProcessTemplate
    - ProjectTemplate:  mission blueprint a student can start from

Business rules:
    - At most one ProcessTemplate has is_default = true.  Enforced by the
      partial unique index below and by workflow_service's switch
      transaction.
    - Projects reference templates weakly; deleting a template never touches
      existing project steps.
"""

from makerlab.models import _utcnow, _uuid, db

PROJECT_TEMPLATE_STATUSES = {"draft", "featured", "assigned", "archived"}


class ProcessTemplate(db.Model):
    """Ordered list of phases used to seed a project's steps."""

    __tablename__ = "process_templates"
    __table_args__ = (
        db.Index(
            "uq_process_templates_single_default",
            "is_default",
            unique=True,
            postgresql_where=db.text("is_default IS TRUE"),
            sqlite_where=db.text("is_default = 1"),
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text, default="")
    is_default = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    phases = db.relationship(
        "ProcessPhase", backref="template", lazy="select",
        cascade="all, delete-orphan", order_by="ProcessPhase.order",
    )

    def ordered_phases(self):
        return sorted(self.phases, key=lambda p: (p.order, p.name))

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_default": self.is_default,
            "phases": [p.to_dict() for p in self.ordered_phases()],
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        flag = " default" if self.is_default else ""
        return f"<ProcessTemplate {self.id}: {self.name}{flag}>"


class ProcessPhase(db.Model):
    __tablename__ = "process_phases"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    template_id = db.Column(
        db.String(36), db.ForeignKey("process_templates.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(150), nullable=False)
    order = db.Column(db.Integer, nullable=False, default=0)
    description = db.Column(db.Text, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "order": self.order,
            "description": self.description,
        }


class ProjectTemplate(db.Model):
    """
    Mission blueprint.

    ``default_workflow_id`` is preferred over ``default_steps`` when a
    student starts a project from this template.
    """

    __tablename__ = "project_templates"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    station = db.Column(db.String(60), nullable=False, default="general")
    difficulty = db.Column(db.String(20), default="beginner")
    skills = db.Column(db.JSON, default=list)
    default_steps = db.Column(db.JSON, default=list)
    default_workflow_id = db.Column(
        db.String(36), db.ForeignKey("process_templates.id", ondelete="SET NULL"),
        nullable=True,
    )
    thumbnail_url = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="draft")

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "station": self.station,
            "difficulty": self.difficulty,
            "skills": list(self.skills or []),
            "default_steps": list(self.default_steps or []),
            "default_workflow_id": self.default_workflow_id,
            "thumbnail_url": self.thumbnail_url,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
