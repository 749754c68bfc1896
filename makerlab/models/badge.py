"""
MakerLab Mission Engine
Badge catalogue and award ledger.

Models:
    - Badge:         declarative achievement with a single criterion
    - StudentBadge:  append-only (student, badge) award record

The (student_id, badge_id) unique constraint is what makes awarding a
set-union: badge_service inserts with ON CONFLICT DO NOTHING, so two
publishes racing for the same student can never duplicate an award.
"""

from makerlab.models import _utcnow, _uuid, db

# Fields an instructor may edit after the badge has been earned.
BADGE_DESCRIPTIVE_FIELDS = ("name", "description", "icon", "color")


class Badge(db.Model):
    __tablename__ = "badges"
    __table_args__ = (
        db.CheckConstraint(
            "criteria_type IN ('project_count','skill')", name="ck_badge_criteria_type",
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, default="")
    icon = db.Column(db.String(60), default="Award")
    color = db.Column(db.String(30), default="blue")

    criteria_type = db.Column(db.String(20), nullable=False, default="project_count")
    criteria_target = db.Column(db.String(120), nullable=False, default="all",
                                comment="station id, 'all', or skill name")
    criteria_count = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    @property
    def criterion(self):
        """Tagged criterion variant for the evaluator."""
        from makerlab.services.badge_evaluator import criterion_from_dict
        return criterion_from_dict(self.criteria_dict())

    def criteria_dict(self) -> dict:
        data = {"type": self.criteria_type, "target": self.criteria_target}
        if self.criteria_count is not None:
            data["count"] = self.criteria_count
        return data

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "color": self.color,
            "criteria": self.criteria_dict(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Badge {self.id}: {self.name}>"


class StudentBadge(db.Model):
    """One earned badge. Rows are never updated or deleted."""

    __tablename__ = "student_badges"
    __table_args__ = (
        db.UniqueConstraint("student_id", "badge_id", name="uq_student_badge"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    student_id = db.Column(
        db.String(36), db.ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    badge_id = db.Column(
        db.String(36), db.ForeignKey("badges.id", ondelete="RESTRICT"),
        nullable=False, index=True,
    )
    project_id = db.Column(
        db.String(36), db.ForeignKey("student_projects.id", ondelete="SET NULL"),
        nullable=True, index=True,
        comment="Publish event the badge was attributed to",
    )
    earned_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            "student_id": self.student_id,
            "badge_id": self.badge_id,
            "project_id": self.project_id,
            "earned_at": self.earned_at.isoformat() if self.earned_at else None,
        }
