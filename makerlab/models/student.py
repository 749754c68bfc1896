"""
MakerLab Mission Engine
Student model: owner of projects and of the badge ledger.
"""

from makerlab.models import _utcnow, _uuid, db


class Student(db.Model):
    __tablename__ = "students"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(255), nullable=True, unique=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    projects = db.relationship(
        "StudentProject", backref="student", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    badge_awards = db.relationship(
        "StudentBadge", backref="student", lazy="select",
        cascade="all, delete-orphan", order_by="StudentBadge.earned_at",
    )

    @property
    def badge_ids(self) -> set[str]:
        return {award.badge_id for award in self.badge_awards}

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "badges": sorted(self.badge_ids),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Student {self.id}: {self.name}>"
