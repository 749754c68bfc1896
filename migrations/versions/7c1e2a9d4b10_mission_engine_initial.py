"""mission_engine_initial

Creates the mission engine schema:
  - students, process_templates, process_phases, project_templates
  - student_projects, project_steps, project_commits
  - badges, student_badges
  - notifications, audit_logs

Tables created conditionally (IF NOT EXISTS semantics) so the migration is
idempotent against databases that already received them via db.create_all().

Revision ID: 7c1e2a9d4b10
Revises:
Create Date: 2026-10-18 09:12:40.118204
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '7c1e2a9d4b10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Students ──────────────────────────────────────────────────────────
    if "students" not in existing:
        op.create_table(
            "students",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=150), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
        )

    # ── Workflow catalogue ────────────────────────────────────────────────
    if "process_templates" not in existing:
        op.create_table(
            "process_templates",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=150), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        # At most one default workflow system-wide
        op.create_index(
            "uq_process_templates_single_default", "process_templates", ["is_default"],
            unique=True,
            postgresql_where=sa.text("is_default IS TRUE"),
            sqlite_where=sa.text("is_default = 1"),
        )

    if "process_phases" not in existing:
        op.create_table(
            "process_phases",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("template_id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=150), nullable=False),
            sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("description", sa.Text(), nullable=True),
            sa.ForeignKeyConstraint(["template_id"], ["process_templates.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_process_phases_template_id", "process_phases", ["template_id"])

    if "project_templates" not in existing:
        op.create_table(
            "project_templates",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("station", sa.String(length=60), nullable=False, server_default="general"),
            sa.Column("difficulty", sa.String(length=20), nullable=True),
            sa.Column("skills", sa.JSON(), nullable=True),
            sa.Column("default_steps", sa.JSON(), nullable=True),
            sa.Column("default_workflow_id", sa.String(length=36), nullable=True),
            sa.Column("thumbnail_url", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["default_workflow_id"], ["process_templates.id"],
                                    ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )

    # ── Projects ──────────────────────────────────────────────────────────
    if "student_projects" not in existing:
        op.create_table(
            "student_projects",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("student_id", sa.String(length=36), nullable=False),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("station", sa.String(length=60), nullable=False, server_default="general",
                      comment="Subject area, e.g. robotics, coding"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="planning"),
            sa.Column("template_id", sa.String(length=36), nullable=True),
            sa.Column("workflow_id", sa.String(length=36), nullable=True),
            sa.Column("media_urls", sa.JSON(), nullable=True),
            sa.Column("skills_acquired", sa.JSON(), nullable=True),
            sa.Column("instructor_feedback", sa.Text(), nullable=True),
            sa.Column("reviewed_by", sa.String(length=150), nullable=True),
            sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint(
                "status IN ('planning','building','testing','delivered',"
                "'submitted','changes_requested','published')",
                name="ck_student_project_status",
            ),
            sa.ForeignKeyConstraint(["student_id"], ["students.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["template_id"], ["project_templates.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["workflow_id"], ["process_templates.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_student_projects_student_id", "student_projects", ["student_id"])
        op.create_index("ix_student_projects_template_id", "student_projects", ["template_id"])
        op.create_index("ix_student_projects_student_status", "student_projects",
                        ["student_id", "status"])

    if "project_steps" not in existing:
        op.create_table(
            "project_steps",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("project_id", sa.String(length=36), nullable=False),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("status", sa.String(length=10), nullable=False, server_default="todo"),
            sa.Column("is_locked", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("proof_url", sa.Text(), nullable=True,
                      comment="Opaque artifact reference (URL or data URI)"),
            sa.Column("proof_status", sa.String(length=10), nullable=True,
                      comment="pending | approved | rejected"),
            sa.Column("note", sa.Text(), nullable=True, comment="Student reflection"),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint("status IN ('todo','doing','done')", name="ck_project_step_status"),
            sa.ForeignKeyConstraint(["project_id"], ["student_projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_project_steps_project_position", "project_steps",
                        ["project_id", "position"])

    if "project_commits" not in existing:
        op.create_table(
            "project_commits",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("project_id", sa.String(length=36), nullable=False),
            sa.Column("step_id", sa.String(length=36), nullable=True),
            sa.Column("message", sa.String(length=500), nullable=False),
            sa.Column("evidence_link", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["student_projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_project_commits_project_id", "project_commits", ["project_id"])

    # ── Badges ────────────────────────────────────────────────────────────
    if "badges" not in existing:
        op.create_table(
            "badges",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("icon", sa.String(length=60), nullable=True),
            sa.Column("color", sa.String(length=30), nullable=True),
            sa.Column("criteria_type", sa.String(length=20), nullable=False,
                      server_default="project_count"),
            sa.Column("criteria_target", sa.String(length=120), nullable=False,
                      server_default="all", comment="station id, 'all', or skill name"),
            sa.Column("criteria_count", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint("criteria_type IN ('project_count','skill')",
                               name="ck_badge_criteria_type"),
            sa.PrimaryKeyConstraint("id"),
        )

    if "student_badges" not in existing:
        op.create_table(
            "student_badges",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("student_id", sa.String(length=36), nullable=False),
            sa.Column("badge_id", sa.String(length=36), nullable=False),
            sa.Column("project_id", sa.String(length=36), nullable=True,
                      comment="Publish event the badge was attributed to"),
            sa.Column("earned_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["student_id"], ["students.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["badge_id"], ["badges.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["project_id"], ["student_projects.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("student_id", "badge_id", name="uq_student_badge"),
        )
        op.create_index("ix_student_badges_student_id", "student_badges", ["student_id"])
        op.create_index("ix_student_badges_badge_id", "student_badges", ["badge_id"])
        op.create_index("ix_student_badges_project_id", "student_badges", ["project_id"])

    # ── Notifications & audit ─────────────────────────────────────────────
    if "notifications" not in existing:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("recipient", sa.String(length=150), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("category", sa.String(length=30), nullable=True),
            sa.Column("severity", sa.String(length=20), nullable=True),
            sa.Column("entity_type", sa.String(length=30), nullable=True),
            sa.Column("entity_id", sa.String(length=36), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=True),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_recipient", "notifications", ["recipient"])

    if "audit_logs" not in existing:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("entity_type", sa.String(length=30), nullable=False),
            sa.Column("entity_id", sa.String(length=36), nullable=False),
            sa.Column("action", sa.String(length=60), nullable=False),
            sa.Column("actor", sa.String(length=150), nullable=False),
            sa.Column("diff_json", sa.Text(), nullable=True),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
        op.create_index("idx_audit_actor", "audit_logs", ["actor"])
        op.create_index("idx_audit_action", "audit_logs", ["action"])
        op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])


def downgrade():
    for table in (
        "audit_logs", "notifications", "student_badges", "badges",
        "project_commits", "project_steps", "student_projects",
        "project_templates", "process_phases", "process_templates", "students",
    ):
        op.drop_table(table)
