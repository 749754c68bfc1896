"""
MakerLab Mission Engine
Notification Service — the engine's notification sink.

Lifecycle services build NotificationEvent values while they work and hand
them to ``dispatch`` only after their own write has committed.  Delivery is
fire-and-forget: a failing notification insert is logged and dropped, it
never undoes the transition that triggered it.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError

from makerlab.models import _utcnow, db
from makerlab.models.notification import (
    NOTIFICATION_CATEGORIES,
    NOTIFICATION_SEVERITIES,
    Notification,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationEvent:
    recipient: str
    title: str
    message: str = ""
    severity: str = "info"
    category: str = "mission"
    entity_type: str = ""
    entity_id: str | None = None


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def notify(recipient, title, message="", severity="info", *,
               category="mission", entity_type="", entity_id=None):
        """
        Add a single notification to the session (flush only).

        Returns:
            The flushed Notification instance.
        """
        if severity not in NOTIFICATION_SEVERITIES:
            raise ValueError(f"Invalid severity: {severity}")
        if category not in NOTIFICATION_CATEGORIES:
            raise ValueError(f"Invalid category: {category}")
        notif = Notification(
            recipient=str(recipient),
            title=title,
            message=message,
            category=category,
            severity=severity,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        db.session.add(notif)
        db.session.flush()
        return notif

    @staticmethod
    def dispatch(events):
        """
        Persist a batch of events in their own commit.

        Call after the triggering write has committed.  Returns the created
        notifications, or [] when the store rejected the batch.
        """
        events = [e for e in events if e.recipient]
        if not events:
            return []
        try:
            created = [
                NotificationService.notify(
                    e.recipient, e.title, e.message, e.severity,
                    category=e.category, entity_type=e.entity_type, entity_id=e.entity_id,
                )
                for e in events
            ]
            db.session.commit()
        except (SQLAlchemyError, ValueError):
            db.session.rollback()
            logger.exception(
                "Notification delivery failed for %d event(s)", len(events),
                extra={"event_type": "notification.failed"},
            )
            return []
        return created

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_recipient(recipient, unread_only=False, limit=50, offset=0):
        """
        Retrieve notifications for a recipient, newest first.
        """
        q = Notification.query.filter(Notification.recipient == recipient)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(recipient):
        """Return count of unread notifications."""
        return Notification.query.filter_by(recipient=recipient, is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id):
        """Mark a single notification as read."""
        notif = db.session.get(Notification, notification_id)
        if notif:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(recipient):
        """Mark all notifications for a recipient as read."""
        q = Notification.query.filter_by(recipient=recipient, is_read=False)
        count = q.update({"is_read": True, "read_at": _utcnow()}, synchronize_session="fetch")
        db.session.commit()
        return count

    # ── Mission event helpers ─────────────────────────────────────────────

    @staticmethod
    def submission_events(project, instructor_ids):
        """One info event per instructor when a student submits."""
        return [
            NotificationEvent(
                recipient=iid,
                title="New Project Submission",
                message=f'"{project.title}" was submitted for review.',
                severity="info",
                category="review",
                entity_type="project",
                entity_id=project.id,
            )
            for iid in instructor_ids
        ]

    @staticmethod
    def review_event(project, decision, feedback=None):
        """Decision notice for the student."""
        if decision == "approve":
            return NotificationEvent(
                recipient=project.student_id,
                title="Mission Accomplished!",
                message=f'Your project "{project.title}" has been approved and published!',
                severity="success",
                category="review",
                entity_type="project",
                entity_id=project.id,
            )
        message = f'Your project "{project.title}" needs some changes.'
        if feedback:
            message += f" Feedback: {feedback}"
        return NotificationEvent(
            recipient=project.student_id,
            title="Mission Update",
            message=message,
            severity="warning",
            category="review",
            entity_type="project",
            entity_id=project.id,
        )

    @staticmethod
    def badge_event(student_id, badge):
        return NotificationEvent(
            recipient=student_id,
            title="New Badge Earned!",
            message=f'You earned the "{badge.name}" badge!',
            severity="success",
            category="badge",
            entity_type="badge",
            entity_id=badge.id,
        )
