"""
Notification sink tests.
"""

from sqlalchemy.exc import SQLAlchemyError

from makerlab.models import db
from makerlab.models.notification import Notification
from makerlab.services.notification import NotificationEvent, NotificationService


def _event(recipient="student-1", title="Hello"):
    return NotificationEvent(recipient=recipient, title=title, message="hi")


def test_dispatch_persists_events():
    created = NotificationService.dispatch([_event(), _event("student-2")])
    assert len(created) == 2
    assert Notification.query.count() == 2


def test_dispatch_skips_blank_recipients():
    assert NotificationService.dispatch([_event(recipient="")]) == []


def test_dispatch_failure_is_swallowed(monkeypatch):
    def _fail(self):
        raise SQLAlchemyError("db down")

    monkeypatch.setattr(type(db.session()), "commit", _fail)
    assert NotificationService.dispatch([_event()]) == []
    monkeypatch.undo()

    assert Notification.query.count() == 0


def test_invalid_severity_dropped():
    bad = NotificationEvent(recipient="student-1", title="x", severity="loud")
    assert NotificationService.dispatch([bad]) == []


def test_list_unread_and_mark_read():
    NotificationService.dispatch([_event(title="One"), _event(title="Two"), _event("other")])

    items, total = NotificationService.list_for_recipient("student-1")
    assert total == 2
    assert NotificationService.unread_count("student-1") == 2

    NotificationService.mark_read(items[0].id)
    assert NotificationService.unread_count("student-1") == 1

    assert NotificationService.mark_all_read("student-1") == 1
    assert NotificationService.unread_count("student-1") == 0
    assert NotificationService.unread_count("other") == 1


def test_mark_read_unknown_returns_none():
    assert NotificationService.mark_read(999) is None
