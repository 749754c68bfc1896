"""
MakerLab Mission Engine
Notification Blueprint — in-app notifications for students and instructors.

Endpoints:
    GET  /api/v1/notifications?recipient=&unread_only=
    GET  /api/v1/notifications/unread-count?recipient=
    POST /api/v1/notifications/<id>/read
    POST /api/v1/notifications/read-all          body: {recipient}

``recipient`` defaults to the acting user (X-Actor-Id).
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from makerlab.blueprints import json_body, register_error_handlers
from makerlab.core.exceptions import NotFoundError
from makerlab.services.notification import NotificationService
from makerlab.services.permission import current_actor
from makerlab.utils.errors import E, api_error

logger = logging.getLogger(__name__)

notification_bp = register_error_handlers(
    Blueprint("notification_bp", __name__, url_prefix="/api/v1"),
)


def _recipient(explicit=None):
    recipient = (explicit or request.args.get("recipient") or "").strip()
    if recipient:
        return recipient
    actor = current_actor()
    return actor.id if actor.id != "anonymous" else ""


@notification_bp.route("/notifications", methods=["GET"])
def list_notifications():
    recipient = _recipient()
    if not recipient:
        return api_error(E.VALIDATION_REQUIRED, "recipient is required")

    unread_only = request.args.get("unread_only", "false").lower() in ("1", "true", "yes")
    try:
        limit = min(int(request.args.get("limit", 50)), 200)
        offset = max(int(request.args.get("offset", 0)), 0)
    except (TypeError, ValueError):
        return api_error(E.VALIDATION_INVALID, "limit and offset must be integers")

    items, total = NotificationService.list_for_recipient(
        recipient, unread_only=unread_only, limit=limit, offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(recipient),
    })


@notification_bp.route("/notifications/unread-count", methods=["GET"])
def unread_count():
    recipient = _recipient()
    if not recipient:
        return api_error(E.VALIDATION_REQUIRED, "recipient is required")
    return jsonify({"recipient": recipient, "unread_count": NotificationService.unread_count(recipient)})


@notification_bp.route("/notifications/<int:nid>/read", methods=["POST"])
def mark_read(nid):
    notif = NotificationService.mark_read(nid)
    if not notif:
        raise NotFoundError(resource="Notification", resource_id=nid)
    return jsonify(notif.to_dict())


@notification_bp.route("/notifications/read-all", methods=["POST"])
def mark_all_read():
    recipient = _recipient(json_body().get("recipient"))
    if not recipient:
        return api_error(E.VALIDATION_REQUIRED, "recipient is required")
    count = NotificationService.mark_all_read(recipient)
    return jsonify({"marked_read": count})
