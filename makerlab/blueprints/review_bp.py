"""
MakerLab Mission Engine
Review Blueprint — instructor review queue and decisions.

Endpoints (instructor/admin only):
    GET  /api/v1/reviews/queue            submitted projects awaiting review
    POST /api/v1/projects/<id>/review     approve | request_changes
"""

import logging

from flask import Blueprint, jsonify

from makerlab.blueprints import json_body, register_error_handlers
from makerlab.services.permission import current_actor, require_manage_learning
from makerlab.services.review_service import review_project, review_queue
from makerlab.utils.errors import E, api_error

logger = logging.getLogger(__name__)

review_bp = register_error_handlers(Blueprint("review_bp", __name__, url_prefix="/api/v1"))


@review_bp.route("/reviews/queue", methods=["GET"])
def queue():
    require_manage_learning(current_actor(), "review_queue")
    projects = review_queue()
    return jsonify({
        "items": [p.to_dict(include_steps=True) for p in projects],
        "total": len(projects),
    })


@review_bp.route("/projects/<project_id>/review", methods=["POST"])
def review(project_id):
    actor = current_actor()
    require_manage_learning(actor, "review_project")

    data = json_body()
    decision = (data.get("decision") or "").strip()
    if not decision:
        return api_error(E.VALIDATION_REQUIRED, "decision is required")

    result = review_project(project_id, decision, actor.id, feedback=data.get("feedback"))
    return jsonify(result)
