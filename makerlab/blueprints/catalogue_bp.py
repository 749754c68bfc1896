"""
MakerLab Mission Engine
Catalogue Blueprint — workflows, project templates, badges, students.

Reads are open to every actor; writes require ``can_manage_learning``.

Endpoints:
    GET/POST        /api/v1/workflows
    GET/PUT/DELETE  /api/v1/workflows/<id>
    POST            /api/v1/workflows/<id>/default
    GET/POST        /api/v1/project-templates
    PUT/DELETE      /api/v1/project-templates/<id>      (?cascade=true)
    GET/POST        /api/v1/badges
    PUT/DELETE      /api/v1/badges/<id>
    POST            /api/v1/students
    GET             /api/v1/students/<id>
    GET             /api/v1/students/<id>/badges
"""

import logging

from flask import Blueprint, jsonify, request

from makerlab.blueprints import json_body, register_error_handlers
from makerlab.services import badge_service, workflow_service
from makerlab.services.permission import current_actor, require_manage_learning
from makerlab.services.student_service import create_student, get_student

logger = logging.getLogger(__name__)

catalogue_bp = register_error_handlers(Blueprint("catalogue_bp", __name__, url_prefix="/api/v1"))


def _instructor(action):
    actor = current_actor()
    require_manage_learning(actor, action)
    return actor.id


# ═════════════════════════════════════════════════════════════════════════
# Workflows (ProcessTemplate)
# ═════════════════════════════════════════════════════════════════════════


@catalogue_bp.route("/workflows", methods=["GET"])
def list_workflows():
    templates = workflow_service.list_process_templates()
    return jsonify({"items": [t.to_dict() for t in templates], "total": len(templates)})


@catalogue_bp.route("/workflows", methods=["POST"])
def create_workflow():
    actor = _instructor("create_workflow")
    data = json_body()
    template = workflow_service.create_process_template(
        data.get("name"),
        phases=data.get("phases"),
        description=data.get("description", ""),
        is_default=bool(data.get("is_default")),
        actor=actor,
    )
    return jsonify(template.to_dict()), 201


@catalogue_bp.route("/workflows/<template_id>", methods=["GET"])
def get_workflow(template_id):
    return jsonify(workflow_service.get_process_template(template_id).to_dict())


@catalogue_bp.route("/workflows/<template_id>", methods=["PUT"])
def update_workflow(template_id):
    actor = _instructor("update_workflow")
    template = workflow_service.update_process_template(template_id, json_body(), actor=actor)
    return jsonify(template.to_dict())


@catalogue_bp.route("/workflows/<template_id>", methods=["DELETE"])
def delete_workflow(template_id):
    actor = _instructor("delete_workflow")
    workflow_service.delete_process_template(template_id, actor=actor)
    return jsonify({"deleted": True, "id": template_id})


@catalogue_bp.route("/workflows/<template_id>/default", methods=["POST"])
def set_default_workflow(template_id):
    actor = _instructor("set_default_workflow")
    template = workflow_service.set_default_process_template(template_id, actor=actor)
    return jsonify(template.to_dict())


# ═════════════════════════════════════════════════════════════════════════
# Project templates
# ═════════════════════════════════════════════════════════════════════════


@catalogue_bp.route("/project-templates", methods=["GET"])
def list_project_templates():
    templates = workflow_service.list_project_templates(
        station=request.args.get("station"), status=request.args.get("status"),
    )
    return jsonify({"items": [t.to_dict() for t in templates], "total": len(templates)})


@catalogue_bp.route("/project-templates", methods=["POST"])
def create_project_template():
    actor = _instructor("create_project_template")
    template = workflow_service.create_project_template(json_body(), actor=actor)
    return jsonify(template.to_dict()), 201


@catalogue_bp.route("/project-templates/<template_id>", methods=["PUT"])
def update_project_template(template_id):
    actor = _instructor("update_project_template")
    template = workflow_service.update_project_template(template_id, json_body(), actor=actor)
    return jsonify(template.to_dict())


@catalogue_bp.route("/project-templates/<template_id>", methods=["DELETE"])
def delete_project_template(template_id):
    actor = _instructor("delete_project_template")
    cascade = request.args.get("cascade", "false").lower() in ("1", "true", "yes")
    return jsonify(workflow_service.delete_project_template(template_id, cascade=cascade, actor=actor))


# ═════════════════════════════════════════════════════════════════════════
# Badges
# ═════════════════════════════════════════════════════════════════════════


@catalogue_bp.route("/badges", methods=["GET"])
def list_badges():
    badges = badge_service.list_badges()
    return jsonify({"items": [b.to_dict() for b in badges], "total": len(badges)})


@catalogue_bp.route("/badges", methods=["POST"])
def create_badge():
    actor = _instructor("create_badge")
    return jsonify(badge_service.create_badge(json_body(), actor=actor).to_dict()), 201


@catalogue_bp.route("/badges/<badge_id>", methods=["PUT"])
def update_badge(badge_id):
    actor = _instructor("update_badge")
    return jsonify(badge_service.update_badge(badge_id, json_body(), actor=actor).to_dict())


@catalogue_bp.route("/badges/<badge_id>", methods=["DELETE"])
def delete_badge(badge_id):
    actor = _instructor("delete_badge")
    badge_service.delete_badge(badge_id, actor=actor)
    return jsonify({"deleted": True, "id": badge_id})


# ═════════════════════════════════════════════════════════════════════════
# Students
# ═════════════════════════════════════════════════════════════════════════


@catalogue_bp.route("/students", methods=["POST"])
def register_student():
    _instructor("create_student")
    data = json_body()
    student = create_student(data.get("name"), email=data.get("email"), student_id=data.get("id"))
    return jsonify(student.to_dict()), 201


@catalogue_bp.route("/students/<student_id>", methods=["GET"])
def student_detail(student_id):
    return jsonify(get_student(student_id).to_dict())


@catalogue_bp.route("/students/<student_id>/badges", methods=["GET"])
def student_badges(student_id):
    get_student(student_id)
    items = badge_service.badges_for_student(student_id)
    return jsonify({"items": items, "total": len(items)})
