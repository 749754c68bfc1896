"""
MakerLab Mission Engine
Project Blueprint — a student's missions, their steps and lifecycle.

Endpoints:
    POST   /api/v1/projects                                 create (planning)
    GET    /api/v1/projects                                 list (?student_id, ?status)
    GET    /api/v1/projects/<id>                            detail + progress
    PUT    /api/v1/projects/<id>                            descriptive fields
    POST   /api/v1/projects/<id>/workflow                   replace steps from a workflow
    POST   /api/v1/projects/<id>/steps                      add step (planning)
    PUT    /api/v1/projects/<id>/steps/<sid>                rename / lock (planning)
    DELETE /api/v1/projects/<id>/steps/<sid>                remove step (planning)
    POST   /api/v1/projects/<id>/steps/<sid>/move           move forward (proof-gated)
    POST   /api/v1/projects/<id>/steps/<sid>/reopen         done → doing
    POST   /api/v1/projects/<id>/transition                 student lifecycle action
    GET    /api/v1/projects/<id>/commits                    build log
"""

import logging

from flask import Blueprint, jsonify, request

from makerlab.blueprints import json_body, paginate_query, register_error_handlers
from makerlab.models.project import ProjectCommit
from makerlab.services import step_ledger
from makerlab.services.permission import current_actor
from makerlab.services.project_lifecycle import (
    create_project,
    get_project,
    list_projects,
    transition_project,
    update_project,
)
from makerlab.services.workflow_resolver import replace_steps
from makerlab.services.workflow_service import get_process_template
from makerlab.utils.errors import E, api_error
from makerlab.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)

project_bp = register_error_handlers(Blueprint("project_bp", __name__, url_prefix="/api/v1"))


def _project_payload(project):
    data = project.to_dict()
    data["progress"] = step_ledger.progress(project)
    return data


# ═════════════════════════════════════════════════════════════════════════
# Projects
# ═════════════════════════════════════════════════════════════════════════


@project_bp.route("/projects", methods=["POST"])
def create():
    data = json_body()
    student_id = (data.get("student_id") or "").strip()
    if not student_id:
        return api_error(E.VALIDATION_REQUIRED, "student_id is required")

    project = create_project(
        student_id,
        data.get("title"),
        description=data.get("description"),
        station=data.get("station"),
        skills_acquired=data.get("skills_acquired"),
        media_urls=data.get("media_urls"),
        template_id=data.get("template_id"),
        workflow_id=data.get("workflow_id"),
        steps=data.get("steps"),
        actor=current_actor().id,
    )
    return jsonify(_project_payload(project)), 201


@project_bp.route("/projects", methods=["GET"])
def list_all():
    projects = list_projects(
        student_id=request.args.get("student_id"),
        status=request.args.get("status"),
    )
    return jsonify({
        "items": [p.to_dict(include_steps=False) for p in projects],
        "total": len(projects),
    })


@project_bp.route("/projects/<project_id>", methods=["GET"])
def detail(project_id):
    return jsonify(_project_payload(get_project(project_id)))


@project_bp.route("/projects/<project_id>", methods=["PUT"])
def update(project_id):
    project = update_project(project_id, json_body(), actor=current_actor().id)
    return jsonify(_project_payload(project))


@project_bp.route("/projects/<project_id>/workflow", methods=["POST"])
def switch_workflow(project_id):
    data = json_body()
    workflow_id = data.get("workflow_id")
    if not workflow_id:
        return api_error(E.VALIDATION_REQUIRED, "workflow_id is required")

    project = get_project(project_id)
    workflow = get_process_template(workflow_id)
    result = replace_steps(project, workflow, confirm=bool(data.get("confirm")),
                           actor=current_actor().id)
    commit_or_raise("project.replace_steps")
    return jsonify(result)


@project_bp.route("/projects/<project_id>/transition", methods=["POST"])
def transition(project_id):
    action = (json_body().get("action") or "").strip()
    if not action:
        return api_error(E.VALIDATION_REQUIRED, "action is required")
    return jsonify(transition_project(project_id, action, actor=current_actor().id))


@project_bp.route("/projects/<project_id>/commits", methods=["GET"])
def commits(project_id):
    project = get_project(project_id)
    query = ProjectCommit.query.filter_by(project_id=project.id).order_by(
        ProjectCommit.created_at.desc(),
    )
    items, total = paginate_query(query, default_limit=50)
    return jsonify({"items": [c.to_dict() for c in items], "total": total})


# ═════════════════════════════════════════════════════════════════════════
# Steps
# ═════════════════════════════════════════════════════════════════════════


@project_bp.route("/projects/<project_id>/steps", methods=["POST"])
def add_step(project_id):
    project = get_project(project_id)
    step = step_ledger.add_step(project, json_body().get("title"))
    commit_or_raise("step.add")
    return jsonify(step.to_dict()), 201


@project_bp.route("/projects/<project_id>/steps/<step_id>", methods=["PUT"])
def edit_step(project_id, step_id):
    data = json_body()
    if "title" not in data and "is_locked" not in data:
        return api_error(E.VALIDATION_REQUIRED, "title or is_locked is required")

    project = get_project(project_id)
    step = None
    if "title" in data:
        step = step_ledger.rename_step(project, step_id, data["title"])
    if "is_locked" in data:
        step = step_ledger.set_step_locked(project, step_id, data["is_locked"])
    commit_or_raise("step.update")
    return jsonify(step.to_dict())


@project_bp.route("/projects/<project_id>/steps/<step_id>", methods=["DELETE"])
def delete_step(project_id, step_id):
    project = get_project(project_id)
    step_ledger.delete_step(project, step_id)
    commit_or_raise("step.delete")
    return jsonify({"deleted": True, "id": step_id})


@project_bp.route("/projects/<project_id>/steps/<step_id>/move", methods=["POST"])
def move_step(project_id, step_id):
    data = json_body()
    new_status = (data.get("status") or "").strip()
    if not new_status:
        return api_error(E.VALIDATION_REQUIRED, "status is required")

    project = get_project(project_id)
    result = step_ledger.move_step(
        project, step_id, new_status,
        proof_url=data.get("proof_url"),
        via_wizard=bool(data.get("via_wizard")),
        actor=current_actor().id,
    )
    if result.proof_required:
        return api_error(
            E.PROOF_REQUIRED, "Attach proof of work to complete this step",
            details={"step_id": step_id, "status": result.previous_status},
        )
    commit_or_raise("step.move")

    payload = result.to_dict()
    payload["progress"] = step_ledger.progress(project)
    return jsonify(payload)


@project_bp.route("/projects/<project_id>/steps/<step_id>/reopen", methods=["POST"])
def reopen_step(project_id, step_id):
    project = get_project(project_id)
    step = step_ledger.reopen_step(project, step_id, json_body().get("reason"),
                                   actor=current_actor().id)
    commit_or_raise("step.reopen")
    return jsonify(step.to_dict())
