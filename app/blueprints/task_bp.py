"""
Task Blueprint — stage work, checklist submissions and deliverables.

Endpoints (all under /api/v1/tasks, all require a session):
    GET    /my                                       — my stages + involved projects
    GET    /<stage_id>                               — stage detail with history
    PATCH  /<stage_id>/checklist                     — replace checklist / marked flags
    POST   /<stage_id>/checklist/<index>/submit      — submit evidence for one item
    GET    /<stage_id>/checklist/<index>/submission  — read back one item's submission
    PATCH  /<stage_id>/checklist/<index>/review      — approve / reject one item
    POST   /<stage_id>/deliver                       — submit the stage deliverable
    PATCH  /<stage_id>/deliver/<deliverable_id>      — edit the pending deliverable
    POST   /<stage_id>/approve                       — approve the pending deliverable
    POST   /<stage_id>/reject                        — reject the pending deliverable

Malformed bodies are answered with 400 here; business rules live in the
services and surface through the shared error handlers.
"""

import logging

from flask import Blueprint, g, jsonify, request

from app.middleware.permission_required import login_required, require_any_permission
from app.services import checklist_service, deliverable_service, involvement_service
from app.services.stage_lifecycle import (
    REVIEW_PERMISSIONS,
    can_review,
    get_available_stage_transitions,
    get_stage_or_404,
    may_act,
)
from app.utils.errors import E, api_error, register_service_error_handlers
from app.utils.helpers import parse_int

logger = logging.getLogger(__name__)

task_bp = Blueprint("task_bp", __name__, url_prefix="/api/v1/tasks")
register_service_error_handlers(task_bp)

DELIVER_PERMISSIONS = ("trabalhos:registrar", "trabalhos:avaliar")


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None, api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    return data, None


def _require_text(data, field):
    value = data.get(field)
    if value is None:
        return None, api_error(E.VALIDATION_REQUIRED, f"{field} is required")
    if not isinstance(value, str):
        return None, api_error(E.VALIDATION_INVALID, f"{field} must be a string")
    return value, None


# ═════════════════════════════════════════════════════════════════════════
# Read
# ═════════════════════════════════════════════════════════════════════════


@task_bp.route("/my", methods=["GET"])
@login_required
def my_tasks():
    status = request.args.get("status") or None
    project_id = parse_int(request.args.get("project_id"))
    return jsonify(involvement_service.my_tasks(g.current_user.id, status=status, project_id=project_id))


@task_bp.route("/<int:stage_id>", methods=["GET"])
@login_required
def get_stage(stage_id):
    stage = get_stage_or_404(stage_id)
    d = stage.to_dict(include_history=True)
    d["may_act"] = may_act(stage, g.current_user.id)
    d["can_review"] = can_review(stage, g.current_user)
    d["available_transitions"] = get_available_stage_transitions(stage)
    return jsonify(d)


# ═════════════════════════════════════════════════════════════════════════
# Checklist
# ═════════════════════════════════════════════════════════════════════════


@task_bp.route("/<int:stage_id>/checklist", methods=["PATCH"])
@login_required
def update_checklist(stage_id):
    data, err = _json_body()
    if err:
        return err
    items = data.get("checklist")
    if not isinstance(items, list):
        return api_error(E.VALIDATION_REQUIRED, "checklist must be a list")
    stage = checklist_service.update_checklist(stage_id, g.current_user.id, items)
    return jsonify(stage.to_dict())


@task_bp.route("/<int:stage_id>/checklist/<int:index>/submit", methods=["POST"])
@login_required
def submit_checklist_item(stage_id, index):
    data, err = _json_body()
    if err:
        return err
    description, err = _require_text(data, "description")
    if err:
        return err
    sub = checklist_service.submit_objective(
        stage_id, index, g.current_user.id,
        description=description,
        images=data.get("images"),
        documents=data.get("documents"),
        image=data.get("image"),
        document=data.get("document"),
    )
    return jsonify(sub.to_dict()), 201


@task_bp.route("/<int:stage_id>/checklist/<int:index>/submission", methods=["GET"])
@login_required
def get_checklist_submission(stage_id, index):
    sub = checklist_service.get_submission(stage_id, index)
    return jsonify(sub.to_dict())


@task_bp.route("/<int:stage_id>/checklist/<int:index>/review", methods=["PATCH"])
@require_any_permission(*REVIEW_PERMISSIONS)
def review_checklist_item(stage_id, index):
    data, err = _json_body()
    if err:
        return err
    status, err = _require_text(data, "status")
    if err:
        return err
    sub = checklist_service.review_objective(
        stage_id, index, g.current_user, status=status, comment=data.get("comment"),
    )
    return jsonify(sub.to_dict())


# ═════════════════════════════════════════════════════════════════════════
# Deliverable
# ═════════════════════════════════════════════════════════════════════════


@task_bp.route("/<int:stage_id>/deliver", methods=["POST"])
@require_any_permission(*DELIVER_PERMISSIONS)
def deliver(stage_id):
    data, err = _json_body()
    if err:
        return err
    description, err = _require_text(data, "description")
    if err:
        return err
    deliverable_service.submit_deliverable(
        stage_id, g.current_user.id, description=description, image=data.get("image"),
    )
    return jsonify(get_stage_or_404(stage_id).to_dict(include_history=True)), 201


@task_bp.route("/<int:stage_id>/deliver/<int:deliverable_id>", methods=["PATCH"])
@require_any_permission(*DELIVER_PERMISSIONS)
def edit_delivery(stage_id, deliverable_id):
    data, err = _json_body()
    if err:
        return err
    description, err = _require_text(data, "description")
    if err:
        return err
    deliverable_service.edit_deliverable(
        stage_id, deliverable_id, g.current_user.id,
        description=description, image=data.get("image"),
    )
    return jsonify(get_stage_or_404(stage_id).to_dict(include_history=True))


@task_bp.route("/<int:stage_id>/approve", methods=["POST"])
@require_any_permission(*REVIEW_PERMISSIONS)
def approve(stage_id):
    data = request.get_json(silent=True) or {}
    deliverable_service.approve_stage(stage_id, g.current_user, comment=data.get("comment"))
    return jsonify(get_stage_or_404(stage_id).to_dict(include_history=True))


@task_bp.route("/<int:stage_id>/reject", methods=["POST"])
@require_any_permission(*REVIEW_PERMISSIONS)
def reject(stage_id):
    data = request.get_json(silent=True) or {}
    deliverable_service.reject_stage(
        stage_id, g.current_user, comment=data.get("comment") or data.get("reason"),
    )
    return jsonify(get_stage_or_404(stage_id).to_dict(include_history=True))
