"""
Project Blueprint — project listing and detail.

    GET /api/v1/projects            — requires the /projects capability
    GET /api/v1/projects/<id>       — /projects capability, or any involvement
                                      (supervisor, responsible, executor, member)
    GET /api/v1/projects/involved   — projects involving the caller
"""

from flask import Blueprint, g, jsonify, request

from app.middleware.permission_required import login_required, require_capability
from app.services import project_service
from app.services.capability_resolver import has_capability
from app.services.involvement_service import involved_projects, is_involved, stage_stats
from app.utils.errors import E, api_error, register_service_error_handlers

project_bp = Blueprint("project_bp", __name__, url_prefix="/api/v1/projects")
register_service_error_handlers(project_bp)


@project_bp.route("", methods=["GET"])
@require_capability("/projects")
def list_projects():
    projects = project_service.list_projects(
        status=request.args.get("status") or None,
        search=request.args.get("search") or None,
    )
    return jsonify([project_service.project_to_dict(p) for p in projects])


@project_bp.route("/involved", methods=["GET"])
@login_required
def list_involved():
    projects = involved_projects(g.current_user.id)
    return jsonify([
        {**project_service.project_to_dict(p), "stats": stage_stats(p.stages)}
        for p in projects
    ])


@project_bp.route("/<int:project_id>", methods=["GET"])
@login_required
def get_project(project_id):
    project = project_service.get_project(project_id)
    if not has_capability(g.current_role, f"/projects/{project_id}") and not is_involved(project, g.current_user.id):
        return api_error(E.FORBIDDEN, "Permission denied")
    d = project_service.project_to_dict(project, include_stages=True)
    d["stats"] = stage_stats(project.stages)
    return jsonify(d)
