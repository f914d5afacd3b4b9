"""
User & Role Blueprint — reference data for filters and forms.

    GET  /api/v1/users/options   — id + name of active users (any session)
    GET  /api/v1/users           — full list, requires the /users capability
    POST /api/v1/users           — create, requires usuarios:gerenciar
    GET  /api/v1/cargos          — roles with resolved capabilities, requires /cargos
"""

from flask import Blueprint, jsonify, request

from app.blueprints import paginate_query
from app.middleware.permission_required import login_required, require_any_permission, require_capability
from app.services.role_service import list_roles
from app.services.user_service import (
    UserServiceError,
    create_user,
    list_user_options,
    users_query,
)
from app.utils.errors import E, api_error

user_bp = Blueprint("user_bp", __name__, url_prefix="/api/v1")


@user_bp.route("/users/options", methods=["GET"])
@login_required
def user_options():
    return jsonify(list_user_options())


@user_bp.route("/users", methods=["GET"])
@require_capability("/users")
def get_users():
    query = users_query(
        search=request.args.get("search") or None,
        role_name=request.args.get("role") or None,
    )
    users, total = paginate_query(query)
    return jsonify({"items": [u.to_dict(include_role=True) for u in users], "total": total})


@user_bp.route("/users", methods=["POST"])
@require_any_permission("usuarios:gerenciar")
def post_user():
    data = request.get_json(silent=True) or {}
    for field in ("email", "name", "role"):
        if not data.get(field):
            return api_error(E.VALIDATION_REQUIRED, f"{field} is required")
    try:
        user = create_user(
            email=data["email"],
            name=data["name"],
            role_name=data["role"],
            password=data.get("password"),
        )
    except UserServiceError as e:
        return jsonify({"error": e.message}), e.status_code
    return jsonify(user.to_dict(include_role=True)), 201


@user_bp.route("/cargos", methods=["GET"])
@require_capability("/cargos")
def get_roles():
    include_inactive = request.args.get("all", "").lower() in ("true", "1")
    return jsonify(list_roles(include_inactive=include_inactive))
