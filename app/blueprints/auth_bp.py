"""
Auth Blueprint — login session endpoints.

  POST /api/v1/auth/login       — Email + password → {token, user}
  POST /api/v1/auth/logout      — Revoke the current token ({"all": true} → every session)
  GET  /api/v1/auth/me          — Current user with role, capabilities and landing page
"""

from flask import Blueprint, g, jsonify, request

from app.middleware.permission_required import login_required
from app.services.jwt_service import issue_session, revoke_all_user_sessions, revoke_session_by_token
from app.services.user_service import UserServiceError, authenticate_user, session_payload
from app.utils.errors import E, api_error

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/v1/auth")


@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate with email + password, return an access token.

    Body: { "email": "...", "password": "..." }
    """
    data = request.get_json(silent=True) or {}
    email = str(data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    if not email or not password:
        return api_error(E.VALIDATION_REQUIRED, "Email and password are required")

    try:
        user = authenticate_user(email, password)
    except UserServiceError as e:
        return api_error(E.UNAUTHORIZED, e.message, status=e.status_code)

    token, expires_at = issue_session(user, request.remote_addr, request.headers.get("User-Agent", ""))
    return jsonify({
        "token": token,
        "token_type": "Bearer",
        "expires_at": expires_at.isoformat(),
        "user": session_payload(user),
    }), 200


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    data = request.get_json(silent=True) or {}
    if data.get("all") is True:
        revoked = revoke_all_user_sessions(g.current_user.id)
    else:
        revoked = int(revoke_session_by_token(g.access_token))
    return jsonify({"message": "Logged out", "revoked": revoked}), 200


@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify(session_payload(g.current_user)), 200
