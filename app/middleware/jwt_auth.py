"""
JWT Auth Middleware — Parses the Bearer token, sets the request's session context.

On every /api/v1/ request (except the skip list):
  g.current_user   User model, or None
  g.current_role   CanonicalRole, normalized once here for the whole request
  g.access_token   raw token, used by logout

A token is accepted only while its server-side Session row is active;
logout deactivates the row. Endpoints that need a user are protected by
``login_required``; this hook never blocks on its own.
"""

import logging

import jwt as pyjwt
from flask import g, request

from app.models import db
from app.models.auth import User
from app.services.capability_resolver import ANONYMOUS, normalize_role
from app.services.jwt_service import decode_access_token, get_active_session

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/health",
)


def _clear_context():
    g.current_user = None
    g.current_role = ANONYMOUS
    g.access_token = None


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        _clear_context()

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:].strip()
        try:
            payload = decode_access_token(token)
            user_id = int(payload.get("sub"))
        except (pyjwt.InvalidTokenError, TypeError, ValueError) as exc:
            # ExpiredSignatureError is an InvalidTokenError
            logger.debug("Rejected bearer token: %s", exc)
            return

        user = db.session.get(User, user_id)
        if user is None or not user.is_active:
            return
        if get_active_session(user.id, token) is None:
            return

        g.current_user = user
        g.current_role = normalize_role(user.role)
        g.access_token = token
