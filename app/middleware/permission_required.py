"""
Permission Decorators — session-aware gates for route protection.

Usage:
    @bp.route("/projects", methods=["GET"])
    @require_capability("/projects")
    def list_projects():
        ...

    @bp.route("/tasks/<int:stage_id>/approve", methods=["POST"])
    @require_any_permission("trabalhos:avaliar", "projetos:aprovar")
    def approve(stage_id):
        ...

Every decorator implies ``login_required``: no authenticated session → 401.
The GM role passes every permission check. Capability checks go through
``capability_resolver.has_capability`` only.
"""

import functools
import logging

from flask import g

from app.services.capability_resolver import has_capability, has_permission
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def current_user():
    return getattr(g, "current_user", None)


def login_required(f):
    """Decorator: require an authenticated session."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if current_user() is None:
            return api_error(E.UNAUTHORIZED, "Authentication required")
        return f(*args, **kwargs)
    return decorated


def require_capability(path: str):
    """
    Decorator: require the session's role to grant a page capability.

    Args:
        path: Capability path, e.g. "/projects"
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user = current_user()
            if user is None:
                return api_error(E.UNAUTHORIZED, "Authentication required")

            if not has_capability(g.current_role, path):
                logger.warning(
                    "User %d denied: missing capability '%s' on %s",
                    user.id, path, f.__name__,
                )
                return api_error(E.FORBIDDEN, "Permission denied", details={"required": path})

            return f(*args, **kwargs)
        return decorated
    return decorator


def require_any_permission(*keys: str):
    """
    Decorator: require at least ONE of the listed ``module:action`` permissions.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user = current_user()
            if user is None:
                return api_error(E.UNAUTHORIZED, "Authentication required")

            if not has_permission(g.current_role, *keys):
                logger.warning(
                    "User %d denied: missing any of %s on %s",
                    user.id, keys, f.__name__,
                )
                return api_error(E.FORBIDDEN, "Permission denied", details={"required_any": list(keys)})

            return f(*args, **kwargs)
        return decorated
    return decorator
