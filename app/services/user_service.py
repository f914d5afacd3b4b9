"""
User Service — authentication, user creation and reference listings.
"""

import logging
from datetime import datetime, timezone

from email_validator import EmailNotValidError, validate_email

from app.models import db
from app.models.auth import Role, User
from app.services.capability_resolver import first_allowed_capability, normalize_role
from app.utils.crypto import hash_password, verify_password

logger = logging.getLogger(__name__)


class UserServiceError(Exception):
    """Custom exception for user service errors."""
    def __init__(self, message, status_code=400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def _normalize_email(email: str) -> str:
    try:
        valid = validate_email(email or "", check_deliverability=False)
    except EmailNotValidError as e:
        raise UserServiceError(f"Invalid email: {e}")
    return valid.normalized.lower()


# ═══════════════════════════════════════════════════════════════
# Authentication
# ═══════════════════════════════════════════════════════════════
def authenticate_user(email: str, password: str) -> User:
    """Return the active user matching the credentials.

    Raises:
        UserServiceError(401): unknown email, wrong password or inactive user.
    """
    try:
        email = _normalize_email(email)
    except UserServiceError:
        raise UserServiceError("Invalid email or password", 401)

    user = User.query.filter_by(email=email).first()
    if not user or not verify_password(password or "", user.password_hash):
        logger.warning("Failed login for %s", email, extra={"event_type": "auth.failed"})
        raise UserServiceError("Invalid email or password", 401)
    if not user.is_active:
        raise UserServiceError("User account is inactive", 401)

    user.last_login_at = datetime.now(timezone.utc)
    db.session.commit()
    return user


def session_payload(user: User) -> dict:
    """User view returned by login and /auth/me: canonical role, capabilities, landing."""
    role = normalize_role(user.role)
    d = user.to_dict()
    d["role"] = role.to_dict()
    d["capabilities"] = list(role.capabilities)
    d["landing"] = first_allowed_capability(user)
    return d


# ═══════════════════════════════════════════════════════════════
# User CRUD
# ═══════════════════════════════════════════════════════════════
def create_user(
    email: str,
    name: str,
    role_name: str,
    password: str = None,
    is_active: bool = True,
) -> User:
    """Create a user bound to an existing role."""
    email = _normalize_email(email)
    if not name or not name.strip():
        raise UserServiceError("name is required")

    role = Role.query.filter_by(name=(role_name or "").strip().upper()).first()
    if not role:
        raise UserServiceError(f"Role '{role_name}' not found", 404)

    if User.query.filter_by(email=email).first():
        raise UserServiceError(f"User with email {email} already exists", 409)

    user = User(
        email=email,
        name=name.strip(),
        password_hash=hash_password(password) if password else None,
        role=role,
        is_active=is_active,
    )
    db.session.add(user)
    db.session.commit()
    logger.info("User %s created with role %s", user.id, role.name,
                extra={"user_id": user.id, "event_type": "user.create"})
    return user


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise UserServiceError("User not found", 404)
    return user


def list_user_options() -> list[dict]:
    """id + name of active users, for select boxes."""
    users = User.query.filter_by(is_active=True).order_by(User.name).all()
    return [{"id": u.id, "name": u.name} for u in users]


def users_query(search: str = None, role_name: str = None, include_inactive: bool = True):
    """Filtered user query, ordered by name; the caller paginates."""
    q = User.query
    if not include_inactive:
        q = q.filter_by(is_active=True)
    if role_name:
        q = q.join(Role).filter(Role.name == role_name.strip().upper())
    if search:
        like = f"%{search}%"
        q = q.filter(db.or_(User.name.ilike(like), User.email.ilike(like)))
    return q.order_by(User.name)
