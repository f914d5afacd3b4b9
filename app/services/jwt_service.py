"""
JWT Service — access tokens backed by server-side sessions.

Every token carries ``sub`` (user id), ``role`` (role name at login time),
``type`` ("access"), ``iat``, ``exp`` and a random ``jti``; HS256 signed
with JWT_SECRET_KEY, falling back to SECRET_KEY.

A token is honoured only while the ``Session`` row holding its SHA-256
hash is active. Logout flips that row, so a revoked token stops working
before it expires. Raw tokens are never stored.
"""

import hashlib
import logging
import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from app.models import db
from app.models.auth import Session

logger = logging.getLogger(__name__)

DEFAULT_ACCESS_EXPIRES = 8 * 3600
ALGORITHM = "HS256"
TOKEN_TYPE = "access"


def _secret():
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


# ═══════════════════════════════════════════════════════════════
# Tokens
# ═══════════════════════════════════════════════════════════════
def generate_access_token(user_id: int, role_name: str | None) -> tuple[str, datetime]:
    """Sign a new access token. Returns (token, expires_at)."""
    now = datetime.now(timezone.utc)
    lifetime = current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)
    expires_at = now + timedelta(seconds=lifetime)
    claims = {
        "sub": str(user_id),
        "role": role_name,
        "type": TOKEN_TYPE,
        "iat": now,
        "exp": expires_at,
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(claims, _secret(), algorithm=ALGORITHM), expires_at


def decode_access_token(token: str) -> dict:
    """Verify signature, expiry and token type.

    Raises ``jwt.InvalidTokenError`` (or a subclass such as
    ``ExpiredSignatureError``) when the token is not acceptable.
    """
    claims = jwt.decode(token, _secret(), algorithms=[ALGORITHM])
    if claims.get("type") != TOKEN_TYPE:
        raise jwt.InvalidTokenError(f"Expected access token, got {claims.get('type')}")
    return claims


# ═══════════════════════════════════════════════════════════════
# Sessions
# ═══════════════════════════════════════════════════════════════
def issue_session(user, ip_address: str | None = None, user_agent: str | None = None) -> tuple[str, datetime]:
    """Sign a token for ``user`` and record its session. Returns (token, expires_at)."""
    token, expires_at = generate_access_token(user.id, user.role.name if user.role else None)
    db.session.add(Session(
        user_id=user.id,
        token_hash=hash_token(token),
        ip_address=ip_address,
        user_agent=(user_agent or "")[:500],
        expires_at=expires_at,
    ))
    db.session.commit()
    logger.info("Session opened for user %s", user.id,
                extra={"user_id": user.id, "event_type": "auth.login"})
    return token, expires_at


def get_active_session(user_id: int, token: str) -> Session | None:
    return Session.query.filter_by(
        user_id=user_id, token_hash=hash_token(token), is_active=True,
    ).first()


def revoke_session_by_token(token: str) -> bool:
    """Deactivate the session of one token. False when none was active."""
    session = Session.query.filter_by(token_hash=hash_token(token), is_active=True).first()
    if session is None:
        return False
    session.is_active = False
    db.session.commit()
    logger.info("Session closed for user %s", session.user_id,
                extra={"user_id": session.user_id, "event_type": "auth.logout"})
    return True


def revoke_all_user_sessions(user_id: int) -> int:
    """Deactivate every session of a user. Returns how many were active."""
    count = Session.query.filter_by(user_id=user_id, is_active=True).update({"is_active": False})
    db.session.commit()
    logger.info("Closed %d session(s) for user %s", count, user_id,
                extra={"user_id": user_id, "event_type": "auth.logout_all"})
    return count
