"""
Auth Models — roles (cargos), permissions, users, sessions.

A Role carries the list of pages it may reach (``allowed_pages``) and a
set of fine-grained ``module:action`` permissions. ``allowed_pages`` is
nullable on purpose: a NULL or empty list means "resolve by role name
through the legacy fallback table" (see ``capability_resolver``).
"""

from datetime import datetime, timezone

from app.models import db

# NIVEL_0 executor, NIVEL_1 supervisor, NIVEL_2 purchasing and stock,
# NIVEL_3 administrator, NIVEL_4 general manager
ACCESS_LEVELS = ("NIVEL_0", "NIVEL_1", "NIVEL_2", "NIVEL_3", "NIVEL_4")


# ═══════════════════════════════════════════════════════════════
# 1. ROLES (cargos)
# ═══════════════════════════════════════════════════════════════
class Role(db.Model):
    __tablename__ = "roles"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)  # stored upper-case
    description = db.Column(db.Text)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    access_level = db.Column(db.String(10), nullable=False, default="NIVEL_0")
    inherits_permissions = db.Column(db.Boolean, nullable=False, default=True)
    allowed_pages = db.Column(
        db.JSON, nullable=True,
        comment="Ordered page list; first entry is the landing page. NULL = legacy fallback by name",
    )
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.CheckConstraint(
            "access_level IN (" + ",".join(f"'{lvl}'" for lvl in ACCESS_LEVELS) + ")",
            name="ck_role_access_level",
        ),
    )

    # Relationships
    role_permissions = db.relationship(
        "RolePermission", back_populates="role", lazy="selectin", cascade="all, delete-orphan"
    )
    users = db.relationship("User", back_populates="role", lazy="dynamic")

    @property
    def permission_keys(self) -> list[str]:
        return sorted(rp.permission.key for rp in self.role_permissions)

    def to_dict(self, include_permissions=False):
        d = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "access_level": self.access_level,
            "inherits_permissions": self.inherits_permissions,
            "allowed_pages": list(self.allowed_pages) if self.allowed_pages is not None else None,
        }
        if include_permissions:
            d["permissions"] = self.permission_keys
        return d

    def __repr__(self):
        return f"<Role {self.name}>"


# ═══════════════════════════════════════════════════════════════
# 2. PERMISSIONS
# ═══════════════════════════════════════════════════════════════
class Permission(db.Model):
    __tablename__ = "permissions"

    id = db.Column(db.Integer, primary_key=True)
    module = db.Column(db.String(50), nullable=False)  # e.g. "trabalhos"
    action = db.Column(db.String(50), nullable=False)  # e.g. "avaliar"
    description = db.Column(db.Text)

    __table_args__ = (
        db.UniqueConstraint("module", "action", name="uq_permission_module_action"),
    )

    role_permissions = db.relationship("RolePermission", back_populates="permission", lazy="dynamic")

    @property
    def key(self) -> str:
        return f"{self.module}:{self.action}"

    def to_dict(self):
        return {
            "id": self.id,
            "module": self.module,
            "action": self.action,
            "key": self.key,
            "description": self.description,
        }


# ═══════════════════════════════════════════════════════════════
# 3. ROLE_PERMISSIONS (Junction table)
# ═══════════════════════════════════════════════════════════════
class RolePermission(db.Model):
    __tablename__ = "role_permissions"

    id = db.Column(db.Integer, primary_key=True)
    role_id = db.Column(
        db.Integer, db.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False
    )
    permission_id = db.Column(
        db.Integer, db.ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False
    )

    __table_args__ = (
        db.UniqueConstraint("role_id", "permission_id", name="uq_role_permission"),
    )

    role = db.relationship("Role", back_populates="role_permissions")
    permission = db.relationship("Permission", back_populates="role_permissions", lazy="joined")


# ═══════════════════════════════════════════════════════════════
# 4. USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200), unique=True, nullable=False)
    password_hash = db.Column(db.String(256))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    role_id = db.Column(
        db.Integer, db.ForeignKey("roles.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    last_login_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    role = db.relationship("Role", back_populates="users", lazy="joined")
    sessions = db.relationship("Session", back_populates="user", lazy="dynamic", cascade="all, delete-orphan")

    def to_summary(self):
        """Minimal representation embedded in project/stage payloads."""
        return {"id": self.id, "name": self.name, "email": self.email}

    def to_dict(self, include_role=False):
        d = {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "is_active": self.is_active,
            "role_id": self.role_id,
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_role and self.role is not None:
            d["role"] = self.role.to_dict(include_permissions=True)
        return d

    def __repr__(self):
        return f"<User {self.id} {self.email}>"


# ═══════════════════════════════════════════════════════════════
# 5. SESSIONS
# ═══════════════════════════════════════════════════════════════
class Session(db.Model):
    """Server-side record of an issued access token (login → logout)."""

    __tablename__ = "sessions"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    token_hash = db.Column(db.String(64), nullable=False, unique=True)
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(500))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    user = db.relationship("User", back_populates="sessions")
