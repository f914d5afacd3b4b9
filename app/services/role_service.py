"""
Role Service — default permissions and roles (cargos), idempotent seeding,
and the role listing exposed at ``/cargos``.

COTADOR and PAGADOR are seeded without ``allowed_pages`` so they resolve
through the legacy name table of ``capability_resolver``.
"""

import logging

from app.models import db
from app.models.auth import Permission, Role, RolePermission
from app.services.capability_resolver import normalize_role

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════
# PERMISSIONS — (module, action, description)
# ═══════════════════════════════════════════════════════════════
DEFAULT_PERMISSIONS = [
    ("projetos", "visualizar", "View projects"),
    ("projetos", "editar", "Create and edit projects"),
    ("projetos", "aprovar", "Approve project stages and goals"),
    ("trabalhos", "visualizar", "View assigned stages"),
    ("trabalhos", "registrar", "Record progress and attachments on stages"),
    ("trabalhos", "avaliar", "Review deliverables and approve checklist items"),
    ("compras", "solicitar", "Request purchases and quotes"),
    ("compras", "aprovar", "Approve purchase requests"),
    ("estoque", "visualizar", "View stock items"),
    ("estoque", "movimentar", "Record stock movements"),
    ("usuarios", "gerenciar", "Manage users and roles"),
    ("sistema", "administrar", "Administer advanced system settings"),
]

_ALL_PAGES = ["/dashboard", "/projects", "/tasks/my", "/stock", "/occurrences", "/requests", "/users", "/cargos"]


# ═══════════════════════════════════════════════════════════════
# ROLES
# ═══════════════════════════════════════════════════════════════
DEFAULT_ROLES = {
    "EXECUTOR": {
        "description": "Stage executor",
        "access_level": "NIVEL_0",
        "allowed_pages": ["/tasks/my", "/occurrences", "/requests"],
        "permissions": ["projetos:visualizar", "trabalhos:visualizar", "trabalhos:registrar"],
    },
    "SUPERVISOR": {
        "description": "Project supervisor",
        "access_level": "NIVEL_1",
        "allowed_pages": ["/projects", "/tasks/my", "/occurrences", "/requests"],
        "permissions": ["projetos:*", "trabalhos:*"],
    },
    "COTADOR": {
        "description": "Quotes and purchasing",
        "access_level": "NIVEL_2",
        "allowed_pages": None,
        "permissions": ["projetos:visualizar", "compras:solicitar", "estoque:visualizar"],
    },
    "PAGADOR": {
        "description": "Payments",
        "access_level": "NIVEL_2",
        "allowed_pages": None,
        "permissions": ["projetos:visualizar", "compras:aprovar", "estoque:visualizar"],
    },
    "DIRETOR": {
        "description": "Director with full access",
        "access_level": "NIVEL_3",
        "allowed_pages": _ALL_PAGES,
        "permissions": "*",
    },
    "GM": {
        "description": "General manager, unrestricted",
        "access_level": "NIVEL_4",
        "allowed_pages": _ALL_PAGES,
        "permissions": "*",
    },
}


def _expand_permissions(granted, all_keys):
    """Expand wildcard permissions like 'trabalhos:*' into actual keys."""
    if granted == "*":
        return set(all_keys)

    result = set()
    for p in granted:
        if p.endswith(":*"):
            module = p[:-2]
            result.update(k for k in all_keys if k.startswith(f"{module}:"))
        elif p in all_keys:
            result.add(p)
    return result


def seed_permissions() -> int:
    """Create missing permissions, refresh descriptions. Returns created count."""
    created = 0
    for module, action, description in DEFAULT_PERMISSIONS:
        existing = Permission.query.filter_by(module=module, action=action).first()
        if not existing:
            db.session.add(Permission(module=module, action=action, description=description))
            created += 1
        else:
            existing.description = description
    db.session.commit()
    return created


def seed_default_roles() -> dict:
    """Create or update the default roles and their permissions. Idempotent."""
    created_permissions = seed_permissions()
    by_key = {p.key: p for p in Permission.query.all()}
    created_roles = 0
    assigned = 0

    for name, cfg in DEFAULT_ROLES.items():
        role = Role.query.filter_by(name=name).first()
        if not role:
            role = Role(name=name)
            db.session.add(role)
            created_roles += 1
        role.description = cfg["description"]
        role.access_level = cfg["access_level"]
        role.inherits_permissions = cfg.get("inherits_permissions", True)
        role.allowed_pages = list(cfg["allowed_pages"]) if cfg["allowed_pages"] is not None else None
        db.session.flush()

        target = _expand_permissions(cfg["permissions"], by_key.keys())
        existing = {rp.permission.key for rp in role.role_permissions}
        for key in sorted(target - existing):
            role.role_permissions.append(RolePermission(permission=by_key[key]))
            assigned += 1

    db.session.commit()
    logger.info(
        "Seeded roles: %d roles created, %d permissions created, %d assignments",
        created_roles, created_permissions, assigned,
    )
    return {"roles_created": created_roles, "permissions_created": created_permissions,
            "assignments": assigned}


def list_roles(include_inactive=False) -> list[dict]:
    """Roles with their resolved capability list."""
    q = Role.query
    if not include_inactive:
        q = q.filter_by(is_active=True)
    result = []
    for role in q.order_by(Role.name).all():
        d = role.to_dict(include_permissions=True)
        d["capabilities"] = list(normalize_role(role).capabilities)
        d["user_count"] = role.users.count()
        result.append(d)
    return result
