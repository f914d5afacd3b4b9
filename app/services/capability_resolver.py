"""
Capability Resolver — role descriptor → ordered page/action capabilities.

A role reaches this module in one of three shapes:
    - a bare name string ("DIRETOR"), as stored by older sessions
    - a structured descriptor (dict or ``Role`` model) with ``allowed_pages``
    - nothing at all (anonymous / broken session)

``normalize_role`` folds all of them into one ``CanonicalRole`` value at the
session boundary; every other function here consumes only that form.

Resolution rules:
    1. A non-empty ``allowed_pages`` list is returned verbatim, in order.
       Its first element is the landing capability.
    2. Otherwise the role name is looked up in ``LEGACY_CAPABILITIES``.
    3. Unknown names resolve to an empty list.

Every function is pure and total: missing or malformed data yields an empty
capability set, never an exception.

Usage:
    from app.services.capability_resolver import normalize_role, has_capability

    role = normalize_role(user.role)
    if has_capability(role, "/projects/42"):
        ...
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from urllib.parse import unquote

# ── Constants ────────────────────────────────────────────────────────────────

DEFAULT_CAPABILITY = "/tasks/my"
LOGIN_CAPABILITY = "/login"

BYPASS_ROLE = "GM"

# Dict keys that may carry a page list, in priority order
PAGE_KEYS = ("allowed_pages", "allowedPages", "capabilities")

_DIRECTOR_PAGES = (
    "/dashboard",
    "/projects",
    "/tasks/my",
    "/stock",
    "/occurrences",
    "/requests",
    "/users",
    "/cargos",
)

# Single authoritative name → pages table for roles without allowed_pages.
LEGACY_CAPABILITIES: dict[str, tuple[str, ...]] = {
    "DIRETOR": _DIRECTOR_PAGES,
    "GM": _DIRECTOR_PAGES,
    "SUPERVISOR": ("/tasks/my", "/occurrences", "/requests"),
    "EXECUTOR": ("/tasks/my", "/occurrences", "/requests"),
    "COTADOR": ("/tasks/my", "/stock", "/occurrences"),
    "PAGADOR": ("/tasks/my", "/stock", "/occurrences"),
}


# ── Role variants ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class LegacyRoleName:
    """Role known only by its name."""

    name: str


@dataclass(frozen=True)
class StructuredRole:
    """Role descriptor carrying its own page list and permissions."""

    name: str
    allowed_pages: tuple[str, ...] = ()
    permissions: frozenset[str] = frozenset()
    id: int | None = None
    is_active: bool = True


@dataclass(frozen=True)
class CanonicalRole:
    """Normalized role consumed by every downstream component."""

    name: str = ""
    capabilities: tuple[str, ...] = ()
    permissions: frozenset[str] = field(default_factory=frozenset)
    id: int | None = None
    explicit: bool = False

    @property
    def is_bypass(self) -> bool:
        return self.name == BYPASS_ROLE

    @property
    def landing(self) -> str:
        return self.capabilities[0] if self.capabilities else DEFAULT_CAPABILITY

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "capabilities": list(self.capabilities),
            "permissions": sorted(self.permissions),
            "landing": self.landing,
        }


ANONYMOUS = CanonicalRole()


# ── Normalization ────────────────────────────────────────────────────────────


def _clean_name(value) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip().upper()


def _clean_pages(value) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(p for p in value if isinstance(p, str) and p)


def _clean_permissions(value) -> frozenset[str]:
    if not isinstance(value, (list, tuple, set, frozenset)):
        return frozenset()
    return frozenset(p for p in value if isinstance(p, str) and p)


def to_variant(raw) -> LegacyRoleName | StructuredRole | None:
    """Classify a raw role value into one of the tagged variants.

    Accepts a name string, a dict (``allowed_pages`` or ``allowedPages``
    key), an ORM ``Role`` (anything exposing ``name``), or an existing
    variant. Returns None when nothing usable is present.
    """
    if raw is None:
        return None
    if isinstance(raw, (LegacyRoleName, StructuredRole)):
        return raw
    if isinstance(raw, CanonicalRole):
        return StructuredRole(
            name=raw.name, allowed_pages=raw.capabilities,
            permissions=raw.permissions, id=raw.id,
        )
    if isinstance(raw, str):
        name = _clean_name(raw)
        return LegacyRoleName(name) if name else None
    if isinstance(raw, dict):
        pages = next((raw[k] for k in PAGE_KEYS if raw.get(k)), None)
        perms = raw.get("permissions", ())
        role_id = raw.get("id")
        return StructuredRole(
            name=_clean_name(raw.get("name", raw.get("nome"))),
            allowed_pages=_clean_pages(pages),
            permissions=_clean_permissions(perms),
            id=role_id if isinstance(role_id, int) else None,
            is_active=bool(raw.get("is_active", True)),
        )
    name = getattr(raw, "name", None)
    if name is None:
        return None
    perms = getattr(raw, "permission_keys", ())
    role_id = getattr(raw, "id", None)
    return StructuredRole(
        name=_clean_name(name),
        allowed_pages=_clean_pages(getattr(raw, "allowed_pages", None)),
        permissions=_clean_permissions(list(perms) if perms else ()),
        id=role_id if isinstance(role_id, int) else None,
        is_active=bool(getattr(raw, "is_active", True)),
    )


def normalize_role(raw) -> CanonicalRole:
    """Fold any role representation into a ``CanonicalRole``. Never raises."""
    variant = to_variant(raw)
    if variant is None:
        return ANONYMOUS
    if isinstance(variant, LegacyRoleName):
        return CanonicalRole(
            name=variant.name,
            capabilities=LEGACY_CAPABILITIES.get(variant.name, ()),
        )
    return CanonicalRole(
        name=variant.name,
        capabilities=resolve_capabilities(variant),
        permissions=variant.permissions,
        id=variant.id,
        explicit=bool(variant.allowed_pages),
    )


# ── Resolution ───────────────────────────────────────────────────────────────


def resolve_capabilities(role) -> tuple[str, ...]:
    """Return the ordered capability list for a role in any representation."""
    if isinstance(role, CanonicalRole):
        return role.capabilities
    variant = to_variant(role)
    if variant is None:
        return ()
    if isinstance(variant, StructuredRole) and variant.allowed_pages:
        return variant.allowed_pages
    return LEGACY_CAPABILITIES.get(variant.name, ())


def _role_of(user):
    """Accept a user (model or dict), a role, or None."""
    if user is None:
        return None
    if isinstance(user, CanonicalRole):
        return user
    if isinstance(user, dict):
        if "role" in user or "cargo" in user:
            return user.get("role", user.get("cargo"))
        return user
    if hasattr(user, "role"):
        return user.role
    return user


def first_allowed_capability(user) -> str:
    """Landing capability for a user; ``LOGIN_CAPABILITY`` when anonymous."""
    if user is None:
        return LOGIN_CAPABILITY
    caps = resolve_capabilities(_role_of(user))
    return caps[0] if caps else DEFAULT_CAPABILITY


def _normalize_path(path) -> str:
    """Drop query and fragment, then collapse dot segments and repeated slashes."""
    if not isinstance(path, str) or not path:
        return ""
    clean = unquote(path.split("?", 1)[0].split("#", 1)[0])
    if not clean.startswith("/"):
        return ""
    return "/" + posixpath.normpath(clean).lstrip("/")


def has_capability(user, path) -> bool:
    """Exact match, or prefix match on a granted collection path.

    ``/projects/42`` is granted iff ``/projects`` is granted. Query strings
    and trailing slashes are ignored.
    """
    target = _normalize_path(path)
    if not target:
        return False
    for cap in resolve_capabilities(_role_of(user)):
        granted = _normalize_path(cap)
        if not granted:
            continue
        if target == granted:
            return True
        if granted != "/" and target.startswith(granted + "/"):
            return True
    return False


def has_permission(user, *keys: str) -> bool:
    """True when the role holds any of ``keys``; the bypass role holds all."""
    role = normalize_role(_role_of(user))
    if role.is_bypass:
        return True
    return any(k in role.permissions for k in keys)
