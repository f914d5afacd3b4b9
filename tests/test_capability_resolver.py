"""
Capability resolver tests.

Covers:
    - explicit allowed_pages returned verbatim and in order
    - legacy name table for the six known roles, empty set for unknown names
    - landing capability: first entry, safe default, login sentinel
    - hierarchical prefix matching in has_capability
    - normalization of every role representation, never raising
    - permission checks with the GM bypass
"""

import pytest
from sqlalchemy.exc import IntegrityError

from app.models import db
from app.models.auth import Role
from app.services.capability_resolver import (
    ANONYMOUS,
    DEFAULT_CAPABILITY,
    LEGACY_CAPABILITIES,
    LOGIN_CAPABILITY,
    CanonicalRole,
    LegacyRoleName,
    StructuredRole,
    first_allowed_capability,
    has_capability,
    has_permission,
    normalize_role,
    resolve_capabilities,
    to_variant,
)

ALL_PAGES = ("/dashboard", "/projects", "/tasks/my", "/stock", "/occurrences", "/requests", "/users", "/cargos")


# ═════════════════════════════════════════════════════════════════════════════
# resolve_capabilities
# ═════════════════════════════════════════════════════════════════════════════


class TestResolveCapabilities:

    @pytest.mark.parametrize("pages", [
        ["/stock"],
        ["/requests", "/tasks/my", "/projects"],
        ["/users", "/cargos", "/dashboard", "/projects/42"],
    ])
    def test_explicit_pages_returned_verbatim(self, pages):
        role = {"name": "EXECUTOR", "allowed_pages": pages}
        assert resolve_capabilities(role) == tuple(pages)

    def test_explicit_pages_override_legacy_table(self):
        role = {"name": "DIRETOR", "allowedPages": ["/stock"]}
        assert resolve_capabilities(role) == ("/stock",)

    def test_null_snake_case_key_defers_to_camel_case(self):
        role = {"name": "DIRETOR", "allowed_pages": None, "allowedPages": ["/stock", "/requests"]}
        assert resolve_capabilities(role) == ("/stock", "/requests")

    def test_empty_explicit_list_falls_back_to_name(self):
        role = {"name": "supervisor", "allowed_pages": []}
        assert resolve_capabilities(role) == LEGACY_CAPABILITIES["SUPERVISOR"]

    @pytest.mark.parametrize("name,expected", [
        ("DIRETOR", ALL_PAGES),
        ("GM", ALL_PAGES),
        ("SUPERVISOR", ("/tasks/my", "/occurrences", "/requests")),
        ("EXECUTOR", ("/tasks/my", "/occurrences", "/requests")),
        ("COTADOR", ("/tasks/my", "/stock", "/occurrences")),
        ("PAGADOR", ("/tasks/my", "/stock", "/occurrences")),
    ])
    def test_legacy_name_table(self, name, expected):
        assert resolve_capabilities(name) == expected
        assert resolve_capabilities(name.lower()) == expected

    @pytest.mark.parametrize("raw", ["ESTAGIARIO", "", None, 42, {"foo": "bar"}, []])
    def test_unknown_or_malformed_resolves_empty(self, raw):
        assert resolve_capabilities(raw) == ()

    def test_orm_role_with_pages(self):
        role = Role(name="AUDITOR", allowed_pages=["/projects", "/stock"])
        assert resolve_capabilities(role) == ("/projects", "/stock")

    def test_orm_role_without_pages_uses_name(self):
        role = Role(name="COTADOR", allowed_pages=None)
        assert resolve_capabilities(role) == LEGACY_CAPABILITIES["COTADOR"]


# ═════════════════════════════════════════════════════════════════════════════
# Landing capability
# ═════════════════════════════════════════════════════════════════════════════


class TestFirstAllowedCapability:

    def test_first_entry_of_explicit_list(self):
        user = {"id": 1, "role": {"name": "X", "allowed_pages": ["/stock", "/projects"]}}
        assert first_allowed_capability(user) == "/stock"

    def test_unknown_role_gets_safe_default(self):
        user = {"id": 1, "role": "ESTAGIARIO"}
        assert first_allowed_capability(user) == DEFAULT_CAPABILITY

    def test_user_without_role_gets_safe_default(self):
        assert first_allowed_capability({"id": 1}) == DEFAULT_CAPABILITY

    def test_anonymous_gets_login_sentinel(self):
        assert first_allowed_capability(None) == LOGIN_CAPABILITY

    def test_legacy_cargo_key(self):
        assert first_allowed_capability({"cargo": "DIRETOR"}) == "/dashboard"


# ═════════════════════════════════════════════════════════════════════════════
# has_capability
# ═════════════════════════════════════════════════════════════════════════════


class TestHasCapability:

    @pytest.fixture()
    def supervisor(self):
        return {"role": {"name": "SUPERVISOR", "allowed_pages": ["/projects", "/tasks/my"]}}

    def test_exact_match(self, supervisor):
        assert has_capability(supervisor, "/projects")

    def test_detail_under_collection(self, supervisor):
        assert has_capability(supervisor, "/projects/12")
        assert has_capability(supervisor, "/tasks/my/3")

    def test_sibling_prefix_is_not_a_child(self, supervisor):
        assert not has_capability(supervisor, "/projectsarchive")

    def test_query_string_and_trailing_slash_ignored(self, supervisor):
        assert has_capability(supervisor, "/projects/?status=IN_PROGRESS")

    def test_collection_not_granted_by_detail(self):
        user = {"role": {"name": "X", "allowed_pages": ["/projects/12"]}}
        assert has_capability(user, "/projects/12")
        assert not has_capability(user, "/projects")

    def test_not_granted(self, supervisor):
        assert not has_capability(supervisor, "/users")

    @pytest.mark.parametrize("path", [
        "/projects/../users",
        "/projects/./../users",
        "/projects/%2e%2e/users",
        "/tasks/my/../../cargos",
    ])
    def test_dot_segments_cannot_escape_collection(self, supervisor, path):
        assert not has_capability(supervisor, path)

    def test_dot_segments_resolved_inside_collection(self, supervisor):
        assert has_capability(supervisor, "/projects/./12")
        assert has_capability(supervisor, "/users/../projects")
        assert has_capability(supervisor, "//projects//12")

    @pytest.mark.parametrize("path", [None, "", 17])
    def test_bad_path_is_false(self, supervisor, path):
        assert has_capability(supervisor, path) is False

    def test_anonymous_has_nothing(self):
        assert not has_capability(None, "/tasks/my")


# ═════════════════════════════════════════════════════════════════════════════
# Normalization
# ═════════════════════════════════════════════════════════════════════════════


class TestNormalizeRole:

    def test_variants(self):
        assert to_variant("gm") == LegacyRoleName("GM")
        structured = to_variant({"nome": "Executor", "allowed_pages": ["/tasks/my"], "id": 3})
        assert isinstance(structured, StructuredRole)
        assert structured.name == "EXECUTOR"
        assert structured.id == 3

    def test_legacy_name_is_not_explicit(self):
        role = normalize_role("PAGADOR")
        assert role.name == "PAGADOR"
        assert role.explicit is False
        assert role.capabilities == LEGACY_CAPABILITIES["PAGADOR"]

    def test_structured_is_explicit(self):
        role = normalize_role({"name": "X", "allowed_pages": ["/stock"], "permissions": ["estoque:visualizar"]})
        assert role.explicit is True
        assert role.permissions == frozenset({"estoque:visualizar"})
        assert role.landing == "/stock"

    def test_idempotent(self):
        once = normalize_role({"name": "supervisor", "allowed_pages": ["/projects"]})
        assert normalize_role(once) == once
        assert normalize_role(once.to_dict()).capabilities == once.capabilities

    @pytest.mark.parametrize("raw", [None, "", 3.14, object()])
    def test_never_raises(self, raw):
        assert isinstance(normalize_role(raw), CanonicalRole)

    def test_none_is_anonymous(self):
        assert normalize_role(None) is ANONYMOUS


# ═════════════════════════════════════════════════════════════════════════════
# Permissions
# ═════════════════════════════════════════════════════════════════════════════


class TestHasPermission:

    def test_holds_any(self):
        role = {"name": "EXECUTOR", "permissions": ["trabalhos:registrar"]}
        assert has_permission(role, "trabalhos:avaliar", "trabalhos:registrar")

    def test_missing(self):
        role = {"name": "EXECUTOR", "permissions": ["trabalhos:registrar"]}
        assert not has_permission(role, "projetos:aprovar")

    def test_gm_bypasses(self):
        assert has_permission("GM", "anything:at-all")

    def test_seeded_roles(self):
        gm = normalize_role(Role.query.filter_by(name="GM").first())
        executor = normalize_role(Role.query.filter_by(name="EXECUTOR").first())
        supervisor = normalize_role(Role.query.filter_by(name="SUPERVISOR").first())
        assert gm.is_bypass
        assert has_permission(executor, "trabalhos:registrar")
        assert not has_permission(executor, "trabalhos:avaliar")
        assert has_permission(supervisor, "trabalhos:avaliar")
        assert has_permission(supervisor, "projetos:aprovar")

    @pytest.mark.parametrize("name,level", [
        ("EXECUTOR", "NIVEL_0"),
        ("SUPERVISOR", "NIVEL_1"),
        ("COTADOR", "NIVEL_2"),
        ("PAGADOR", "NIVEL_2"),
        ("DIRETOR", "NIVEL_3"),
        ("GM", "NIVEL_4"),
    ])
    def test_seeded_access_levels(self, name, level):
        role = Role.query.filter_by(name=name).one()
        assert role.access_level == level
        assert role.inherits_permissions is True

    def test_new_role_defaults(self):
        role = Role(name="AUDITOR")
        db.session.add(role)
        db.session.commit()
        assert role.to_dict()["access_level"] == "NIVEL_0"
        assert role.to_dict()["inherits_permissions"] is True

    def test_unknown_access_level_rejected(self):
        db.session.add(Role(name="AUDITOR", access_level="NIVEL_9"))
        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()
