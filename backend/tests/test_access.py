"""Portal access evaluation, role capabilities and policy visibility."""
from types import SimpleNamespace

import pytest

from app.services import access
from app.services.permissions import ALL_ACTIONS, can
from app.services.security import hash_password
from app.services.visibility import registry_statuses, visible_statuses

ORG = 1


def _portal(access_type: str, **kw):
    return SimpleNamespace(
        organization_id=kw.get("organization_id", ORG),
        access_type=access_type,
        password_hash=kw.get("password_hash"),
        allowed_roles=kw.get("allowed_roles"),
    )


def _ctx(role: str = "user", organization_id: int | None = ORG):
    return SimpleNamespace(role=role, organization_id=organization_id)


# ═══════════════════ ACCESS ═══════════════════

def test_public_portal_allows_anyone():
    assert isinstance(access.evaluate(_portal("public"), None), access.Allow)
    assert isinstance(access.evaluate(_portal("public"), _ctx(organization_id=99)), access.Allow)


def test_password_portal():
    portal = _portal("password", password_hash=hash_password("letmein-please"))
    assert access.evaluate(portal, None) == access.INVALID_PASSWORD
    assert access.evaluate(portal, None, "wrong") == access.INVALID_PASSWORD
    assert isinstance(access.evaluate(portal, None, "letmein-please"), access.Allow)
    # A session does not replace the password
    assert access.evaluate(portal, _ctx("admin")) == access.INVALID_PASSWORD


def test_password_portal_without_hash_denies():
    assert access.evaluate(_portal("password"), None, "anything") == access.INVALID_PASSWORD


def test_unknown_access_type_denies():
    assert access.evaluate(_portal("invite_only"), _ctx("admin")) == access.ACCESS_DENIED
    assert access.evaluate(_portal(""), None) == access.ACCESS_DENIED


def test_authenticated_portal():
    portal = _portal("authenticated")
    assert access.evaluate(portal, None) == access.AUTHENTICATION_REQUIRED
    assert access.evaluate(portal, _ctx(organization_id=2)) == access.AUTHENTICATION_REQUIRED
    assert isinstance(access.evaluate(portal, _ctx("user")), access.Allow)


def test_role_based_portal():
    portal = _portal("role_based", allowed_roles=["admin", "editor"])
    assert access.evaluate(portal, None) == access.ACCESS_DENIED
    assert access.evaluate(portal, _ctx("user")) == access.ACCESS_DENIED
    assert access.evaluate(portal, _ctx("editor", organization_id=2)) == access.ACCESS_DENIED
    assert isinstance(access.evaluate(portal, _ctx("editor")), access.Allow)


def test_deny_status_codes():
    assert access.INVALID_PASSWORD.status_code == 401
    assert access.AUTHENTICATION_REQUIRED.status_code == 401
    assert access.ACCESS_DENIED.status_code == 403


# ═══════════════════ CAPABILITIES ═══════════════════

def test_admin_can_do_everything():
    assert all(can("admin", action) for action in ALL_ACTIONS)


@pytest.mark.parametrize("action,editor,user", [
    ("policy.read_drafts", True, False),
    ("policy.create", True, False),
    ("policy.delete", False, False),
    ("portal.manage", False, False),
    ("acknowledgment.report", False, False),
    ("layout.read", True, True),
    ("layout.update", False, False),
    ("ai.use", True, False),
])
def test_role_capabilities(action, editor, user):
    assert can("editor", action) is editor
    assert can("user", action) is user


def test_unknown_action_raises():
    with pytest.raises(ValueError):
        can("admin", "policy.destroy")


def test_unknown_role_has_no_capabilities():
    assert can(None, "layout.read") is False
    assert can("auditor", "layout.read") is False


# ═══════════════════ VISIBILITY ═══════════════════

def test_visible_statuses():
    assert visible_statuses(None) == ("published",)
    assert visible_statuses(_ctx("user")) == ("published",)
    assert visible_statuses(_ctx("editor")) == ("draft", "published")
    assert visible_statuses(_ctx("admin")) == ("draft", "published")


def test_registry_statuses():
    assert registry_statuses(None) == ("published",)
    assert registry_statuses(_ctx("user")) == ("published",)
    assert "archived" in registry_statuses(_ctx("editor"))
    assert "archived" in registry_statuses(_ctx("admin"))
