"""
Role capability table.

Every authorization decision in the API goes through ``authorize`` with one of
the action names below; routers never compare role strings themselves.
"""
from fastapi import HTTPException

from app.services.session_context import SessionContext

ALL_ACTIONS = frozenset({
    "policy.read_drafts",
    "policy.create",
    "policy.update",
    "policy.delete",
    "policy.rollback",
    "portal.manage",
    "portal.assign",
    "acknowledgment.report",
    "acknowledgment.remind",
    "layout.read",
    "layout.update",
    "variables.update",
    "users.manage",
    "ai.use",
    "audit.read",
    "document.import",
})

CAPABILITIES: dict[str, frozenset[str]] = {
    "admin": ALL_ACTIONS,
    "editor": frozenset({
        "policy.read_drafts",
        "policy.create",
        "policy.update",
        "policy.rollback",
        "layout.read",
        "ai.use",
        "document.import",
    }),
    "user": frozenset({"layout.read"}),
}


def can(role: str | None, action: str) -> bool:
    if action not in ALL_ACTIONS:
        raise ValueError(f"Unknown action: {action}")
    if role is None:
        return False
    return action in CAPABILITIES.get(role, frozenset())


def authorize(ctx: SessionContext, action: str) -> None:
    """Raise 403 unless the session's effective role grants ``action``."""
    if not can(ctx.role, action):
        raise HTTPException(403, "You do not have permission to perform this action.")


def require_organization(ctx: SessionContext) -> int:
    """Effective organization of the session (the impersonated one for super admins)."""
    if ctx.organization_id is None:
        if ctx.is_super_admin:
            raise HTTPException(400, "Please select an organization to impersonate first.")
        raise HTTPException(400, "Organization context required.")
    return ctx.organization_id
