"""
Portal access evaluation.

``evaluate`` is a pure decision over the portal's access type and what the
requester presented; it never touches the database. A Deny is final for the
request.
"""
from dataclasses import dataclass
from typing import Union

from app.models.portal import Portal
from app.services.security import verify_password
from app.services.session_context import SessionContext


@dataclass(frozen=True)
class Allow:
    allowed: bool = True


@dataclass(frozen=True)
class Deny:
    reason: str
    status_code: int
    allowed: bool = False


Decision = Union[Allow, Deny]

INVALID_PASSWORD = Deny("Invalid password", 401)
AUTHENTICATION_REQUIRED = Deny("Authentication required", 401)
ACCESS_DENIED = Deny("Access denied", 403)


def evaluate(portal: Portal, ctx: SessionContext | None, password: str | None = None) -> Decision:
    if portal.access_type == "password":
        if not verify_password(password, portal.password_hash):
            return INVALID_PASSWORD
        return Allow()

    if portal.access_type == "authenticated":
        if ctx is None or ctx.organization_id != portal.organization_id:
            return AUTHENTICATION_REQUIRED
        return Allow()

    if portal.access_type == "role_based":
        if (
            ctx is None
            or ctx.organization_id != portal.organization_id
            or ctx.role not in (portal.allowed_roles or [])
        ):
            return ACCESS_DENIED
        return Allow()

    if portal.access_type == "public":
        return Allow()

    return ACCESS_DENIED
