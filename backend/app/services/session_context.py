"""
Per-request session context.

A request is either anonymous (``None``) or carries a SessionContext built
from the bearer token. Super admins may impersonate another organization or
user; that is represented as an explicit tagged value rather than by
rewriting the user record.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Literal, Union

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.organization import Organization
from app.models.user import SuperAdminImpersonationLog, User, UserSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NormalSession:
    type: Literal["normal"] = "normal"


@dataclass(frozen=True)
class Impersonating:
    effective_org_id: int
    original_admin_id: int
    target_user_id: int | None = None
    organization_name: str | None = None
    started_at: datetime | None = None
    type: Literal["impersonating"] = "impersonating"


Impersonation = Union[NormalSession, Impersonating]


@dataclass
class SessionContext:
    user: User
    session_id: str
    role: str
    organization_id: int | None
    impersonation: Impersonation = field(default_factory=NormalSession)

    @property
    def user_id(self) -> int:
        return self.user.id

    @property
    def is_impersonating(self) -> bool:
        return isinstance(self.impersonation, Impersonating)

    @property
    def is_super_admin(self) -> bool:
        return self.user.is_super_admin


def session_expired(session_row: UserSession, now: datetime | None = None) -> bool:
    now = now or datetime.utcnow()
    return now - session_row.last_accessed_at > timedelta(hours=settings.SESSION_TTL_HOURS)


async def _resolve_impersonation(s: AsyncSession, user: User) -> tuple[Impersonation, str, int | None]:
    """Return (impersonation, effective_role, effective_org_id) for a super admin."""
    row = (await s.execute(
        select(SuperAdminImpersonationLog, Organization.name)
        .join(Organization, Organization.id == SuperAdminImpersonationLog.target_organization_id)
        .where(
            SuperAdminImpersonationLog.super_admin_user_id == user.id,
            SuperAdminImpersonationLog.ended_at.is_(None),
        )
        .order_by(SuperAdminImpersonationLog.id.desc())
    )).first()
    if row is None:
        return NormalSession(), user.role, user.organization_id

    log, org_name = row
    now = datetime.utcnow()
    if now - log.started_at > timedelta(hours=settings.IMPERSONATION_TIMEOUT_HOURS):
        await s.execute(
            update(SuperAdminImpersonationLog)
            .where(
                SuperAdminImpersonationLog.super_admin_user_id == user.id,
                SuperAdminImpersonationLog.ended_at.is_(None),
            )
            .values(ended_at=now, end_reason="expired")
        )
        logger.info("Impersonation by super admin %s expired", user.id)
        return NormalSession(), user.role, user.organization_id

    role = "admin"
    if log.target_user_id is not None:
        target = await s.get(User, log.target_user_id)
        if target is not None:
            role = target.role

    impersonation = Impersonating(
        effective_org_id=log.target_organization_id,
        original_admin_id=user.id,
        target_user_id=log.target_user_id,
        organization_name=org_name,
        started_at=log.started_at,
    )
    return impersonation, role, log.target_organization_id


async def load_session_context(s: AsyncSession, token: str) -> SessionContext | None:
    """Resolve a bearer token into a SessionContext, or None if invalid/expired.

    Touches ``last_accessed_at`` and commits, so callers get a sliding expiry.
    """
    session_row = await s.get(UserSession, token)
    if session_row is None:
        return None
    if session_expired(session_row):
        await s.delete(session_row)
        await s.commit()
        return None

    user = await s.get(User, session_row.user_id)
    if user is None or not user.is_active:
        return None

    impersonation: Impersonation = NormalSession()
    role, org_id = user.role, user.organization_id
    if user.is_super_admin:
        impersonation, role, org_id = await _resolve_impersonation(s, user)

    session_row.last_accessed_at = datetime.utcnow()
    await s.commit()

    return SessionContext(
        user=user,
        session_id=session_row.id,
        role=role,
        organization_id=org_id,
        impersonation=impersonation,
    )
