"""
Super admin — /api/v1/superadmin
"""
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.dependencies import client_ip, get_context
from app.models.organization import Organization
from app.models.policy import Policy
from app.models.user import SuperAdminImpersonationLog, User
from app.routers.auth import login_with_type, session_out
from app.schemas.auth import ImpersonateRequest, LoginOut, LoginRequest, OrganizationSummaryOut, SessionOut
from app.services import security_audit
from app.services.auth import ATTEMPT_SUPERADMIN
from app.services.session_context import SessionContext, load_session_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/superadmin", tags=["Super admin"])


def _require_super_admin(ctx: SessionContext) -> None:
    if not ctx.is_super_admin:
        raise HTTPException(403, "Super admin access required.")


async def _end_open_impersonations(s: AsyncSession, admin_id: int, reason: str) -> int:
    result = await s.execute(
        update(SuperAdminImpersonationLog)
        .where(
            SuperAdminImpersonationLog.super_admin_user_id == admin_id,
            SuperAdminImpersonationLog.ended_at.is_(None),
        )
        .values(ended_at=datetime.utcnow(), end_reason=reason)
    )
    return result.rowcount


@router.post("/login", response_model=LoginOut, summary="Super admin login (with lockout)")
async def superadmin_login(body: LoginRequest, request: Request, response: Response,
                           s: AsyncSession = Depends(get_session)):
    return await login_with_type(
        body, request, response, s, ATTEMPT_SUPERADMIN, security_audit.SUPERADMIN_LOGIN_FAILED,
    )


# ═══════════════════ ORGANIZATIONS ═══════════════════

@router.get("/organizations", response_model=list[OrganizationSummaryOut], summary="All organizations")
async def list_organizations(ctx: SessionContext = Depends(get_context), s: AsyncSession = Depends(get_session)):
    _require_super_admin(ctx)
    user_count = (
        select(func.count()).select_from(User)
        .where(User.organization_id == Organization.id)
        .scalar_subquery()
    )
    policy_count = (
        select(func.count()).select_from(Policy)
        .where(Policy.organization_id == Organization.id)
        .scalar_subquery()
    )
    q = select(Organization, user_count, policy_count).order_by(Organization.name)
    return [
        OrganizationSummaryOut(
            id=org.id, name=org.name, slug=org.slug, is_active=org.is_active,
            user_count=users or 0, policy_count=policies or 0, created_at=org.created_at,
        )
        for org, users, policies in (await s.execute(q)).all()
    ]


# ═══════════════════ IMPERSONATION ═══════════════════

@router.post("/impersonate", response_model=SessionOut, summary="Start impersonating an organization")
async def impersonate(body: ImpersonateRequest, request: Request,
                      ctx: SessionContext = Depends(get_context), s: AsyncSession = Depends(get_session)):
    _require_super_admin(ctx)
    org = await s.get(Organization, body.organization_id)
    if not org:
        raise HTTPException(404, "Organization not found")
    if body.user_id is not None:
        target = await s.get(User, body.user_id)
        if not target or target.organization_id != org.id:
            raise HTTPException(404, "User not found in this organization")

    await _end_open_impersonations(s, ctx.user_id, "switched")
    s.add(SuperAdminImpersonationLog(
        super_admin_user_id=ctx.user_id,
        target_organization_id=org.id,
        target_user_id=body.user_id,
        started_at=datetime.utcnow(),
    ))
    await s.commit()
    logger.info("Super admin %s impersonating organization %s (user %s)", ctx.user_id, org.id, body.user_id)
    await security_audit.log_security_event(
        security_audit.IMPERSONATION_STARTED, user_id=ctx.user_id, ip_address=client_ip(request),
        details={"organization_id": org.id, "target_user_id": body.user_id},
    )

    new_ctx = await load_session_context(s, ctx.session_id)
    return session_out(new_ctx)


@router.post("/stop-impersonate", response_model=SessionOut, summary="Stop impersonating")
async def stop_impersonate(request: Request, ctx: SessionContext = Depends(get_context),
                           s: AsyncSession = Depends(get_session)):
    _require_super_admin(ctx)
    ended = await _end_open_impersonations(s, ctx.user_id, "manual")
    await s.commit()
    if ended:
        await security_audit.log_security_event(
            security_audit.IMPERSONATION_ENDED, user_id=ctx.user_id, ip_address=client_ip(request),
        )
    new_ctx = await load_session_context(s, ctx.session_id)
    return session_out(new_ctx)
