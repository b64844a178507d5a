"""
Portal viewer (public surface) — /api/v1/portal

Portals are looked up by slug. Access is decided once per request by the
access evaluator; policy visibility is applied on top of portal assignment.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.dependencies import client_ip, get_optional_context, user_agent
from app.models.organization import Organization
from app.models.policy import Policy
from app.models.portal import PolicyPortalAssignment, Portal
from app.schemas.portal_viewer import (
    AssignedPortalRef, CheckAcknowledgmentOut, ConfirmCodeRequest, EmailAckRequest,
    EmailAcknowledgmentOut, MessageOut, PortalPoliciesOut, PortalPolicyDetailOut,
    PortalPolicyItem, PortalSummaryOut, UserAcknowledgmentOut,
)
from app.services import access, acknowledgments, email_verification, security_audit
from app.services.email_service import EmailDeliveryError
from app.services.session_context import SessionContext
from app.services.visibility import apply_visibility, visible_statuses

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/portal", tags=["Portal viewer"])


async def _find_portal(s: AsyncSession, slug: str, ctx: SessionContext | None) -> Portal:
    """Active portal with ``slug``: the caller's organization first, then the newest anywhere."""
    base = select(Portal).where(Portal.slug == slug, Portal.is_active.is_(True)).order_by(Portal.id.desc()).limit(1)
    portal = None
    if ctx is not None and ctx.organization_id is not None:
        portal = (await s.execute(base.where(Portal.organization_id == ctx.organization_id))).scalar_one_or_none()
    if portal is None:
        portal = (await s.execute(base)).scalar_one_or_none()
    if portal is None:
        raise HTTPException(404, "Portal not found")
    return portal


async def _open_portal(
    s: AsyncSession, slug: str, ctx: SessionContext | None, password: str | None, request: Request,
) -> Portal:
    portal = await _find_portal(s, slug, ctx)
    decision = access.evaluate(portal, ctx, password)
    if isinstance(decision, access.Deny):
        if portal.access_type == "password" and password:
            await security_audit.log_security_event(
                security_audit.PORTAL_PASSWORD_FAILED,
                user_id=ctx.user_id if ctx else None,
                ip_address=client_ip(request),
                user_agent=user_agent(request),
                details={"portal_id": portal.id},
            )
        raise HTTPException(decision.status_code, decision.reason)
    return portal


async def _portal_summary(s: AsyncSession, portal: Portal) -> PortalSummaryOut:
    org = await s.get(Organization, portal.organization_id)
    out = PortalSummaryOut.model_validate(portal)
    out.organization_name = org.name if org else None
    out.organization_slug = org.slug if org else None
    return out


def _portal_policies_query(portal: Portal):
    return (
        select(Policy)
        .join(PolicyPortalAssignment, PolicyPortalAssignment.policy_id == Policy.id)
        .where(
            PolicyPortalAssignment.portal_id == portal.id,
            Policy.organization_id == portal.organization_id,
        )
    )


async def _visible_policy(s: AsyncSession, portal: Portal, policy_id: int, ctx: SessionContext | None) -> Policy:
    q = apply_visibility(_portal_policies_query(portal).where(Policy.id == policy_id), Policy, ctx)
    policy = (await s.execute(q)).scalar_one_or_none()
    if policy is None:
        raise HTTPException(404, "Policy not found")
    return policy


def _flow_error(e: email_verification.EmailFlowError) -> HTTPException:
    return HTTPException(e.status_code, e.message)


# ═══════════════════ POLICIES ═══════════════════

@router.get("/{slug}/policies", response_model=PortalPoliciesOut, summary="Policies visible on a portal")
async def portal_policies(
    slug: str,
    request: Request,
    password: str | None = Query(None),
    search: str | None = Query(None),
    department: str | None = Query(None),
    category: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    ctx: SessionContext | None = Depends(get_optional_context),
    s: AsyncSession = Depends(get_session),
):
    portal = await _open_portal(s, slug, ctx, password, request)

    q = apply_visibility(_portal_policies_query(portal), Policy, ctx)
    if search:
        pattern = f"%{search.lower()}%"
        q = q.where(or_(func.lower(Policy.title).like(pattern), func.lower(Policy.content).like(pattern)))
    if department:
        q = q.where(Policy.department == department)
    if category:
        q = q.where(Policy.category == category)

    total = (await s.execute(select(func.count()).select_from(q.subquery()))).scalar() or 0
    q = q.order_by(Policy.title, Policy.id).offset((page - 1) * limit).limit(limit)
    policies = (await s.execute(q)).scalars().all()

    acked: set[int] = set()
    if ctx is not None:
        acked = await acknowledgments.acknowledged_policy_ids(s, ctx.user_id, [p.id for p in policies])

    return PortalPoliciesOut(
        portal=await _portal_summary(s, portal),
        policies=[
            PortalPolicyItem(
                id=p.id, title=p.title, status=p.status, department=p.department,
                category=p.category, tags=p.tags, current_version=p.current_version,
                effective_date=p.effective_date, published_at=p.published_at,
                updated_at=p.updated_at, acknowledged=p.id in acked,
            )
            for p in policies
        ],
        total=total, page=page, limit=limit,
    )


@router.get("/{slug}/policies/{policy_id}", response_model=PortalPolicyDetailOut, summary="Policy on a portal")
async def portal_policy(
    slug: str,
    policy_id: int,
    request: Request,
    password: str | None = Query(None),
    ctx: SessionContext | None = Depends(get_optional_context),
    s: AsyncSession = Depends(get_session),
):
    portal = await _open_portal(s, slug, ctx, password, request)
    p = await _visible_policy(s, portal, policy_id, ctx)

    assigned = (await s.execute(
        select(Portal)
        .join(PolicyPortalAssignment, PolicyPortalAssignment.portal_id == Portal.id)
        .where(PolicyPortalAssignment.policy_id == p.id, Portal.is_active.is_(True))
        .order_by(Portal.name)
    )).scalars().all()

    ack = await acknowledgments.user_acknowledgment(s, p.id, ctx.user_id) if ctx else None
    return PortalPolicyDetailOut(
        portal=await _portal_summary(s, portal),
        id=p.id, title=p.title, content=p.content, status=p.status,
        current_version=p.current_version, department=p.department, category=p.category,
        tags=p.tags, effective_date=p.effective_date, expiration_date=p.expiration_date,
        review_date=p.review_date, published_at=p.published_at, updated_at=p.updated_at,
        requires_acknowledgment=await acknowledgments.requires_acknowledgment(s, p.id),
        portals=[AssignedPortalRef(id=a.id, name=a.name, slug=a.slug) for a in assigned],
        acknowledged=ack is not None,
        acknowledged_at=ack.acknowledged_at if ack else None,
    )


@router.post("/{slug}/policies/{policy_id}/acknowledge", response_model=UserAcknowledgmentOut,
             summary="Acknowledge a policy as the signed-in user")
async def acknowledge_policy(
    slug: str,
    policy_id: int,
    request: Request,
    password: str | None = Query(None),
    ctx: SessionContext | None = Depends(get_optional_context),
    s: AsyncSession = Depends(get_session),
):
    if ctx is None:
        raise HTTPException(401, "Authentication required", headers={"WWW-Authenticate": "Bearer"})
    portal = await _open_portal(s, slug, ctx, password, request)
    p = await _visible_policy(s, portal, policy_id, ctx)
    if p.status not in visible_statuses(None):
        raise HTTPException(400, "Only published policies can be acknowledged")
    ack, _ = await acknowledgments.acknowledge_as_user(s, p, ctx.user_id, client_ip(request))
    return ack


# ═══════════════════ E-MAIL ACKNOWLEDGMENT ═══════════════════

@router.post("/check-acknowledgment", response_model=CheckAcknowledgmentOut,
             summary="Has this e-mail acknowledged the policy on this portal?")
async def check_acknowledgment(body: EmailAckRequest, s: AsyncSession = Depends(get_session)):
    try:
        ack = await email_verification.check(s, body.portal_slug, body.policy_id, body.email)
    except email_verification.EmailFlowError as e:
        raise _flow_error(e)
    return CheckAcknowledgmentOut(
        is_acknowledged=ack is not None,
        acknowledged_at=ack.acknowledged_at if ack else None,
    )


@router.post("/request-acknowledgment-code", response_model=MessageOut, summary="E-mail a confirmation code")
async def request_acknowledgment_code(body: EmailAckRequest, request: Request, s: AsyncSession = Depends(get_session)):
    try:
        await email_verification.request_code(
            s, body.portal_slug, body.policy_id, body.email, ip_address=client_ip(request),
        )
    except email_verification.EmailFlowError as e:
        raise _flow_error(e)
    except EmailDeliveryError:
        raise HTTPException(502, "Failed to send confirmation email.")
    return MessageOut(message="A confirmation code has been sent to your email.")


@router.post("/confirm-acknowledgment", response_model=EmailAcknowledgmentOut,
             summary="Redeem a confirmation code and record the acknowledgment")
async def confirm_acknowledgment(body: ConfirmCodeRequest, request: Request, s: AsyncSession = Depends(get_session)):
    try:
        ack = await email_verification.confirm_code(
            s, body.portal_slug, body.policy_id, body.email, body.code,
            ip_address=client_ip(request), user_agent=user_agent(request),
        )
    except email_verification.EmailFlowError as e:
        raise _flow_error(e)
    return EmailAcknowledgmentOut(message="Policy acknowledged successfully.", acknowledged_at=ack.acknowledged_at)
