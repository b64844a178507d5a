"""
Policy registry — /api/v1/policies
"""
import io
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.dependencies import client_ip, get_context
from app.middleware.audit import audit_log, diff_changes
from app.models.acknowledgment import AcknowledgmentConfirmationCode, EmailBasedAcknowledgment
from app.models.policy import Policy, PolicyAcknowledgment, PolicyVersion
from app.models.portal import PolicyPortalAssignment, Portal
from app.schemas.policy import (
    ParsedDocumentOut, PolicyCreate, PolicyDetailOut, PolicyListOut, PolicyOut,
    PolicyPortalRef, PolicyUpdate, PolicyVersionOut, RollbackRequest,
)
from app.services import acknowledgments, policy_versions
from app.services.document_extract import MAX_FILE_SIZE, DocumentParseError, parse_policy_document
from app.services.permissions import authorize, can, require_organization
from app.services.session_context import SessionContext
from app.services.visibility import apply_visibility, registry_statuses

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/policies", tags=["Policies"])

TRACKED_FIELDS = (
    "title", "content", "status", "tags", "department", "category",
    "effective_date", "expiration_date", "review_date",
)


async def _get_policy(s: AsyncSession, org_id: int, policy_id: int) -> Policy:
    p = await s.get(Policy, policy_id)
    if not p or p.organization_id != org_id:
        raise HTTPException(404, "Policy not found")
    return p


async def _check_portal_ids(s: AsyncSession, org_id: int, portal_ids: list[int]) -> None:
    if not portal_ids:
        return
    found = set((await s.execute(
        select(Portal.id).where(Portal.id.in_(portal_ids), Portal.organization_id == org_id)
    )).scalars().all())
    missing = sorted(set(portal_ids) - found)
    if missing:
        raise HTTPException(400, f"Unknown portals: {', '.join(str(i) for i in missing)}")


async def _policy_detail(s: AsyncSession, p: Policy, ctx: SessionContext) -> PolicyDetailOut:
    portals = (await s.execute(
        select(Portal)
        .join(PolicyPortalAssignment, PolicyPortalAssignment.portal_id == Portal.id)
        .where(PolicyPortalAssignment.policy_id == p.id)
        .order_by(Portal.name)
    )).scalars().all()
    ack = await acknowledgments.user_acknowledgment(s, p.id, ctx.user_id)
    return PolicyDetailOut(
        **PolicyOut.model_validate(p).model_dump(),
        portals=[
            PolicyPortalRef(
                id=pt.id, name=pt.name, slug=pt.slug,
                requires_acknowledgment=pt.requires_acknowledgment,
                acknowledgment_mode=pt.acknowledgment_mode,
            )
            for pt in portals
        ],
        requires_acknowledgment=await acknowledgments.requires_acknowledgment(s, p.id),
        acknowledged=ack is not None,
        acknowledged_at=ack.acknowledged_at if ack else None,
    )


def _tracked(p: Policy) -> dict:
    return {f: getattr(p, f) for f in TRACKED_FIELDS}


# ═══════════════════ LIST ═══════════════════

@router.get("", response_model=PolicyListOut, summary="Policies of the organization")
async def list_policies(
    search: str | None = Query(None),
    status: str | None = Query(None),
    department: str | None = Query(None),
    category: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    ctx: SessionContext = Depends(get_context),
    s: AsyncSession = Depends(get_session),
):
    org_id = require_organization(ctx)
    q = apply_visibility(select(Policy).where(Policy.organization_id == org_id), Policy, ctx, registry_statuses)
    if status:
        q = q.where(Policy.status == status)
    if department:
        q = q.where(Policy.department == department)
    if category:
        q = q.where(Policy.category == category)
    if search:
        pattern = f"%{search.lower()}%"
        q = q.where(or_(func.lower(Policy.title).like(pattern), func.lower(Policy.content).like(pattern)))

    total = (await s.execute(select(func.count()).select_from(q.subquery()))).scalar() or 0
    q = q.order_by(Policy.updated_at.desc(), Policy.id.desc()).offset((page - 1) * limit).limit(limit)
    policies = (await s.execute(q)).scalars().all()
    return PolicyListOut(policies=policies, total=total, page=page, limit=limit)


# ═══════════════════ IMPORT ═══════════════════

@router.post("/parse-document", response_model=ParsedDocumentOut, summary="Extract a policy from PDF/DOCX")
async def parse_document(
    document: UploadFile = File(...),
    ctx: SessionContext = Depends(get_context),
):
    authorize(ctx, "document.import")
    raw = await document.read()
    if len(raw) > MAX_FILE_SIZE:
        raise HTTPException(400, "Max file size is 20MB.")
    try:
        return parse_policy_document(document.filename or "", io.BytesIO(raw))
    except DocumentParseError as e:
        raise HTTPException(400, str(e))


# ═══════════════════ CRUD ═══════════════════

@router.get("/{policy_id}", response_model=PolicyDetailOut, summary="Policy details")
async def get_policy(policy_id: int, ctx: SessionContext = Depends(get_context),
                     s: AsyncSession = Depends(get_session)):
    p = await _get_policy(s, require_organization(ctx), policy_id)
    if p.status not in registry_statuses(ctx):
        raise HTTPException(404, "Policy not found")
    return await _policy_detail(s, p, ctx)


@router.post("", response_model=PolicyDetailOut, status_code=201, summary="New policy")
async def create_policy(body: PolicyCreate, request: Request, ctx: SessionContext = Depends(get_context),
                        s: AsyncSession = Depends(get_session)):
    authorize(ctx, "policy.create")
    org_id = require_organization(ctx)
    await _check_portal_ids(s, org_id, body.portal_ids)

    p = Policy(
        organization_id=org_id,
        author_id=ctx.user_id,
        current_version=1,
        **body.model_dump(exclude={"portal_ids"}),
    )
    if p.status == "published":
        p.published_at = datetime.utcnow()
    s.add(p)
    await s.flush()

    s.add(policy_versions.snapshot(p, ctx.user_id, "Initial version"))
    for portal_id in dict.fromkeys(body.portal_ids):
        s.add(PolicyPortalAssignment(policy_id=p.id, portal_id=portal_id))
    await audit_log(s, organization_id=org_id, module="policies", action="create",
                    entity_type="policy", entity_id=p.id, user_id=ctx.user_id,
                    ip_address=client_ip(request))
    await s.commit()
    await s.refresh(p)
    logger.info("Policy %s created by user %s", p.id, ctx.user_id)
    return await _policy_detail(s, p, ctx)


@router.put("/{policy_id}", response_model=PolicyDetailOut, summary="Edit policy (creates a new version)")
async def update_policy(policy_id: int, body: PolicyUpdate, request: Request,
                        ctx: SessionContext = Depends(get_context), s: AsyncSession = Depends(get_session)):
    authorize(ctx, "policy.update")
    p = await _get_policy(s, require_organization(ctx), policy_id)

    data = body.model_dump(exclude_unset=True, exclude={"change_summary"})
    effective = data.get("effective_date", p.effective_date)
    expiration = data.get("expiration_date", p.expiration_date)
    review = data.get("review_date", p.review_date)
    if review and effective and review < effective:
        raise HTTPException(400, "Review date cannot be earlier than the effective date")
    if review and expiration and review < expiration:
        raise HTTPException(400, "Review date cannot be earlier than the expiration date")

    before = _tracked(p)
    for k, v in data.items():
        setattr(p, k, v)
    changes = diff_changes(before, _tracked(p))

    publishing = before["status"] != "published" and p.status == "published"
    if publishing:
        p.published_at = datetime.utcnow()
    p.current_version += 1
    p.updated_at = datetime.utcnow()
    s.add(policy_versions.snapshot(p, ctx.user_id, body.change_summary))

    await audit_log(s, organization_id=p.organization_id, module="policies",
                    action="publish" if publishing else "update",
                    entity_type="policy", entity_id=p.id, changes=changes or None,
                    user_id=ctx.user_id, ip_address=client_ip(request))
    await s.commit()
    await s.refresh(p)
    return await _policy_detail(s, p, ctx)


@router.delete("/{policy_id}", summary="Delete policy")
async def delete_policy(policy_id: int, request: Request, ctx: SessionContext = Depends(get_context),
                        s: AsyncSession = Depends(get_session)):
    authorize(ctx, "policy.delete")
    p = await _get_policy(s, require_organization(ctx), policy_id)
    for model in (PolicyAcknowledgment, EmailBasedAcknowledgment, AcknowledgmentConfirmationCode,
                  PolicyPortalAssignment, PolicyVersion):
        await s.execute(delete(model).where(model.policy_id == p.id))
    await audit_log(s, organization_id=p.organization_id, module="policies", action="delete",
                    entity_type="policy", entity_id=p.id, user_id=ctx.user_id,
                    changes={"title": (p.title, None)}, ip_address=client_ip(request))
    await s.delete(p)
    await s.commit()
    logger.info("Policy %s deleted by user %s", policy_id, ctx.user_id)
    return {"status": "deleted", "id": policy_id}


# ═══════════════════ VERSIONS ═══════════════════

@router.get("/{policy_id}/versions", response_model=list[PolicyVersionOut], summary="Version history")
async def list_versions(policy_id: int, ctx: SessionContext = Depends(get_context),
                        s: AsyncSession = Depends(get_session)):
    authorize(ctx, "policy.read_drafts")
    p = await _get_policy(s, require_organization(ctx), policy_id)
    return await policy_versions.list_versions(s, p.id)


@router.get("/{policy_id}/versions/{version_number}", response_model=PolicyVersionOut, summary="Single version")
async def get_version(policy_id: int, version_number: int, ctx: SessionContext = Depends(get_context),
                      s: AsyncSession = Depends(get_session)):
    authorize(ctx, "policy.read_drafts")
    p = await _get_policy(s, require_organization(ctx), policy_id)
    v = await policy_versions.get_version(s, p.id, version_number)
    if not v:
        raise HTTPException(404, "Version not found")
    return v


@router.post("/{policy_id}/rollback", response_model=PolicyDetailOut, summary="Roll back to an earlier version")
async def rollback_policy(policy_id: int, body: RollbackRequest, request: Request,
                          ctx: SessionContext = Depends(get_context), s: AsyncSession = Depends(get_session)):
    p = await _get_policy(s, require_organization(ctx), policy_id)
    if not can(ctx.role, "policy.rollback") and p.author_id != ctx.user_id:
        raise HTTPException(403, "You do not have permission to roll back this policy.")

    before = _tracked(p)
    try:
        await policy_versions.rollback(s, p, body.version_number, ctx.user_id)
    except policy_versions.RollbackError as e:
        raise HTTPException(400, str(e))
    await audit_log(s, organization_id=p.organization_id, module="policies", action="rollback",
                    entity_type="policy", entity_id=p.id,
                    changes=diff_changes(before, _tracked(p)) or {"version": (None, body.version_number)},
                    user_id=ctx.user_id, ip_address=client_ip(request))
    await s.commit()
    await s.refresh(p)
    return await _policy_detail(s, p, ctx)
