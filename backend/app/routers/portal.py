"""
Portal administration — /api/v1/portals
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.dependencies import get_context
from app.middleware.audit import audit_log
from app.models.acknowledgment import AcknowledgmentConfirmationCode, EmailBasedAcknowledgment
from app.models.policy import Policy
from app.models.portal import PolicyPortalAssignment, Portal, PortalEmailRecipient, PortalSetting
from app.schemas.portal import (
    AssignedPolicyOut, AssignmentsResult, AssignmentsUpdate, AvailablePolicyOut,
    MigrationResultOut, MigrationStatusOut, PortalCreate, PortalListOut, PortalOut, PortalUpdate,
)
from app.services.permissions import authorize, require_organization
from app.services.security import hash_password
from app.services.session_context import SessionContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/portals", tags=["Portals"])

PUBLIC_SLUG = "public"
INTERNAL_SLUG = "internal"


async def _get_portal(s: AsyncSession, org_id: int, portal_id: int) -> Portal:
    p = await s.get(Portal, portal_id)
    if not p or p.organization_id != org_id:
        raise HTTPException(404, "Portal not found")
    return p


async def _slug_taken(s: AsyncSession, org_id: int, slug: str, exclude_id: int | None = None) -> bool:
    q = select(Portal.id).where(Portal.organization_id == org_id, Portal.slug == slug)
    if exclude_id is not None:
        q = q.where(Portal.id != exclude_id)
    return (await s.execute(q)).first() is not None


async def _replace_recipients(s: AsyncSession, portal: Portal, emails: list[str], user_id: int) -> None:
    await s.execute(delete(PortalEmailRecipient).where(PortalEmailRecipient.portal_id == portal.id))
    for email in emails:
        s.add(PortalEmailRecipient(
            portal_id=portal.id,
            organization_id=portal.organization_id,
            email=email,
            created_by=user_id,
        ))


async def _portal_out(s: AsyncSession, p: Portal) -> PortalOut:
    policy_count = (await s.execute(
        select(func.count()).select_from(PolicyPortalAssignment)
        .where(PolicyPortalAssignment.portal_id == p.id)
    )).scalar() or 0
    published_count = (await s.execute(
        select(func.count()).select_from(PolicyPortalAssignment)
        .join(Policy, Policy.id == PolicyPortalAssignment.policy_id)
        .where(PolicyPortalAssignment.portal_id == p.id, Policy.status == "published")
    )).scalar() or 0
    recipients = (await s.execute(
        select(PortalEmailRecipient.email)
        .where(PortalEmailRecipient.portal_id == p.id)
        .order_by(PortalEmailRecipient.email)
    )).scalars().all()

    return PortalOut(
        id=p.id, organization_id=p.organization_id, name=p.name, slug=p.slug,
        label=p.label, description=p.description, access_type=p.access_type,
        has_password=bool(p.password_hash), allowed_roles=p.allowed_roles,
        is_active=p.is_active, requires_acknowledgment=p.requires_acknowledgment,
        acknowledgment_mode=p.acknowledgment_mode,
        acknowledgment_due_days=p.acknowledgment_due_days,
        acknowledgment_reminder_days=p.acknowledgment_reminder_days,
        minimum_reading_time_seconds=p.minimum_reading_time_seconds,
        require_full_scroll=p.require_full_scroll,
        policy_count=policy_count, published_policy_count=published_count,
        email_recipients=list(recipients),
        created_at=p.created_at, updated_at=p.updated_at,
    )


# ═══════════════════ MIGRATION ═══════════════════

async def _unassigned_policies(s: AsyncSession, org_id: int) -> list[Policy]:
    assigned = (
        select(PolicyPortalAssignment.policy_id)
        .join(Portal, Portal.id == PolicyPortalAssignment.portal_id)
        .where(Portal.organization_id == org_id)
    )
    q = select(Policy).where(Policy.organization_id == org_id, Policy.id.not_in(assigned))
    return list((await s.execute(q)).scalars().all())


async def _find_portal_by_slug(s: AsyncSession, org_id: int, slug: str) -> Portal | None:
    q = (
        select(Portal)
        .where(Portal.organization_id == org_id, Portal.slug == slug)
        .order_by(Portal.id.desc())
        .limit(1)
    )
    return (await s.execute(q)).scalar_one_or_none()


@router.get("/migration/status", response_model=MigrationStatusOut, summary="Legacy visibility migration status")
async def migration_status(ctx: SessionContext = Depends(get_context), s: AsyncSession = Depends(get_session)):
    authorize(ctx, "portal.manage")
    org_id = require_organization(ctx)
    total = (await s.execute(
        select(func.count()).select_from(Policy).where(Policy.organization_id == org_id)
    )).scalar() or 0
    unassigned = len(await _unassigned_policies(s, org_id))
    public = await _find_portal_by_slug(s, org_id, PUBLIC_SLUG)
    internal = await _find_portal_by_slug(s, org_id, INTERNAL_SLUG)
    return MigrationStatusOut(
        total_policies=total,
        unassigned_policies=unassigned,
        public_portal_id=public.id if public else None,
        internal_portal_id=internal.id if internal else None,
        needs_migration=unassigned > 0,
    )


@router.post("/migration/start", response_model=MigrationResultOut, summary="Assign unassigned policies to default portals")
async def migration_start(ctx: SessionContext = Depends(get_context), s: AsyncSession = Depends(get_session)):
    authorize(ctx, "portal.manage")
    org_id = require_organization(ctx)

    created = {}
    portals = {}
    for slug, name, access_type in (
        (PUBLIC_SLUG, "Public Portal", "public"),
        (INTERNAL_SLUG, "Internal Portal", "authenticated"),
    ):
        portal = await _find_portal_by_slug(s, org_id, slug)
        created[slug] = portal is None
        if portal is None:
            portal = Portal(
                organization_id=org_id, name=name, slug=slug, access_type=access_type,
                is_active=True, description=f"Default {slug} portal created during migration.",
            )
            s.add(portal)
            await s.flush()
        portals[slug] = portal

    to_public = to_internal = 0
    for policy in await _unassigned_policies(s, org_id):
        target = portals[PUBLIC_SLUG] if policy.is_public else portals[INTERNAL_SLUG]
        s.add(PolicyPortalAssignment(policy_id=policy.id, portal_id=target.id))
        if policy.is_public:
            to_public += 1
        else:
            to_internal += 1

    await s.commit()
    total = to_public + to_internal
    logger.info("Portal migration for organization %s: %d public, %d internal", org_id, to_public, to_internal)
    return MigrationResultOut(
        public_portal_id=portals[PUBLIC_SLUG].id,
        internal_portal_id=portals[INTERNAL_SLUG].id,
        public_portal_created=created[PUBLIC_SLUG],
        internal_portal_created=created[INTERNAL_SLUG],
        assigned_to_public=to_public,
        assigned_to_internal=to_internal,
        message=f"Successfully migrated {total} policies." if total else "No policies needed migration.",
    )


# ═══════════════════ LIST ═══════════════════

@router.get("", response_model=PortalListOut, summary="Portals of the organization")
async def list_portals(
    search: str | None = Query(None),
    access_type: str | None = Query(None),
    is_active: bool | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    ctx: SessionContext = Depends(get_context),
    s: AsyncSession = Depends(get_session),
):
    authorize(ctx, "portal.manage")
    org_id = require_organization(ctx)
    q = select(Portal).where(Portal.organization_id == org_id)
    if search:
        pattern = f"%{search.lower()}%"
        q = q.where(or_(func.lower(Portal.name).like(pattern), func.lower(Portal.slug).like(pattern)))
    if access_type:
        q = q.where(Portal.access_type == access_type)
    if is_active is not None:
        q = q.where(Portal.is_active.is_(is_active))

    total = (await s.execute(select(func.count()).select_from(q.subquery()))).scalar() or 0
    q = q.order_by(Portal.name).offset((page - 1) * limit).limit(limit)
    portals = (await s.execute(q)).scalars().all()
    return PortalListOut(
        portals=[await _portal_out(s, p) for p in portals],
        total=total, page=page, limit=limit,
    )


@router.get("/{portal_id}", response_model=PortalOut, summary="Portal details")
async def get_portal(portal_id: int, ctx: SessionContext = Depends(get_context), s: AsyncSession = Depends(get_session)):
    authorize(ctx, "portal.manage")
    p = await _get_portal(s, require_organization(ctx), portal_id)
    return await _portal_out(s, p)


# ═══════════════════ CREATE / UPDATE / DELETE ═══════════════════

@router.post("", response_model=PortalOut, status_code=201, summary="New portal")
async def create_portal(body: PortalCreate, ctx: SessionContext = Depends(get_context),
                        s: AsyncSession = Depends(get_session)):
    authorize(ctx, "portal.manage")
    org_id = require_organization(ctx)
    if await _slug_taken(s, org_id, body.slug):
        raise HTTPException(409, f"A portal with slug '{body.slug}' already exists")

    data = body.model_dump(exclude={"password", "email_recipients"})
    if body.access_type != "role_based":
        data["allowed_roles"] = None
    p = Portal(organization_id=org_id, **data)
    if body.access_type == "password":
        p.password_hash = hash_password(body.password)
    s.add(p)
    try:
        await s.flush()
    except IntegrityError:
        await s.rollback()
        raise HTTPException(409, f"A portal with slug '{body.slug}' already exists")

    if body.email_recipients:
        await _replace_recipients(s, p, body.email_recipients, ctx.user_id)
    await audit_log(s, organization_id=org_id, module="portals", action="create",
                    entity_type="portal", entity_id=p.id, user_id=ctx.user_id)
    await s.commit()
    await s.refresh(p)
    logger.info("Portal %s (%s) created in organization %s", p.id, p.slug, org_id)
    return await _portal_out(s, p)


@router.put("/{portal_id}", response_model=PortalOut, summary="Edit portal")
async def update_portal(portal_id: int, body: PortalUpdate, ctx: SessionContext = Depends(get_context),
                        s: AsyncSession = Depends(get_session)):
    authorize(ctx, "portal.manage")
    org_id = require_organization(ctx)
    p = await _get_portal(s, org_id, portal_id)
    data = body.model_dump(exclude_unset=True, exclude={"password", "email_recipients"})

    if "slug" in data and data["slug"] != p.slug and await _slug_taken(s, org_id, data["slug"], exclude_id=p.id):
        raise HTTPException(409, f"A portal with slug '{data['slug']}' already exists")

    access_type = data.get("access_type") or p.access_type
    if access_type == "password" and not body.password and not p.password_hash:
        raise HTTPException(400, "Password is required and must be at least 8 characters for password-protected portals.")
    roles = data["allowed_roles"] if "allowed_roles" in data else p.allowed_roles
    if access_type == "role_based" and not roles:
        raise HTTPException(400, "At least one role must be selected for role-based access.")

    for k, v in data.items():
        setattr(p, k, v)
    if access_type == "password":
        if body.password:
            p.password_hash = hash_password(body.password)
    else:
        p.password_hash = None
    if access_type != "role_based":
        p.allowed_roles = None

    if body.email_recipients is not None:
        await _replace_recipients(s, p, body.email_recipients, ctx.user_id)
    await audit_log(s, organization_id=org_id, module="portals", action="update",
                    entity_type="portal", entity_id=p.id, user_id=ctx.user_id)
    try:
        await s.commit()
    except IntegrityError:
        await s.rollback()
        raise HTTPException(409, "A portal with this slug already exists")
    await s.refresh(p)
    return await _portal_out(s, p)


@router.delete("/{portal_id}", summary="Delete portal")
async def delete_portal(portal_id: int, ctx: SessionContext = Depends(get_context),
                        s: AsyncSession = Depends(get_session)):
    authorize(ctx, "portal.manage")
    org_id = require_organization(ctx)
    p = await _get_portal(s, org_id, portal_id)
    for model in (PolicyPortalAssignment, PortalEmailRecipient, PortalSetting,
                  AcknowledgmentConfirmationCode, EmailBasedAcknowledgment):
        await s.execute(delete(model).where(model.portal_id == p.id))
    await audit_log(s, organization_id=org_id, module="portals", action="delete",
                    entity_type="portal", entity_id=p.id, user_id=ctx.user_id)
    await s.delete(p)
    await s.commit()
    logger.info("Portal %s deleted from organization %s", portal_id, org_id)
    return {"status": "deleted", "id": portal_id}


# ═══════════════════ ASSIGNMENTS ═══════════════════

@router.get("/{portal_id}/assignments", response_model=list[AssignedPolicyOut], summary="Policies assigned to portal")
async def list_assignments(portal_id: int, ctx: SessionContext = Depends(get_context),
                           s: AsyncSession = Depends(get_session)):
    authorize(ctx, "portal.manage")
    p = await _get_portal(s, require_organization(ctx), portal_id)
    q = (
        select(Policy, PolicyPortalAssignment.created_at)
        .join(PolicyPortalAssignment, PolicyPortalAssignment.policy_id == Policy.id)
        .where(PolicyPortalAssignment.portal_id == p.id)
        .order_by(Policy.title)
    )
    return [
        AssignedPolicyOut(
            policy_id=pol.id, title=pol.title, status=pol.status,
            department=pol.department, category=pol.category, assigned_at=assigned_at,
        )
        for pol, assigned_at in (await s.execute(q)).all()
    ]


@router.post("/{portal_id}/assignments", response_model=AssignmentsResult, summary="Add or remove policy assignments")
async def update_assignments(portal_id: int, body: AssignmentsUpdate, ctx: SessionContext = Depends(get_context),
                             s: AsyncSession = Depends(get_session)):
    authorize(ctx, "portal.assign")
    org_id = require_organization(ctx)
    p = await _get_portal(s, org_id, portal_id)

    requested = {a.policy_id for a in body.assignments}
    known = set((await s.execute(
        select(Policy.id).where(Policy.id.in_(requested), Policy.organization_id == org_id)
    )).scalars().all())
    unknown = sorted(requested - known)
    if unknown:
        raise HTTPException(400, f"Unknown policies: {', '.join(str(i) for i in unknown)}")

    current = set((await s.execute(
        select(PolicyPortalAssignment.policy_id).where(PolicyPortalAssignment.portal_id == p.id)
    )).scalars().all())

    added = removed = 0
    for change in body.assignments:
        if change.action == "add" and change.policy_id not in current:
            s.add(PolicyPortalAssignment(policy_id=change.policy_id, portal_id=p.id))
            current.add(change.policy_id)
            added += 1
        elif change.action == "remove" and change.policy_id in current:
            await s.execute(delete(PolicyPortalAssignment).where(
                PolicyPortalAssignment.portal_id == p.id,
                PolicyPortalAssignment.policy_id == change.policy_id,
            ))
            current.discard(change.policy_id)
            removed += 1

    if added or removed:
        await audit_log(s, organization_id=org_id, module="portals", action="assign",
                        entity_type="portal", entity_id=p.id, user_id=ctx.user_id,
                        changes={"assignments": (None, f"+{added} -{removed}")})
    await s.commit()
    return AssignmentsResult(added=added, removed=removed)


@router.get("/{portal_id}/available-policies", response_model=list[AvailablePolicyOut],
            summary="Organization policies not yet assigned to portal")
async def available_policies(portal_id: int, ctx: SessionContext = Depends(get_context),
                             s: AsyncSession = Depends(get_session)):
    authorize(ctx, "portal.assign")
    org_id = require_organization(ctx)
    p = await _get_portal(s, org_id, portal_id)
    assigned = select(PolicyPortalAssignment.policy_id).where(PolicyPortalAssignment.portal_id == p.id)
    q = (
        select(Policy)
        .where(Policy.organization_id == org_id, Policy.id.not_in(assigned))
        .order_by(Policy.title)
    )
    return (await s.execute(q)).scalars().all()
