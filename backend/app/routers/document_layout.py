"""
Document layout — /api/v1/document-layout
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.dependencies import get_context
from app.models.policy import Policy
from app.models.portal import Portal
from app.schemas.document_layout import LayoutOut, LayoutSettings, LayoutUpdate, RenderOut, RenderRequest
from app.services import document_layout
from app.services.permissions import authorize, require_organization
from app.services.session_context import SessionContext
from app.services.visibility import registry_statuses

router = APIRouter(prefix="/api/v1/document-layout", tags=["Document layout"])


async def _check_portal(s: AsyncSession, org_id: int, portal_id: int | None) -> None:
    if portal_id is None:
        return
    p = await s.get(Portal, portal_id)
    if not p or p.organization_id != org_id:
        raise HTTPException(404, "Portal not found")


@router.get("", response_model=LayoutOut, summary="Effective layout settings")
async def get_layout(portal_id: int | None = Query(None), ctx: SessionContext = Depends(get_context),
                     s: AsyncSession = Depends(get_session)):
    authorize(ctx, "layout.read")
    org_id = require_organization(ctx)
    await _check_portal(s, org_id, portal_id)
    layout, source = await document_layout.resolve_layout(s, org_id, portal_id)
    return LayoutOut(settings=LayoutSettings(**layout), source=source, portal_id=portal_id)


@router.post("", response_model=LayoutOut, summary="Save layout settings (portal-level when portal_id is given)")
async def save_layout(body: LayoutUpdate, ctx: SessionContext = Depends(get_context),
                      s: AsyncSession = Depends(get_session)):
    authorize(ctx, "layout.update")
    org_id = require_organization(ctx)
    await _check_portal(s, org_id, body.portal_id)
    values = body.model_dump(exclude={"portal_id"}, exclude_none=True)
    await document_layout.save_layout(s, org_id, values, body.portal_id)
    layout, source = await document_layout.resolve_layout(s, org_id, body.portal_id)
    return LayoutOut(settings=LayoutSettings(**layout), source=source, portal_id=body.portal_id)


@router.post("/render", response_model=RenderOut, summary="Render header and footer for a policy")
async def render_layout(body: RenderRequest, ctx: SessionContext = Depends(get_context),
                        s: AsyncSession = Depends(get_session)):
    authorize(ctx, "layout.read")
    org_id = require_organization(ctx)
    policy = await s.get(Policy, body.policy_id)
    if not policy or policy.organization_id != org_id or policy.status not in registry_statuses(ctx):
        raise HTTPException(404, "Policy not found")
    await _check_portal(s, org_id, body.portal_id)
    return await document_layout.render_for_policy(
        s, policy,
        portal_id=body.portal_id,
        page_number=body.page_number,
        total_pages=body.total_pages,
    )
