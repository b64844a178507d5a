"""Layout settings resolution and rendering for a concrete policy."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import upsert_statement
from app.models.organization import Organization, OrganizationSetting, OrganizationVariable
from app.models.policy import Policy
from app.models.portal import PortalSetting
from app.services import layout_renderer

LAYOUT_SETTING_KEY = "document_layout"

DEFAULT_LAYOUT: dict[str, Any] = {
    "header_template": "",
    "footer_template": "",
    "show_metadata": True,
    "date_format": "Month D, YYYY",
    "page_numbering_format": "Page {current} of {total}",
}


def merge_layout(*layers: dict[str, Any] | None) -> dict[str, Any]:
    """Later layers win key by key; None values in a layer do not override."""
    merged = dict(DEFAULT_LAYOUT)
    for layer in layers:
        if not layer:
            continue
        for key in DEFAULT_LAYOUT:
            if layer.get(key) is not None:
                merged[key] = layer[key]
    return merged


async def _org_layout(s: AsyncSession, organization_id: int) -> dict | None:
    q = select(OrganizationSetting.setting_value).where(
        OrganizationSetting.organization_id == organization_id,
        OrganizationSetting.setting_key == LAYOUT_SETTING_KEY,
    )
    return (await s.execute(q)).scalar_one_or_none()


async def _portal_layout(s: AsyncSession, portal_id: int) -> dict | None:
    q = select(PortalSetting.setting_value).where(
        PortalSetting.portal_id == portal_id,
        PortalSetting.setting_key == LAYOUT_SETTING_KEY,
    )
    return (await s.execute(q)).scalar_one_or_none()


async def resolve_layout(s: AsyncSession, organization_id: int, portal_id: int | None = None) -> tuple[dict, str]:
    """Effective layout and where it came from: 'portal', 'organization' or 'default'."""
    org_layer = await _org_layout(s, organization_id)
    portal_layer = await _portal_layout(s, portal_id) if portal_id is not None else None
    source = "portal" if portal_layer else "organization" if org_layer else "default"
    return merge_layout(org_layer, portal_layer), source


async def save_layout(
    s: AsyncSession, organization_id: int, values: dict[str, Any], portal_id: int | None = None,
) -> None:
    """Merge ``values`` onto the stored layer (portal-level when ``portal_id`` is given) and save it."""
    current = await _portal_layout(s, portal_id) if portal_id is not None else await _org_layout(s, organization_id)
    values = {**(current or {}), **values}
    if portal_id is not None:
        stmt = upsert_statement(
            s, PortalSetting,
            {"portal_id": portal_id, "setting_key": LAYOUT_SETTING_KEY, "setting_value": values,
             "created_at": datetime.utcnow(), "updated_at": datetime.utcnow()},
            conflict_columns=("portal_id", "setting_key"),
            update_columns=("setting_value", "updated_at"),
        )
    else:
        stmt = upsert_statement(
            s, OrganizationSetting,
            {"organization_id": organization_id, "setting_key": LAYOUT_SETTING_KEY, "setting_value": values,
             "created_at": datetime.utcnow(), "updated_at": datetime.utcnow()},
            conflict_columns=("organization_id", "setting_key"),
            update_columns=("setting_value", "updated_at"),
        )
    await s.execute(stmt)
    await s.commit()


async def organization_variables(s: AsyncSession, organization_id: int) -> dict[str, str | None]:
    q = (
        select(OrganizationVariable.variable_name, OrganizationVariable.variable_value)
        .where(OrganizationVariable.organization_id == organization_id)
        .order_by(OrganizationVariable.variable_name)
    )
    return dict((await s.execute(q)).all())


def policy_namespace(p: Policy) -> dict[str, Any]:
    return {
        "title": p.title,
        "version": p.current_version,
        "currentVersion": p.current_version,
        "effectiveDate": p.effective_date,
        "expirationDate": p.expiration_date,
        "reviewDate": p.review_date,
        "department": p.department,
        "category": p.category,
        "tags": p.tags or [],
        "status": p.status,
    }


async def render_for_policy(
    s: AsyncSession,
    policy: Policy,
    *,
    portal_id: int | None = None,
    page_number: int | None = None,
    total_pages: int | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    layout, source = await resolve_layout(s, policy.organization_id, portal_id)
    org = await s.get(Organization, policy.organization_id)
    context = layout_renderer.build_context(
        policy=policy_namespace(policy),
        organization_name=org.name if org else "",
        variables=await organization_variables(s, policy.organization_id),
        now=now or datetime.utcnow(),
        date_format=layout["date_format"],
        page_number=page_number,
        total_pages=total_pages,
    )
    return {
        "header": layout_renderer.render(layout["header_template"], context),
        "footer": layout_renderer.render(layout["footer_template"], context),
        "page_numbering": layout_renderer.render_page_numbering(
            layout["page_numbering_format"], page_number, total_pages,
        ),
        "show_metadata": layout["show_metadata"],
        "source": source,
    }
