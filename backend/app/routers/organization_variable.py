"""
Organization variables — /api/v1/organization-variables
"""
from fastapi import APIRouter, Depends
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.dependencies import get_context
from app.models.organization import OrganizationVariable
from app.schemas.organization import OrganizationVariableOut, OrganizationVariablesUpdate
from app.services.permissions import authorize, require_organization
from app.services.session_context import SessionContext

router = APIRouter(prefix="/api/v1/organization-variables", tags=["Organization variables"])


async def _list(s: AsyncSession, org_id: int) -> list[OrganizationVariable]:
    q = (
        select(OrganizationVariable)
        .where(OrganizationVariable.organization_id == org_id)
        .order_by(OrganizationVariable.variable_name)
    )
    return list((await s.execute(q)).scalars().all())


@router.get("", response_model=list[OrganizationVariableOut], summary="Template variables")
async def list_variables(ctx: SessionContext = Depends(get_context), s: AsyncSession = Depends(get_session)):
    return await _list(s, require_organization(ctx))


@router.put("", response_model=list[OrganizationVariableOut], summary="Replace all template variables")
async def replace_variables(body: OrganizationVariablesUpdate, ctx: SessionContext = Depends(get_context),
                            s: AsyncSession = Depends(get_session)):
    authorize(ctx, "variables.update")
    org_id = require_organization(ctx)
    await s.execute(delete(OrganizationVariable).where(OrganizationVariable.organization_id == org_id))
    for item in body.variables:
        s.add(OrganizationVariable(
            organization_id=org_id,
            variable_name=item.variable_name,
            variable_value=item.variable_value,
        ))
    await s.commit()
    return await _list(s, org_id)
