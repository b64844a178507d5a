"""
Policy change trail — /api/v1/audit-log
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.dependencies import get_context
from app.models.audit import AuditLog
from app.models.user import User
from app.schemas.audit import AuditLogOut, AuditLogPage
from app.services.permissions import authorize, require_organization
from app.services.session_context import SessionContext

router = APIRouter(prefix="/api/v1/audit-log", tags=["Audit trail"])


@router.get("", response_model=AuditLogPage, summary="Change trail")
async def list_audit_log(
    module: str | None = Query(None),
    entity_type: str | None = Query(None),
    entity_id: int | None = Query(None),
    action: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    ctx: SessionContext = Depends(get_context),
    s: AsyncSession = Depends(get_session),
):
    authorize(ctx, "audit.read")
    q = select(AuditLog).where(AuditLog.organization_id == require_organization(ctx))
    if module:
        q = q.where(AuditLog.module == module)
    if entity_type:
        q = q.where(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        q = q.where(AuditLog.entity_id == entity_id)
    if action:
        q = q.where(AuditLog.action == action)

    total = (await s.execute(select(func.count()).select_from(q.subquery()))).scalar() or 0
    q = (
        q.add_columns(User.email)
        .outerjoin(User, User.id == AuditLog.user_id)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    entries = [
        AuditLogOut(
            id=a.id, user_id=a.user_id, user_email=email, module=a.module, action=a.action,
            entity_type=a.entity_type, entity_id=a.entity_id, field_name=a.field_name,
            old_value=a.old_value, new_value=a.new_value, ip_address=a.ip_address,
            created_at=a.created_at,
        )
        for a, email in (await s.execute(q)).all()
    ]
    return AuditLogPage(entries=entries, total=total, page=page, limit=limit)
