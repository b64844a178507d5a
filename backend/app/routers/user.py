"""
Organization users — /api/v1/users
"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.dependencies import get_context
from app.models.policy import PolicyAcknowledgment
from app.models.user import User, UserSession
from app.schemas.user import UserCreate, UserOut, UserRoleUpdate
from app.services.permissions import authorize, require_organization
from app.services.security import hash_password
from app.services.session_context import SessionContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


async def _get_org_user(s: AsyncSession, org_id: int, user_id: int) -> User:
    u = await s.get(User, user_id)
    if not u or u.organization_id != org_id:
        raise HTTPException(404, "User not found")
    return u


@router.get("", response_model=list[UserOut], summary="Users of the organization")
async def list_users(ctx: SessionContext = Depends(get_context), s: AsyncSession = Depends(get_session)):
    authorize(ctx, "users.manage")
    org_id = require_organization(ctx)
    q = select(User).where(User.organization_id == org_id).order_by(User.display_name)
    return (await s.execute(q)).scalars().all()


@router.post("", response_model=UserOut, status_code=201, summary="New user")
async def create_user(body: UserCreate, ctx: SessionContext = Depends(get_context),
                      s: AsyncSession = Depends(get_session)):
    authorize(ctx, "users.manage")
    org_id = require_organization(ctx)
    email = body.email.strip().lower()
    exists = (await s.execute(select(User.id).where(func.lower(User.email) == email))).first()
    if exists:
        raise HTTPException(409, "A user with this email already exists")

    u = User(
        organization_id=org_id,
        email=email,
        display_name=body.display_name,
        role=body.role,
        password_hash=hash_password(body.password),
    )
    s.add(u)
    await s.commit()
    await s.refresh(u)
    logger.info("User %s created in organization %s by %s", u.id, org_id, ctx.user_id)
    return u


@router.put("/{user_id}/role", response_model=UserOut, summary="Change user role")
async def update_role(user_id: int, body: UserRoleUpdate, ctx: SessionContext = Depends(get_context),
                      s: AsyncSession = Depends(get_session)):
    authorize(ctx, "users.manage")
    org_id = require_organization(ctx)
    u = await _get_org_user(s, org_id, user_id)
    if u.id == ctx.user_id and body.role != "admin":
        raise HTTPException(400, "Admins cannot remove their own admin role.")
    u.role = body.role
    await s.commit()
    await s.refresh(u)
    return u


@router.delete("/{user_id}", summary="Delete user")
async def delete_user(user_id: int, ctx: SessionContext = Depends(get_context),
                      s: AsyncSession = Depends(get_session)):
    authorize(ctx, "users.manage")
    org_id = require_organization(ctx)
    if user_id == ctx.user_id:
        raise HTTPException(400, "Admins cannot delete their own account.")
    u = await _get_org_user(s, org_id, user_id)
    await s.execute(delete(PolicyAcknowledgment).where(PolicyAcknowledgment.user_id == u.id))
    await s.execute(delete(UserSession).where(UserSession.user_id == u.id))
    await s.delete(u)
    await s.commit()
    return {"status": "deleted", "id": user_id}
