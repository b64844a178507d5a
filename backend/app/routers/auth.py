"""
Authentication — /api/v1/auth
"""
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_session
from app.dependencies import SESSION_COOKIE, client_ip, get_context, user_agent
from app.models.user import UserSession
from app.schemas.auth import ImpersonationOut, LoginOut, LoginRequest, SessionOut, SessionUserOut
from app.services import security_audit
from app.services.auth import ATTEMPT_LOGIN, InvalidCredentials, LoginLocked, authenticate
from app.services.session_context import SessionContext, load_session_context

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


def session_out(ctx: SessionContext) -> SessionOut:
    return SessionOut(
        user=SessionUserOut.model_validate(ctx.user),
        role=ctx.role,
        organization_id=ctx.organization_id,
        impersonation=ImpersonationOut(**asdict(ctx.impersonation)),
    )


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        SESSION_COOKIE, token,
        max_age=settings.SESSION_TTL_HOURS * 3600,
        httponly=True,
        samesite="lax",
        secure=not settings.DEBUG,
    )


async def login_with_type(
    body: LoginRequest,
    request: Request,
    response: Response,
    s: AsyncSession,
    attempt_type: str,
    failed_event: str,
) -> LoginOut:
    ip = client_ip(request)
    try:
        user, session_row = await authenticate(
            s, body.email, body.password, attempt_type=attempt_type, ip_address=ip,
        )
    except LoginLocked as e:
        await security_audit.log_security_event(
            security_audit.LOGIN_LOCKED, email=body.email, ip_address=ip,
            user_agent=user_agent(request), details={"attempt_type": attempt_type},
        )
        raise HTTPException(429, str(e))
    except InvalidCredentials:
        await security_audit.log_security_event(
            failed_event, email=body.email, ip_address=ip,
            user_agent=user_agent(request), details={"attempt_type": attempt_type},
        )
        raise HTTPException(401, "Invalid email or password")

    await security_audit.log_security_event(
        security_audit.LOGIN_SUCCESS, email=user.email, user_id=user.id, ip_address=ip,
        details={"attempt_type": attempt_type},
    )
    ctx = await load_session_context(s, session_row.id)
    set_session_cookie(response, session_row.id)
    return LoginOut(token=session_row.id, **session_out(ctx).model_dump())


# ═══════════════════ LOGIN / LOGOUT ═══════════════════

@router.post("/login", response_model=LoginOut, summary="Log in with e-mail and password")
async def login(body: LoginRequest, request: Request, response: Response, s: AsyncSession = Depends(get_session)):
    return await login_with_type(body, request, response, s, ATTEMPT_LOGIN, security_audit.LOGIN_FAILED)


@router.post("/logout", summary="End the current session")
async def logout(response: Response, ctx: SessionContext = Depends(get_context), s: AsyncSession = Depends(get_session)):
    await s.execute(delete(UserSession).where(UserSession.id == ctx.session_id))
    await s.commit()
    response.delete_cookie(SESSION_COOKIE)
    return {"status": "logged_out"}


@router.get("/session", response_model=SessionOut, summary="Current session")
async def current_session(ctx: SessionContext = Depends(get_context)):
    return session_out(ctx)
