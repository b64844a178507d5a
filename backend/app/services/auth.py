"""
Password login with per-email lockout.

Failed attempts are recorded in ``login_attempts``. Once an address collects
``SUPERADMIN_MAX_FAILED_LOGINS`` failures inside the lockout window, further
attempts are refused until the lockout period after the failure that
completed the burst has passed, whether or not the password is right.
"""
from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.user import LoginAttempt, User, UserSession
from app.services.security import new_session_token, verify_password

logger = logging.getLogger(__name__)

ATTEMPT_LOGIN = "login"
ATTEMPT_SUPERADMIN = "superadmin"


class LoginLocked(Exception):
    def __init__(self, remaining_minutes: int):
        super().__init__(f"Too many failed attempts. Try again in {remaining_minutes} minutes.")
        self.remaining_minutes = remaining_minutes


class InvalidCredentials(Exception):
    pass


def _lockout_minutes(attempt_type: str) -> int:
    if attempt_type == ATTEMPT_SUPERADMIN:
        return settings.SUPERADMIN_LOCKOUT_MINUTES
    return settings.SUPERADMIN_LOCKOUT_WINDOW_MINUTES


async def check_lockout(s: AsyncSession, email: str, attempt_type: str, now: datetime) -> None:
    """Raise LoginLocked while the lock opened by the latest burst of failures is running.

    A burst is ``SUPERADMIN_MAX_FAILED_LOGINS`` failures inside the lockout
    window; the lock runs from the failure that completed it.
    """
    window = timedelta(minutes=settings.SUPERADMIN_LOCKOUT_WINDOW_MINUTES)
    lockout = timedelta(minutes=_lockout_minutes(attempt_type))
    failures = (await s.execute(
        select(LoginAttempt.attempted_at).where(
            LoginAttempt.email == email,
            LoginAttempt.attempt_type == attempt_type,
            LoginAttempt.success.is_(False),
            LoginAttempt.attempted_at >= now - window - lockout,
        ).order_by(LoginAttempt.attempted_at)
    )).scalars().all()

    threshold = settings.SUPERADMIN_MAX_FAILED_LOGINS
    locked_from = None
    for i in range(threshold - 1, len(failures)):
        if failures[i] - failures[i - threshold + 1] <= window:
            locked_from = failures[i]

    if locked_from is not None:
        lockout_end = locked_from + lockout
        if now < lockout_end:
            remaining = math.ceil((lockout_end - now).total_seconds() / 60)
            raise LoginLocked(remaining)


async def authenticate(
    s: AsyncSession,
    email: str,
    password: str,
    *,
    attempt_type: str = ATTEMPT_LOGIN,
    ip_address: str | None = None,
    now: datetime | None = None,
) -> tuple[User, UserSession]:
    """Verify credentials and open a new session.

    Raises LoginLocked or InvalidCredentials. Every outcome except a lockout is
    recorded as a login attempt.
    """
    email = email.strip().lower()
    now = now or datetime.utcnow()
    await check_lockout(s, email, attempt_type, now)

    q = select(User).where(func.lower(User.email) == email, User.is_active.is_(True))
    if attempt_type == ATTEMPT_SUPERADMIN:
        q = q.where(User.is_super_admin.is_(True))
    user = (await s.execute(q)).scalar_one_or_none()

    ok = user is not None and verify_password(password, user.password_hash)
    s.add(LoginAttempt(
        email=email, attempt_type=attempt_type, success=ok,
        ip_address=ip_address, attempted_at=now,
    ))
    if not ok:
        await s.commit()
        raise InvalidCredentials()

    if attempt_type == ATTEMPT_SUPERADMIN:
        await s.execute(delete(UserSession).where(UserSession.user_id == user.id))

    session_row = UserSession(id=new_session_token(), user_id=user.id, created_at=now, last_accessed_at=now)
    s.add(session_row)
    user.has_logged_in = True
    await s.commit()
    await s.refresh(user)
    logger.info("User %s logged in (%s)", user.id, attempt_type)
    return user, session_row
