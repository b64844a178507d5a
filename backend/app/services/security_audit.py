"""
Security event log.

Writes go through their own session so a failed audit insert never rolls back
(or blocks) the request that triggered it.
"""
import logging
from typing import Any

from app.database import async_session
from app.models.audit import SecurityAuditLog

logger = logging.getLogger(__name__)

LOGIN_SUCCESS = "login_success"
LOGIN_FAILED = "login_failed"
LOGIN_LOCKED = "login_locked"
SUPERADMIN_LOGIN_FAILED = "superadmin_login_failed"
IMPERSONATION_STARTED = "impersonation_started"
IMPERSONATION_ENDED = "impersonation_ended"
CODE_REQUESTED = "code_requested"
CODE_VERIFICATION_FAILED = "code_verification_failed"
PORTAL_PASSWORD_FAILED = "portal_password_failed"


async def log_security_event(
    event_type: str,
    *,
    email: str | None = None,
    user_id: int | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    try:
        async with async_session() as s:
            s.add(SecurityAuditLog(
                event_type=event_type,
                email=email,
                user_id=user_id,
                ip_address=ip_address,
                user_agent=user_agent[:500] if user_agent else None,
                details=details,
            ))
            await s.commit()
    except Exception:
        logger.exception("Failed to write security audit event %s", event_type)
