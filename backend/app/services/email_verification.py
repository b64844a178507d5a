"""
E-mail verification for anonymous acknowledgments.

    NoCode --request_code--> CodePending --confirm_code--> Confirmed

A code is single use. Several outstanding codes for the same
(portal, policy, email) may coexist; any unexpired, unused one is accepted.
A failed confirmation changes nothing.
"""
from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import upsert_statement
from app.models.acknowledgment import AcknowledgmentConfirmationCode, EmailBasedAcknowledgment
from app.models.policy import Policy
from app.models.portal import PolicyPortalAssignment, Portal, PortalEmailRecipient
from app.services import email_service, security_audit
from app.services.acknowledgments import email_acknowledgment, normalize_email

logger = logging.getLogger(__name__)


class EmailFlowError(Exception):
    """Portal or policy lookup failure; carries the HTTP status to report."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class RecipientNotAllowed(EmailFlowError):
    def __init__(self):
        super().__init__("This email address is not authorized to acknowledge policies in this portal.", 403)


class ConfirmationCodeError(EmailFlowError):
    def __init__(self):
        super().__init__("Invalid or expired confirmation code", 400)


def generate_code() -> str:
    return str(100000 + secrets.randbelow(900000))


async def find_email_portal(s: AsyncSession, slug: str) -> Portal:
    """Newest active portal with ``slug`` that runs the e-mail acknowledgment flow."""
    q = (
        select(Portal)
        .where(Portal.slug == slug, Portal.is_active.is_(True))
        .order_by(Portal.id.desc())
        .limit(1)
    )
    portal = (await s.execute(q)).scalar_one_or_none()
    if portal is None:
        raise EmailFlowError("Portal not found or is not active.", 404)
    if portal.acknowledgment_mode != "email":
        raise EmailFlowError("This portal does not use email acknowledgment.", 400)
    return portal


async def find_assigned_policy(s: AsyncSession, portal: Portal, policy_id: int) -> Policy:
    q = (
        select(Policy)
        .join(PolicyPortalAssignment, PolicyPortalAssignment.policy_id == Policy.id)
        .where(
            Policy.id == policy_id,
            Policy.organization_id == portal.organization_id,
            PolicyPortalAssignment.portal_id == portal.id,
        )
    )
    policy = (await s.execute(q)).scalar_one_or_none()
    if policy is None:
        raise EmailFlowError("Policy not found.", 404)
    return policy


async def ensure_recipient(s: AsyncSession, portal: Portal, email: str) -> None:
    q = select(PortalEmailRecipient.id).where(
        PortalEmailRecipient.portal_id == portal.id,
        PortalEmailRecipient.email == email,
    )
    if (await s.execute(q)).first() is None:
        raise RecipientNotAllowed()


async def check(s: AsyncSession, portal_slug: str, policy_id: int, email: str) -> EmailBasedAcknowledgment | None:
    portal = await find_email_portal(s, portal_slug)
    policy = await find_assigned_policy(s, portal, policy_id)
    return await email_acknowledgment(s, portal.id, policy.id, email)


async def request_code(
    s: AsyncSession,
    portal_slug: str,
    policy_id: int,
    email: str,
    *,
    ip_address: str | None = None,
    now: datetime | None = None,
) -> AcknowledgmentConfirmationCode:
    """Issue a fresh code and e-mail it. Earlier outstanding codes stay valid."""
    email = normalize_email(email)
    portal = await find_email_portal(s, portal_slug)
    policy = await find_assigned_policy(s, portal, policy_id)
    await ensure_recipient(s, portal, email)

    now = now or datetime.utcnow()
    row = AcknowledgmentConfirmationCode(
        portal_id=portal.id,
        policy_id=policy.id,
        email=email,
        code=generate_code(),
        expires_at=now + timedelta(minutes=settings.ACK_CODE_TTL_MINUTES),
        used=False,
        created_at=now,
    )
    s.add(row)
    await s.commit()
    await s.refresh(row)

    await email_service.send_confirmation_code(email, row.code)
    await security_audit.log_security_event(
        security_audit.CODE_REQUESTED,
        email=email,
        ip_address=ip_address,
        details={"portal_id": portal.id, "policy_id": policy.id},
    )
    return row


async def confirm_code(
    s: AsyncSession,
    portal_slug: str,
    policy_id: int,
    email: str,
    code: str,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
    now: datetime | None = None,
) -> EmailBasedAcknowledgment:
    """Redeem ``code`` and upsert the e-mail acknowledgment in one transaction."""
    email = normalize_email(email)
    portal = await find_email_portal(s, portal_slug)
    policy = await find_assigned_policy(s, portal, policy_id)
    now = now or datetime.utcnow()

    # Conditional UPDATE so two concurrent confirmations cannot both redeem the code
    candidate = (await s.execute(
        select(AcknowledgmentConfirmationCode.id)
        .where(
            AcknowledgmentConfirmationCode.portal_id == portal.id,
            AcknowledgmentConfirmationCode.policy_id == policy.id,
            AcknowledgmentConfirmationCode.email == email,
            AcknowledgmentConfirmationCode.code == code,
            AcknowledgmentConfirmationCode.used.is_(False),
            AcknowledgmentConfirmationCode.expires_at > now,
        )
        .order_by(AcknowledgmentConfirmationCode.id.desc())
        .limit(1)
    )).scalar_one_or_none()

    redeemed = 0
    if candidate is not None:
        result = await s.execute(
            update(AcknowledgmentConfirmationCode)
            .where(
                AcknowledgmentConfirmationCode.id == candidate,
                AcknowledgmentConfirmationCode.used.is_(False),
            )
            .values(used=True)
        )
        redeemed = result.rowcount

    if redeemed != 1:
        await s.rollback()
        await security_audit.log_security_event(
            security_audit.CODE_VERIFICATION_FAILED,
            email=email,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"portal_id": portal.id, "policy_id": policy.id},
        )
        raise ConfirmationCodeError()

    values = {
        "organization_id": portal.organization_id,
        "portal_id": portal.id,
        "policy_id": policy.id,
        "email": email,
        "acknowledged_at": now,
        "ip_address": ip_address,
        "user_agent": user_agent[:500] if user_agent else None,
    }
    await s.execute(upsert_statement(
        s,
        EmailBasedAcknowledgment,
        values,
        conflict_columns=("portal_id", "policy_id", "email"),
        update_columns=("acknowledged_at", "ip_address", "user_agent"),
    ))
    await s.commit()
    logger.info("Email acknowledgment recorded: portal=%s policy=%s", portal.id, policy.id)

    ack = await email_acknowledgment(s, portal.id, policy.id, email)
    await s.refresh(ack)
    return ack
