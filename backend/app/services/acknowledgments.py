"""
Acknowledgment state and e-mail acknowledgment reporting.

Two independent records exist: PolicyAcknowledgment for authenticated users
(keyed by user) and EmailBasedAcknowledgment for verified anonymous e-mail
addresses (keyed by portal + lower-cased e-mail).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import and_, exists, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.acknowledgment import EmailBasedAcknowledgment
from app.models.policy import Policy, PolicyAcknowledgment
from app.models.portal import PolicyPortalAssignment, Portal, PortalEmailRecipient

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ═══════════════════ STATE ═══════════════════

async def user_acknowledgment(s: AsyncSession, policy_id: int, user_id: int) -> PolicyAcknowledgment | None:
    q = select(PolicyAcknowledgment).where(
        PolicyAcknowledgment.policy_id == policy_id,
        PolicyAcknowledgment.user_id == user_id,
    )
    return (await s.execute(q)).scalar_one_or_none()


async def email_acknowledgment(
    s: AsyncSession, portal_id: int, policy_id: int, email: str,
) -> EmailBasedAcknowledgment | None:
    q = select(EmailBasedAcknowledgment).where(
        EmailBasedAcknowledgment.portal_id == portal_id,
        EmailBasedAcknowledgment.policy_id == policy_id,
        EmailBasedAcknowledgment.email == normalize_email(email),
    )
    return (await s.execute(q)).scalar_one_or_none()


async def acknowledged_policy_ids(s: AsyncSession, user_id: int, policy_ids: list[int]) -> set[int]:
    if not policy_ids:
        return set()
    q = select(PolicyAcknowledgment.policy_id).where(
        PolicyAcknowledgment.user_id == user_id,
        PolicyAcknowledgment.policy_id.in_(policy_ids),
    )
    return set((await s.execute(q)).scalars().all())


async def requires_acknowledgment(s: AsyncSession, policy_id: int) -> bool:
    """True iff an active portal the policy is assigned to requires acknowledgment."""
    q = select(
        exists().where(
            PolicyPortalAssignment.policy_id == policy_id,
            PolicyPortalAssignment.portal_id == Portal.id,
            Portal.is_active.is_(True),
            Portal.requires_acknowledgment.is_(True),
        )
    )
    return bool((await s.execute(q)).scalar())


async def acknowledge_as_user(
    s: AsyncSession, policy: Policy, user_id: int, ip_address: str | None = None,
) -> tuple[PolicyAcknowledgment, bool]:
    """Create the user's acknowledgment once. Returns (row, created).

    A repeat call returns the existing row unchanged.
    """
    existing = await user_acknowledgment(s, policy.id, user_id)
    if existing is not None:
        return existing, False

    ack = PolicyAcknowledgment(
        policy_id=policy.id,
        user_id=user_id,
        organization_id=policy.organization_id,
        policy_version=policy.current_version,
        ip_address=ip_address,
    )
    s.add(ack)
    try:
        await s.commit()
    except IntegrityError:
        # Concurrent acknowledgment won the unique constraint
        await s.rollback()
        existing = await user_acknowledgment(s, policy.id, user_id)
        if existing is None:
            raise
        return existing, False
    await s.refresh(ack)
    logger.info("User %s acknowledged policy %s (v%s)", user_id, policy.id, policy.current_version)
    return ack, True


# ═══════════════════ REPORTING ═══════════════════

@dataclass
class PortalAckStats:
    portal_id: int
    portal_name: str
    email_count: int
    policy_count: int
    expected_count: int
    acknowledged_count: int
    completion_rate: float


def completion_rate(acknowledged: int, expected: int) -> float:
    if expected <= 0:
        return 0.0
    return acknowledged / expected * 100


async def portal_stats(s: AsyncSession, organization_id: int) -> list[PortalAckStats]:
    """Per-portal expected vs. actual e-mail acknowledgments, for portals with recipients.

    Only acknowledgments by current recipients of currently assigned policies count.
    """
    email_count = (
        select(func.count()).select_from(PortalEmailRecipient)
        .where(PortalEmailRecipient.portal_id == Portal.id)
        .scalar_subquery()
    )
    policy_count = (
        select(func.count()).select_from(PolicyPortalAssignment)
        .where(PolicyPortalAssignment.portal_id == Portal.id)
        .scalar_subquery()
    )
    ack_count = (
        select(func.count()).select_from(EmailBasedAcknowledgment)
        .join(PortalEmailRecipient, and_(
            PortalEmailRecipient.portal_id == EmailBasedAcknowledgment.portal_id,
            PortalEmailRecipient.email == EmailBasedAcknowledgment.email,
        ))
        .join(PolicyPortalAssignment, and_(
            PolicyPortalAssignment.portal_id == EmailBasedAcknowledgment.portal_id,
            PolicyPortalAssignment.policy_id == EmailBasedAcknowledgment.policy_id,
        ))
        .where(EmailBasedAcknowledgment.portal_id == Portal.id)
        .scalar_subquery()
    )
    q = (
        select(Portal.id, Portal.name, email_count, policy_count, ack_count)
        .where(
            Portal.organization_id == organization_id,
            exists().where(PortalEmailRecipient.portal_id == Portal.id),
        )
        .order_by(Portal.name)
    )
    out = []
    for pid, name, emails, policies, acked in (await s.execute(q)).all():
        expected = (emails or 0) * (policies or 0)
        out.append(PortalAckStats(
            portal_id=pid,
            portal_name=name,
            email_count=emails or 0,
            policy_count=policies or 0,
            expected_count=expected,
            acknowledged_count=acked or 0,
            completion_rate=completion_rate(acked or 0, expected),
        ))
    return out


def _roster_query(organization_id: int):
    """Every (recipient, assigned policy) pair with its acknowledgment, if any."""
    return (
        select(
            PortalEmailRecipient.email,
            Policy.id.label("policy_id"),
            Policy.title.label("policy_title"),
            Policy.department,
            Portal.id.label("portal_id"),
            Portal.name.label("portal_name"),
            EmailBasedAcknowledgment.acknowledged_at,
        )
        .select_from(PortalEmailRecipient)
        .join(Portal, Portal.id == PortalEmailRecipient.portal_id)
        .join(PolicyPortalAssignment, PolicyPortalAssignment.portal_id == Portal.id)
        .join(Policy, Policy.id == PolicyPortalAssignment.policy_id)
        .outerjoin(
            EmailBasedAcknowledgment,
            and_(
                EmailBasedAcknowledgment.portal_id == Portal.id,
                EmailBasedAcknowledgment.policy_id == Policy.id,
                EmailBasedAcknowledgment.email == PortalEmailRecipient.email,
            ),
        )
        .where(Portal.organization_id == organization_id)
    )


async def report(
    s: AsyncSession,
    organization_id: int,
    *,
    portal_id: int | None = None,
    status: str | None = None,
    department: str | None = None,
    page: int = 1,
    limit: int = 25,
) -> tuple[list, int]:
    """Paginated roster report. Returns (rows, total)."""
    q = _roster_query(organization_id)
    if portal_id is not None:
        q = q.where(Portal.id == portal_id)
    if department:
        q = q.where(Policy.department == department)
    if status == "acknowledged":
        q = q.where(EmailBasedAcknowledgment.id.is_not(None))
    elif status == "pending":
        q = q.where(EmailBasedAcknowledgment.id.is_(None))

    total = (await s.execute(select(func.count()).select_from(q.subquery()))).scalar() or 0
    q = (
        q.order_by(Portal.name, Policy.title, PortalEmailRecipient.email)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return (await s.execute(q)).all(), total


async def pending(s: AsyncSession, organization_id: int) -> list:
    q = (
        _roster_query(organization_id)
        .where(EmailBasedAcknowledgment.id.is_(None))
        .order_by(Portal.name, Policy.title, PortalEmailRecipient.email)
    )
    return (await s.execute(q)).all()
