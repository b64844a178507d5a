"""
E-mail acknowledgment reporting — /api/v1/email-acknowledgment
"""
import logging
import math

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_session
from app.dependencies import get_context
from app.models.organization import Organization
from app.models.policy import Policy
from app.models.portal import PolicyPortalAssignment, Portal, PortalEmailRecipient
from app.schemas.acknowledgment import (
    AcknowledgmentReportOut, AcknowledgmentStatsOut, Pagination, PendingAcknowledgmentOut,
    PortalStatsOut, ReportRecord, SendRemindersOut, SendRemindersRequest,
)
from app.services import acknowledgments, email_service
from app.services.permissions import authorize, require_organization
from app.services.session_context import SessionContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/email-acknowledgment", tags=["E-mail acknowledgment"])


@router.get("/stats", response_model=AcknowledgmentStatsOut, summary="Expected vs. actual acknowledgments")
async def stats(ctx: SessionContext = Depends(get_context), s: AsyncSession = Depends(get_session)):
    authorize(ctx, "acknowledgment.report")
    breakdown = await acknowledgments.portal_stats(s, require_organization(ctx))
    expected = sum(p.expected_count for p in breakdown)
    acknowledged = sum(p.acknowledged_count for p in breakdown)
    return AcknowledgmentStatsOut(
        total_portals_with_email_tracking=len(breakdown),
        total_expected_acknowledgments=expected,
        total_acknowledged=acknowledged,
        acknowledgment_rate=acknowledgments.completion_rate(acknowledged, expected),
        breakdown_by_portal=[PortalStatsOut(**vars(p)) for p in breakdown],
    )


@router.get("/report", response_model=AcknowledgmentReportOut, summary="Recipient-level report")
async def report(
    portal_id: int | None = Query(None),
    status: str | None = Query(None, pattern="^(acknowledged|pending)$"),
    department: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(25, ge=1, le=100),
    ctx: SessionContext = Depends(get_context),
    s: AsyncSession = Depends(get_session),
):
    authorize(ctx, "acknowledgment.report")
    rows, total = await acknowledgments.report(
        s, require_organization(ctx),
        portal_id=portal_id, status=status, department=department, page=page, limit=limit,
    )
    return AcknowledgmentReportOut(
        records=[
            ReportRecord(
                email=r.email, policy_id=r.policy_id, policy_title=r.policy_title,
                department=r.department, portal_id=r.portal_id, portal_name=r.portal_name,
                status="acknowledged" if r.acknowledged_at else "pending",
                acknowledged_at=r.acknowledged_at,
            )
            for r in rows
        ],
        pagination=Pagination(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit)),
    )


@router.get("/pending", response_model=list[PendingAcknowledgmentOut], summary="Outstanding acknowledgments")
async def pending(ctx: SessionContext = Depends(get_context), s: AsyncSession = Depends(get_session)):
    authorize(ctx, "acknowledgment.report")
    rows = await acknowledgments.pending(s, require_organization(ctx))
    return [
        PendingAcknowledgmentOut(
            email=r.email, policy_id=r.policy_id, policy_title=r.policy_title,
            portal_id=r.portal_id, portal_name=r.portal_name,
        )
        for r in rows
    ]


@router.post("/send-reminders", response_model=SendRemindersOut, summary="E-mail reminders to recipients")
async def send_reminders(body: SendRemindersRequest, ctx: SessionContext = Depends(get_context),
                         s: AsyncSession = Depends(get_session)):
    authorize(ctx, "acknowledgment.remind")
    org_id = require_organization(ctx)
    org = await s.get(Organization, org_id)

    requested = {(r.email.strip().lower(), r.policy_id, r.portal_id) for r in body.reminders}
    q = (
        select(
            PortalEmailRecipient.email,
            Policy.id, Policy.title,
            Portal.name, Portal.slug,
        )
        .select_from(PortalEmailRecipient)
        .join(Portal, Portal.id == PortalEmailRecipient.portal_id)
        .join(PolicyPortalAssignment, PolicyPortalAssignment.portal_id == Portal.id)
        .join(Policy, Policy.id == PolicyPortalAssignment.policy_id)
        .where(
            Portal.organization_id == org_id,
            or_(*[
                and_(
                    PortalEmailRecipient.email == email,
                    Policy.id == policy_id,
                    Portal.id == portal_id,
                )
                for email, policy_id, portal_id in requested
            ]),
        )
    )
    valid = (await s.execute(q)).all()
    if not valid:
        raise HTTPException(
            400, "No valid reminders to send. All requested reminders are either invalid or not in your organization.",
        )

    base_url = settings.APP_BASE_URL.rstrip("/")
    result = await email_service.send_policy_reminders([
        email_service.ReminderEmail(
            recipient_email=email,
            policy_title=title,
            portal_name=portal_name,
            policy_url=f"{base_url}/{org.slug}/portal/{portal_slug}/policy/{policy_id}",
            custom_message=body.custom_message,
        )
        for email, policy_id, title, portal_name, portal_slug in valid
    ])
    logger.info("Reminders for organization %s: %d sent, %d failed", org_id, result.sent, result.failed)
    return SendRemindersOut(
        sent=result.sent,
        failed=result.failed,
        skipped=len(requested) - len(valid),
        errors=result.errors,
    )
