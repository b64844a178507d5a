"""Pydantic schemas for e-mail acknowledgment reporting."""
from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, EmailStr, Field


class PortalStatsOut(BaseModel):
    portal_id: int
    portal_name: str
    email_count: int
    policy_count: int
    expected_count: int
    acknowledged_count: int
    completion_rate: float


class AcknowledgmentStatsOut(BaseModel):
    total_portals_with_email_tracking: int
    total_expected_acknowledgments: int
    total_acknowledged: int
    acknowledgment_rate: float
    breakdown_by_portal: list[PortalStatsOut]


class ReportRecord(BaseModel):
    email: str
    policy_id: int
    policy_title: str
    department: str | None = None
    portal_id: int
    portal_name: str
    status: Literal["acknowledged", "pending"]
    acknowledged_at: datetime | None = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class AcknowledgmentReportOut(BaseModel):
    records: list[ReportRecord]
    pagination: Pagination


class PendingAcknowledgmentOut(BaseModel):
    email: str
    policy_id: int
    policy_title: str
    portal_id: int
    portal_name: str


class ReminderItem(BaseModel):
    email: EmailStr
    policy_id: int
    portal_id: int


class SendRemindersRequest(BaseModel):
    reminders: list[ReminderItem] = Field(..., min_length=1, max_length=500)
    custom_message: str | None = Field(None, max_length=2000)


class SendRemindersOut(BaseModel):
    sent: int
    failed: int
    skipped: int
    errors: list[dict] = []
