"""Pydantic schemas for the public portal viewer and e-mail acknowledgment flow."""
from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, EmailStr, Field


class PortalSummaryOut(BaseModel):
    id: int
    name: str
    slug: str
    label: str | None = None
    description: str | None = None
    access_type: str
    requires_acknowledgment: bool
    acknowledgment_mode: str
    minimum_reading_time_seconds: int = 0
    require_full_scroll: bool = False
    organization_name: str | None = None
    organization_slug: str | None = None
    model_config = {"from_attributes": True}


class PortalPolicyItem(BaseModel):
    id: int
    title: str
    status: str
    department: str | None = None
    category: str | None = None
    tags: list[str] | None = None
    current_version: int
    effective_date: date | None = None
    published_at: datetime | None = None
    updated_at: datetime
    acknowledged: bool = False


class PortalPoliciesOut(BaseModel):
    portal: PortalSummaryOut
    policies: list[PortalPolicyItem]
    total: int
    page: int
    limit: int


class AssignedPortalRef(BaseModel):
    id: int
    name: str
    slug: str


class PortalPolicyDetailOut(BaseModel):
    portal: PortalSummaryOut
    id: int
    title: str
    content: str
    status: str
    current_version: int
    department: str | None = None
    category: str | None = None
    tags: list[str] | None = None
    effective_date: date | None = None
    expiration_date: date | None = None
    review_date: date | None = None
    published_at: datetime | None = None
    updated_at: datetime
    requires_acknowledgment: bool
    portals: list[AssignedPortalRef]
    acknowledged: bool = False
    acknowledged_at: datetime | None = None


class UserAcknowledgmentOut(BaseModel):
    id: int
    policy_id: int
    user_id: int
    policy_version: int | None = None
    acknowledged_at: datetime
    model_config = {"from_attributes": True}


# ═══════════════════ E-MAIL FLOW ═══════════════════

class EmailAckRequest(BaseModel):
    portal_slug: str = Field(..., min_length=1)
    policy_id: int = Field(..., gt=0)
    email: EmailStr


class ConfirmCodeRequest(EmailAckRequest):
    code: str = Field(..., pattern=r"^\d{6}$")


class CheckAcknowledgmentOut(BaseModel):
    is_acknowledged: bool
    acknowledged_at: datetime | None = None


class MessageOut(BaseModel):
    success: bool = True
    message: str


class EmailAcknowledgmentOut(BaseModel):
    success: bool = True
    message: str
    acknowledged_at: datetime
