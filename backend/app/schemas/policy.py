"""Pydantic schemas for the policy registry."""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

Status = Literal["draft", "published", "archived"]


def _review_not_before(review: date | None, data: dict[str, Any]) -> date | None:
    if review is None:
        return review
    effective = data.get("effective_date")
    if effective and review < effective:
        raise ValueError("Review date cannot be earlier than the effective date")
    expiration = data.get("expiration_date")
    if expiration and review < expiration:
        raise ValueError("Review date cannot be earlier than the expiration date")
    return review


class PolicyOut(BaseModel):
    id: int
    organization_id: int
    title: str
    content: str
    status: str
    author_id: int | None = None
    current_version: int
    tags: list[str] | None = None
    department: str | None = None
    category: str | None = None
    effective_date: date | None = None
    expiration_date: date | None = None
    review_date: date | None = None
    published_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    model_config = {"from_attributes": True}


class PolicyPortalRef(BaseModel):
    id: int
    name: str
    slug: str
    requires_acknowledgment: bool
    acknowledgment_mode: str


class PolicyDetailOut(PolicyOut):
    portals: list[PolicyPortalRef] = []
    requires_acknowledgment: bool = False
    acknowledged: bool = False
    acknowledged_at: datetime | None = None


class PolicyListOut(BaseModel):
    policies: list[PolicyOut]
    total: int
    page: int
    limit: int


class PolicyCreate(BaseModel):
    title: str = Field(..., min_length=3, max_length=255)
    content: str = Field(..., min_length=10)
    status: Status = "draft"
    tags: list[str] | None = None
    department: str | None = Field(None, max_length=100)
    category: str | None = Field(None, max_length=100)
    effective_date: date | None = None
    expiration_date: date | None = None
    review_date: date | None = None
    portal_ids: list[int] = []

    @field_validator("review_date")
    @classmethod
    def check_review_date(cls, v, info):
        return _review_not_before(v, info.data)


class PolicyUpdate(BaseModel):
    title: str | None = Field(None, min_length=3, max_length=255)
    content: str | None = Field(None, min_length=10)
    status: Status | None = None
    tags: list[str] | None = None
    department: str | None = Field(None, max_length=100)
    category: str | None = Field(None, max_length=100)
    effective_date: date | None = None
    expiration_date: date | None = None
    review_date: date | None = None
    change_summary: str | None = Field(None, max_length=500)

    @field_validator("review_date")
    @classmethod
    def check_review_date(cls, v, info):
        return _review_not_before(v, info.data)


# ═══════════════════ VERSIONS ═══════════════════

class PolicyVersionOut(BaseModel):
    id: int
    policy_id: int
    version_number: int
    title: str
    content: str
    status: str
    change_summary: str | None = None
    effective_date: date | None = None
    expiration_date: date | None = None
    review_date: date | None = None
    tags: list[str] | None = None
    department: str | None = None
    category: str | None = None
    created_by: int | None = None
    created_at: datetime
    model_config = {"from_attributes": True}


class RollbackRequest(BaseModel):
    version_number: int = Field(..., ge=1)


# ═══════════════════ IMPORT ═══════════════════

class ParsedDocumentOut(BaseModel):
    title: str | None = None
    content: str
    metadata: dict[str, Any]
