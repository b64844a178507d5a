"""Pydantic schemas for portal administration."""
from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

AccessType = Literal["public", "password", "authenticated", "role_based"]
AckMode = Literal["simple", "confirmed_understanding", "email"]
Role = Literal["admin", "editor", "user"]

SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"
# Underscored names (_internal, _system) are already rejected by the pattern.
RESERVED_SLUGS = frozenset({"admin", "api"})


def _check_slug(v: str | None) -> str | None:
    if v is not None and v in RESERVED_SLUGS:
        raise ValueError(f"'{v}' is a reserved slug")
    return v


def _dedupe_emails(v: list[str] | None) -> list[str] | None:
    if v is None:
        return None
    seen: list[str] = []
    for email in v:
        email = email.strip().lower()
        if email not in seen:
            seen.append(email)
    return seen


class PortalOut(BaseModel):
    id: int
    organization_id: int
    name: str
    slug: str
    label: str | None = None
    description: str | None = None
    access_type: str
    has_password: bool = False
    allowed_roles: list[str] | None = None
    is_active: bool
    requires_acknowledgment: bool
    acknowledgment_mode: str
    acknowledgment_due_days: int | None = None
    acknowledgment_reminder_days: int | None = None
    minimum_reading_time_seconds: int = 0
    require_full_scroll: bool = False
    policy_count: int = 0
    published_policy_count: int = 0
    email_recipients: list[str] = []
    created_at: datetime
    updated_at: datetime


class PortalListOut(BaseModel):
    portals: list[PortalOut]
    total: int
    page: int
    limit: int


class PortalCreate(BaseModel):
    name: str = Field(..., min_length=3, max_length=255)
    slug: str = Field(..., min_length=3, max_length=100, pattern=SLUG_PATTERN)
    label: str | None = Field(None, max_length=100)
    description: str | None = None
    access_type: AccessType = "public"
    password: str | None = Field(None, max_length=200)
    allowed_roles: list[Role] | None = None
    is_active: bool = True
    requires_acknowledgment: bool = False
    acknowledgment_mode: AckMode = "simple"
    acknowledgment_due_days: int | None = Field(None, ge=1)
    acknowledgment_reminder_days: int | None = Field(None, ge=1)
    minimum_reading_time_seconds: int = Field(0, ge=0)
    require_full_scroll: bool = False
    email_recipients: list[EmailStr] | None = None

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v):
        return _check_slug(v)

    @field_validator("email_recipients")
    @classmethod
    def normalize_recipients(cls, v):
        return _dedupe_emails(v)

    @model_validator(mode="after")
    def check_access_requirements(self):
        if self.access_type == "password" and (not self.password or len(self.password) < 8):
            raise ValueError(
                "Password is required and must be at least 8 characters for password-protected portals."
            )
        if self.access_type == "role_based" and not self.allowed_roles:
            raise ValueError("At least one role must be selected for role-based access.")
        return self


class PortalUpdate(BaseModel):
    name: str | None = Field(None, min_length=3, max_length=255)
    slug: str | None = Field(None, min_length=3, max_length=100, pattern=SLUG_PATTERN)
    label: str | None = Field(None, max_length=100)
    description: str | None = None
    access_type: AccessType | None = None
    password: str | None = Field(None, min_length=8, max_length=200)
    allowed_roles: list[Role] | None = None
    is_active: bool | None = None
    requires_acknowledgment: bool | None = None
    acknowledgment_mode: AckMode | None = None
    acknowledgment_due_days: int | None = Field(None, ge=1)
    acknowledgment_reminder_days: int | None = Field(None, ge=1)
    minimum_reading_time_seconds: int | None = Field(None, ge=0)
    require_full_scroll: bool | None = None
    email_recipients: list[EmailStr] | None = None

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v):
        return _check_slug(v)

    @field_validator("email_recipients")
    @classmethod
    def normalize_recipients(cls, v):
        return _dedupe_emails(v)


# ═══════════════════ ASSIGNMENTS ═══════════════════

class AssignmentChange(BaseModel):
    policy_id: int
    action: Literal["add", "remove"]


class AssignmentsUpdate(BaseModel):
    assignments: list[AssignmentChange] = Field(..., min_length=1)


class AssignedPolicyOut(BaseModel):
    policy_id: int
    title: str
    status: str
    department: str | None = None
    category: str | None = None
    assigned_at: datetime


class AssignmentsResult(BaseModel):
    added: int
    removed: int


class AvailablePolicyOut(BaseModel):
    id: int
    title: str
    status: str
    department: str | None = None
    category: str | None = None
    model_config = {"from_attributes": True}


# ═══════════════════ MIGRATION ═══════════════════

class MigrationStatusOut(BaseModel):
    total_policies: int
    unassigned_policies: int
    public_portal_id: int | None = None
    internal_portal_id: int | None = None
    needs_migration: bool


class MigrationResultOut(BaseModel):
    public_portal_id: int
    internal_portal_id: int
    public_portal_created: bool
    internal_portal_created: bool
    assigned_to_public: int
    assigned_to_internal: int
    message: str
