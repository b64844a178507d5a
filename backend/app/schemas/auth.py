"""Pydantic schemas for authentication and super admin endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, EmailStr, Field


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=200)


class SessionUserOut(BaseModel):
    id: int
    email: str
    display_name: str
    role: str
    organization_id: int | None = None
    is_super_admin: bool = False
    model_config = {"from_attributes": True}


class ImpersonationOut(BaseModel):
    type: Literal["normal", "impersonating"] = "normal"
    effective_org_id: int | None = None
    original_admin_id: int | None = None
    target_user_id: int | None = None
    organization_name: str | None = None
    started_at: datetime | None = None


class SessionOut(BaseModel):
    user: SessionUserOut
    role: str
    organization_id: int | None = None
    impersonation: ImpersonationOut


class LoginOut(SessionOut):
    token: str


class ImpersonateRequest(BaseModel):
    organization_id: int
    user_id: int | None = None


class OrganizationSummaryOut(BaseModel):
    id: int
    name: str
    slug: str
    is_active: bool
    user_count: int = 0
    policy_count: int = 0
    created_at: datetime
