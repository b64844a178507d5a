"""Pydantic schemas for organization user management."""
from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, EmailStr, Field

Role = Literal["admin", "editor", "user"]


class UserOut(BaseModel):
    id: int
    email: str
    display_name: str
    role: str
    organization_id: int | None = None
    is_active: bool = True
    has_logged_in: bool = False
    created_at: datetime
    model_config = {"from_attributes": True}


class UserCreate(BaseModel):
    email: EmailStr
    display_name: str = Field(..., min_length=1, max_length=255)
    role: Role = "user"
    password: str = Field(..., min_length=8, max_length=200)


class UserRoleUpdate(BaseModel):
    role: Role
