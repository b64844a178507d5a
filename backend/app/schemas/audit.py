"""Pydantic schemas for the policy change trail."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class AuditLogOut(BaseModel):
    id: int
    user_id: int | None = None
    user_email: str | None = None
    module: str
    action: str
    entity_type: str
    entity_id: int
    field_name: str | None = None
    old_value: str | None = None
    new_value: str | None = None
    ip_address: str | None = None
    created_at: datetime


class AuditLogPage(BaseModel):
    entries: list[AuditLogOut]
    total: int
    page: int
    limit: int
