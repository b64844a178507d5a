from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Enum, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base

ACCESS_TYPES = ("public", "password", "authenticated", "role_based")
ACKNOWLEDGMENT_MODES = ("simple", "confirmed_understanding", "email")


class Portal(Base):
    """Access-controlled view exposing a subset of an organization's policies."""
    __tablename__ = "portals"
    __table_args__ = (UniqueConstraint("organization_id", "slug", name="uq_portal_org_slug"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False)
    label: Mapped[str | None] = mapped_column(String(100))
    description: Mapped[str | None] = mapped_column(Text)
    access_type: Mapped[str] = mapped_column(Enum(*ACCESS_TYPES, name="portal_access_type"), default="public", nullable=False)
    password_hash: Mapped[str | None] = mapped_column(String(255))
    allowed_roles: Mapped[list[str] | None] = mapped_column(JSON)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    requires_acknowledgment: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    acknowledgment_mode: Mapped[str] = mapped_column(
        Enum(*ACKNOWLEDGMENT_MODES, name="portal_ack_mode"), default="simple", nullable=False,
    )
    acknowledgment_due_days: Mapped[int | None] = mapped_column(Integer)
    acknowledgment_reminder_days: Mapped[int | None] = mapped_column(Integer)
    minimum_reading_time_seconds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    require_full_scroll: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class PolicyPortalAssignment(Base):
    __tablename__ = "policy_portal_assignments"
    __table_args__ = (UniqueConstraint("policy_id", "portal_id", name="uq_policy_portal"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    policy_id: Mapped[int] = mapped_column(ForeignKey("policies.id", ondelete="CASCADE"), nullable=False)
    portal_id: Mapped[int] = mapped_column(ForeignKey("portals.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class PortalEmailRecipient(Base):
    """Roster of e-mail addresses expected to acknowledge the portal's policies."""
    __tablename__ = "portal_email_recipients"
    __table_args__ = (UniqueConstraint("portal_id", "email", name="uq_portal_recipient"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    portal_id: Mapped[int] = mapped_column(ForeignKey("portals.id", ondelete="CASCADE"), nullable=False)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class PortalSetting(Base):
    """Portal-level JSON settings; override the organization-level value with the same key."""
    __tablename__ = "portal_settings"
    __table_args__ = (UniqueConstraint("portal_id", "setting_key", name="uq_portal_setting_key"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    portal_id: Mapped[int] = mapped_column(ForeignKey("portals.id", ondelete="CASCADE"), nullable=False)
    setting_key: Mapped[str] = mapped_column(String(100), nullable=False)
    setting_value: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
