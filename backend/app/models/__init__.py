from .base import Base
from .organization import Organization, OrganizationSetting, OrganizationVariable
from .user import User, UserSession, LoginAttempt, SuperAdminImpersonationLog
from .policy import Policy, PolicyVersion, PolicyAcknowledgment
from .portal import Portal, PolicyPortalAssignment, PortalEmailRecipient, PortalSetting
from .acknowledgment import EmailBasedAcknowledgment, AcknowledgmentConfirmationCode
from .audit import AuditLog, SecurityAuditLog

__all__ = [
    "Base",
    "Organization",
    "OrganizationSetting",
    "OrganizationVariable",
    "User",
    "UserSession",
    "LoginAttempt",
    "SuperAdminImpersonationLog",
    "Policy",
    "PolicyVersion",
    "PolicyAcknowledgment",
    "Portal",
    "PolicyPortalAssignment",
    "PortalEmailRecipient",
    "PortalSetting",
    "EmailBasedAcknowledgment",
    "AcknowledgmentConfirmationCode",
    "AuditLog",
    "SecurityAuditLog",
]
