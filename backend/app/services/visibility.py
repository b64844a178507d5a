"""Which policy statuses a requester may see."""
from app.models.policy import POLICY_STATUSES
from app.services.permissions import can
from app.services.session_context import SessionContext

EDITOR_STATUSES = ("draft", "published")
PUBLIC_STATUSES = ("published",)
ALL_STATUSES = POLICY_STATUSES


def visible_statuses(ctx: SessionContext | None) -> tuple[str, ...]:
    """Statuses shown through portals."""
    if ctx is not None and can(ctx.role, "policy.read_drafts"):
        return EDITOR_STATUSES
    return PUBLIC_STATUSES


def registry_statuses(ctx: SessionContext | None) -> tuple[str, ...]:
    """Statuses shown in the organization's own policy registry; editors also see archived policies."""
    if ctx is not None and can(ctx.role, "policy.read_drafts"):
        return ALL_STATUSES
    return PUBLIC_STATUSES


def apply_visibility(query, policy_model, ctx: SessionContext | None, statuses=visible_statuses):
    """Restrict a SELECT over ``policy_model`` to the statuses ``statuses(ctx)`` allows."""
    return query.where(policy_model.status.in_(statuses(ctx)))
