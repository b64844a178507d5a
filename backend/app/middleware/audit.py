"""
Change trail helper — call audit_log() from routers after mutations.

Usage in a router:
    from app.middleware.audit import audit_log
    await audit_log(s, organization_id=ctx.organization_id, module="policies",
                    action="update", entity_type="policy", entity_id=p.id,
                    changes=diff_changes(before, after), user_id=ctx.user_id)

Entries are added to the caller's session and committed with the mutation.
"""
from __future__ import annotations

from datetime import date, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit import AuditLog


def _text(value) -> str | None:
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)


async def audit_log(
    session: AsyncSession,
    *,
    organization_id: int,
    module: str,
    action: str,
    entity_type: str,
    entity_id: int,
    changes: dict[str, tuple] | None = None,
    user_id: int | None = None,
    ip_address: str | None = None,
):
    """
    Record one or more audit entries.

    changes: dict of field_name -> (old_value, new_value)
    If changes is None, a single entry with no field detail is created.
    """
    now = datetime.utcnow()
    if changes:
        for field_name, (old_val, new_val) in changes.items():
            session.add(AuditLog(
                organization_id=organization_id,
                user_id=user_id,
                module=module,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                field_name=field_name,
                old_value=_text(old_val),
                new_value=_text(new_val),
                ip_address=ip_address,
                created_at=now,
            ))
    else:
        session.add(AuditLog(
            organization_id=organization_id,
            user_id=user_id,
            module=module,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            ip_address=ip_address,
            created_at=now,
        ))


def diff_changes(old: dict, new: dict) -> dict[str, tuple]:
    """Compare two dicts and return {field: (old_val, new_val)} for changed fields."""
    changes = {}
    for key in new:
        if key in old and old[key] != new[key]:
            changes[key] = (old[key], new[key])
    return changes
