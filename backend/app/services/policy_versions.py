"""Policy version snapshots and rollback."""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.policy import Policy, PolicyVersion

logger = logging.getLogger(__name__)

SNAPSHOT_FIELDS = (
    "title", "content", "status", "effective_date", "expiration_date",
    "review_date", "tags", "department", "category",
)


class RollbackError(Exception):
    pass


def snapshot(policy: Policy, created_by: int | None, change_summary: str | None = None) -> PolicyVersion:
    """Version row mirroring the policy's current state. Caller adds and commits."""
    return PolicyVersion(
        policy_id=policy.id,
        organization_id=policy.organization_id,
        version_number=policy.current_version,
        created_by=created_by,
        change_summary=change_summary,
        **{f: getattr(policy, f) for f in SNAPSHOT_FIELDS},
    )


async def get_version(s: AsyncSession, policy_id: int, version_number: int) -> PolicyVersion | None:
    q = select(PolicyVersion).where(
        PolicyVersion.policy_id == policy_id,
        PolicyVersion.version_number == version_number,
    )
    return (await s.execute(q)).scalar_one_or_none()


async def list_versions(s: AsyncSession, policy_id: int) -> list[PolicyVersion]:
    q = (
        select(PolicyVersion)
        .where(PolicyVersion.policy_id == policy_id)
        .order_by(PolicyVersion.version_number.desc())
    )
    return list((await s.execute(q)).scalars().all())


async def rollback(s: AsyncSession, policy: Policy, version_number: int, user_id: int) -> PolicyVersion:
    """Copy ``version_number`` back onto the policy as a brand-new version.

    History is never rewritten: rolling back from v5 to v2 produces v6.
    """
    target = await get_version(s, policy.id, version_number)
    if target is None:
        raise RollbackError("Target version for rollback not found.")

    for f in SNAPSHOT_FIELDS:
        setattr(policy, f, getattr(target, f))
    policy.current_version += 1
    policy.updated_at = datetime.utcnow()
    if policy.status == "published" and policy.published_at is None:
        policy.published_at = datetime.utcnow()

    version = snapshot(policy, user_id, f"Rolled back to version {version_number}.")
    s.add(version)
    logger.info("Policy %s rolled back to v%s as v%s", policy.id, version_number, policy.current_version)
    return version
