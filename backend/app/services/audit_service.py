"""Audit service: append-only agent audit log.

All writes are append-only. No update or delete methods are exposed, and
GDPR erasure never touches this table.
"""

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit import ActorType, AgentAuditLog


async def log_event(
    db: AsyncSession,
    *,
    athlete_id: uuid.UUID,
    action: str,
    resource: str,
    resource_id: uuid.UUID | None = None,
    details: dict | None = None,
    actor_type: ActorType = ActorType.system,
    actor_id: str | None = None,
    ip_address: str | None = None,
) -> AgentAuditLog:
    """Create an append-only audit log entry."""
    entry = AgentAuditLog(
        athlete_id=athlete_id,
        action=action,
        resource=resource,
        resource_id=resource_id,
        details=details or {},
        actor_type=actor_type,
        actor_id=actor_id,
        ip_address=ip_address,
    )
    db.add(entry)
    await db.flush()
    return entry


async def get_events_for_athlete(
    db: AsyncSession,
    athlete_id: uuid.UUID,
    *,
    action: str | None = None,
    resource: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[AgentAuditLog]:
    """Retrieve audit entries for an athlete, oldest first, with optional filters."""
    stmt = (
        select(AgentAuditLog)
        .where(AgentAuditLog.athlete_id == athlete_id)
        .order_by(AgentAuditLog.created_at.asc())
    )
    if action is not None:
        stmt = stmt.where(AgentAuditLog.action == action)
    if resource is not None:
        stmt = stmt.where(AgentAuditLog.resource == resource)
    stmt = stmt.offset(offset).limit(limit)

    result = await db.execute(stmt)
    return list(result.scalars().all())


async def count_events(db: AsyncSession, athlete_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count()).select_from(AgentAuditLog).where(
            AgentAuditLog.athlete_id == athlete_id
        )
    )
    return result.scalar_one()


async def reconstruct_why(
    db: AsyncSession,
    resource: str,
    resource_id: uuid.UUID,
) -> list[AgentAuditLog]:
    """Return the chain of audit entries explaining a given resource.

    Lets a reviewer see why an action was proposed, auto-applied, accepted
    or rejected, even after the action row itself has been erased.
    """
    stmt = (
        select(AgentAuditLog)
        .where(
            AgentAuditLog.resource == resource,
            AgentAuditLog.resource_id == resource_id,
        )
        .order_by(AgentAuditLog.created_at.asc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())
