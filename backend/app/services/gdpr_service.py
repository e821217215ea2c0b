"""GDPR service: erase or anonymize an athlete's agent data.

Deletion order (leaf tables first), in one transaction:
  learning events → oversight items → actions → perceptions
  → preferences → consent

The DATA_DELETED audit entry is written after that transaction commits, in
its own transaction. A failed audit write is retried and then logged, and
never turns a completed erasure into a failure. A failed erasure never
leaves an audit entry behind. The audit log itself is retained indefinitely
and is never touched here.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.errors import StorageFailure
from app.core.locks import AthleteLockRegistry, athlete_locks
from app.models.agent_action import AgentAction, AgentOversightItem
from app.models.agent_consent import AgentConsent
from app.models.agent_learning import AgentLearningEvent
from app.models.agent_perception import AgentPerception
from app.models.agent_preferences import AgentPreferences
from app.models.audit import ActorType
from app.schemas.agent import DataSummary, DeletionResult
from app.services import audit_service

logger = logging.getLogger("pacekeeper.gdpr")

# (category, model) in deletion order
_OWNED_TABLES = (
    ("learning_events", AgentLearningEvent),
    ("oversight_items", AgentOversightItem),
    ("actions", AgentAction),
    ("perceptions", AgentPerception),
    ("preferences", AgentPreferences),
    ("consent", AgentConsent),
)


async def _count(db: AsyncSession, model, athlete_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count()).select_from(model).where(model.athlete_id == athlete_id)
    )
    return result.scalar_one()


async def _delete_rows(db: AsyncSession, model, athlete_id: uuid.UUID) -> int:
    result = await db.execute(
        delete(model)
        .where(model.athlete_id == athlete_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


async def _write_audit(
    db: AsyncSession,
    *,
    athlete_id: uuid.UUID,
    action: str,
    requested_by: str,
    details: dict,
) -> bool:
    """Audit write outside the erasure transaction, retried on failure."""
    attempts = max(1, settings.audit_write_attempts)
    for attempt in range(1, attempts + 1):
        try:
            await audit_service.log_event(
                db,
                athlete_id=athlete_id,
                action=action,
                resource="AgentData",
                details=details,
                actor_type=ActorType.athlete if requested_by == str(athlete_id) else ActorType.system,
                actor_id=requested_by,
            )
            await db.commit()
            return True
        except SQLAlchemyError:
            await db.rollback()
            logger.warning(
                "audit write failed action=%s athlete_id=%s attempt=%d/%d",
                action, athlete_id, attempt, attempts,
            )
    logger.error(
        "audit entry not recorded; erasure already committed action=%s athlete_id=%s details=%s",
        action, athlete_id, details,
    )
    return False


async def delete_agent_data(
    db: AsyncSession,
    athlete_id: uuid.UUID,
    requested_by: str,
    *,
    locks: AthleteLockRegistry = athlete_locks,
) -> DeletionResult:
    """Hard-delete every agent row owned by the athlete."""
    async with locks.hold(athlete_id):
        try:
            deleted = {}
            for category, model in _OWNED_TABLES:
                deleted[category] = await _delete_rows(db, model, athlete_id)
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.exception("agent data deletion failed athlete_id=%s", athlete_id)
            raise StorageFailure("Agent data deletion failed; nothing was deleted") from exc

        completed_at = datetime.now(timezone.utc)
        categories = [category for category, count in deleted.items() if count]
        audit_logged = await _write_audit(
            db,
            athlete_id=athlete_id,
            action="DATA_DELETED",
            requested_by=requested_by,
            details={
                "deleted": deleted,
                "categories": categories,
                "requested_by": requested_by,
                "completed_at": completed_at.isoformat(),
            },
        )

    logger.info("agent data deleted athlete_id=%s categories=%s", athlete_id, categories)
    return DeletionResult(
        athlete_id=athlete_id,
        deleted=deleted,
        categories=categories,
        audit_logged=audit_logged,
        completed_at=completed_at,
    )


async def anonymize_agent_data(
    db: AsyncSession,
    athlete_id: uuid.UUID,
    requested_by: str,
    *,
    locks: AthleteLockRegistry = athlete_locks,
) -> DeletionResult:
    """Detach learning events from the athlete, delete everything else.

    Learning events keep their decision/outcome pair as aggregate signal but
    lose the athlete link, the action link and the decision context.
    """
    async with locks.hold(athlete_id):
        try:
            result = await db.execute(
                update(AgentLearningEvent)
                .where(AgentLearningEvent.athlete_id == athlete_id)
                .values(
                    athlete_id=None,
                    action_id=None,
                    context_at_decision={},
                    anonymized=True,
                )
                .execution_options(synchronize_session=False)
            )
            anonymized = {"learning_events": result.rowcount or 0}
            deleted = {}
            for category, model in _OWNED_TABLES:
                if model is AgentLearningEvent:
                    continue
                deleted[category] = await _delete_rows(db, model, athlete_id)
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.exception("agent data anonymization failed athlete_id=%s", athlete_id)
            raise StorageFailure("Agent data anonymization failed; nothing was changed") from exc

        completed_at = datetime.now(timezone.utc)
        categories = [category for category, count in deleted.items() if count]
        audit_logged = await _write_audit(
            db,
            athlete_id=athlete_id,
            action="DATA_ANONYMIZED",
            requested_by=requested_by,
            details={
                "deleted": deleted,
                "anonymized": anonymized,
                "categories": categories,
                "requested_by": requested_by,
                "completed_at": completed_at.isoformat(),
            },
        )

    logger.info("agent data anonymized athlete_id=%s", athlete_id)
    return DeletionResult(
        athlete_id=athlete_id,
        deleted=deleted,
        categories=categories,
        anonymized=anonymized,
        audit_logged=audit_logged,
        completed_at=completed_at,
    )


async def get_data_summary(db: AsyncSession, athlete_id: uuid.UUID) -> DataSummary:
    """Current row counts per category, for verifying an erasure."""
    counts = {
        category: await _count(db, model, athlete_id)
        for category, model in _OWNED_TABLES
    }
    return DataSummary(
        athlete_id=athlete_id,
        audit_logs=await audit_service.count_events(db, athlete_id),
        **counts,
    )
