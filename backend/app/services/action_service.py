"""Action lifecycle service: create, accept, reject and list agent actions.

Lifecycle: (guardrail verdict) → PROPOSED → ACCEPTED | REJECTED
           (guardrail verdict) → AUTO_APPLIED
Terminal statuses never change. Transitions use a conditional UPDATE on
status = PROPOSED, so two concurrent decisions cannot both succeed.
Every transition is audit-logged; human decisions also become learning events.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.errors import (
    ActionBlockedError,
    ActionExpiredError,
    ActionNotFoundError,
    BoundsExceededError,
    InvalidTransitionError,
)
from app.guardrails.autonomy import validate_action_bounds
from app.guardrails.types import GuardrailCheckResult, ProposedAction
from app.models.agent_action import (
    PRIORITY_RANK,
    ActionStatus,
    AgentAction,
    AgentOversightItem,
    OversightStatus,
    confidence_band,
)
from app.models.agent_learning import AgentLearningEvent, LearningEventType
from app.models.audit import ActorType
from app.services import audit_service, preferences_service

logger = logging.getLogger("pacekeeper.actions")

_priority_order = case(
    {p.value: rank for p, rank in PRIORITY_RANK.items()},
    value=AgentAction.priority,
    else_=0,
)


def to_proposed(action: AgentAction) -> ProposedAction:
    return ProposedAction(
        action_type=action.action_type,
        action_data=action.action_data,
        reasoning=action.reasoning,
        confidence_score=action.confidence_score,
        priority=action.priority,
    )


async def create_action(
    db: AsyncSession,
    *,
    athlete_id: uuid.UUID,
    proposed: ProposedAction,
    verdict: GuardrailCheckResult,
    perception_id: uuid.UUID | None = None,
    coach_id: str | None = None,
    now: datetime | None = None,
) -> AgentAction:
    """Persist a guardrail verdict as an action in its initial status.

    AUTO_APPLIED when the verdict allows it, otherwise PROPOSED. A verdict
    with violations cannot become an action.
    """
    if not verdict.can_proceed:
        raise ActionBlockedError(
            "Blocked by: " + ", ".join(v.rule for v in verdict.violations)
        )

    proposed_at = now or datetime.now(timezone.utc)
    status = ActionStatus.auto_applied if verdict.can_auto_apply else ActionStatus.proposed

    action = AgentAction(
        athlete_id=athlete_id,
        perception_id=perception_id,
        action_type=proposed.action_type,
        action_data=dict(proposed.action_data),
        reasoning=proposed.reasoning,
        confidence_score=proposed.confidence_score,
        confidence=confidence_band(proposed.confidence_score),
        priority=proposed.priority,
        status=status,
        requires_coach_oversight=verdict.requires_coach_oversight,
        guardrail_warnings=[w.model_dump(mode="json") for w in verdict.warnings],
        proposed_at=proposed_at,
        expires_at=proposed_at + timedelta(hours=settings.action_expiry_hours),
    )
    if status == ActionStatus.auto_applied:
        action.decided_at = proposed_at
        action.decided_by = "agent"
    db.add(action)
    await db.flush()

    if verdict.requires_coach_oversight and coach_id is None:
        # stays PROPOSED for the athlete to decide; no queue can see it
        logger.warning(
            "oversight required but athlete has no coach athlete_id=%s action_id=%s",
            athlete_id,
            action.id,
        )
    elif verdict.requires_coach_oversight:
        db.add(AgentOversightItem(
            action_id=action.id,
            athlete_id=athlete_id,
            coach_id=coach_id,
            priority=proposed.priority,
            category=proposed.action_type.value,
        ))
        await db.flush()

    await audit_service.log_event(
        db,
        athlete_id=athlete_id,
        action="ACTION_AUTO_APPLIED" if status == ActionStatus.auto_applied else "ACTION_PROPOSED",
        resource="AgentAction",
        resource_id=action.id,
        details={
            "action_type": proposed.action_type.value,
            "confidence_score": proposed.confidence_score,
            "priority": proposed.priority.value,
            "auto_apply_reason": verdict.auto_apply_reason,
            "requires_coach_oversight": verdict.requires_coach_oversight,
            "warnings": [w.rule for w in verdict.warnings],
            "perception_id": str(perception_id) if perception_id else None,
        },
        actor_type=ActorType.agent,
    )
    return action


async def get_action(
    db: AsyncSession,
    athlete_id: uuid.UUID,
    action_id: uuid.UUID,
) -> AgentAction:
    result = await db.execute(
        select(AgentAction).where(
            AgentAction.id == action_id,
            AgentAction.athlete_id == athlete_id,
        )
    )
    action = result.scalar_one_or_none()
    if action is None:
        raise ActionNotFoundError(f"Action {action_id} not found")
    return action


async def _decide(
    db: AsyncSession,
    *,
    athlete_id: uuid.UUID,
    action_id: uuid.UUID,
    new_status: ActionStatus,
    decided_by: str,
    feedback: str | None,
    now: datetime,
) -> AgentAction:
    """Move a PROPOSED, unexpired action to a human-decided status."""
    result = await db.execute(
        update(AgentAction)
        .where(
            AgentAction.id == action_id,
            AgentAction.athlete_id == athlete_id,
            AgentAction.status == ActionStatus.proposed,
            AgentAction.expires_at > now,
        )
        .values(
            status=new_status,
            decided_at=now,
            decided_by=decided_by,
            athlete_feedback=feedback,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        current = await get_action(db, athlete_id, action_id)
        if current.status != ActionStatus.proposed:
            raise InvalidTransitionError(
                f"Action is already {current.status.value}"
            )
        raise ActionExpiredError(f"Action {action_id} expired before a decision was made")

    action = await get_action(db, athlete_id, action_id)
    await db.refresh(action)

    await db.execute(
        update(AgentOversightItem)
        .where(
            AgentOversightItem.action_id == action_id,
            AgentOversightItem.status == OversightStatus.pending,
        )
        .values(status=OversightStatus.resolved, reviewed_at=now, review_note=feedback)
        .execution_options(synchronize_session=False)
    )
    return action


async def _record_learning(
    db: AsyncSession,
    action: AgentAction,
    event_type: LearningEventType,
    outcome: dict,
) -> AgentLearningEvent:
    event = AgentLearningEvent(
        athlete_id=action.athlete_id,
        action_id=action.id,
        event_type=event_type,
        agent_decision={
            "action_type": action.action_type.value,
            "confidence": action.confidence.value,
            "confidence_score": action.confidence_score,
            "reasoning": action.reasoning,
        },
        actual_outcome=outcome,
        context_at_decision=dict(action.action_data),
    )
    db.add(event)
    await db.flush()
    return event


async def accept_action(
    db: AsyncSession,
    *,
    athlete_id: uuid.UUID,
    action_id: uuid.UUID,
    decided_by: str,
    feedback: str | None = None,
    actor_type: ActorType = ActorType.athlete,
    now: datetime | None = None,
) -> AgentAction:
    """Accept a proposed action.

    The athlete's current bounds are re-checked first: a human cannot force
    through an action outside them.
    """
    now = now or datetime.now(timezone.utc)
    pending = await get_action(db, athlete_id, action_id)
    if pending.status == ActionStatus.proposed:
        preferences = await preferences_service.get_preferences(db, athlete_id)
        bounds = validate_action_bounds(to_proposed(pending), preferences)
        if not bounds.valid:
            raise BoundsExceededError(bounds.reason)

    action = await _decide(
        db,
        athlete_id=athlete_id,
        action_id=action_id,
        new_status=ActionStatus.accepted,
        decided_by=decided_by,
        feedback=feedback,
        now=now,
    )
    await _record_learning(
        db, action, LearningEventType.action_accepted, {"accepted": True, "feedback": feedback}
    )
    await audit_service.log_event(
        db,
        athlete_id=athlete_id,
        action="ACTION_ACCEPTED",
        resource="AgentAction",
        resource_id=action.id,
        details={"action_type": action.action_type.value, "feedback": feedback},
        actor_type=actor_type,
        actor_id=decided_by,
    )
    logger.info("action accepted action_id=%s by=%s", action.id, decided_by)
    return action


async def reject_action(
    db: AsyncSession,
    *,
    athlete_id: uuid.UUID,
    action_id: uuid.UUID,
    decided_by: str,
    reason: str | None = None,
    actor_type: ActorType = ActorType.athlete,
    now: datetime | None = None,
) -> AgentAction:
    now = now or datetime.now(timezone.utc)
    action = await _decide(
        db,
        athlete_id=athlete_id,
        action_id=action_id,
        new_status=ActionStatus.rejected,
        decided_by=decided_by,
        feedback=reason,
        now=now,
    )
    await _record_learning(
        db, action, LearningEventType.action_rejected, {"rejected": True, "reason": reason}
    )
    await audit_service.log_event(
        db,
        athlete_id=athlete_id,
        action="ACTION_REJECTED",
        resource="AgentAction",
        resource_id=action.id,
        details={"action_type": action.action_type.value, "reason": reason},
        actor_type=actor_type,
        actor_id=decided_by,
    )
    logger.info("action rejected action_id=%s by=%s", action.id, decided_by)
    return action


async def list_actions(
    db: AsyncSession,
    athlete_id: uuid.UUID,
    *,
    status: ActionStatus | None = None,
    now: datetime | None = None,
    limit: int = 100,
) -> list[AgentAction]:
    """Actions awaiting decision by default; an explicit status shows history.

    Awaiting decision = PROPOSED and not yet expired. An explicit status
    filter ignores expiry so audit views see everything.
    """
    stmt = select(AgentAction).where(AgentAction.athlete_id == athlete_id)
    if status is None:
        now = now or datetime.now(timezone.utc)
        stmt = stmt.where(
            AgentAction.status == ActionStatus.proposed,
            AgentAction.expires_at > now,
        )
    else:
        stmt = stmt.where(AgentAction.status == status)
    stmt = stmt.order_by(_priority_order.desc(), AgentAction.proposed_at.asc()).limit(limit)

    result = await db.execute(stmt)
    return list(result.scalars().all())


async def list_oversight_queue(
    db: AsyncSession,
    coach_id: str,
    *,
    now: datetime | None = None,
) -> list[tuple[AgentOversightItem, AgentAction]]:
    """Pending review items for a coach whose action still awaits a decision."""
    now = now or datetime.now(timezone.utc)
    stmt = (
        select(AgentOversightItem, AgentAction)
        .join(AgentAction, AgentAction.id == AgentOversightItem.action_id)
        .where(
            AgentOversightItem.coach_id == coach_id,
            AgentOversightItem.status == OversightStatus.pending,
            AgentAction.status == ActionStatus.proposed,
            AgentAction.expires_at > now,
        )
        .order_by(_priority_order.desc(), AgentAction.proposed_at.asc())
    )
    result = await db.execute(stmt)
    return [(item, action) for item, action in result.all()]


async def get_oversight_item(
    db: AsyncSession,
    coach_id: str,
    action_id: uuid.UUID,
) -> AgentOversightItem:
    """The review item for an action, if it is routed to this coach."""
    result = await db.execute(
        select(AgentOversightItem).where(
            AgentOversightItem.action_id == action_id,
            AgentOversightItem.coach_id == coach_id,
        )
    )
    item = result.scalar_one_or_none()
    if item is None:
        raise ActionNotFoundError(f"No oversight item for action {action_id}")
    return item


async def approve_for_coach(
    db: AsyncSession,
    *,
    coach_id: str,
    action_id: uuid.UUID,
    note: str | None = None,
    now: datetime | None = None,
) -> AgentAction:
    item = await get_oversight_item(db, coach_id, action_id)
    return await accept_action(
        db,
        athlete_id=item.athlete_id,
        action_id=action_id,
        decided_by=coach_id,
        feedback=note,
        actor_type=ActorType.coach,
        now=now,
    )


async def reject_for_coach(
    db: AsyncSession,
    *,
    coach_id: str,
    action_id: uuid.UUID,
    note: str | None = None,
    now: datetime | None = None,
) -> AgentAction:
    item = await get_oversight_item(db, coach_id, action_id)
    return await reject_action(
        db,
        athlete_id=item.athlete_id,
        action_id=action_id,
        decided_by=coach_id,
        reason=note,
        actor_type=ActorType.coach,
        now=now,
    )
