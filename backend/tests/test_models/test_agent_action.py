from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InvalidTransitionError
from app.models.agent_action import (
    ActionPriority,
    ActionStatus,
    ActionType,
    AgentAction,
    AgentOversightItem,
    ConfidenceBand,
    OversightStatus,
    confidence_band,
)
from app.models.athlete import Athlete

NOW = datetime(2026, 5, 4, 8, 0, tzinfo=timezone.utc)


async def _create_athlete(db: AsyncSession) -> Athlete:
    athlete = Athlete(name="Model Runner", coach_id="coach-7")
    db.add(athlete)
    await db.commit()
    await db.refresh(athlete)
    return athlete


def _action(athlete_id, status=ActionStatus.proposed) -> AgentAction:
    return AgentAction(
        athlete_id=athlete_id,
        action_type=ActionType.workout_intensity_reduction,
        action_data={"reduction_percent": 10},
        reasoning="High load",
        confidence_score=0.8,
        confidence=confidence_band(0.8),
        priority=ActionPriority.medium,
        status=status,
        proposed_at=NOW,
        expires_at=NOW + timedelta(hours=24),
    )


@pytest.mark.parametrize(
    ("score", "band"),
    [
        (0.0, ConfidenceBand.low),
        (0.49, ConfidenceBand.low),
        (0.5, ConfidenceBand.medium),
        (0.7, ConfidenceBand.high),
        (0.85, ConfidenceBand.very_high),
        (1.0, ConfidenceBand.very_high),
    ],
)
def test_confidence_band(score, band):
    assert confidence_band(score) == band


@pytest.mark.asyncio
async def test_create_and_read_action(db_session: AsyncSession):
    athlete = await _create_athlete(db_session)
    db_session.add(_action(athlete.id))
    await db_session.commit()

    result = await db_session.execute(
        select(AgentAction).where(AgentAction.athlete_id == athlete.id)
    )
    fetched = result.scalar_one()
    assert fetched.status == ActionStatus.proposed
    assert fetched.action_data == {"reduction_percent": 10}
    assert fetched.confidence == ConfidenceBand.high
    assert fetched.requires_coach_oversight is False
    assert fetched.guardrail_warnings == []


def test_proposed_can_be_decided():
    action = _action(None)
    action.status = ActionStatus.accepted
    assert action.status == ActionStatus.accepted


@pytest.mark.parametrize(
    "terminal", [ActionStatus.accepted, ActionStatus.rejected, ActionStatus.auto_applied]
)
@pytest.mark.parametrize("target", list(ActionStatus))
def test_terminal_status_never_changes(terminal, target):
    action = _action(None, status=terminal)
    if target == terminal:
        action.status = target
        return
    with pytest.raises(InvalidTransitionError):
        action.status = target


def test_auto_applied_is_initial_only():
    action = _action(None)
    with pytest.raises(InvalidTransitionError):
        action.status = ActionStatus.auto_applied


@pytest.mark.asyncio
async def test_oversight_item_is_unique_per_action(db_session: AsyncSession):
    athlete = await _create_athlete(db_session)
    action = _action(athlete.id)
    db_session.add(action)
    await db_session.commit()

    item = AgentOversightItem(
        action_id=action.id,
        athlete_id=athlete.id,
        coach_id=athlete.coach_id,
        priority=action.priority,
        category=action.action_type.value,
    )
    db_session.add(item)
    await db_session.commit()
    assert item.status == OversightStatus.pending

    db_session.add(AgentOversightItem(
        action_id=action.id,
        athlete_id=athlete.id,
        coach_id=athlete.coach_id,
        priority=action.priority,
        category="duplicate",
    ))
    with pytest.raises(IntegrityError):
        await db_session.commit()
    await db_session.rollback()
