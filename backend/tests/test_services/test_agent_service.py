import asyncio
import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.errors import (
    AthleteNotFoundError,
    ConsentError,
    ProviderUnavailableError,
    StorageFailure,
)
from app.core.locks import AthleteLockRegistry
from app.guardrails.types import (
    ActiveInjury,
    InjuryState,
    PerceptionSnapshot,
    ProposedAction,
    Readiness,
    TrainingLoad,
)
from app.models.agent_action import ActionStatus, ActionType, AgentAction
from app.models.agent_consent import ConsentCategory
from app.models.agent_perception import AgentPerception
from app.models.athlete import Athlete
from app.services import action_service, agent_service, audit_service, consent_service, gdpr_service

FULL_CONSENT = {
    ConsentCategory.data_processing,
    ConsentCategory.health_data_processing,
    ConsentCategory.automated_decisions,
}


class _StaticPerception:
    def __init__(self, snapshot: PerceptionSnapshot | None = None, error: Exception | None = None):
        self.snapshot = snapshot or _snapshot()
        self.error = error
        self.calls = 0

    async def perceive(self, athlete_id):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.snapshot


class _GatedDecisions:
    """Holds the cycle inside propose until the gate opens."""

    def __init__(self, *candidates: ProposedAction):
        self.candidates = list(candidates)
        self.started = asyncio.Event()
        self.gate = asyncio.Event()

    async def propose(self, athlete_id, snapshot):
        self.started.set()
        await self.gate.wait()
        return self.candidates


class _ScriptedDecisions:
    def __init__(self, candidates=(), delay: float = 0.0, error: Exception | None = None):
        self.candidates = list(candidates)
        self.delay = delay
        self.error = error

    async def propose(self, athlete_id, snapshot):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.candidates


def _snapshot(acwr: float | None = 1.2, pain: int | None = None, readiness: float = 65) -> PerceptionSnapshot:
    injuries = (ActiveInjury(body_part="shin", pain_level=pain),) if pain is not None else ()
    return PerceptionSnapshot(
        perceived_at=datetime.now(timezone.utc),
        training_load=TrainingLoad(acwr=acwr, acute_load=410.0, chronic_load=340.0, zone="optimal"),
        injury=InjuryState(active_injuries=injuries),
        readiness=Readiness(readiness_score=readiness),
    )


def _reduction(percent: int = 10, confidence: float = 0.8) -> ProposedAction:
    return ProposedAction(
        action_type=ActionType.workout_intensity_reduction,
        action_data={"reduction_percent": percent},
        reasoning="Load trending up",
        confidence_score=confidence,
    )


def _nudge() -> ProposedAction:
    return ProposedAction(
        action_type=ActionType.motivational_nudge,
        action_data={"message": "Nice streak!"},
        confidence_score=0.9,
    )


async def _create_athlete(
    db_session: AsyncSession,
    *,
    is_ai_coached: bool = True,
    consent: set[ConsentCategory] | None = FULL_CONSENT,
) -> Athlete:
    athlete = Athlete(
        name="Cycle Runner",
        is_ai_coached=is_ai_coached,
        coach_id=None if is_ai_coached else "coach-1",
    )
    db_session.add(athlete)
    await db_session.flush()
    if consent:
        await consent_service.grant_consent(db_session, athlete_id=athlete.id, categories=consent)
    await db_session.commit()
    await db_session.refresh(athlete)
    return athlete


async def _count(db_session: AsyncSession, model, athlete_id) -> int:
    result = await db_session.execute(
        select(func.count()).select_from(model).where(model.athlete_id == athlete_id)
    )
    return result.scalar_one()


# --- can_run_agent ---


@pytest.mark.asyncio
async def test_can_run_with_required_consent(db_session: AsyncSession):
    athlete = await _create_athlete(db_session)
    result = await agent_service.can_run_agent(db_session, athlete.id)
    assert result.can_run is True
    assert result.reason is None


@pytest.mark.asyncio
async def test_cannot_run_without_consent(db_session: AsyncSession):
    athlete = await _create_athlete(db_session, consent=None)
    result = await agent_service.can_run_agent(db_session, athlete.id)
    assert result.can_run is False
    assert result.reason == "Agent consent has not been given"


@pytest.mark.asyncio
async def test_cannot_run_for_unknown_athlete(db_session: AsyncSession):
    result = await agent_service.can_run_agent(db_session, uuid.uuid4())
    assert result.can_run is False
    assert "not found" in result.reason


# --- run_agent_cycle ---


@pytest.mark.asyncio
async def test_cycle_auto_applies_safe_action(db_session: AsyncSession):
    athlete = await _create_athlete(db_session)

    result = await agent_service.run_agent_cycle(
        db_session,
        athlete.id,
        perception_provider=_StaticPerception(),
        decision_provider=_ScriptedDecisions([_reduction(10)]),
    )

    assert len(result.action_ids) == 1
    assert result.auto_applied_ids == result.action_ids
    assert result.blocked == []
    assert result.timed_out is False

    perception = await db_session.get(AgentPerception, result.perception_id)
    assert perception.acwr == 1.2
    assert perception.snapshot["training_load"]["zone"] == "optimal"

    action = await action_service.get_action(db_session, athlete.id, result.action_ids[0])
    assert action.status == ActionStatus.auto_applied
    assert action.perception_id == result.perception_id


@pytest.mark.asyncio
async def test_cycle_without_automated_consent_only_proposes(db_session: AsyncSession):
    athlete = await _create_athlete(
        db_session,
        consent={ConsentCategory.data_processing, ConsentCategory.health_data_processing},
    )

    result = await agent_service.run_agent_cycle(
        db_session,
        athlete.id,
        perception_provider=_StaticPerception(),
        decision_provider=_ScriptedDecisions([_reduction(10), _nudge()]),
    )

    assert len(result.action_ids) == 2
    assert result.auto_applied_ids == []
    awaiting = await action_service.list_actions(db_session, athlete.id)
    assert len(awaiting) == 2


@pytest.mark.asyncio
async def test_withdrawn_consent_stops_cycle_before_perception(db_session: AsyncSession):
    athlete = await _create_athlete(db_session)
    await consent_service.withdraw_consent(db_session, athlete_id=athlete.id)
    await db_session.commit()
    perception = _StaticPerception()

    with pytest.raises(ConsentError, match="Consent has been withdrawn"):
        await agent_service.run_agent_cycle(
            db_session,
            athlete.id,
            perception_provider=perception,
            decision_provider=_ScriptedDecisions([_reduction()]),
        )

    assert perception.calls == 0
    assert await _count(db_session, AgentPerception, athlete.id) == 0
    assert await _count(db_session, AgentAction, athlete.id) == 0


@pytest.mark.asyncio
async def test_cycle_for_unknown_athlete(db_session: AsyncSession):
    with pytest.raises(AthleteNotFoundError):
        await agent_service.run_agent_cycle(
            db_session,
            uuid.uuid4(),
            perception_provider=_StaticPerception(),
            decision_provider=_ScriptedDecisions(),
        )


@pytest.mark.asyncio
async def test_unsafe_candidates_are_blocked_and_audited(db_session: AsyncSession):
    athlete = await _create_athlete(db_session)

    result = await agent_service.run_agent_cycle(
        db_session,
        athlete.id,
        perception_provider=_StaticPerception(_snapshot(acwr=1.9, pain=8)),
        decision_provider=_ScriptedDecisions([_reduction(10), _nudge()]),
    )

    assert result.action_ids == []
    assert len(result.blocked) == 2
    assert [v.rule for v in result.blocked[0].violations] == ["ACWR_CRITICAL", "PAIN_CRITICAL"]
    assert await _count(db_session, AgentAction, athlete.id) == 0
    # the perception is still recorded
    assert await _count(db_session, AgentPerception, athlete.id) == 1

    blocked = await audit_service.get_events_for_athlete(
        db_session, athlete.id, action="ACTION_BLOCKED"
    )
    assert len(blocked) == 2
    assert blocked[0].details["violations"][0]["rule"] == "ACWR_CRITICAL"


@pytest.mark.asyncio
async def test_out_of_bounds_candidate_is_blocked(db_session: AsyncSession):
    athlete = await _create_athlete(db_session)

    result = await agent_service.run_agent_cycle(
        db_session,
        athlete.id,
        perception_provider=_StaticPerception(),
        decision_provider=_ScriptedDecisions([_reduction(35), _reduction(10)]),
    )

    assert len(result.action_ids) == 1
    assert [v.rule for v in result.blocked[0].violations] == ["BOUNDS_EXCEEDED"]


@pytest.mark.asyncio
async def test_one_bad_candidate_does_not_sink_the_others(db_session: AsyncSession):
    athlete = await _create_athlete(db_session)

    result = await agent_service.run_agent_cycle(
        db_session,
        athlete.id,
        perception_provider=_StaticPerception(),
        decision_provider=_ScriptedDecisions([_reduction(10), object(), _nudge()]),
    )

    assert result.failed == 1
    assert len(result.action_ids) == 2


@pytest.mark.asyncio
async def test_decision_timeout_yields_no_candidates(db_session: AsyncSession, monkeypatch):
    athlete = await _create_athlete(db_session)
    monkeypatch.setattr(settings, "decision_timeout_seconds", 0.05)

    result = await agent_service.run_agent_cycle(
        db_session,
        athlete.id,
        perception_provider=_StaticPerception(),
        decision_provider=_ScriptedDecisions([_reduction()], delay=1.0),
    )

    assert result.timed_out is True
    assert result.action_ids == []
    assert await _count(db_session, AgentPerception, athlete.id) == 1
    completed = await audit_service.get_events_for_athlete(
        db_session, athlete.id, action="CYCLE_COMPLETED"
    )
    assert completed[0].details["timed_out"] is True


@pytest.mark.asyncio
async def test_decision_provider_error_yields_no_candidates(db_session: AsyncSession):
    athlete = await _create_athlete(db_session)

    result = await agent_service.run_agent_cycle(
        db_session,
        athlete.id,
        perception_provider=_StaticPerception(),
        decision_provider=_ScriptedDecisions(error=RuntimeError("model offline")),
    )

    assert result.action_ids == []
    assert result.timed_out is False


@pytest.mark.asyncio
async def test_perception_failure_raises_provider_unavailable(db_session: AsyncSession):
    athlete = await _create_athlete(db_session)

    with pytest.raises(ProviderUnavailableError):
        await agent_service.run_agent_cycle(
            db_session,
            athlete.id,
            perception_provider=_StaticPerception(error=ConnectionError("wearables down")),
            decision_provider=_ScriptedDecisions([_reduction()]),
        )


@pytest.mark.asyncio
async def test_storage_failure_rolls_back_whole_cycle(db_session: AsyncSession, monkeypatch):
    athlete = await _create_athlete(db_session)
    athlete_id = athlete.id

    async def _failing_create(*args, **kwargs):
        raise OperationalError("INSERT INTO agent_actions", {}, Exception("disk I/O error"))

    monkeypatch.setattr(action_service, "create_action", _failing_create)

    with pytest.raises(StorageFailure):
        await agent_service.run_agent_cycle(
            db_session,
            athlete_id,
            perception_provider=_StaticPerception(),
            decision_provider=_ScriptedDecisions([_reduction()]),
        )

    assert await _count(db_session, AgentPerception, athlete_id) == 0


@pytest.mark.asyncio
async def test_cycle_waits_for_athlete_lock(db_session: AsyncSession):
    athlete = await _create_athlete(db_session)
    locks = AthleteLockRegistry()
    perception = _StaticPerception()

    async with locks.hold(athlete.id):
        task = asyncio.create_task(agent_service.run_agent_cycle(
            db_session,
            athlete.id,
            perception_provider=perception,
            decision_provider=_ScriptedDecisions(),
            locks=locks,
        ))
        await asyncio.sleep(0.05)
        assert perception.calls == 0
        assert not task.done()

    result = await task
    assert perception.calls == 1
    assert result.action_ids == []


@pytest.mark.asyncio
async def test_deletion_waits_for_running_cycle(db_session: AsyncSession):
    athlete = await _create_athlete(db_session)
    locks = AthleteLockRegistry()
    decisions = _GatedDecisions(_reduction(10))

    cycle = asyncio.create_task(agent_service.run_agent_cycle(
        db_session,
        athlete.id,
        perception_provider=_StaticPerception(),
        decision_provider=decisions,
        locks=locks,
    ))
    await decisions.started.wait()
    deletion = asyncio.create_task(
        gdpr_service.delete_agent_data(db_session, athlete.id, str(athlete.id), locks=locks)
    )
    await asyncio.sleep(0.05)
    assert not deletion.done()

    decisions.gate.set()
    result = await cycle
    erased = await deletion

    assert len(result.action_ids) == 1
    assert erased.deleted["perceptions"] == 1
    assert erased.deleted["actions"] == 1
    summary = await gdpr_service.get_data_summary(db_session, athlete.id)
    assert (summary.perceptions, summary.actions, summary.consent) == (0, 0, 0)
    assert await _count(db_session, AgentAction, athlete.id) == 0
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_cycle_after_deletion_finds_no_consent(db_session: AsyncSession):
    athlete = await _create_athlete(db_session)
    locks = AthleteLockRegistry()
    perception = _StaticPerception()

    deletion = asyncio.create_task(
        gdpr_service.delete_agent_data(db_session, athlete.id, str(athlete.id), locks=locks)
    )
    await asyncio.sleep(0)
    assert locks.is_locked(athlete.id)
    cycle = asyncio.create_task(agent_service.run_agent_cycle(
        db_session,
        athlete.id,
        perception_provider=perception,
        decision_provider=_ScriptedDecisions([_reduction(10)]),
        locks=locks,
    ))

    erased = await deletion
    with pytest.raises(ConsentError):
        await cycle

    assert erased.deleted["consent"] == 1
    assert perception.calls == 0
    assert await _count(db_session, AgentPerception, athlete.id) == 0
    assert await _count(db_session, AgentAction, athlete.id) == 0
