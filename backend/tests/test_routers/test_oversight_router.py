import uuid
from datetime import datetime, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.guardrails.types import PerceptionSnapshot, ProposedAction, TrainingLoad
from app.main import app as fastapi_app
from app.models.agent_action import ActionPriority, ActionType
from app.models.athlete import Athlete
from app.models.audit import ActorType
from app.services import audit_service

FULL_CONSENT = ["data_processing", "health_data_processing", "automated_decisions"]


class _FixedPerception:
    async def perceive(self, athlete_id):
        return PerceptionSnapshot(
            perceived_at=datetime.now(timezone.utc),
            training_load=TrainingLoad(acwr=1.1),
        )


class _FixedDecisions:
    async def propose(self, athlete_id, snapshot):
        return [ProposedAction(
            action_type=ActionType.workout_intensity_reduction,
            action_data={"reduction_percent": 10},
            reasoning="Heavy week",
            confidence_score=0.8,
            priority=ActionPriority.high,
        )]


async def _create_athlete(db_session: AsyncSession, coach_id: str = "coach-31") -> Athlete:
    athlete = Athlete(name="Coached Runner", is_ai_coached=False, coach_id=coach_id)
    db_session.add(athlete)
    await db_session.commit()
    await db_session.refresh(athlete)
    return athlete


async def _queued_action(client: AsyncClient, athlete: Athlete) -> str:
    """Run one cycle that routes a proposal to the athlete's coach."""
    granted = await client.post(
        f"/athletes/{athlete.id}/agent/consent/grant", json={"categories": FULL_CONSENT}
    )
    assert granted.status_code == 200
    fastapi_app.state.perception_provider = _FixedPerception()
    fastapi_app.state.decision_provider = _FixedDecisions()

    cycle = await client.post(f"/athletes/{athlete.id}/agent/cycle")
    assert cycle.status_code == 200
    action_ids = cycle.json()["action_ids"]
    assert len(action_ids) == 1
    return action_ids[0]


@pytest.mark.asyncio
async def test_coach_approves_queued_action(client: AsyncClient, db_session: AsyncSession):
    athlete = await _create_athlete(db_session)
    action_id = await _queued_action(client, athlete)

    response = await client.post(
        f"/coaches/coach-31/oversight/{action_id}/approve", json={"note": "Good call"}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "accepted"
    assert data["decided_by"] == "coach-31"
    assert data["athlete_feedback"] == "Good call"

    assert (await client.get("/coaches/coach-31/oversight")).json() == []
    events = await audit_service.get_events_for_athlete(
        db_session, athlete.id, action="ACTION_ACCEPTED"
    )
    assert len(events) == 1
    assert events[0].actor_type == ActorType.coach
    assert events[0].actor_id == "coach-31"


@pytest.mark.asyncio
async def test_coach_rejects_queued_action(client: AsyncClient, db_session: AsyncSession):
    athlete = await _create_athlete(db_session)
    action_id = await _queued_action(client, athlete)

    response = await client.post(f"/coaches/coach-31/oversight/{action_id}/reject", json={})

    assert response.status_code == 200
    assert response.json()["status"] == "rejected"
    assert (await client.get("/coaches/coach-31/oversight")).json() == []

    pending = await client.get(f"/athletes/{athlete.id}/agent/actions")
    assert pending.json() == []
    events = await audit_service.get_events_for_athlete(
        db_session, athlete.id, action="ACTION_REJECTED"
    )
    assert [e.actor_type for e in events] == [ActorType.coach]


@pytest.mark.asyncio
async def test_other_coach_cannot_decide(client: AsyncClient, db_session: AsyncSession):
    athlete = await _create_athlete(db_session)
    action_id = await _queued_action(client, athlete)

    approve = await client.post(f"/coaches/coach-99/oversight/{action_id}/approve", json={})
    reject = await client.post(f"/coaches/coach-99/oversight/{action_id}/reject", json={})

    assert approve.status_code == 404
    assert reject.status_code == 404
    queue = (await client.get("/coaches/coach-31/oversight")).json()
    assert [item["action"]["id"] for item in queue] == [action_id]
    assert queue[0]["action"]["status"] == "proposed"


@pytest.mark.asyncio
async def test_unknown_action_is_404(client: AsyncClient, db_session: AsyncSession):
    response = await client.post(f"/coaches/coach-31/oversight/{uuid.uuid4()}/approve", json={})
    assert response.status_code == 404
    assert response.json()["error"] is True


@pytest.mark.asyncio
async def test_second_decision_conflicts(client: AsyncClient, db_session: AsyncSession):
    athlete = await _create_athlete(db_session)
    action_id = await _queued_action(client, athlete)

    first = await client.post(f"/coaches/coach-31/oversight/{action_id}/reject", json={})
    second = await client.post(f"/coaches/coach-31/oversight/{action_id}/approve", json={})

    assert first.status_code == 200
    assert second.status_code == 409
