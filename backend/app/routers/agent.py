"""Agent routes: cycle, actions, preferences, consent, and GDPR data."""

import uuid

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import get_db, get_decision_provider, get_perception_provider
from app.guardrails.consent_gate import can_make_automated_decisions, check_consent
from app.guardrails.types import ConsentData
from app.models.agent_action import ActionStatus
from app.schemas.agent import (
    ActionDecision,
    AgentActionRead,
    CanRunResult,
    ConsentGrant,
    ConsentRead,
    CycleResult,
    DataRequest,
    DataSummary,
    DeletionResult,
    PreferencesRead,
    PreferencesUpdate,
)
from app.services import (
    action_service,
    agent_service,
    consent_service,
    gdpr_service,
    preferences_service,
)
from app.services.providers import DecisionProvider, PerceptionProvider

router = APIRouter(prefix="/athletes/{athlete_id}/agent", tags=["agent"])


def _client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


@router.get("/status", response_model=CanRunResult)
async def agent_status(athlete_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await agent_service.can_run_agent(db, athlete_id)


@router.post("/cycle", response_model=CycleResult)
async def run_cycle(
    athlete_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    perception_provider: PerceptionProvider = Depends(get_perception_provider),
    decision_provider: DecisionProvider = Depends(get_decision_provider),
):
    return await agent_service.run_agent_cycle(
        db,
        athlete_id,
        perception_provider=perception_provider,
        decision_provider=decision_provider,
    )


@router.get("/actions", response_model=list[AgentActionRead])
async def list_actions(
    athlete_id: uuid.UUID,
    status: ActionStatus | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Actions awaiting decision, or all actions with the given status."""
    actions = await action_service.list_actions(db, athlete_id, status=status)
    return [AgentActionRead.model_validate(a) for a in actions]


@router.post("/actions/{action_id}/accept", response_model=AgentActionRead)
async def accept(
    athlete_id: uuid.UUID,
    action_id: uuid.UUID,
    body: ActionDecision,
    db: AsyncSession = Depends(get_db),
):
    action = await action_service.accept_action(
        db,
        athlete_id=athlete_id,
        action_id=action_id,
        decided_by=body.decided_by,
        feedback=body.note,
    )
    return AgentActionRead.model_validate(action)


@router.post("/actions/{action_id}/reject", response_model=AgentActionRead)
async def reject(
    athlete_id: uuid.UUID,
    action_id: uuid.UUID,
    body: ActionDecision,
    db: AsyncSession = Depends(get_db),
):
    action = await action_service.reject_action(
        db,
        athlete_id=athlete_id,
        action_id=action_id,
        decided_by=body.decided_by,
        reason=body.note,
    )
    return AgentActionRead.model_validate(action)


@router.get("/preferences", response_model=PreferencesRead)
async def get_preferences(athlete_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    """Stored preferences, or the default this athlete would get."""
    prefs = await preferences_service.get_preferences(db, athlete_id)
    return PreferencesRead.model_validate(prefs)


@router.put("/preferences", response_model=PreferencesRead)
async def update_preferences(
    athlete_id: uuid.UUID,
    body: PreferencesUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    await preferences_service.update_preferences(
        db,
        athlete_id=athlete_id,
        changes=body.model_dump(exclude_none=True),
        actor_id=str(athlete_id),
        ip_address=_client_ip(request),
    )
    prefs = await preferences_service.get_preferences(db, athlete_id)
    return PreferencesRead.model_validate(prefs)


def _consent_read(record) -> ConsentRead:
    data = ConsentData.from_record(record)
    check = check_consent(data)
    return ConsentRead(
        granted=sorted(data.granted, key=lambda c: c.value) if data else [],
        is_withdrawn=check.is_withdrawn,
        has_required_consent=check.has_required_consent,
        can_make_automated_decisions=can_make_automated_decisions(data),
        consent_version=record.consent_version if record else None,
        consent_given_at=record.consent_given_at if record else None,
        consent_withdrawn_at=record.consent_withdrawn_at if record else None,
    )


@router.get("/consent", response_model=ConsentRead)
async def get_consent(athlete_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    await preferences_service.get_athlete(db, athlete_id)
    return _consent_read(await consent_service.get_consent(db, athlete_id))


@router.post("/consent/grant", response_model=ConsentRead)
async def grant_consent(
    athlete_id: uuid.UUID,
    body: ConsentGrant,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    await preferences_service.get_athlete(db, athlete_id)
    record = await consent_service.grant_consent(
        db,
        athlete_id=athlete_id,
        categories=set(body.categories),
        ip_address=_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )
    return _consent_read(record)


@router.post("/consent/withdraw", response_model=ConsentRead)
async def withdraw_consent(
    athlete_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    await preferences_service.get_athlete(db, athlete_id)
    record = await consent_service.withdraw_consent(
        db, athlete_id=athlete_id, ip_address=_client_ip(request)
    )
    return _consent_read(record)


@router.post("/data/delete", response_model=DeletionResult)
async def delete_data(
    athlete_id: uuid.UUID,
    body: DataRequest,
    db: AsyncSession = Depends(get_db),
):
    return await gdpr_service.delete_agent_data(db, athlete_id, body.requested_by)


@router.post("/data/anonymize", response_model=DeletionResult)
async def anonymize_data(
    athlete_id: uuid.UUID,
    body: DataRequest,
    db: AsyncSession = Depends(get_db),
):
    return await gdpr_service.anonymize_agent_data(db, athlete_id, body.requested_by)


@router.get("/data/summary", response_model=DataSummary)
async def data_summary(athlete_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await gdpr_service.get_data_summary(db, athlete_id)
