"""Coach oversight routes: the review queue and coach decisions on it."""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.dependencies import get_db
from app.schemas.agent import AgentActionRead, OversightDecision, OversightItemRead
from app.services import action_service

router = APIRouter(prefix="/coaches/{coach_id}/oversight", tags=["oversight"])


@router.get("", response_model=list[OversightItemRead])
async def queue(coach_id: str, db: AsyncSession = Depends(get_db)):
    items = await action_service.list_oversight_queue(db, coach_id)
    return [
        OversightItemRead(
            id=item.id,
            athlete_id=item.athlete_id,
            priority=item.priority,
            category=item.category,
            action=AgentActionRead.model_validate(action),
        )
        for item, action in items
    ]


@router.post("/{action_id}/approve", response_model=AgentActionRead)
async def approve(
    coach_id: str,
    action_id: uuid.UUID,
    body: OversightDecision,
    db: AsyncSession = Depends(get_db),
):
    """Accept an action routed to this coach; an action outside it is a 404."""
    action = await action_service.approve_for_coach(
        db, coach_id=coach_id, action_id=action_id, note=body.note
    )
    return AgentActionRead.model_validate(action)


@router.post("/{action_id}/reject", response_model=AgentActionRead)
async def reject(
    coach_id: str,
    action_id: uuid.UUID,
    body: OversightDecision,
    db: AsyncSession = Depends(get_db),
):
    action = await action_service.reject_for_coach(
        db, coach_id=coach_id, action_id=action_id, note=body.note
    )
    return AgentActionRead.model_validate(action)
