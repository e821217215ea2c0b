"""Preferences service: effective autonomy settings per athlete.

Lookup never returns None. Without a stored row the default depends on
who coaches the athlete:
- self-guided (AI-coached): SUPERVISED, workout modification allowed
- human-coached: ADVISORY, nothing modified without the coach
All writes audit-logged.
"""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import AthleteNotFoundError
from app.guardrails.types import PreferencesData
from app.models.agent_preferences import AgentPreferences, AutonomyLevel, ContactMethod
from app.models.athlete import Athlete
from app.models.audit import ActorType
from app.services import audit_service

_COMMON_DEFAULTS = {
    "allow_rest_day_injection": False,
    "max_intensity_reduction": 20,
    "min_rest_days_per_week": 1,
    "max_consecutive_hard_days": 3,
    "daily_briefing_enabled": True,
    "proactive_nudges_enabled": True,
    "preferred_contact_method": ContactMethod.in_app,
}

SELF_GUIDED_DEFAULTS = {
    **_COMMON_DEFAULTS,
    "autonomy_level": AutonomyLevel.supervised,
    "allow_workout_modification": True,
}

COACHED_DEFAULTS = {
    **_COMMON_DEFAULTS,
    "autonomy_level": AutonomyLevel.advisory,
    "allow_workout_modification": False,
}

UPDATABLE_FIELDS = frozenset(SELF_GUIDED_DEFAULTS)


def default_preferences(is_ai_coached: bool) -> PreferencesData:
    values = SELF_GUIDED_DEFAULTS if is_ai_coached else COACHED_DEFAULTS
    return PreferencesData(**values, is_default=True)


async def get_athlete(db: AsyncSession, athlete_id: uuid.UUID) -> Athlete:
    result = await db.execute(select(Athlete).where(Athlete.id == athlete_id))
    athlete = result.scalar_one_or_none()
    if athlete is None:
        raise AthleteNotFoundError(f"Athlete {athlete_id} not found")
    return athlete


async def _get_row(db: AsyncSession, athlete_id: uuid.UUID) -> AgentPreferences | None:
    result = await db.execute(
        select(AgentPreferences).where(AgentPreferences.athlete_id == athlete_id)
    )
    return result.scalar_one_or_none()


async def get_preferences(
    db: AsyncSession,
    athlete_id: uuid.UUID,
    *,
    is_ai_coached: bool | None = None,
) -> PreferencesData:
    """Stored preferences, or the default for this athlete. Never None."""
    row = await _get_row(db, athlete_id)
    if row is not None:
        return PreferencesData.model_validate(row)
    if is_ai_coached is None:
        is_ai_coached = (await get_athlete(db, athlete_id)).is_ai_coached
    return default_preferences(is_ai_coached)


async def ensure_preferences(db: AsyncSession, athlete_id: uuid.UUID) -> AgentPreferences:
    """Create-if-absent with the documented default."""
    row = await _get_row(db, athlete_id)
    if row is not None:
        return row
    athlete = await get_athlete(db, athlete_id)
    defaults = default_preferences(athlete.is_ai_coached)
    row = AgentPreferences(
        athlete_id=athlete_id,
        **defaults.model_dump(include=UPDATABLE_FIELDS),
    )
    db.add(row)
    await db.flush()
    return row


async def update_preferences(
    db: AsyncSession,
    *,
    athlete_id: uuid.UUID,
    changes: dict,
    actor_type: ActorType = ActorType.athlete,
    actor_id: str | None = None,
    ip_address: str | None = None,
) -> AgentPreferences:
    """Upsert preferences. Unknown fields raise ValueError."""
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown preference fields: {sorted(unknown)}")

    row = await ensure_preferences(db, athlete_id)
    merged = PreferencesData.model_validate(row).model_copy(update=changes)
    # Re-validate so bounds (e.g. 0-100 reduction) hold for the merged record
    merged = PreferencesData.model_validate(merged.model_dump())
    for field in changes:
        setattr(row, field, getattr(merged, field))
    await db.flush()

    await audit_service.log_event(
        db,
        athlete_id=athlete_id,
        action="PREFERENCES_UPDATED",
        resource="AgentPreferences",
        resource_id=row.id,
        details={
            field: value.value if hasattr(value, "value") else value
            for field, value in changes.items()
        },
        actor_type=actor_type,
        actor_id=actor_id,
        ip_address=ip_address,
    )
    return row
