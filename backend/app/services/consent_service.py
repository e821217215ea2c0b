"""Consent service: grant, withdraw and read agent consent.

Every consent change is logged to the audit log. All categories default
to not granted; nothing is consented on the athlete's behalf.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.guardrails.types import ConsentData
from app.models.agent_consent import CURRENT_CONSENT_VERSION, AgentConsent, ConsentCategory
from app.models.audit import ActorType
from app.services import audit_service


async def get_consent(db: AsyncSession, athlete_id: uuid.UUID) -> AgentConsent | None:
    result = await db.execute(
        select(AgentConsent).where(AgentConsent.athlete_id == athlete_id)
    )
    return result.scalar_one_or_none()


async def get_consent_data(db: AsyncSession, athlete_id: uuid.UUID) -> ConsentData | None:
    """Consent as seen by the guardrail checks (None when never given)."""
    return ConsentData.from_record(await get_consent(db, athlete_id))


async def ensure_consent(db: AsyncSession, athlete_id: uuid.UUID) -> AgentConsent:
    """Create-if-absent with every category off."""
    consent = await get_consent(db, athlete_id)
    if consent is None:
        consent = AgentConsent(athlete_id=athlete_id)
        db.add(consent)
        await db.flush()
    return consent


async def grant_consent(
    db: AsyncSession,
    *,
    athlete_id: uuid.UUID,
    categories: set[ConsentCategory] | frozenset[ConsentCategory],
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AgentConsent:
    """Grant the given categories. A grant after withdrawal reinstates consent."""
    consent = await ensure_consent(db, athlete_id)
    reinstated = consent.consent_withdrawn_at is not None

    for category in categories:
        setattr(consent, category.value, True)
    consent.consent_given_at = datetime.now(timezone.utc)
    consent.consent_withdrawn_at = None
    consent.consent_version = CURRENT_CONSENT_VERSION
    consent.ip_address = ip_address
    consent.user_agent = user_agent
    await db.flush()

    await audit_service.log_event(
        db,
        athlete_id=athlete_id,
        action="CONSENT_GRANTED",
        resource="AgentConsent",
        resource_id=consent.id,
        details={
            "categories": sorted(c.value for c in categories),
            "consent_version": CURRENT_CONSENT_VERSION,
            "reinstated": reinstated,
        },
        actor_type=ActorType.athlete,
        actor_id=str(athlete_id),
        ip_address=ip_address,
    )
    return consent


async def withdraw_consent(
    db: AsyncSession,
    *,
    athlete_id: uuid.UUID,
    ip_address: str | None = None,
) -> AgentConsent | None:
    """Withdraw all agent consent. Returns None if none was ever given."""
    consent = await get_consent(db, athlete_id)
    if consent is None:
        return None

    for category in ConsentCategory:
        setattr(consent, category.value, False)
    consent.consent_withdrawn_at = datetime.now(timezone.utc)
    await db.flush()

    await audit_service.log_event(
        db,
        athlete_id=athlete_id,
        action="CONSENT_WITHDRAWN",
        resource="AgentConsent",
        resource_id=consent.id,
        actor_type=ActorType.athlete,
        actor_id=str(athlete_id),
        ip_address=ip_address,
    )
    return consent
