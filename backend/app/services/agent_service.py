"""Agent cycle service: one end-to-end perceive → decide → guard → persist run.

Cycle:
1. Consent gate. On failure nothing is captured (ConsentError).
2. Capture and persist a perception snapshot.
3. Ask the decision provider for candidates (time-bounded; a timeout
   yields no candidates).
4. Run check_guardrails per candidate. One candidate failing to evaluate
   does not affect the others; blocked candidates are audited, not stored.
5. Persist each surviving candidate as an AUTO_APPLIED or PROPOSED action.

The whole cycle holds the athlete's lock and commits once. A storage error
rolls back and raises StorageFailure.
"""

import asyncio
import logging
import uuid

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.errors import AthleteNotFoundError, ConsentError, ProviderUnavailableError, StorageFailure
from app.core.locks import AthleteLockRegistry, athlete_locks
from app.guardrails.consent_gate import consent_block_reason
from app.guardrails.orchestrator import check_guardrails
from app.guardrails.types import (
    ConsentData,
    GuardrailCheckResult,
    PerceptionSnapshot,
    PreferencesData,
    ProposedAction,
)
from app.models.agent_action import ActionStatus
from app.models.agent_perception import AgentPerception
from app.models.audit import ActorType
from app.schemas.agent import BlockedCandidate, CanRunResult, CycleResult
from app.services import action_service, audit_service, consent_service, preferences_service
from app.services.providers import DecisionProvider, PerceptionProvider

logger = logging.getLogger("pacekeeper.agent")


async def can_run_agent(db: AsyncSession, athlete_id: uuid.UUID) -> CanRunResult:
    try:
        await preferences_service.get_athlete(db, athlete_id)
    except AthleteNotFoundError as exc:
        return CanRunResult(can_run=False, reason=exc.detail)
    consent = await consent_service.get_consent_data(db, athlete_id)
    reason = consent_block_reason(consent)
    return CanRunResult(can_run=reason is None, reason=reason)


def evaluate_candidates(
    candidates: list[ProposedAction],
    snapshot: PerceptionSnapshot,
    consent: ConsentData | None,
    preferences: PreferencesData,
    is_ai_coached: bool,
) -> tuple[list[tuple[ProposedAction, GuardrailCheckResult]], int]:
    """Guardrail verdicts for each candidate, plus the count that failed to evaluate."""
    verdicts = []
    failed = 0
    for candidate in candidates:
        try:
            verdict = check_guardrails(candidate, snapshot, consent, preferences, is_ai_coached)
        except Exception:
            failed += 1
            logger.exception(
                "guardrail evaluation failed action_type=%s",
                getattr(candidate, "action_type", None),
            )
            continue
        verdicts.append((candidate, verdict))
    return verdicts, failed


async def _capture_perception(
    db: AsyncSession,
    athlete_id: uuid.UUID,
    provider: PerceptionProvider,
) -> tuple[PerceptionSnapshot, AgentPerception]:
    try:
        snapshot = await provider.perceive(athlete_id)
    except Exception as exc:
        logger.exception("perception failed athlete_id=%s", athlete_id)
        raise ProviderUnavailableError("Perception provider failed") from exc

    injuries = snapshot.injury.active_injuries
    perception = AgentPerception(
        athlete_id=athlete_id,
        perceived_at=snapshot.perceived_at,
        acwr=snapshot.training_load.acwr,
        acute_load=snapshot.training_load.acute_load,
        chronic_load=snapshot.training_load.chronic_load,
        acwr_zone=snapshot.training_load.zone,
        readiness_score=snapshot.readiness.readiness_score,
        has_active_injury=bool(injuries),
        max_pain_level=max((i.pain_level for i in injuries), default=None),
        missed_workouts_7d=snapshot.behavior.missed_workouts_7d,
        check_in_streak=snapshot.behavior.check_in_streak,
        snapshot=snapshot.model_dump(mode="json"),
    )
    db.add(perception)
    await db.flush()
    return snapshot, perception


async def _propose(
    provider: DecisionProvider,
    athlete_id: uuid.UUID,
    snapshot: PerceptionSnapshot,
) -> tuple[list[ProposedAction], bool]:
    """Candidates from the decision provider; (candidates, timed_out)."""
    try:
        candidates = await asyncio.wait_for(
            provider.propose(athlete_id, snapshot),
            timeout=settings.decision_timeout_seconds,
        )
    except asyncio.TimeoutError:
        logger.warning(
            "decision provider timed out athlete_id=%s timeout_s=%.1f",
            athlete_id,
            settings.decision_timeout_seconds,
        )
        return [], True
    except Exception:
        logger.exception("decision provider failed athlete_id=%s", athlete_id)
        return [], False
    return list(candidates or []), False


async def run_agent_cycle(
    db: AsyncSession,
    athlete_id: uuid.UUID,
    *,
    perception_provider: PerceptionProvider,
    decision_provider: DecisionProvider,
    locks: AthleteLockRegistry = athlete_locks,
) -> CycleResult:
    async with locks.hold(athlete_id):
        athlete = await preferences_service.get_athlete(db, athlete_id)
        consent = await consent_service.get_consent_data(db, athlete_id)
        reason = consent_block_reason(consent)
        if reason is not None:
            logger.info("agent cycle refused athlete_id=%s reason=%s", athlete_id, reason)
            raise ConsentError(reason)

        try:
            preferences = await preferences_service.get_preferences(
                db, athlete_id, is_ai_coached=athlete.is_ai_coached
            )

            snapshot, perception = await _capture_perception(db, athlete_id, perception_provider)
            candidates, timed_out = await _propose(decision_provider, athlete_id, snapshot)
            verdicts, failed = evaluate_candidates(
                candidates, snapshot, consent, preferences, athlete.is_ai_coached
            )

            result = CycleResult(perception_id=perception.id, failed=failed, timed_out=timed_out)
            for candidate, verdict in verdicts:
                if not verdict.can_proceed:
                    result.blocked.append(BlockedCandidate(
                        action_type=candidate.action_type,
                        violations=list(verdict.violations),
                    ))
                    await audit_service.log_event(
                        db,
                        athlete_id=athlete_id,
                        action="ACTION_BLOCKED",
                        resource="AgentPerception",
                        resource_id=perception.id,
                        details={
                            "action_type": candidate.action_type.value,
                            "violations": [v.model_dump(mode="json") for v in verdict.violations],
                        },
                        actor_type=ActorType.agent,
                    )
                    continue

                action = await action_service.create_action(
                    db,
                    athlete_id=athlete_id,
                    proposed=candidate,
                    verdict=verdict,
                    perception_id=perception.id,
                    coach_id=athlete.coach_id,
                )
                result.action_ids.append(action.id)
                if action.status == ActionStatus.auto_applied:
                    result.auto_applied_ids.append(action.id)

            await audit_service.log_event(
                db,
                athlete_id=athlete_id,
                action="CYCLE_COMPLETED",
                resource="AgentPerception",
                resource_id=perception.id,
                details={
                    "candidates": len(candidates),
                    "actions": len(result.action_ids),
                    "auto_applied": len(result.auto_applied_ids),
                    "blocked": len(result.blocked),
                    "failed": failed,
                    "timed_out": timed_out,
                },
                actor_type=ActorType.agent,
            )
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.exception("agent cycle aborted by storage failure athlete_id=%s", athlete_id)
            raise StorageFailure("Agent cycle aborted: storage failure") from exc

    logger.info(
        "agent cycle complete athlete_id=%s actions=%d auto_applied=%d blocked=%d failed=%d",
        athlete_id,
        len(result.action_ids),
        len(result.auto_applied_ids),
        len(result.blocked),
        failed,
    )
    return result
