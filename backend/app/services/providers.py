"""Interfaces of the agent's external collaborators.

Perception and decision generation live outside this service. Deployments
attach implementations to app.state (perception_provider, decision_provider).
"""

import uuid
from typing import Protocol

from app.guardrails.types import PerceptionSnapshot, ProposedAction


class PerceptionProvider(Protocol):
    async def perceive(self, athlete_id: uuid.UUID) -> PerceptionSnapshot:
        """Read the athlete's current training-load, injury, readiness and behavior state."""
        ...


class DecisionProvider(Protocol):
    async def propose(
        self,
        athlete_id: uuid.UUID,
        snapshot: PerceptionSnapshot,
    ) -> list[ProposedAction]:
        """Candidate actions for this snapshot. None of them is guaranteed to apply."""
        ...
