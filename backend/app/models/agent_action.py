"""AgentAction lifecycle record and its coach oversight item.

Lifecycle:
  PROPOSED → ACCEPTED | REJECTED    (human decision)
  AUTO_APPLIED                      (initial state, never via PROPOSED)

ACCEPTED, REJECTED and AUTO_APPLIED are terminal. Expiry is logical: a
PROPOSED action past expires_at drops out of "awaiting decision" views
but keeps its status.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, Float, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, validates
from sqlalchemy.types import JSON

from app.core.errors import InvalidTransitionError
from app.models.base import Base, TimestampMixin, generate_uuid


class ActionType(str, enum.Enum):
    workout_intensity_reduction = "workout_intensity_reduction"
    workout_duration_reduction = "workout_duration_reduction"
    workout_substitution = "workout_substitution"
    workout_skip_recommendation = "workout_skip_recommendation"
    rest_day_injection = "rest_day_injection"
    recovery_activity_suggestion = "recovery_activity_suggestion"
    program_adjustment = "program_adjustment"
    motivational_nudge = "motivational_nudge"
    check_in_request = "check_in_request"


class ActionPriority(str, enum.Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


PRIORITY_RANK: dict[ActionPriority, int] = {
    ActionPriority.low: 0,
    ActionPriority.medium: 1,
    ActionPriority.high: 2,
    ActionPriority.urgent: 3,
}


class ActionStatus(str, enum.Enum):
    proposed = "proposed"
    accepted = "accepted"
    rejected = "rejected"
    auto_applied = "auto_applied"


TERMINAL_STATUSES = frozenset(
    {ActionStatus.accepted, ActionStatus.rejected, ActionStatus.auto_applied}
)


class ConfidenceBand(str, enum.Enum):
    low = "low"              # < 0.50
    medium = "medium"        # < 0.70
    high = "high"            # < 0.85
    very_high = "very_high"


def confidence_band(score: float) -> ConfidenceBand:
    if score < 0.5:
        return ConfidenceBand.low
    if score < 0.7:
        return ConfidenceBand.medium
    if score < 0.85:
        return ConfidenceBand.high
    return ConfidenceBand.very_high


class OversightStatus(str, enum.Enum):
    pending = "pending"
    resolved = "resolved"


class AgentAction(TimestampMixin, Base):
    __tablename__ = "agent_actions"
    __table_args__ = (
        Index("ix_agent_actions_athlete_status", "athlete_id", "status"),
        Index("ix_agent_actions_status_expires", "status", "expires_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    athlete_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("athletes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Explainability only; the action does not belong to the perception.
    perception_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("agent_perceptions.id", ondelete="SET NULL"), nullable=True, index=True
    )
    action_type: Mapped[ActionType] = mapped_column(
        Enum(ActionType, native_enum=False), nullable=False
    )
    action_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    reasoning: Mapped[str] = mapped_column(String(2000), nullable=False, default="")
    confidence_score: Mapped[float] = mapped_column(Float, nullable=False)
    confidence: Mapped[ConfidenceBand] = mapped_column(
        Enum(ConfidenceBand, native_enum=False), nullable=False
    )
    priority: Mapped[ActionPriority] = mapped_column(
        Enum(ActionPriority, native_enum=False),
        nullable=False,
        default=ActionPriority.medium,
    )
    status: Mapped[ActionStatus] = mapped_column(
        Enum(ActionStatus, native_enum=False), nullable=False
    )
    requires_coach_oversight: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    guardrail_warnings: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    proposed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    decided_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    athlete_feedback: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    @validates("status")
    def _validate_status(self, key, value):
        current = self.status
        if current in TERMINAL_STATUSES and value != current:
            raise InvalidTransitionError(
                f"Action {self.id} is {current.value} and cannot become {value.value}"
            )
        if current == ActionStatus.proposed and value == ActionStatus.auto_applied:
            raise InvalidTransitionError("auto_applied is an initial status only")
        return value


class AgentOversightItem(TimestampMixin, Base):
    """A coach review task for an action the agent did not auto-apply."""

    __tablename__ = "agent_oversight_items"
    __table_args__ = (
        Index("ix_agent_oversight_coach_status", "coach_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    action_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("agent_actions.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    athlete_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("athletes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    coach_id: Mapped[str] = mapped_column(String(64), nullable=False)
    priority: Mapped[ActionPriority] = mapped_column(
        Enum(ActionPriority, native_enum=False), nullable=False
    )
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[OversightStatus] = mapped_column(
        Enum(OversightStatus, native_enum=False),
        nullable=False,
        default=OversightStatus.pending,
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    review_note: Mapped[str | None] = mapped_column(String(1000), nullable=True)
