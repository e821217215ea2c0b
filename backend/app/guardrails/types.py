"""Value objects exchanged between the guardrail checks and their callers."""

import enum
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from app.models.agent_action import ActionPriority, ActionType
from app.models.agent_consent import ConsentCategory
from app.models.agent_preferences import AutonomyLevel, ContactMethod


class ViolationSeverity(str, enum.Enum):
    # Both severities block. Severity is for triage and audit display only.
    blocking = "blocking"
    critical = "critical"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# --- Perception snapshot (supplied by the perception provider) ---

class ActiveInjury(_Frozen):
    body_part: str
    pain_level: int = Field(ge=0, le=10)


class TrainingLoad(_Frozen):
    acwr: float | None = Field(default=None, ge=0)
    acute_load: float | None = None
    chronic_load: float | None = None
    zone: str | None = None


class InjuryState(_Frozen):
    active_injuries: tuple[ActiveInjury, ...] = ()


class Readiness(_Frozen):
    readiness_score: float | None = Field(default=None, ge=0, le=100)


class Behavior(_Frozen):
    missed_workouts_7d: int = Field(default=0, ge=0)
    check_in_streak: int = Field(default=0, ge=0)


class PerceptionSnapshot(_Frozen):
    perceived_at: datetime
    training_load: TrainingLoad = TrainingLoad()
    injury: InjuryState = InjuryState()
    readiness: Readiness = Readiness()
    behavior: Behavior = Behavior()


# --- Proposed action (supplied by the decision provider) ---

class ProposedAction(_Frozen):
    action_type: ActionType
    action_data: dict[str, Any] = Field(default_factory=dict)
    reasoning: str = ""
    confidence_score: float = Field(ge=0.0, le=1.0)
    priority: ActionPriority = ActionPriority.medium


# --- Athlete settings as seen by the checks ---

class PreferencesData(_Frozen):
    """Effective preferences: a stored row or the synthesized default."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    autonomy_level: AutonomyLevel
    allow_workout_modification: bool
    allow_rest_day_injection: bool
    max_intensity_reduction: int = Field(ge=0, le=100)
    min_rest_days_per_week: int = Field(ge=0, le=7)
    max_consecutive_hard_days: int = Field(ge=0, le=7)
    daily_briefing_enabled: bool = True
    proactive_nudges_enabled: bool = True
    preferred_contact_method: ContactMethod = ContactMethod.in_app
    is_default: bool = False


class ConsentData(_Frozen):
    granted: frozenset[ConsentCategory] = frozenset()
    withdrawn_at: datetime | None = None

    @property
    def is_withdrawn(self) -> bool:
        return self.withdrawn_at is not None

    @classmethod
    def from_record(cls, record) -> "ConsentData | None":
        if record is None:
            return None
        return cls(granted=record.granted_categories, withdrawn_at=record.consent_withdrawn_at)


# --- Check outputs ---

class SafetyViolation(_Frozen):
    rule: str
    description: str
    severity: ViolationSeverity
    data: dict[str, Any] = Field(default_factory=dict)


class SafetyWarning(_Frozen):
    rule: str
    description: str
    severity: Literal["informational"] = "informational"
    data: dict[str, Any] = Field(default_factory=dict)


class SafetyCheckResult(_Frozen):
    passed: bool
    violations: tuple[SafetyViolation, ...] = ()
    warnings: tuple[SafetyWarning, ...] = ()


class ConsentCheckResult(_Frozen):
    has_required_consent: bool
    is_withdrawn: bool


class BoundsCheckResult(_Frozen):
    valid: bool
    reason: str | None = None


class AutoApplyDecision(_Frozen):
    allowed: bool
    reason: str | None = None


class GuardrailCheckResult(_Frozen):
    can_proceed: bool
    consent_valid: bool
    safety_passed: bool
    can_auto_apply: bool
    violations: tuple[SafetyViolation, ...] = ()
    warnings: tuple[SafetyWarning, ...] = ()
    requires_coach_oversight: bool = False
    auto_apply_reason: str | None = None
