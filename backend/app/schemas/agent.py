import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from app.guardrails.types import SafetyViolation, SafetyWarning
from app.models.agent_action import ActionPriority, ActionStatus, ActionType, ConfidenceBand
from app.models.agent_consent import ConsentCategory
from app.models.agent_preferences import AutonomyLevel, ContactMethod


class CanRunResult(BaseModel):
    can_run: bool
    reason: str | None = None


class BlockedCandidate(BaseModel):
    action_type: ActionType
    violations: list[SafetyViolation]


class CycleResult(BaseModel):
    perception_id: uuid.UUID
    action_ids: list[uuid.UUID] = Field(default_factory=list)
    auto_applied_ids: list[uuid.UUID] = Field(default_factory=list)
    blocked: list[BlockedCandidate] = Field(default_factory=list)
    failed: int = 0
    timed_out: bool = False


class AgentActionRead(BaseModel):
    id: uuid.UUID
    athlete_id: uuid.UUID
    perception_id: uuid.UUID | None = None
    action_type: ActionType
    action_data: dict[str, Any]
    reasoning: str
    confidence_score: float
    confidence: ConfidenceBand
    priority: ActionPriority
    status: ActionStatus
    requires_coach_oversight: bool
    guardrail_warnings: list[SafetyWarning] = Field(default_factory=list)
    proposed_at: datetime
    expires_at: datetime
    decided_at: datetime | None = None
    decided_by: str | None = None
    athlete_feedback: str | None = None

    model_config = {"from_attributes": True}


class OversightItemRead(BaseModel):
    id: uuid.UUID
    athlete_id: uuid.UUID
    priority: ActionPriority
    category: str
    action: AgentActionRead


class ActionDecision(BaseModel):
    decided_by: str = Field(..., min_length=1, max_length=64)
    note: str | None = Field(default=None, max_length=1000)


class OversightDecision(BaseModel):
    note: str | None = Field(default=None, max_length=1000)


class PreferencesRead(BaseModel):
    autonomy_level: AutonomyLevel
    allow_workout_modification: bool
    allow_rest_day_injection: bool
    max_intensity_reduction: int
    min_rest_days_per_week: int
    max_consecutive_hard_days: int
    daily_briefing_enabled: bool
    proactive_nudges_enabled: bool
    preferred_contact_method: ContactMethod
    is_default: bool = False

    model_config = {"from_attributes": True}


class PreferencesUpdate(BaseModel):
    autonomy_level: AutonomyLevel | None = None
    allow_workout_modification: bool | None = None
    allow_rest_day_injection: bool | None = None
    max_intensity_reduction: int | None = Field(default=None, ge=0, le=100)
    min_rest_days_per_week: int | None = Field(default=None, ge=0, le=7)
    max_consecutive_hard_days: int | None = Field(default=None, ge=0, le=7)
    daily_briefing_enabled: bool | None = None
    proactive_nudges_enabled: bool | None = None
    preferred_contact_method: ContactMethod | None = None


class ConsentGrant(BaseModel):
    categories: list[ConsentCategory] = Field(..., min_length=1)


class ConsentRead(BaseModel):
    granted: list[ConsentCategory]
    is_withdrawn: bool
    has_required_consent: bool
    can_make_automated_decisions: bool
    consent_version: str | None = None
    consent_given_at: datetime | None = None
    consent_withdrawn_at: datetime | None = None


class DataRequest(BaseModel):
    requested_by: str = Field(..., min_length=1, max_length=64)


class DeletionResult(BaseModel):
    athlete_id: uuid.UUID
    deleted: dict[str, int]
    categories: list[str]
    anonymized: dict[str, int] = Field(default_factory=dict)
    audit_logged: bool
    completed_at: datetime


class DataSummary(BaseModel):
    athlete_id: uuid.UUID
    perceptions: int
    actions: int
    oversight_items: int
    learning_events: int
    preferences: int
    consent: int
    audit_logs: int
