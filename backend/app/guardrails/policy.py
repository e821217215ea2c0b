"""Policy tables: per-action capabilities and per-level autonomy rules.

Adding an action type means adding one ACTION_CAPABILITIES entry and, if it
may be auto-applied, listing it in the level allow-lists below. Both tables
are checked for completeness at import time.
"""

from collections.abc import Callable
from dataclasses import dataclass
from operator import attrgetter

from app.guardrails.types import PreferencesData, ProposedAction
from app.models.agent_action import ActionPriority, ActionType
from app.models.agent_preferences import AutonomyLevel

MIN_CONFIDENCE_FOR_AUTO_ACTION = 0.70

PermissionFlag = Callable[[PreferencesData], bool]

_workout_modification: PermissionFlag = attrgetter("allow_workout_modification")
_rest_day_injection: PermissionFlag = attrgetter("allow_rest_day_injection")
_proactive_nudges: PermissionFlag = attrgetter("proactive_nudges_enabled")


@dataclass(frozen=True)
class ActionCapability:
    permission: PermissionFlag | None = None
    # reduction_percent bounded by max_intensity_reduction
    intensity_bounded: bool = False
    requires_reduction_percent: bool = False
    # rest_days_per_week / consecutive_hard_days bounded by schedule prefs
    schedule_bounded: bool = False
    coach_approval_required: bool = False
    # low-impact messages that never need coach review at low autonomy
    communication: bool = False


ACTION_CAPABILITIES: dict[ActionType, ActionCapability] = {
    ActionType.workout_intensity_reduction: ActionCapability(
        permission=_workout_modification,
        intensity_bounded=True,
        requires_reduction_percent=True,
    ),
    ActionType.workout_duration_reduction: ActionCapability(
        permission=_workout_modification,
        intensity_bounded=True,
    ),
    ActionType.workout_substitution: ActionCapability(permission=_workout_modification),
    ActionType.workout_skip_recommendation: ActionCapability(permission=_workout_modification),
    ActionType.rest_day_injection: ActionCapability(permission=_rest_day_injection),
    ActionType.recovery_activity_suggestion: ActionCapability(),
    ActionType.program_adjustment: ActionCapability(
        schedule_bounded=True,
        coach_approval_required=True,
    ),
    ActionType.motivational_nudge: ActionCapability(
        permission=_proactive_nudges,
        communication=True,
    ),
    ActionType.check_in_request: ActionCapability(communication=True),
}

COACH_APPROVAL_REQUIRED: frozenset[ActionType] = frozenset(
    t for t, cap in ACTION_CAPABILITIES.items() if cap.coach_approval_required
)

_SUPERVISED_AUTO_APPLY = frozenset({
    ActionType.workout_intensity_reduction,
    ActionType.workout_duration_reduction,
    ActionType.workout_substitution,
    ActionType.recovery_activity_suggestion,
    ActionType.motivational_nudge,
    ActionType.check_in_request,
})

_SUPERVISED_OVERSIGHT = frozenset({
    ActionType.workout_skip_recommendation,
    ActionType.rest_day_injection,
    ActionType.program_adjustment,
})


def _unless_communication(action: ProposedAction) -> bool:
    return not ACTION_CAPABILITIES[action.action_type].communication


def _structural_changes(action: ProposedAction) -> bool:
    return action.action_type in _SUPERVISED_OVERSIGHT


def _urgent_only(action: ProposedAction) -> bool:
    return action.priority == ActionPriority.urgent


@dataclass(frozen=True)
class LevelPolicy:
    """What one autonomy level permits.

    auto_apply: action types eligible for auto-apply (still subject to their
    permission flag and bounds). needs_oversight: whether an action that was
    not auto-applied goes to the coach.
    """

    auto_apply: frozenset[ActionType]
    needs_oversight: Callable[[ProposedAction], bool]


AUTONOMY_POLICIES: dict[AutonomyLevel, LevelPolicy] = {
    AutonomyLevel.advisory: LevelPolicy(
        auto_apply=frozenset(),
        needs_oversight=_unless_communication,
    ),
    AutonomyLevel.limited: LevelPolicy(
        auto_apply=frozenset({ActionType.workout_intensity_reduction}),
        needs_oversight=_unless_communication,
    ),
    AutonomyLevel.supervised: LevelPolicy(
        auto_apply=_SUPERVISED_AUTO_APPLY,
        needs_oversight=_structural_changes,
    ),
    AutonomyLevel.autonomous: LevelPolicy(
        auto_apply=_SUPERVISED_AUTO_APPLY | {
            ActionType.rest_day_injection,
            ActionType.workout_skip_recommendation,
        },
        needs_oversight=_urgent_only,
    ),
}


def _check_tables() -> None:
    missing_caps = set(ActionType) - set(ACTION_CAPABILITIES)
    if missing_caps:
        raise RuntimeError(f"No capability entry for: {sorted(t.value for t in missing_caps)}")
    missing_levels = set(AutonomyLevel) - set(AUTONOMY_POLICIES)
    if missing_levels:
        raise RuntimeError(f"No policy for: {sorted(lvl.value for lvl in missing_levels)}")
    for level, policy in AUTONOMY_POLICIES.items():
        if policy.auto_apply & COACH_APPROVAL_REQUIRED:
            raise RuntimeError(f"{level.value} auto-applies a coach-approval action")


_check_tables()
