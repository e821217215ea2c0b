"""Autonomy policy: may an action be applied without human approval?

Ladder, first failing rung wins:
1. ADVISORY never auto-applies.
2. Coach-approval action types never auto-apply.
3. Confidence below MIN_CONFIDENCE_FOR_AUTO_ACTION never auto-applies.
4. The action type must be in the level's allow-list.
5. The action's permission flag must be on.
6. The action must be within the athlete's numeric bounds.

Live safety state is not consulted here; check_guardrails combines the two.
"""

import math
from numbers import Real

from app.guardrails.policy import (
    ACTION_CAPABILITIES,
    AUTONOMY_POLICIES,
    MIN_CONFIDENCE_FOR_AUTO_ACTION,
)
from app.guardrails.types import (
    AutoApplyDecision,
    BoundsCheckResult,
    PreferencesData,
    ProposedAction,
)
from app.models.agent_preferences import AutonomyLevel


def auto_apply_decision(action: ProposedAction, preferences: PreferencesData) -> AutoApplyDecision:
    level = preferences.autonomy_level
    policy = AUTONOMY_POLICIES[level]
    capability = ACTION_CAPABILITIES[action.action_type]

    if level == AutonomyLevel.advisory:
        return AutoApplyDecision(allowed=False, reason="Advisory mode - recommendations only")
    if capability.coach_approval_required:
        return AutoApplyDecision(allowed=False, reason="Action type requires coach approval")
    if action.confidence_score < MIN_CONFIDENCE_FOR_AUTO_ACTION:
        return AutoApplyDecision(
            allowed=False,
            reason=(
                f"Confidence {action.confidence_score:.2f} below "
                f"{MIN_CONFIDENCE_FOR_AUTO_ACTION:.2f} threshold for auto-apply"
            ),
        )
    if action.action_type not in policy.auto_apply:
        return AutoApplyDecision(
            allowed=False,
            reason=f"{action.action_type.value} is not auto-applied at {level.value} autonomy",
        )
    if capability.permission is not None and not capability.permission(preferences):
        return AutoApplyDecision(
            allowed=False,
            reason=f"{action.action_type.value} is not permitted by athlete preferences",
        )
    bounds = validate_action_bounds(action, preferences)
    if not bounds.valid:
        return AutoApplyDecision(allowed=False, reason=bounds.reason)
    return AutoApplyDecision(allowed=True)


def can_auto_apply(action: ProposedAction, preferences: PreferencesData) -> bool:
    return auto_apply_decision(action, preferences).allowed


def _is_number(value) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def validate_action_bounds(action: ProposedAction, preferences: PreferencesData) -> BoundsCheckResult:
    """Check the action's numeric parameters against the athlete's bounds.

    Independent of autonomy level, so it also gates human-accepted actions.
    Permission flags are not bounds: they only govern auto-apply.
    """
    capability = ACTION_CAPABILITIES[action.action_type]
    data = action.action_data

    if capability.intensity_bounded:
        percent = data.get("reduction_percent")
        if percent is None:
            if capability.requires_reduction_percent:
                return BoundsCheckResult(
                    valid=False,
                    reason=f"reduction_percent is required for {action.action_type.value}",
                )
        elif not _is_number(percent) or percent <= 0 or percent > 100:
            return BoundsCheckResult(
                valid=False,
                reason=f"reduction_percent must be a number in (0, 100], got {percent!r}",
            )
        elif percent > preferences.max_intensity_reduction:
            return BoundsCheckResult(
                valid=False,
                reason=(
                    f"Reduction {percent:g}% exceeds max "
                    f"{preferences.max_intensity_reduction}%"
                ),
            )

    if capability.schedule_bounded:
        rest_days = data.get("rest_days_per_week")
        if rest_days is not None and (
            not _is_number(rest_days) or rest_days < preferences.min_rest_days_per_week
        ):
            return BoundsCheckResult(
                valid=False,
                reason=(
                    f"{rest_days!r} rest days per week is below the minimum "
                    f"of {preferences.min_rest_days_per_week}"
                ),
            )
        hard_days = data.get("consecutive_hard_days")
        if hard_days is not None and (
            not _is_number(hard_days) or hard_days > preferences.max_consecutive_hard_days
        ):
            return BoundsCheckResult(
                valid=False,
                reason=(
                    f"{hard_days!r} consecutive hard days exceeds the maximum "
                    f"of {preferences.max_consecutive_hard_days}"
                ),
            )

    return BoundsCheckResult(valid=True)
