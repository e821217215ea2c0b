from app.guardrails.policy import ACTION_CAPABILITIES, AUTONOMY_POLICIES
from app.guardrails.types import PreferencesData, ProposedAction


def requires_coach_oversight(
    action: ProposedAction,
    preferences: PreferencesData,
    is_ai_coached: bool,
) -> bool:
    """Whether a non-auto-applied action must be queued for coach review.

    Self-guided athletes have no coach; their escalations go elsewhere.
    """
    if is_ai_coached:
        return False
    if ACTION_CAPABILITIES[action.action_type].coach_approval_required:
        return True
    return AUTONOMY_POLICIES[preferences.autonomy_level].needs_oversight(action)
