"""Guardrail orchestrator: one verdict per proposed action.

Order: consent, safety, bounds. Any violation of any severity blocks.
Auto-apply additionally needs automated-decision consent and the autonomy
policy; coach oversight is only routed for actions not auto-applied.
"""

from app.guardrails.autonomy import auto_apply_decision, validate_action_bounds
from app.guardrails.consent_gate import (
    can_make_automated_decisions,
    consent_block_reason,
    consent_is_valid,
)
from app.guardrails.oversight import requires_coach_oversight
from app.guardrails.safety import check_safety
from app.guardrails.types import (
    ConsentData,
    GuardrailCheckResult,
    PerceptionSnapshot,
    PreferencesData,
    ProposedAction,
    SafetyViolation,
    ViolationSeverity,
)


def check_guardrails(
    action: ProposedAction,
    perception: PerceptionSnapshot,
    consent: ConsentData | None,
    preferences: PreferencesData,
    is_ai_coached: bool,
) -> GuardrailCheckResult:
    violations: list[SafetyViolation] = []

    consent_valid = consent_is_valid(consent)
    if not consent_valid:
        violations.append(SafetyViolation(
            rule="CONSENT_REQUIRED",
            description=consent_block_reason(consent),
            severity=ViolationSeverity.blocking,
        ))

    safety = check_safety(action, perception)
    violations.extend(safety.violations)

    bounds = validate_action_bounds(action, preferences)
    if not bounds.valid:
        violations.append(SafetyViolation(
            rule="BOUNDS_EXCEEDED",
            description=bounds.reason,
            severity=ViolationSeverity.blocking,
            data={"action_type": action.action_type.value, "action_data": dict(action.action_data)},
        ))

    can_proceed = not violations

    auto_reason = None
    auto_apply = False
    if not can_proceed:
        auto_reason = "Blocked by guardrail violations"
    elif not can_make_automated_decisions(consent):
        auto_reason = "Automated decision consent not granted"
    else:
        decision = auto_apply_decision(action, preferences)
        auto_apply = decision.allowed
        auto_reason = decision.reason

    oversight = False
    if not auto_apply:
        oversight = requires_coach_oversight(action, preferences, is_ai_coached)

    return GuardrailCheckResult(
        can_proceed=can_proceed,
        consent_valid=consent_valid,
        safety_passed=safety.passed,
        can_auto_apply=auto_apply,
        violations=tuple(violations),
        warnings=safety.warnings,
        requires_coach_oversight=oversight,
        auto_apply_reason=auto_reason,
    )
