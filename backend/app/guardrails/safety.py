"""Safety evaluator: hard physiological bounds.

These thresholds are fixed and cannot be changed per athlete. Violations
block the action; warnings are recorded for visibility only.
"""

from app.guardrails.types import (
    PerceptionSnapshot,
    ProposedAction,
    SafetyCheckResult,
    SafetyViolation,
    SafetyWarning,
    ViolationSeverity,
)

ACWR_CRITICAL_THRESHOLD = 1.8
ACWR_DANGER_THRESHOLD = 1.5
PAIN_CRITICAL_THRESHOLD = 8
LOW_READINESS_THRESHOLD = 40
MISSED_WORKOUTS_CONCERN = 3


def check_safety(action: ProposedAction, perception: PerceptionSnapshot) -> SafetyCheckResult:
    """Evaluate an action against the athlete's current state.

    Null ACWR or readiness means insufficient data and skips that rule.
    Output order is fixed: ACWR, pain (in injury order), readiness, missed
    workouts.
    """
    violations: list[SafetyViolation] = []
    warnings: list[SafetyWarning] = []
    context = {"action_type": action.action_type.value}

    acwr = perception.training_load.acwr
    if acwr is not None:
        if acwr >= ACWR_CRITICAL_THRESHOLD:
            violations.append(SafetyViolation(
                rule="ACWR_CRITICAL",
                description=(
                    f"Acute:chronic workload ratio {acwr:.2f} is at or above "
                    f"the critical threshold {ACWR_CRITICAL_THRESHOLD}"
                ),
                severity=ViolationSeverity.critical,
                data={**context, "acwr": acwr, "threshold": ACWR_CRITICAL_THRESHOLD},
            ))
        elif acwr >= ACWR_DANGER_THRESHOLD:
            warnings.append(SafetyWarning(
                rule="ACWR_DANGER",
                description=f"Acute:chronic workload ratio {acwr:.2f} is in the danger zone",
                data={**context, "acwr": acwr, "threshold": ACWR_DANGER_THRESHOLD},
            ))

    for injury in perception.injury.active_injuries:
        if injury.pain_level >= PAIN_CRITICAL_THRESHOLD:
            violations.append(SafetyViolation(
                rule="PAIN_CRITICAL",
                description=(
                    f"Pain level {injury.pain_level}/10 reported for {injury.body_part}"
                ),
                severity=ViolationSeverity.critical,
                data={
                    **context,
                    "body_part": injury.body_part,
                    "pain_level": injury.pain_level,
                    "threshold": PAIN_CRITICAL_THRESHOLD,
                },
            ))

    readiness = perception.readiness.readiness_score
    if readiness is not None and readiness < LOW_READINESS_THRESHOLD:
        warnings.append(SafetyWarning(
            rule="LOW_READINESS",
            description=f"Readiness score {readiness:g} is below {LOW_READINESS_THRESHOLD}",
            data={**context, "readiness_score": readiness, "threshold": LOW_READINESS_THRESHOLD},
        ))

    missed = perception.behavior.missed_workouts_7d
    if missed >= MISSED_WORKOUTS_CONCERN:
        warnings.append(SafetyWarning(
            rule="MISSED_WORKOUTS",
            description=f"{missed} workouts missed in the last 7 days",
            data={**context, "missed_workouts_7d": missed, "threshold": MISSED_WORKOUTS_CONCERN},
        ))

    return SafetyCheckResult(
        passed=not violations,
        violations=tuple(violations),
        warnings=tuple(warnings),
    )
