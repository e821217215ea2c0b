"""Consent gate over an athlete's agent consent.

A missing record, a withdrawal or a missing required category stops the
whole agent cycle. Automated decisions need one more category on top.
"""

from app.guardrails.types import ConsentCheckResult, ConsentData
from app.models.agent_consent import ConsentCategory

REQUIRED_CONSENTS = frozenset({
    ConsentCategory.data_processing,
    ConsentCategory.health_data_processing,
})

AUTOMATED_DECISION_CONSENTS = REQUIRED_CONSENTS | {ConsentCategory.automated_decisions}

NO_CONSENT_REASON = "Agent consent has not been given"
WITHDRAWN_REASON = "Consent has been withdrawn"
MISSING_REQUIRED_REASON = "Required consents have not been granted"


def check_consent(consent: ConsentData | None) -> ConsentCheckResult:
    if consent is None:
        return ConsentCheckResult(has_required_consent=False, is_withdrawn=False)
    return ConsentCheckResult(
        has_required_consent=REQUIRED_CONSENTS <= consent.granted,
        is_withdrawn=consent.is_withdrawn,
    )


def consent_is_valid(consent: ConsentData | None) -> bool:
    result = check_consent(consent)
    return result.has_required_consent and not result.is_withdrawn


def can_make_automated_decisions(consent: ConsentData | None) -> bool:
    """Whether actions may be applied without a human in the loop."""
    if not consent_is_valid(consent):
        return False
    return AUTOMATED_DECISION_CONSENTS <= consent.granted


def consent_block_reason(consent: ConsentData | None) -> str | None:
    """Why the agent may not run for this consent, or None if it may."""
    if consent is None:
        return NO_CONSENT_REASON
    if consent.is_withdrawn:
        return WITHDRAWN_REASON
    if not REQUIRED_CONSENTS <= consent.granted:
        return MISSING_REQUIRED_REASON
    return None
