"""
Escalation policy: decides when a human must answer instead of the AI.

Two separate steps:
  1. every check is evaluated up front and reported in EscalationFactors;
  2. ESCALATION_RULES is walked in order and the first true check wins.

The order of ESCALATION_RULES is the policy.  Do not reorder it.
"""

import math
from dataclasses import dataclass
from typing import Callable

from concierge.domain.context import ContextData
from concierge.domain.intent import Intent


@dataclass(frozen=True)
class EscalationPolicy:
    """Tunable thresholds; control flow never reads literals."""
    confidence_threshold: float = 0.7
    max_message_length: int = 500
    max_question_segments: int = 3


DEFAULT_POLICY = EscalationPolicy()

PAYMENT_KEYWORDS = ("payment", "charge")


@dataclass(frozen=True)
class EscalationFactors:
    low_confidence: bool
    complaint_detected: bool
    payment_issue: bool
    cancellation_request: bool
    unsafe_content: bool
    complex_query: bool


@dataclass(frozen=True)
class EscalationDecision:
    should_escalate: bool
    confidence: float
    factors: EscalationFactors
    reason: str | None = None


@dataclass(frozen=True)
class _Checks:
    factors: EscalationFactors
    insufficient_context: bool


# (check, reason): first true check wins
ESCALATION_RULES: tuple[tuple[Callable[[_Checks], bool], str], ...] = (
    (lambda c: c.factors.complaint_detected,
     "Complaint or issue reported - requires human attention"),
    (lambda c: c.factors.cancellation_request,
     "Cancellation request - requires owner approval"),
    (lambda c: c.factors.payment_issue,
     "Payment-related inquiry - requires human verification"),
    (lambda c: c.factors.low_confidence,
     "Low confidence response ({percent}%)"),
    (lambda c: c.factors.complex_query,
     "Complex multi-part query - better handled by human"),
    (lambda c: c.insufficient_context,
     "Insufficient property context for accurate response"),
)


def assess_factors(
    confidence: float,
    intent: Intent,
    message: str,
    policy: EscalationPolicy = DEFAULT_POLICY,
    unsafe_content: bool = False,
) -> EscalationFactors:
    lower = message.lower()
    return EscalationFactors(
        low_confidence=confidence < policy.confidence_threshold,
        complaint_detected=intent == "complaint",
        payment_issue=any(keyword in lower for keyword in PAYMENT_KEYWORDS),
        cancellation_request=intent == "cancellation",
        unsafe_content=unsafe_content,
        complex_query=(
            len(message) > policy.max_message_length
            or len(message.split("?")) > policy.max_question_segments
        ),
    )


def should_escalate(
    confidence: float,
    intent: Intent,
    message: str,
    context: ContextData | None = None,
    policy: EscalationPolicy = DEFAULT_POLICY,
    unsafe_content: bool = False,
) -> EscalationDecision:
    """Return whether this turn goes to a human, and the first reason that applies."""
    checks = _Checks(
        factors=assess_factors(confidence, intent, message, policy, unsafe_content),
        # an absent context never trips this rule, only an empty one does
        insufficient_context=(
            context is not None and context.property is None and context.lot is None
        ),
    )

    for check, reason in ESCALATION_RULES:
        if check(checks):
            return EscalationDecision(
                should_escalate=True,
                confidence=confidence,
                factors=checks.factors,
                reason=reason.format(percent=_percent(confidence)),
            )

    return EscalationDecision(
        should_escalate=False,
        confidence=confidence,
        factors=checks.factors,
    )


def _percent(confidence: float) -> int:
    # halves round up: 0.625 reads as 63%
    return math.floor(confidence * 100 + 0.5)
