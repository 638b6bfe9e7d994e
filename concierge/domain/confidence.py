"""
Confidence model: how much we trust an auto-generated reply.

Independent signals are scored in [0, 1] and folded into one number with a
fixed weighted average.  Factors that are absent (most often the model's own
confidence) are left out of both numerator and denominator.
"""

from dataclasses import dataclass, fields

from concierge.domain.context import ContextData
from concierge.domain.intent import IntentAnalysis

CONFIDENCE_WEIGHTS: dict[str, float] = {
    "message_clarity": 0.15,
    "context_availability": 0.25,
    "intent_confidence": 0.25,
    "entity_extraction": 0.10,
    "safety_score": 0.15,
    "model_confidence": 0.10,
}

NEUTRAL_CONFIDENCE = 0.5
UNSAFE_SAFETY_SCORE = 0.3


@dataclass
class ConfidenceFactors:
    message_clarity: float | None = None
    context_availability: float | None = None
    intent_confidence: float | None = None
    entity_extraction: float | None = None
    safety_score: float | None = None
    model_confidence: float | None = None   # provider-supplied, often absent


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def calculate_confidence(factors: ConfidenceFactors) -> float:
    """Weighted mean of the present factors, clamped to [0, 1]."""
    total = 0.0
    weight_used = 0.0
    for f in fields(factors):
        value = getattr(factors, f.name)
        if value is None:
            continue
        weight = CONFIDENCE_WEIGHTS[f.name]
        total += value * weight
        weight_used += weight

    if weight_used == 0:
        return NEUTRAL_CONFIDENCE
    return _clamp(total / weight_used)


def assess_message_clarity(message: str) -> float:
    score = 0.5
    if 10 <= len(message) <= 200:
        score += 0.2
    elif 200 < len(message) <= 500:
        score += 0.1
    if "?" in message:
        score += 0.1
    if message[:1].isupper():
        score += 0.1
    # all-caps reads as shouting
    if message != message.upper():
        score += 0.1
    return min(1.0, score)


def assess_context_availability(context: ContextData | None) -> float:
    if context is None:
        return 0.0
    score = 0.0
    if context.conversation_history:
        score += 0.2
    if context.property is not None:
        score += 0.3
    if context.lot is not None:
        score += 0.2
    if context.reservation is not None:
        score += 0.3
    return min(1.0, score)


def build_confidence_factors(
    message: str,
    context: ContextData | None,
    analysis: IntentAnalysis,
    model_confidence: float | None = None,
    safety_score: float = 1.0,
) -> ConfidenceFactors:
    return ConfidenceFactors(
        message_clarity=assess_message_clarity(message),
        context_availability=assess_context_availability(context),
        intent_confidence=analysis.confidence,
        entity_extraction=0.8 if analysis.entities.has_any() else 0.5,
        safety_score=safety_score,
        model_confidence=model_confidence,
    )
