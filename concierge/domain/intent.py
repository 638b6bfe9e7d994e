"""
Intent & entity analysis: understands what the guest is asking for.

Deterministic keyword matching: the intent table is plain data, so adding a
trigger phrase never touches control flow.  The result feeds the prompt
builder, the confidence model and the escalation policy.
"""

import re
from dataclasses import dataclass
from typing import Literal

Intent = Literal[
    "availability",
    "pricing",
    "booking_info",
    "check_in",
    "amenities",
    "local_info",
    "cancellation",
    "complaint",
    "other",
]
Sentiment = Literal["positive", "neutral", "negative"]
Urgency = Literal["low", "medium", "high"]

# Declaration order matters: on equal match counts the earlier intent wins.
INTENT_KEYWORDS: tuple[tuple[Intent, tuple[str, ...]], ...] = (
    ("availability", (
        "available", "availability", "book", "reserve", "free", "vacant", "dates",
    )),
    ("pricing", (
        "price", "cost", "how much", "fee", "charge", "rate", "total",
    )),
    ("check_in", (
        "check in", "check-in", "checkin", "check out", "checkout",
        "arrival", "departure", "access", "key",
    )),
    ("amenities", (
        "wifi", "parking", "kitchen", "amenities", "facilities", "pool",
        "towels", "linens", "pet", "dog", "cat",
    )),
    ("local_info", (
        "restaurant", "nearby", "area", "attraction", "beach", "shopping",
        "recommend", "things to do", "places to visit",
    )),
    ("cancellation", (
        "cancel", "cancellation", "refund", "change dates", "modify", "reschedule",
    )),
    ("complaint", (
        "problem", "issue", "broken", "not working", "dirty", "complaint",
        "disappointed", "unacceptable",
    )),
    ("booking_info", (
        "my reservation", "booking", "confirmation", "details", "reservation number",
    )),
)

POSITIVE_WORDS = ("great", "thanks", "thank you", "perfect", "excellent", "wonderful", "love")
NEGATIVE_WORDS = (
    "bad", "terrible", "awful", "disappointed", "angry", "frustrated",
    "unacceptable", "problem",
)
URGENT_WORDS = ("urgent", "asap", "immediately", "emergency", "now", "quickly")

ACTION_INTENTS = frozenset({"cancellation", "complaint", "booking_info"})

_MONTHS = (
    "january|february|march|april|may|june|july|august|"
    "september|october|november|december"
)
_DATE_PATTERNS = (
    re.compile(r"\b\d{1,2}[-/]\d{1,2}[-/]\d{2,4}\b"),
    re.compile(rf"\b(?:{_MONTHS})\s+\d{{1,2}}", re.IGNORECASE),
)
_PRICE_PATTERN = re.compile(
    r"[€$£]\s*\d+(?:[.,]\d{2})?|\d+\s*(?:euros?|dollars?)", re.IGNORECASE
)
_PRICE_STRIP = re.compile(r"[€$£,\s]")
_LEADING_NUMBER = re.compile(r"^\d+(?:\.\d+)?")
_GUEST_PATTERN = re.compile(r"(\d+)\s*(?:guests?|people|persons?)", re.IGNORECASE)


@dataclass(frozen=True)
class Entities:
    """Sparse: a field stays None unless its pattern matched."""
    dates: tuple[str, ...] | None = None
    prices: tuple[float, ...] | None = None
    guests: int | None = None
    amenities: tuple[str, ...] | None = None
    locations: tuple[str, ...] | None = None

    def has_any(self) -> bool:
        return any(
            value is not None
            for value in (self.dates, self.prices, self.guests, self.amenities, self.locations)
        )


@dataclass(frozen=True)
class IntentAnalysis:
    """Structured reading of one guest message. No raw text, only data."""
    intent: Intent
    confidence: float               # 0.0–1.0
    entities: Entities
    sentiment: Sentiment
    urgency: Urgency
    requires_action: bool


def classify_intent(message: str) -> tuple[Intent, float]:
    """Return (intent, confidence) from keyword hit counts."""
    lower = message.lower()
    intent: Intent = "other"
    confidence = 0.5
    best = 0
    for candidate, keywords in INTENT_KEYWORDS:
        hits = sum(1 for keyword in keywords if keyword in lower)
        if hits > best:
            best = hits
            intent = candidate
            confidence = min(0.9, 0.5 + 0.1 * hits)
    return intent, confidence


def _parse_price(raw: str) -> float:
    m = _LEADING_NUMBER.match(_PRICE_STRIP.sub("", raw))
    return float(m.group(0)) if m else 0.0


def extract_entities(message: str) -> Entities:
    dates = [d for pattern in _DATE_PATTERNS for d in pattern.findall(message)]
    prices = [_parse_price(p) for p in _PRICE_PATTERN.findall(message)]
    guest_match = _GUEST_PATTERN.search(message)

    return Entities(
        dates=tuple(dates) if dates else None,
        prices=tuple(prices) if prices else None,
        guests=int(guest_match.group(1)) if guest_match else None,
    )


def detect_sentiment(message: str) -> Sentiment:
    lower = message.lower()
    has_positive = any(word in lower for word in POSITIVE_WORDS)
    has_negative = any(word in lower for word in NEGATIVE_WORDS)
    if has_positive and not has_negative:
        return "positive"
    if has_negative and not has_positive:
        return "negative"
    return "neutral"


def detect_urgency(message: str, sentiment: Sentiment) -> Urgency:
    lower = message.lower()
    if any(word in lower for word in URGENT_WORDS):
        return "high"
    return "medium" if sentiment == "negative" else "low"


def analyze_user_message(message: str) -> IntentAnalysis:
    """Classify intent, extract entities, and score sentiment/urgency."""
    intent, confidence = classify_intent(message)
    sentiment = detect_sentiment(message)
    return IntentAnalysis(
        intent=intent,
        confidence=confidence,
        entities=extract_entities(message),
        sentiment=sentiment,
        urgency=detect_urgency(message, sentiment),
        requires_action=intent in ACTION_INTENTS or sentiment == "negative",
    )
