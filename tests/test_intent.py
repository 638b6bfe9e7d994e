"""
Intent & entity analysis on realistic guest messages.

Pure functions: no store, no provider.
"""

import dataclasses

import pytest

from concierge.domain.intent import (
    INTENT_KEYWORDS,
    Entities,
    analyze_user_message,
    classify_intent,
    extract_entities,
)


# ---------------------------------------------------------------------------
# Intent classification
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("message, intent, confidence", [
    ("Is the apartment available from June 3 to June 7?", "availability", 0.6),
    ("How much does a night cost for 4 guests?", "pricing", 0.7),
    ("What time is check-in?", "check_in", 0.6),
    ("What's the wifi password?", "amenities", 0.6),
    ("Any good restaurant nearby?", "local_info", 0.7),
    ("The shower is broken and the room is dirty", "complaint", 0.7),
    ("Can you send the booking confirmation?", "booking_info", 0.7),
    ("Can you check my reservation details?", "booking_info", 0.7),
    ("Hello there", "other", 0.5),
])
def test_classify_intent(message, intent, confidence):
    got_intent, got_confidence = classify_intent(message)
    assert got_intent == intent
    assert got_confidence == pytest.approx(confidence)


def test_classification_is_case_insensitive():
    assert classify_intent("WIFI PLEASE")[0] == "amenities"


def test_tie_keeps_earlier_declared_intent():
    # one availability hit, one amenities hit
    assert classify_intent("Is parking available?")[0] == "availability"


def test_confidence_is_capped():
    intent, confidence = classify_intent(
        "wifi parking kitchen pool towels linens amenities facilities"
    )
    assert intent == "amenities"
    assert confidence == pytest.approx(0.9)


def test_every_intent_except_other_has_keywords():
    declared = [intent for intent, keywords in INTENT_KEYWORDS if keywords]
    assert set(declared) == {
        "availability", "pricing", "booking_info", "check_in", "amenities",
        "local_info", "cancellation", "complaint",
    }


# ---------------------------------------------------------------------------
# Entity extraction
# ---------------------------------------------------------------------------

def test_no_entities_by_default():
    entities = extract_entities("Hello there")
    assert entities == Entities()
    assert not entities.has_any()


def test_month_dates():
    entities = extract_entities("Is it free from June 3 to June 7?")
    assert entities.dates == ("June 3", "June 7")


def test_numeric_dates_come_before_month_dates():
    entities = extract_entities("We arrive July 2 and leave 12/07/2026")
    assert entities.dates == ("12/07/2026", "July 2")


def test_prices_with_symbol_and_with_word():
    entities = extract_entities("Is €150 per night ok? My budget is 200 euros")
    assert entities.prices == (150.0, 200.0)


def test_price_with_decimals():
    assert extract_entities("They charged me $99.50").prices == (99.5,)


def test_guest_count():
    assert extract_entities("We are 2 adults, 5 people in total").guests == 5
    assert extract_entities("Just 1 person").guests == 1


def test_locations_are_never_populated():
    assert extract_entities("Is the villa near the beach in Antibes?").locations is None


def test_entities_are_immutable():
    entities = extract_entities("4 guests")
    with pytest.raises(dataclasses.FrozenInstanceError):
        entities.guests = 5


# ---------------------------------------------------------------------------
# Sentiment, urgency, requires_action
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("message, sentiment", [
    ("Thanks, the place is perfect", "positive"),
    ("This is terrible", "negative"),
    ("Thanks but there is a problem", "neutral"),
    ("What time is check-in?", "neutral"),
])
def test_sentiment(message, sentiment):
    assert analyze_user_message(message).sentiment == sentiment


def test_urgency_high_on_keyword():
    assert analyze_user_message("Please reply asap").urgency == "high"


def test_urgency_medium_when_negative():
    assert analyze_user_message("This is terrible").urgency == "medium"


def test_urgency_low_otherwise():
    assert analyze_user_message("What time is check-in?").urgency == "low"


def test_negative_sentiment_requires_action():
    analysis = analyze_user_message("This is terrible")
    assert analysis.intent == "other"
    assert analysis.requires_action is True


def test_informational_question_requires_no_action():
    assert analyze_user_message("What's the wifi password?").requires_action is False


def test_cancellation_scenario():
    analysis = analyze_user_message("I need to cancel my reservation, it's urgent")
    assert analysis.intent == "cancellation"
    assert analysis.urgency == "high"
    assert analysis.requires_action is True


def test_empty_message():
    analysis = analyze_user_message("")
    assert analysis.intent == "other"
    assert analysis.confidence == 0.5
    assert not analysis.entities.has_any()
    assert analysis.sentiment == "neutral"
    assert analysis.urgency == "low"
    assert analysis.requires_action is False


@pytest.mark.parametrize("message", [
    "",
    "?",
    "wifi " * 50,
    "I need to cancel my reservation, it's urgent",
    "Bonjour, est-ce que le parking est gratuit ?",
])
def test_analysis_is_deterministic_and_bounded(message):
    first = analyze_user_message(message)
    assert first == analyze_user_message(message)
    assert 0.5 <= first.confidence <= 0.9
