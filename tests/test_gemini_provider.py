"""
GeminiProvider offline tests: a fake requests session stands in for the API.
"""

import pytest
import requests

from concierge.adapters.gemini_provider import GeminiProvider, parse_safety_ratings
from concierge.domain.context import ContextData, ConversationMessage
from concierge.domain.errors import ProviderError
from concierge.domain.generation import GenerateParams


class FakeResponse:

    def __init__(self, payload: dict, status: int = 200):
        self._payload = payload
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)

    def json(self):
        return self._payload


class FakeSession:

    def __init__(self, response: FakeResponse | None = None, error: Exception | None = None):
        self.headers: dict = {}
        self._response = response
        self._error = error
        self.posts: list[dict] = []

    def post(self, url, json=None, timeout=None):
        self.posts.append({"url": url, "json": json, "timeout": timeout})
        if self._error:
            raise self._error
        return self._response


def _ok(text="Check-in is from 16:00, the key box code will be sent the day before.",
        finish="STOP", ratings=None) -> FakeResponse:
    return FakeResponse({
        "candidates": [{
            "content": {"parts": [{"text": text}], "role": "model"},
            "finishReason": finish,
            "safetyRatings": ratings or [],
        }],
        "usageMetadata": {
            "promptTokenCount": 120,
            "candidatesTokenCount": 18,
            "totalTokenCount": 138,
        },
    })


def _provider(session: FakeSession) -> GeminiProvider:
    return GeminiProvider(api_key="test-key", model="gemini-test", timeout=5.0, session=session)


def _params(**kw) -> GenerateParams:
    defaults = dict(
        prompt="Guest question: What time is check-in?",
        system_prompt="SYSTEM",
        context=ContextData(
            thread_id="t",
            conversation_history=(
                ConversationMessage("user", "Hello", "2026-04-01T10:00:00"),
                ConversationMessage("assistant", "Hi! How can I help?", "2026-04-01T10:01:00"),
            ),
        ),
        temperature=0.4,
        max_tokens=300,
    )
    defaults.update(kw)
    return GenerateParams(**defaults)


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_request_payload():
    session = FakeSession(_ok())
    await _provider(session).generate(_params(stop_sequences=["END"]))

    post = session.posts[0]
    assert post["url"].endswith("/models/gemini-test:generateContent")
    assert post["timeout"] == 5.0
    assert session.headers["x-goog-api-key"] == "test-key"

    payload = post["json"]
    assert [c["role"] for c in payload["contents"]] == ["user", "model", "user"]
    assert payload["contents"][-1]["parts"][0]["text"] == "Guest question: What time is check-in?"
    assert payload["systemInstruction"] == {"parts": [{"text": "SYSTEM"}]}
    assert payload["generationConfig"] == {
        "temperature": 0.4,
        "maxOutputTokens": 300,
        "stopSequences": ["END"],
    }
    assert len(payload["safetySettings"]) == 4


@pytest.mark.asyncio
async def test_model_override():
    session = FakeSession(_ok())
    response = await _provider(session).generate(_params(model="gemini-other"))
    assert "gemini-other:generateContent" in session.posts[0]["url"]
    assert response.model == "gemini-other"


@pytest.mark.asyncio
async def test_no_system_instruction_without_system_prompt():
    session = FakeSession(_ok())
    await _provider(session).generate(_params(system_prompt=None, context=None))
    payload = session.posts[0]["json"]
    assert "systemInstruction" not in payload
    assert len(payload["contents"]) == 1


# ---------------------------------------------------------------------------
# Response mapping
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_response_mapping():
    response = await _provider(FakeSession(_ok())).generate(_params())

    assert response.content.startswith("Check-in is from 16:00")
    assert response.provider == "gemini"
    assert response.usage.prompt_tokens == 120
    assert response.usage.completion_tokens == 18
    assert response.usage.total_tokens == 138
    assert response.finish_reason == "STOP"
    assert response.confidence == pytest.approx(0.85)
    assert not response.safety_flags.any_flagged()


@pytest.mark.asyncio
async def test_abnormal_stop_and_short_reply_lower_confidence():
    response = await _provider(FakeSession(_ok(text="Yes.", finish="MAX_TOKENS"))).generate(_params())
    assert response.confidence == pytest.approx(0.6)


@pytest.mark.asyncio
async def test_safety_ratings_flag_and_penalise():
    ratings = [
        {"category": "HARM_CATEGORY_HARASSMENT", "probability": "MEDIUM"},
        {"category": "HARM_CATEGORY_HATE_SPEECH", "probability": "NEGLIGIBLE"},
    ]
    response = await _provider(FakeSession(_ok(ratings=ratings))).generate(_params())
    assert response.safety_flags.harassment is True
    assert response.safety_flags.hate_speech is False
    assert response.confidence == pytest.approx(0.75)


@pytest.mark.asyncio
async def test_safety_penalty_is_capped():
    ratings = [
        {"category": "HARM_CATEGORY_HARASSMENT", "probability": "HIGH"},
        {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "probability": "HIGH"},
    ]
    response = await _provider(FakeSession(_ok(ratings=ratings))).generate(_params())
    assert response.confidence == pytest.approx(0.65)


def test_parse_safety_ratings():
    flags = parse_safety_ratings([
        {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "probability": "HIGH"},
        {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "probability": "LOW"},
    ])
    assert flags.sexually_explicit is True
    assert flags.dangerous_content is False
    assert flags.any_flagged()


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_http_error_becomes_provider_error():
    session = FakeSession(FakeResponse({"error": {"message": "quota"}}, status=429))
    with pytest.raises(ProviderError) as exc_info:
        await _provider(session).generate(_params())
    err = exc_info.value
    assert err.code == "GEMINI_ERROR"
    assert err.provider == "gemini"
    assert err.recoverable is True
    assert err.details == 429


@pytest.mark.asyncio
async def test_transport_error_becomes_provider_error():
    session = FakeSession(error=requests.ConnectionError("connection refused"))
    with pytest.raises(ProviderError) as exc_info:
        await _provider(session).generate(_params())
    assert exc_info.value.details is None


@pytest.mark.asyncio
async def test_blocked_prompt_without_candidates():
    session = FakeSession(FakeResponse({"promptFeedback": {"blockReason": "SAFETY"}}))
    with pytest.raises(ProviderError) as exc_info:
        await _provider(session).generate(_params())
    assert exc_info.value.details == {"blockReason": "SAFETY"}
