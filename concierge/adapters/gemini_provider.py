"""
GeminiProvider: primary generation backend (Gemini REST generateContent).

The only backend that reports per-category safety ratings; they become
SafetyFlags and lower the local confidence heuristic.
"""

import asyncio
import logging
import os
import time

import requests

from concierge.domain.errors import ProviderError
from concierge.domain.generation import (
    AIResponse,
    GenerateParams,
    GenerationProvider,
    SafetyFlags,
    Usage,
    score_completion,
)

log = logging.getLogger(__name__)

BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

_HARM_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)
# category substring -> SafetyFlags attribute
_FLAG_FOR_CATEGORY = {
    "HARASSMENT": "harassment",
    "HATE_SPEECH": "hate_speech",
    "SEXUALLY_EXPLICIT": "sexually_explicit",
    "DANGEROUS_CONTENT": "dangerous_content",
}
_RATING_PENALTY = {"MEDIUM": 0.1, "HIGH": 0.2}
MAX_SAFETY_PENALTY = 0.2


class GeminiProvider(GenerationProvider):
    """Adapter: Gemini over HTTPS with an API key."""

    name = "gemini"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gemini-1.5-flash",
        timeout: float = 20.0,
        session: requests.Session | None = None,
    ):
        self._api_key = api_key or os.environ["GEMINI_API_KEY"]
        self._model = model
        self._timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Content-Type": "application/json",
                "x-goog-api-key": self._api_key,
            }
        )

    async def generate(self, params: GenerateParams) -> AIResponse:
        model = params.model or self._model
        started = time.monotonic()
        try:
            data = await asyncio.to_thread(self._post, model, self._build_payload(params))
        except requests.RequestException as exc:
            log.error("gemini request failed: %s", exc)
            raise ProviderError(
                code="GEMINI_ERROR",
                message=f"Gemini API error: {exc}",
                provider=self.name,
                recoverable=True,
                details=getattr(exc.response, "status_code", None),
            ) from exc
        latency_ms = int((time.monotonic() - started) * 1000)

        candidates = data.get("candidates") or []
        if not candidates:
            raise ProviderError(
                code="GEMINI_ERROR",
                message="No response candidate from Gemini",
                provider=self.name,
                recoverable=True,
                details=data.get("promptFeedback"),
            )
        candidate = candidates[0]
        parts = candidate.get("content", {}).get("parts") or [{}]
        content = parts[0].get("text", "")
        ratings = candidate.get("safetyRatings") or []
        finish_reason = candidate.get("finishReason")
        usage = data.get("usageMetadata", {})

        return AIResponse(
            content=content,
            confidence=score_completion(
                content,
                finished_normally=finish_reason in (None, "STOP"),
                penalty=_safety_penalty(ratings),
            ),
            model=model,
            provider=self.name,
            usage=Usage(
                prompt_tokens=usage.get("promptTokenCount", 0),
                completion_tokens=usage.get("candidatesTokenCount", 0),
                total_tokens=usage.get("totalTokenCount", 0),
            ),
            latency_ms=latency_ms,
            safety_flags=parse_safety_ratings(ratings),
            finish_reason=finish_reason,
        )

    def _post(self, model: str, payload: dict) -> dict:
        resp = self.session.post(
            f"{BASE_URL}/models/{model}:generateContent",
            json=payload,
            timeout=self._timeout,
        )
        resp.raise_for_status()
        return resp.json()

    @staticmethod
    def _build_payload(params: GenerateParams) -> dict:
        contents = []
        if params.context is not None:
            for msg in params.context.conversation_history:
                contents.append({
                    "role": "model" if msg.role == "assistant" else "user",
                    "parts": [{"text": msg.content}],
                })
        contents.append({"role": "user", "parts": [{"text": params.prompt}]})

        generation_config: dict = {
            "temperature": params.temperature,
            "maxOutputTokens": params.max_tokens,
        }
        if params.stop_sequences:
            generation_config["stopSequences"] = params.stop_sequences

        payload: dict = {
            "contents": contents,
            "generationConfig": generation_config,
            "safetySettings": [
                {"category": category, "threshold": "BLOCK_MEDIUM_AND_ABOVE"}
                for category in _HARM_CATEGORIES
            ],
        }
        if params.system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": params.system_prompt}]}
        return payload


def parse_safety_ratings(ratings: list[dict]) -> SafetyFlags:
    """A category is flagged when its probability is MEDIUM or HIGH."""
    flags = SafetyFlags()
    for rating in ratings:
        category = rating.get("category", "")
        for needle, attr in _FLAG_FOR_CATEGORY.items():
            if needle in category:
                setattr(flags, attr, rating.get("probability") in _RATING_PENALTY)
                break
    return flags


def _safety_penalty(ratings: list[dict]) -> float:
    total = sum(_RATING_PENALTY.get(r.get("probability", ""), 0.0) for r in ratings)
    return min(MAX_SAFETY_PENALTY, total)
