"""
SimulatorProvider: deterministic GenerationProvider for tests and local runs.

No network.  Replies with a fixed text (or a short acknowledgment of the
prompt), can be told to fail or stall, and records every call so tests can
assert how often a backend was invoked.
"""

import asyncio

from concierge.domain.errors import ProviderError
from concierge.domain.generation import (
    AIResponse,
    GenerateParams,
    GenerationProvider,
    SafetyFlags,
    Usage,
    score_completion,
)


class SimulatorProvider(GenerationProvider):

    def __init__(
        self,
        name: str = "simulator",
        reply: str | None = None,
        fail_with: Exception | None = None,
        delay: float = 0.0,
        safety_flags: SafetyFlags | None = None,
        finish_reason: str = "stop",
        report_confidence: bool = True,
    ):
        self.name = name
        self._reply = reply
        self._fail_with = fail_with
        self._delay = delay
        self._safety_flags = safety_flags
        self._finish_reason = finish_reason
        self._report_confidence = report_confidence
        self.calls: list[GenerateParams] = []

    async def generate(self, params: GenerateParams) -> AIResponse:
        self.calls.append(params)
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._fail_with is not None:
            raise self._fail_with

        content = self._reply or (
            "Thank you for your message! Here is what I can tell you based on "
            "the information I have about your stay."
        )
        prompt_tokens = len((params.system_prompt or "").split()) + len(params.prompt.split())
        completion_tokens = len(content.split())
        confidence = score_completion(content, finished_normally=self._finish_reason == "stop")

        return AIResponse(
            content=content,
            confidence=confidence if self._report_confidence else None,
            model=f"{self.name}-model",
            provider=self.name,
            usage=Usage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            latency_ms=int(self._delay * 1000),
            safety_flags=self._safety_flags,
            finish_reason=self._finish_reason,
        )


def failing_provider(name: str, message: str = "backend unavailable") -> SimulatorProvider:
    """A simulator that always raises a recoverable ProviderError."""
    return SimulatorProvider(
        name=name,
        fail_with=ProviderError(
            code=f"{name.upper()}_ERROR",
            message=message,
            provider=name,
            recoverable=True,
        ),
    )
