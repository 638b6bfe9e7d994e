"""
ClaudeProvider: fallback generation backend (Anthropic Messages API).

The Messages API has no per-category safety ratings, so safety_flags are
always all-clear here.
"""

import logging
import os
import time

import anthropic

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

_NORMAL_STOP_REASONS = ("end_turn", "stop_sequence")


class ClaudeProvider(GenerationProvider):
    """Adapter: Claude via the anthropic SDK (claude-haiku-4-5 by default, fast + cheap)."""

    name = "claude"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "claude-haiku-4-5-20251001",
        timeout: float = 20.0,
        client: anthropic.AsyncAnthropic | None = None,
    ):
        self._client = client or anthropic.AsyncAnthropic(
            api_key=api_key or os.environ["ANTHROPIC_API_KEY"],
            timeout=timeout,
            max_retries=0,
        )
        self._model = model

    async def generate(self, params: GenerateParams) -> AIResponse:
        model = params.model or self._model
        request: dict = {
            "model": model,
            "max_tokens": params.max_tokens,
            "temperature": params.temperature,
            "messages": self._build_messages(params),
        }
        if params.system_prompt:
            request["system"] = params.system_prompt
        if params.stop_sequences:
            request["stop_sequences"] = params.stop_sequences

        started = time.monotonic()
        try:
            response = await self._client.messages.create(**request)
        except anthropic.APIError as exc:
            log.error("claude request failed: %s", exc)
            raise ProviderError(
                code="CLAUDE_ERROR",
                message=f"Claude API error: {exc}",
                provider=self.name,
                recoverable=True,
                details=getattr(exc, "status_code", None),
            ) from exc
        latency_ms = int((time.monotonic() - started) * 1000)

        content = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        prompt_tokens = response.usage.input_tokens
        completion_tokens = response.usage.output_tokens

        return AIResponse(
            content=content,
            confidence=score_completion(
                content, finished_normally=response.stop_reason in _NORMAL_STOP_REASONS
            ),
            model=response.model,
            provider=self.name,
            usage=Usage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            latency_ms=latency_ms,
            safety_flags=SafetyFlags(),
            finish_reason=response.stop_reason,
        )

    @staticmethod
    def _build_messages(params: GenerateParams) -> list[dict]:
        turns = []
        if params.context is not None:
            turns = [(m.role, m.content) for m in params.context.conversation_history]
        turns.append(("user", params.prompt))

        # Consecutive turns from the same side are merged into one message.
        messages: list[dict] = []
        for role, text in turns:
            if messages and messages[-1]["role"] == role:
                messages[-1]["content"] += f"\n\n{text}"
            else:
                messages.append({"role": role, "content": text})
        return messages
