"""
Reply orchestration for one inbound guest message.

  ContextLoad → IntentAnalyze → PromptBuild → GeneratePrimary
    → [GenerateFallback] → ScoreConfidence → Escalate → Trace → Return

Providers are tried in order; the first that answers wins.  Every failure
path ends in a polite canned reply with confidence 0 and should_escalate
set, so internal errors never reach the guest.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field, replace

from concierge.domain.confidence import (
    UNSAFE_SAFETY_SCORE,
    build_confidence_factors,
    calculate_confidence,
)
from concierge.domain.context import (
    DEFAULT_MESSAGE_LIMIT,
    ContextData,
    ContextStore,
    build_context,
    format_context_for_prompt,
)
from concierge.domain.errors import (
    AIError,
    ContextError,
    OrchestratorError,
    ProviderError,
)
from concierge.domain.escalation import DEFAULT_POLICY, EscalationPolicy, should_escalate
from concierge.domain.generation import AIResponse, GenerateParams, GenerationProvider
from concierge.domain.intent import Intent, analyze_user_message
from concierge.domain.memory import ConversationMemory, TraceRecord
from concierge.prompts import build_prompt, load_prompt

log = logging.getLogger(__name__)

CONTEXT_FAILURE_REPLY = (
    "I apologize, but I was unable to load the conversation context. "
    "The property owner will be with you shortly."
)
PROVIDERS_DOWN_REPLY = (
    "I apologize, but I am experiencing technical difficulties. "
    "The property owner will respond to you shortly."
)
UNEXPECTED_ERROR_REPLY = (
    "I apologize for the inconvenience. The property owner will assist you shortly."
)
QUICK_RESPONSE_FAILURE_REPLY = "I apologize, but I am unable to respond at the moment."

QUICK_RESPONSE_MAX_TOKENS = 512


@dataclass
class OrchestratorConfig:
    context_store: ContextStore
    memory: ConversationMemory
    primary: GenerationProvider
    fallback: GenerationProvider | None = None
    policy: EscalationPolicy = field(default_factory=lambda: DEFAULT_POLICY)
    temperature: float = 0.7
    max_tokens: int = 1024
    provider_timeout: float = 20.0
    max_context_messages: int = DEFAULT_MESSAGE_LIMIT


@dataclass
class GenerateResponseResult:
    content: str
    confidence: float
    should_escalate: bool
    intent: Intent
    provider: str
    escalation_reason: str | None = None
    ai_trace_id: str | None = None
    error: AIError | None = None        # present whenever some provider or step failed


class Orchestrator:
    """
    Turn a guest message into a reply plus an escalation decision.

    Holds no per-request state; concurrent calls for different threads are
    independent.  Calls for the same thread are not serialized here.
    """

    def __init__(self, config: OrchestratorConfig):
        self._cfg = config

    @property
    def providers(self) -> list[GenerationProvider]:
        return [p for p in (self._cfg.primary, self._cfg.fallback) if p is not None]

    async def generate_response(self, thread_id: str, message: str) -> GenerateResponseResult:
        try:
            return await self._generate(thread_id, message)
        except Exception as exc:
            err = OrchestratorError(str(exc) or type(exc).__name__)
            log.exception("thread=%s orchestrator error: %s", thread_id, err)
            return GenerateResponseResult(
                content=UNEXPECTED_ERROR_REPLY,
                confidence=0.0,
                should_escalate=True,
                escalation_reason="Unexpected error in AI orchestrator",
                intent="other",
                provider=self._cfg.primary.name,
                error=AIError(
                    code="ORCHESTRATOR_ERROR",
                    message=str(err),
                    provider=self._cfg.primary.name,
                    recoverable=False,
                    details=type(exc).__name__,
                ),
            )

    async def _generate(self, thread_id: str, message: str) -> GenerateResponseResult:
        log.debug("thread=%s message=%.60r", thread_id, message)

        try:
            context = await build_context(
                self._cfg.context_store, thread_id, self._cfg.max_context_messages
            )
        except ContextError as exc:
            log.error("thread=%s context load failed: %s", thread_id, exc)
            return GenerateResponseResult(
                content=CONTEXT_FAILURE_REPLY,
                confidence=0.0,
                should_escalate=True,
                escalation_reason="Context load failed",
                intent="other",
                provider=self._cfg.primary.name,
                error=AIError(
                    code="CONTEXT_ERROR",
                    message=str(exc),
                    provider=self._cfg.primary.name,
                    recoverable=False,
                ),
            )

        analysis = analyze_user_message(message)
        prompt_context = _without_current_message(context, message)
        prompt = build_prompt(analysis.intent, message, format_context_for_prompt(prompt_context))
        params = GenerateParams(
            prompt=prompt.user,
            system_prompt=prompt.system,
            context=prompt_context,
            temperature=self._cfg.temperature,
            max_tokens=self._cfg.max_tokens,
        )

        response, primary_error = await self._call_providers(thread_id, params)
        if response is None:
            return GenerateResponseResult(
                content=PROVIDERS_DOWN_REPLY,
                confidence=0.0,
                should_escalate=True,
                escalation_reason="AI providers unavailable",
                intent=analysis.intent,
                provider=self._cfg.primary.name,
                error=primary_error,
            )

        unsafe = response.safety_flags is not None and response.safety_flags.any_flagged()
        factors = build_confidence_factors(
            message,
            context,
            analysis,
            model_confidence=response.confidence,
            safety_score=UNSAFE_SAFETY_SCORE if unsafe else 1.0,
        )
        confidence = calculate_confidence(factors)
        decision = should_escalate(
            confidence,
            analysis.intent,
            message,
            context,
            policy=self._cfg.policy,
            unsafe_content=unsafe,
        )

        log.info(
            "thread=%s intent=%s provider=%s conf=%.2f escalate=%s%s",
            thread_id, analysis.intent, response.provider, confidence,
            decision.should_escalate,
            f" ({decision.reason})" if decision.reason else "",
        )

        trace_id = await self._store_trace(thread_id, response, confidence)

        return GenerateResponseResult(
            content=response.content,
            confidence=confidence,
            should_escalate=decision.should_escalate,
            escalation_reason=decision.reason,
            intent=analysis.intent,
            provider=response.provider,
            ai_trace_id=trace_id,
            error=primary_error,
        )

    async def _call_providers(
        self, thread_id: str, params: GenerateParams
    ) -> tuple[AIResponse | None, AIError | None]:
        """
        Try each provider in order with identical params.

        Returns (response, first_error).  response is None when every
        provider failed; first_error is the primary's failure, if any.
        """
        first_error: AIError | None = None
        for provider in self.providers:
            try:
                response = await asyncio.wait_for(
                    provider.generate(params), timeout=self._cfg.provider_timeout
                )
            except asyncio.TimeoutError:
                error = AIError(
                    code="TIMEOUT",
                    message=f"{provider.name} did not answer within {self._cfg.provider_timeout:g}s",
                    provider=provider.name,
                    recoverable=True,
                )
            except ProviderError as exc:
                error = exc.as_error()
            except Exception as exc:
                error = AIError(
                    code="PROVIDER_ERROR",
                    message=str(exc) or type(exc).__name__,
                    provider=provider.name,
                    recoverable=True,
                )
            else:
                if first_error is not None:
                    log.warning("thread=%s answered by fallback provider %s", thread_id, provider.name)
                return response, first_error

            log.error("thread=%s provider %s failed: %s", thread_id, provider.name, error.message)
            if first_error is None:
                first_error = error

        return None, first_error

    async def _store_trace(
        self, thread_id: str, response: AIResponse, confidence: float
    ) -> str | None:
        trace = TraceRecord(
            thread_id=thread_id,
            model=response.model,
            prompt_tokens=response.usage.prompt_tokens,
            completion_tokens=response.usage.completion_tokens,
            latency_ms=response.latency_ms,
            confidence=confidence,
            safety_flags=asdict(response.safety_flags) if response.safety_flags else {},
        )
        try:
            return await self._cfg.memory.insert_trace(trace)
        except Exception as exc:
            log.warning("thread=%s trace not stored: %s", thread_id, str(exc) or type(exc).__name__)
            return None

    async def quick_response(self, message: str) -> str:
        """One-off reply from the primary provider, without thread context."""
        params = GenerateParams(
            prompt=message,
            system_prompt=load_prompt("quick_response"),
            temperature=self._cfg.temperature,
            max_tokens=QUICK_RESPONSE_MAX_TOKENS,
        )
        try:
            response = await asyncio.wait_for(
                self._cfg.primary.generate(params), timeout=self._cfg.provider_timeout
            )
        except (ProviderError, asyncio.TimeoutError) as exc:
            log.error("quick response failed: %s", str(exc) or type(exc).__name__)
            return QUICK_RESPONSE_FAILURE_REPLY
        return response.content


def _without_current_message(context: ContextData, message: str) -> ContextData:
    """Drop the inbound message from history when it was stored before generation."""
    history = context.conversation_history
    if history and history[-1].role == "user" and history[-1].content == message:
        return replace(context, conversation_history=history[:-1])
    return context
