"""
GenerationProvider port: a text-generation backend behind one contract.

Implementations differ only in which backend they call and how they map its
response into an AIResponse.  Failures surface as ProviderError.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from concierge.domain.context import ContextData

BASE_COMPLETION_CONFIDENCE = 0.85
ABNORMAL_STOP_PENALTY = 0.15
SHORT_COMPLETION_PENALTY = 0.1
SHORT_COMPLETION_CHARS = 20


@dataclass
class GenerateParams:
    prompt: str
    system_prompt: str | None = None
    context: ContextData | None = None
    temperature: float = 0.7
    max_tokens: int = 1024
    stop_sequences: list[str] | None = None
    model: str | None = None          # overrides the provider's default


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class SafetyFlags:
    harassment: bool = False
    hate_speech: bool = False
    sexually_explicit: bool = False
    dangerous_content: bool = False

    def any_flagged(self) -> bool:
        return (
            self.harassment
            or self.hate_speech
            or self.sexually_explicit
            or self.dangerous_content
        )


@dataclass
class AIResponse:
    content: str
    confidence: float | None        # provider-local heuristic, None if not reported
    model: str
    provider: str
    usage: Usage = field(default_factory=Usage)
    latency_ms: int = 0
    safety_flags: SafetyFlags | None = None
    finish_reason: str | None = None


class GenerationProvider(ABC):
    """
    Port: generate one reply from a system prompt, history and a new prompt.

    Both backends must build the role-tagged message list from
    params.context.conversation_history followed by params.prompt, and pass
    temperature, max_tokens and stop_sequences through.
    """

    name: str

    @abstractmethod
    async def generate(self, params: GenerateParams) -> AIResponse:
        """Return the completion, or raise ProviderError."""
        ...


def score_completion(content: str, finished_normally: bool, penalty: float = 0.0) -> float:
    """Local confidence heuristic shared by all providers."""
    confidence = BASE_COMPLETION_CONFIDENCE - penalty
    if not finished_normally:
        confidence -= ABNORMAL_STOP_PENALTY
    if len(content) < SHORT_COMPLETION_CHARS:
        confidence -= SHORT_COMPLETION_PENALTY
    return max(0.0, min(1.0, confidence))
