"""
Error taxonomy for the reply orchestration.

Adapters translate library failures into these types so the orchestrator
only has to know about one family of exceptions.
"""

from dataclasses import dataclass
from typing import Any


@dataclass
class AIError:
    """Structured error attached to a GenerateResponseResult."""
    code: str
    message: str
    provider: str
    recoverable: bool
    details: Any = None


class ContextError(Exception):
    """Context store unreachable, or the thread does not exist."""

    def __init__(self, thread_id: str, message: str):
        super().__init__(f"thread={thread_id}: {message}")
        self.thread_id = thread_id


class ProviderError(Exception):
    """A generation backend failed (HTTP error, transport error, bad payload)."""

    def __init__(
        self,
        code: str,
        message: str,
        provider: str,
        recoverable: bool = True,
        details: Any = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.provider = provider
        self.recoverable = recoverable
        self.details = details

    def as_error(self) -> AIError:
        return AIError(
            code=self.code,
            message=self.message,
            provider=self.provider,
            recoverable=self.recoverable,
            details=self.details,
        )


class TraceWriteError(Exception):
    """Persisting an observability trace failed. Never surfaced to callers."""


class OrchestratorError(Exception):
    """Anything unanticipated inside the orchestration pipeline."""
