"""
ConversationMemory port: what the reply pipeline writes back.

Every generation leaves a trace (model, tokens, latency, confidence, safety)
for observability.  AI replies are stored as thread messages.  When a turn is
escalated a handoff is opened so the owner can pick the conversation up,
and it stays pending until someone resolves it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

from concierge.domain.context import StoredMessage


@dataclass
class TraceRecord:
    thread_id: str
    model: str
    prompt_tokens: int
    completion_tokens: int
    latency_ms: int
    confidence: float
    safety_flags: dict[str, bool] = field(default_factory=dict)
    trace_id: str = ""              # assigned by the store
    created_at: datetime | None = None


LOW_CONFIDENCE_THRESHOLD = 0.7


@dataclass
class AIStats:
    """Thread counts by status plus aggregates over the stored traces."""
    total_threads: int = 0
    open_threads: int = 0
    escalated_threads: int = 0
    closed_threads: int = 0
    total_ai_responses: int = 0
    avg_confidence: float = 0.0
    avg_latency_ms: float = 0.0
    total_tokens: int = 0
    low_confidence_count: int = 0


@dataclass
class Handoff:
    handoff_id: str
    thread_id: str
    reason: str
    snapshot: dict
    created_at: datetime
    assigned_to: str | None = None
    resolved_at: datetime | None = None
    outcome: str | None = None


class ConversationMemory(ABC):
    """
    Port: persist traces, AI replies, thread status and handoffs.

    Adapters raise TraceWriteError when a trace cannot be stored; the
    orchestrator treats any insert_trace failure as non-fatal.
    """

    # -- traces --------------------------------------------------------------

    @abstractmethod
    async def insert_trace(self, trace: TraceRecord) -> str:
        """Persist a trace. Returns the trace_id."""
        ...

    @abstractmethod
    async def get_traces(self, thread_id: str) -> list[TraceRecord]:
        """Return all traces of a thread, newest first."""
        ...

    @abstractmethod
    async def get_ai_stats(
        self,
        org_id: str | None = None,
        low_confidence_threshold: float = LOW_CONFIDENCE_THRESHOLD,
    ) -> AIStats:
        """
        Aggregate threads and traces, optionally for one organization.

        A trace counts as low confidence when below the threshold.  An empty
        store yields all-zero stats.
        """
        ...

    # -- messages and threads ------------------------------------------------

    @abstractmethod
    async def save_message(
        self, thread_id: str, author_type: str, body: str, meta: dict | None = None
    ) -> str:
        """Append a message to a thread. Returns the message_id."""
        ...

    @abstractmethod
    async def get_message(self, message_id: str) -> StoredMessage | None:
        ...

    @abstractmethod
    async def set_thread_status(self, thread_id: str, status: str) -> None:
        """status: "open", "escalated" or "closed"."""
        ...

    # -- handoffs ------------------------------------------------------------

    @abstractmethod
    async def create_handoff(self, thread_id: str, reason: str, snapshot: dict) -> str:
        """Open a handoff for a thread. Returns the handoff_id."""
        ...

    @abstractmethod
    async def get_handoff(self, handoff_id: str) -> Handoff | None:
        ...

    @abstractmethod
    async def get_pending_handoffs(self) -> list[Handoff]:
        """Return unresolved handoffs, oldest first."""
        ...

    @abstractmethod
    async def assign_handoff(self, handoff_id: str, agent_id: str) -> None:
        ...

    @abstractmethod
    async def resolve_handoff(self, handoff_id: str, outcome: str) -> None:
        """Mark a handoff resolved with the owner's outcome note."""
        ...
