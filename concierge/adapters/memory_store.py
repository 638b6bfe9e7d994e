"""In-memory adapter for ContextStore and ConversationMemory, for tests and local development."""

import uuid
from datetime import datetime, timezone

from concierge.domain.context import (
    DEFAULT_MESSAGE_LIMIT,
    ContextStore,
    StoredMessage,
    ThreadRecord,
)
from concierge.domain.errors import TraceWriteError
from concierge.domain.memory import (
    LOW_CONFIDENCE_THRESHOLD,
    AIStats,
    ConversationMemory,
    Handoff,
    TraceRecord,
)


class InMemoryStore(ContextStore, ConversationMemory):
    """
    Holds threads, messages, traces and handoffs in plain lists and dicts.

    fail_context_load and fail_trace_write simulate an unreachable store.
    """

    def __init__(self, fail_context_load: bool = False, fail_trace_write: bool = False):
        self.fail_context_load = fail_context_load
        self.fail_trace_write = fail_trace_write
        self._threads: dict[str, ThreadRecord] = {}
        self._messages: list[StoredMessage] = []
        self._traces: list[TraceRecord] = []
        self._handoffs: dict[str, Handoff] = {}

    def add_thread(self, thread: ThreadRecord) -> ThreadRecord:
        self._threads[thread.thread_id] = thread
        return thread

    # -- ContextStore --------------------------------------------------------

    async def load_thread(self, thread_id: str) -> ThreadRecord | None:
        if self.fail_context_load:
            raise ConnectionError("context store unreachable")
        return self._threads.get(thread_id)

    async def load_recent_messages(
        self, thread_id: str, limit: int = DEFAULT_MESSAGE_LIMIT
    ) -> list[StoredMessage]:
        if self.fail_context_load:
            raise ConnectionError("context store unreachable")
        messages = [m for m in self._messages if m.thread_id == thread_id]
        return list(reversed(messages))[:limit]

    # -- traces --------------------------------------------------------------

    async def insert_trace(self, trace: TraceRecord) -> str:
        if self.fail_trace_write:
            raise TraceWriteError("trace store unreachable")
        trace.trace_id = str(uuid.uuid4())
        trace.created_at = datetime.now(timezone.utc)
        self._traces.append(trace)
        return trace.trace_id

    async def get_traces(self, thread_id: str) -> list[TraceRecord]:
        return [t for t in reversed(self._traces) if t.thread_id == thread_id]

    async def get_ai_stats(
        self,
        org_id: str | None = None,
        low_confidence_threshold: float = LOW_CONFIDENCE_THRESHOLD,
    ) -> AIStats:
        def in_org(thread_id: str) -> bool:
            if org_id is None:
                return True
            thread = self._threads.get(thread_id)
            return bool(thread and thread.organization and thread.organization.id == org_id)

        threads = [t for t in self._threads.values() if in_org(t.thread_id)]
        traces = [t for t in self._traces if in_org(t.thread_id)]
        statuses = [t.status for t in threads]
        return AIStats(
            total_threads=len(threads),
            open_threads=statuses.count("open"),
            escalated_threads=statuses.count("escalated"),
            closed_threads=statuses.count("closed"),
            total_ai_responses=len(traces),
            avg_confidence=sum(t.confidence for t in traces) / len(traces) if traces else 0.0,
            avg_latency_ms=sum(t.latency_ms for t in traces) / len(traces) if traces else 0.0,
            total_tokens=sum(t.prompt_tokens + t.completion_tokens for t in traces),
            low_confidence_count=sum(1 for t in traces if t.confidence < low_confidence_threshold),
        )

    # -- messages and threads ------------------------------------------------

    async def save_message(
        self, thread_id: str, author_type: str, body: str, meta: dict | None = None
    ) -> str:
        message = StoredMessage(
            message_id=str(uuid.uuid4()),
            thread_id=thread_id,
            author_type=author_type,
            body=body,
            created_at=datetime.now(timezone.utc).isoformat(),
            meta=dict(meta or {}),
        )
        self._messages.append(message)
        return message.message_id

    async def get_message(self, message_id: str) -> StoredMessage | None:
        return next((m for m in self._messages if m.message_id == message_id), None)

    async def set_thread_status(self, thread_id: str, status: str) -> None:
        thread = self._threads.get(thread_id)
        if thread:
            thread.status = status

    # -- handoffs ------------------------------------------------------------

    async def create_handoff(self, thread_id: str, reason: str, snapshot: dict) -> str:
        handoff = Handoff(
            handoff_id=str(uuid.uuid4()),
            thread_id=thread_id,
            reason=reason,
            snapshot=dict(snapshot),
            created_at=datetime.now(timezone.utc),
        )
        self._handoffs[handoff.handoff_id] = handoff
        return handoff.handoff_id

    async def get_handoff(self, handoff_id: str) -> Handoff | None:
        return self._handoffs.get(handoff_id)

    async def get_pending_handoffs(self) -> list[Handoff]:
        return [h for h in self._handoffs.values() if h.resolved_at is None]

    async def assign_handoff(self, handoff_id: str, agent_id: str) -> None:
        handoff = self._handoffs.get(handoff_id)
        if handoff:
            handoff.assigned_to = agent_id

    async def resolve_handoff(self, handoff_id: str, outcome: str) -> None:
        handoff = self._handoffs.get(handoff_id)
        if handoff:
            handoff.resolved_at = datetime.now(timezone.utc)
            handoff.outcome = outcome
