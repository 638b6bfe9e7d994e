"""
Full pipeline tests using simulator providers and SQLite :memory:.

No network, no credentials.  Exercises the complete flow: reply stored in
the thread, escalations opening handoffs, the owner resolving them.
"""

import pytest

from concierge.adapters.simulator_provider import SimulatorProvider, failing_provider
from concierge.adapters.sqlite_store import SqliteStore
from concierge.domain.context import build_context
from concierge.orchestrator import PROVIDERS_DOWN_REPLY, Orchestrator, OrchestratorConfig
from concierge.pipeline import Pipeline
from tests.sample_data import seed_sqlite_full_thread


@pytest.fixture
def store():
    return SqliteStore(":memory:")


@pytest.fixture
def thread_id(store):
    return seed_sqlite_full_thread(store)


def _pipeline(store, primary=None, fallback=None) -> Pipeline:
    orchestrator = Orchestrator(
        OrchestratorConfig(
            context_store=store,
            memory=store,
            primary=primary or SimulatorProvider(name="gemini", reply="The wifi password is soleil2024."),
            fallback=fallback or SimulatorProvider(name="claude"),
        )
    )
    return Pipeline(orchestrator, memory=store)


# ---------------------------------------------------------------------------
# Answered without escalation
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_reply_is_stored_with_metadata(store, thread_id):
    result = await _pipeline(store).process_message(thread_id, "What's the wifi password?")

    assert result.success is True
    assert result.escalated is False
    assert result.handoff_id == ""
    assert result.ai_message == "The wifi password is soleil2024."

    stored = await store.get_message(result.message_id)
    assert stored.author_type == "ai"
    assert stored.body == "The wifi password is soleil2024."
    assert stored.meta["intent"] == "amenities"
    assert stored.meta["provider"] == "gemini"
    assert stored.meta["confidence"] == pytest.approx(result.confidence)
    assert stored.meta["ai_trace_id"]

    assert (await store.load_thread(thread_id)).status == "open"
    assert await store.get_pending_handoffs() == []


@pytest.mark.asyncio
async def test_stored_reply_becomes_history(store, thread_id):
    pipeline = _pipeline(store)
    await pipeline.process_message(thread_id, "What's the wifi password?")

    primary = SimulatorProvider(name="gemini")
    await _pipeline(store, primary=primary).process_message(thread_id, "Is there parking?")

    history = primary.calls[0].context.conversation_history
    assert [(m.role, m.content) for m in history] == [
        ("assistant", "The wifi password is soleil2024."),
    ]


@pytest.mark.asyncio
async def test_guest_message_is_stored_before_the_reply(store, thread_id):
    await _pipeline(store).handle_guest_message(thread_id, "What's the wifi password?")

    primary = SimulatorProvider(name="gemini")
    result = await _pipeline(store, primary=primary).handle_guest_message(thread_id, "Is there parking?")
    assert result.success is True

    context = await build_context(store, thread_id)
    assert [(m.role, m.content) for m in context.conversation_history] == [
        ("user", "What's the wifi password?"),
        ("assistant", "The wifi password is soleil2024."),
        ("user", "Is there parking?"),
        ("assistant", result.ai_message),
    ]

    # the message being answered is in the prompt, not repeated in the history
    params = primary.calls[0]
    assert [m.role for m in params.context.conversation_history] == ["user", "assistant"]
    assert params.system_prompt.index("Guest: What's the wifi password?") < \
        params.system_prompt.index("You: The wifi password is soleil2024.")


class GuestReadOnlyStore(SqliteStore):

    async def save_message(self, thread_id, author_type, body, meta=None):
        raise OSError("read-only file system")


@pytest.mark.asyncio
async def test_guest_message_storage_failure_skips_generation():
    store = GuestReadOnlyStore(":memory:")
    thread_id = seed_sqlite_full_thread(store)
    primary = SimulatorProvider(name="gemini")

    result = await _pipeline(store, primary=primary).handle_guest_message(thread_id, "Hi")
    assert result.success is False
    assert result.error == "Failed to store guest message"
    assert primary.calls == []


# ---------------------------------------------------------------------------
# Escalation
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_cancellation_opens_handoff(store, thread_id):
    message = "I need to cancel my reservation, it's urgent"
    result = await _pipeline(store).process_message(thread_id, message)

    assert result.success is True
    assert result.escalated is True
    assert result.handoff_id

    assert (await store.load_thread(thread_id)).status == "escalated"
    handoff = await store.get_handoff(result.handoff_id)
    assert handoff.thread_id == thread_id
    assert "Cancellation" in handoff.reason
    assert handoff.snapshot["last_message"] == message
    assert handoff.snapshot["ai_response"] == result.ai_message
    assert handoff.snapshot["confidence"] == pytest.approx(result.confidence)


@pytest.mark.asyncio
async def test_provider_outage_still_stores_canned_reply(store, thread_id):
    pipeline = _pipeline(store, primary=failing_provider("gemini"), fallback=failing_provider("claude"))
    result = await pipeline.process_message(thread_id, "What's the wifi password?")

    assert result.success is True
    assert result.escalated is True
    assert result.ai_message == PROVIDERS_DOWN_REPLY
    assert result.confidence == 0

    handoff = await store.get_handoff(result.handoff_id)
    assert handoff.reason == "AI providers unavailable"


@pytest.mark.asyncio
async def test_resolve_handoff_reopens_thread(store, thread_id):
    pipeline = _pipeline(store)
    result = await pipeline.process_message(thread_id, "The shower is broken and the room is dirty")
    assert result.escalated is True

    assert await pipeline.assign_handoff(result.handoff_id, "owner-1") is True
    assert (await store.get_handoff(result.handoff_id)).assigned_to == "owner-1"

    assert await pipeline.resolve_handoff(result.handoff_id, "Sent a plumber, offered late checkout") is True
    assert (await store.load_thread(thread_id)).status == "open"
    assert await store.get_pending_handoffs() == []


@pytest.mark.asyncio
async def test_unknown_handoff(store):
    pipeline = _pipeline(store)
    assert await pipeline.assign_handoff("nope", "owner-1") is False
    assert await pipeline.resolve_handoff("nope", "done") is False


# ---------------------------------------------------------------------------
# Regeneration
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_regenerate_answers_stored_message_again(store, thread_id):
    guest_message_id = await store.save_message(thread_id, "guest", "Is there parking?")
    primary = SimulatorProvider(name="gemini", reply="Yes, one free spot behind the villa.")

    result = await _pipeline(store, primary=primary).regenerate(thread_id, guest_message_id)

    assert result.success is True
    assert result.ai_message == "Yes, one free spot behind the villa."
    assert primary.calls[0].prompt == "Guest question: Is there parking?"

    stored = await store.get_message(result.message_id)
    assert stored.meta["regenerated"] is True
    assert stored.meta["intent"] == "amenities"


@pytest.mark.asyncio
async def test_regenerate_unknown_message(store, thread_id):
    result = await _pipeline(store).regenerate(thread_id, "no-such-message")
    assert result.success is False
    assert result.error == "Message not found"


# ---------------------------------------------------------------------------
# Storage failures
# ---------------------------------------------------------------------------

class ReadOnlyStore(SqliteStore):

    async def save_message(self, thread_id, author_type, body, meta=None):
        raise OSError("read-only file system")


@pytest.mark.asyncio
async def test_storage_failure_is_reported():
    store = ReadOnlyStore(":memory:")
    thread_id = seed_sqlite_full_thread(store)

    result = await _pipeline(store).process_message(thread_id, "What's the wifi password?")
    assert result.success is False
    assert result.error == "Failed to store AI response"
