"""Adapter-specific store behaviour not covered by the shared contracts."""

import pytest

from concierge.adapters.memory_store import InMemoryStore
from concierge.adapters.sqlite_store import SqliteStore
from concierge.domain.errors import TraceWriteError
from concierge.domain.memory import TraceRecord
from tests.sample_data import full_thread


def _trace(thread_id: str) -> TraceRecord:
    return TraceRecord(
        thread_id=thread_id, model="m", prompt_tokens=1, completion_tokens=1,
        latency_ms=1, confidence=0.5,
    )


def test_sqlite_insert_rejects_unknown_table():
    store = SqliteStore(":memory:")
    with pytest.raises(ValueError):
        store.insert("messages", body="nope")


def test_sqlite_insert_keeps_explicit_id():
    store = SqliteStore(":memory:")
    assert store.insert("threads", id="thread-42") == "thread-42"


@pytest.mark.asyncio
async def test_sqlite_trace_failure_is_a_trace_write_error():
    store = SqliteStore(":memory:")
    thread_id = store.insert("threads")
    store._conn.close()

    with pytest.raises(TraceWriteError):
        await store.insert_trace(_trace(thread_id))


@pytest.mark.asyncio
async def test_sqlite_file_persists_across_connections(tmp_path):
    db = str(tmp_path / "concierge.db")
    store = SqliteStore(db)
    thread_id = store.insert("threads")
    await store.save_message(thread_id, "guest", "Is parking included?")

    reopened = SqliteStore(db)
    messages = await reopened.load_recent_messages(thread_id)
    assert [m.body for m in messages] == ["Is parking included?"]


@pytest.mark.asyncio
async def test_in_memory_context_failure_raises():
    store = InMemoryStore(fail_context_load=True)
    store.add_thread(full_thread("t-1"))

    with pytest.raises(ConnectionError):
        await store.load_thread("t-1")


@pytest.mark.asyncio
async def test_in_memory_trace_failure_raises():
    store = InMemoryStore(fail_trace_write=True)

    with pytest.raises(TraceWriteError):
        await store.insert_trace(_trace("t-1"))
    assert await store.get_traces("t-1") == []
