#!/usr/bin/env python3
"""
Owner CLI: review escalated conversations and AI performance.

Usage (from project root):
    python scripts/review_handoffs.py                        # list pending handoffs
    python scripts/review_handoffs.py show <id>              # full handoff details
    python scripts/review_handoffs.py assign <id> <agent>    # take ownership
    python scripts/review_handoffs.py resolve <id>           # close it (interactive)
    python scripts/review_handoffs.py stats [org_id]         # AI performance and thread counts

Handoff ids may be abbreviated to any unique prefix.
"""

import asyncio
import os
import sys
import textwrap

# Allow running as `python scripts/review_handoffs.py` from project root.
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from concierge.adapters.sqlite_store import SqliteStore
from concierge.domain.memory import LOW_CONFIDENCE_THRESHOLD, Handoff
from concierge.pipeline import assign_handoff, resolve_handoff

DB_PATH = os.environ.get("DB_PATH", "data/concierge.db")


def _wrap(text: str, width: int = 72, indent: str = "    ") -> str:
    return textwrap.fill(text, width=width, initial_indent=indent, subsequent_indent=indent)


async def _find(store: SqliteStore, prefix: str) -> Handoff | None:
    handoff = await store.get_handoff(prefix)
    if handoff:
        return handoff
    matches = [h for h in await store.get_pending_handoffs() if h.handoff_id.startswith(prefix)]
    if len(matches) == 1:
        return matches[0]
    print(f"Handoff {prefix!r} not found." if not matches else f"Handoff {prefix!r} is ambiguous.")
    return None


async def list_pending(store: SqliteStore) -> None:
    handoffs = await store.get_pending_handoffs()
    if not handoffs:
        print("No pending handoffs.")
        return

    print(f"\n{'ID':<8}  {'Thread':<8}  {'Assigned':<10}  {'Conf':>4}  Reason")
    print("-" * 80)
    for h in handoffs:
        conf = h.snapshot.get("confidence", 0.0)
        print(
            f"{h.handoff_id[:8]:<8}  {h.thread_id[:8]:<8}  {(h.assigned_to or '-'):<10}"
            f"  {conf:>4.2f}  {h.reason[:40]}"
        )
    print()


async def show_handoff(store: SqliteStore, prefix: str) -> None:
    handoff = await _find(store, prefix)
    if not handoff:
        return

    print(f"\n{'=' * 60}")
    print(f"  Handoff {handoff.handoff_id}")
    print(f"  Thread: {handoff.thread_id}")
    print(f"  Reason: {handoff.reason}")
    print(f"  Created: {handoff.created_at}")
    if handoff.assigned_to:
        print(f"  Assigned to: {handoff.assigned_to}")
    if handoff.resolved_at:
        print(f"  Resolved: {handoff.resolved_at}  ({handoff.outcome})")
    print(f"{'=' * 60}")
    print("\n  Guest:")
    print(_wrap(handoff.snapshot.get("last_message", "")))
    print(f"\n  AI reply (confidence {handoff.snapshot.get('confidence', 0.0):.2f}):")
    print(_wrap(handoff.snapshot.get("ai_response", "")))

    traces = await store.get_traces(handoff.thread_id)
    if traces:
        t = traces[0]
        print(
            f"\n  Last trace: {t.model}  {t.prompt_tokens}+{t.completion_tokens} tokens"
            f"  {t.latency_ms}ms"
        )
    print()


async def assign(store: SqliteStore, prefix: str, agent_id: str) -> None:
    handoff = await _find(store, prefix)
    if not handoff:
        return
    await assign_handoff(store, handoff.handoff_id, agent_id)
    print(f"Handoff {handoff.handoff_id[:8]} assigned to {agent_id}.")


async def resolve(store: SqliteStore, prefix: str) -> None:
    handoff = await _find(store, prefix)
    if not handoff:
        return
    if handoff.resolved_at:
        print(f"Handoff {handoff.handoff_id[:8]} already resolved ({handoff.outcome}).")
        return

    print(f"\nHandoff {handoff.handoff_id[:8]} ({handoff.reason}):")
    print(_wrap(handoff.snapshot.get("last_message", "")))
    print()

    outcome = input("How was it resolved? ").strip() or "resolved"
    await resolve_handoff(store, handoff.handoff_id, outcome)
    print(f"Handoff {handoff.handoff_id[:8]} resolved; thread reopened.")


async def show_stats(store: SqliteStore, org_id: str | None = None) -> None:
    stats = await store.get_ai_stats(org_id)
    print(f"\n  Threads:  {stats.total_threads} total, {stats.open_threads} open,"
          f" {stats.escalated_threads} escalated, {stats.closed_threads} closed")
    print(f"  Replies:  {stats.total_ai_responses}"
          f"  ({stats.low_confidence_count} below {LOW_CONFIDENCE_THRESHOLD:.0%} confidence)")
    print(f"  Avg confidence: {stats.avg_confidence:.2f}")
    print(f"  Avg latency:    {stats.avg_latency_ms:.0f}ms")
    print(f"  Tokens used:    {stats.total_tokens}\n")


async def main() -> None:
    if os.path.dirname(DB_PATH):
        os.makedirs(os.path.dirname(DB_PATH), exist_ok=True)
    store = SqliteStore(DB_PATH)

    if len(sys.argv) < 2:
        await list_pending(store)
        return

    cmd = sys.argv[1]

    if cmd == "show" and len(sys.argv) >= 3:
        await show_handoff(store, sys.argv[2])
    elif cmd == "assign" and len(sys.argv) >= 4:
        await assign(store, sys.argv[2], sys.argv[3])
    elif cmd == "resolve" and len(sys.argv) >= 3:
        await resolve(store, sys.argv[2])
    elif cmd == "stats":
        await show_stats(store, sys.argv[2] if len(sys.argv) >= 3 else None)
    else:
        print(__doc__)


if __name__ == "__main__":
    asyncio.run(main())
