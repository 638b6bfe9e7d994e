#!/usr/bin/env python3
"""
Answer a guest message from the command line.

Runs the full pipeline: the reply is stored in the thread, and a handoff is
opened when the turn needs the owner.

Usage (from project root):
    python scripts/respond.py seed                          # create a demo thread, print its id
    python scripts/respond.py <thread_id> "<message>"       # answer a guest message
    python scripts/respond.py quick "<message>"             # one-off reply, no thread context

Environment variables: see concierge/config.py (GEMINI_API_KEY and
ANTHROPIC_API_KEY for the default providers, PRIMARY_PROVIDER=simulator to
run offline).
"""

import asyncio
import logging
import os
import sys
from datetime import date, timedelta

# Make sure project root is on sys.path when run as a script
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from concierge.adapters.sqlite_store import SqliteStore
from concierge.config import AIConfig
from concierge.factory import build_pipeline

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-7s  %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger(__name__)


def _open_store(config: AIConfig) -> SqliteStore:
    if os.path.dirname(config.db_path):
        os.makedirs(os.path.dirname(config.db_path), exist_ok=True)
    return SqliteStore(db_path=config.db_path)


def seed_demo_thread(store: SqliteStore) -> str:
    org_id = store.insert(
        "organizations",
        name="Seaside Stays",
        support_email="hello@seasidestays.example",
        support_phone="+33 4 00 00 00 00",
    )
    property_id = store.insert(
        "properties",
        org_id=org_id,
        name="Villa Azur",
        address="12 Chemin des Pins",
        city="Antibes",
        country="France",
        description="Stone villa ten minutes from the beach.",
        check_in_time="16:00",
        check_out_time="11:00",
        house_rules="No parties. Quiet hours after 22:00.",
        wifi_info="Network: VillaAzur, password: soleil2024",
    )
    lot_id = store.insert(
        "lots",
        property_id=property_id,
        title="Garden apartment",
        bedrooms=2,
        bathrooms=1,
        max_guests=4,
        base_price=140,
        cleaning_fee=60,
        pets_allowed=False,
        amenities=["wifi", "parking", "air conditioning", "washing machine"],
    )
    arrival = date.today() + timedelta(days=7)
    reservation_id = store.insert(
        "reservations",
        lot_id=lot_id,
        guest_name="Alex Martin",
        guest_email="alex@example.com",
        check_in=arrival.isoformat(),
        check_out=(arrival + timedelta(days=4)).isoformat(),
        guests_count=3,
        total_price=620,
        status="confirmed",
        payment_status="paid",
        channel="direct",
    )
    return store.insert("threads", org_id=org_id, reservation_id=reservation_id)


async def respond(config: AIConfig, thread_id: str, message: str) -> None:
    store = _open_store(config)
    pipeline = build_pipeline(config, store=store)

    result = await pipeline.handle_guest_message(thread_id, message)

    if not result.success:
        print(f"ERROR: {result.error}", file=sys.stderr)
        sys.exit(1)

    print(f"\n{result.ai_message}\n")
    print(f"  confidence: {result.confidence:.2f}")
    if result.escalated:
        print(f"  escalated → handoff {result.handoff_id}")


async def quick(config: AIConfig, message: str) -> None:
    pipeline = build_pipeline(config, store=SqliteStore(":memory:"))
    print(await pipeline.orchestrator.quick_response(message))


async def main() -> None:
    config = AIConfig.from_env()

    if len(sys.argv) == 2 and sys.argv[1] == "seed":
        thread_id = seed_demo_thread(_open_store(config))
        log.info("Demo thread created in %s", config.db_path)
        print(thread_id)
    elif len(sys.argv) >= 3 and sys.argv[1] == "quick":
        await quick(config, " ".join(sys.argv[2:]))
    elif len(sys.argv) >= 3:
        await respond(config, sys.argv[1], " ".join(sys.argv[2:]))
    else:
        print(__doc__)


if __name__ == "__main__":
    asyncio.run(main())
