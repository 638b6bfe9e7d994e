"""
SQLite adapter for ContextStore and ConversationMemory.

One connection serves both ports so a reply written by the pipeline is
visible to the next context load.  Use ":memory:" for tests, a file path
for production.
"""

import json
import sqlite3
import uuid
from datetime import datetime, timezone

from concierge.domain.context import (
    DEFAULT_MESSAGE_LIMIT,
    ContextStore,
    LotContext,
    OrganizationContext,
    PropertyContext,
    ReservationContext,
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

_SCHEMA = """
CREATE TABLE IF NOT EXISTS organizations (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    support_email TEXT,
    support_phone TEXT
);

CREATE TABLE IF NOT EXISTS properties (
    id          TEXT PRIMARY KEY,
    org_id      TEXT REFERENCES organizations(id),
    name        TEXT NOT NULL,
    description TEXT,
    address     TEXT NOT NULL DEFAULT '',
    city        TEXT NOT NULL DEFAULT '',
    country     TEXT NOT NULL DEFAULT '',
    check_in_time TEXT,
    check_out_time TEXT,
    house_rules TEXT,
    wifi_info   TEXT
);

CREATE TABLE IF NOT EXISTS lots (
    id          TEXT PRIMARY KEY,
    property_id TEXT REFERENCES properties(id),
    title       TEXT NOT NULL,
    description TEXT,
    bedrooms    INTEGER NOT NULL DEFAULT 0,
    bathrooms   INTEGER NOT NULL DEFAULT 0,
    max_guests  INTEGER NOT NULL DEFAULT 0,
    base_price  REAL NOT NULL DEFAULT 0,
    cleaning_fee REAL NOT NULL DEFAULT 0,
    pets_allowed INTEGER NOT NULL DEFAULT 0,
    amenities   TEXT NOT NULL DEFAULT '[]'
);

CREATE TABLE IF NOT EXISTS reservations (
    id          TEXT PRIMARY KEY,
    lot_id      TEXT REFERENCES lots(id),
    guest_name  TEXT NOT NULL,
    guest_email TEXT NOT NULL DEFAULT '',
    check_in    TEXT NOT NULL,
    check_out   TEXT NOT NULL,
    guests_count INTEGER NOT NULL DEFAULT 1,
    total_price REAL NOT NULL DEFAULT 0,
    status      TEXT NOT NULL DEFAULT 'confirmed',
    payment_status TEXT NOT NULL DEFAULT 'pending',
    channel     TEXT NOT NULL DEFAULT 'direct'
);

CREATE TABLE IF NOT EXISTS threads (
    id          TEXT PRIMARY KEY,
    org_id      TEXT REFERENCES organizations(id),
    reservation_id TEXT REFERENCES reservations(id),
    status      TEXT NOT NULL DEFAULT 'open',
    created_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS messages (
    id          TEXT PRIMARY KEY,
    thread_id   TEXT NOT NULL REFERENCES threads(id),
    author_type TEXT NOT NULL,
    body        TEXT NOT NULL,
    meta        TEXT NOT NULL DEFAULT '{}',
    created_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS ai_traces (
    id          TEXT PRIMARY KEY,
    thread_id   TEXT REFERENCES threads(id),
    model       TEXT,
    prompt_tokens INTEGER,
    completion_tokens INTEGER,
    latency_ms  INTEGER,
    confidence  REAL,
    safety_flags TEXT NOT NULL DEFAULT '{}',
    created_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS handoffs (
    id          TEXT PRIMARY KEY,
    thread_id   TEXT NOT NULL REFERENCES threads(id),
    reason      TEXT,
    snapshot    TEXT NOT NULL DEFAULT '{}',
    assigned_to TEXT,
    resolved_at TEXT,
    outcome     TEXT,
    created_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_messages_thread ON messages(thread_id, created_at);
"""

_SEED_TABLES = frozenset({"organizations", "properties", "lots", "reservations", "threads"})


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _parse_dt(s: str) -> datetime:
    return datetime.fromisoformat(s)


class SqliteStore(ContextStore, ConversationMemory):
    """
    Queries run synchronously on the calling event loop.  Each statement is a
    short local read or write and the store serves one request at a time
    (the CLI scripts), so the connection is never shared across threads.
    """

    def __init__(self, db_path: str = "concierge.db"):
        self._conn = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)

    def insert(self, table: str, **values) -> str:
        """Insert a booking-data row (org, property, lot, reservation, thread). Returns its id."""
        if table not in _SEED_TABLES:
            raise ValueError(f"Unknown table: {table!r}")
        values.setdefault("id", str(uuid.uuid4()))
        if table == "threads":
            values.setdefault("created_at", _now())
        if table == "lots" and "amenities" in values:
            values["amenities"] = json.dumps(list(values["amenities"]))
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        self._conn.execute(
            f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
            tuple(values.values()),
        )
        self._conn.commit()
        return values["id"]

    # -- ContextStore --------------------------------------------------------

    async def load_thread(self, thread_id: str) -> ThreadRecord | None:
        thread = self._conn.execute(
            "SELECT * FROM threads WHERE id = ?", (thread_id,)
        ).fetchone()
        if not thread:
            return None

        record = ThreadRecord(thread_id=thread["id"], status=thread["status"])

        if thread["reservation_id"]:
            res = self._row("reservations", thread["reservation_id"])
            if res:
                record.reservation = self._row_to_reservation(res)
                lot = self._row("lots", res["lot_id"]) if res["lot_id"] else None
                if lot:
                    record.lot = self._row_to_lot(lot)
                    prop = self._row("properties", lot["property_id"]) if lot["property_id"] else None
                    if prop:
                        record.property = self._row_to_property(prop)

        if thread["org_id"]:
            org = self._row("organizations", thread["org_id"])
            if org:
                record.organization = OrganizationContext(
                    id=org["id"],
                    name=org["name"],
                    support_email=org["support_email"],
                    support_phone=org["support_phone"],
                )
        return record

    async def load_recent_messages(
        self, thread_id: str, limit: int = DEFAULT_MESSAGE_LIMIT
    ) -> list[StoredMessage]:
        rows = self._conn.execute(
            "SELECT * FROM messages WHERE thread_id = ? ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (thread_id, limit),
        ).fetchall()
        return [self._row_to_message(r) for r in rows]

    def _row(self, table: str, row_id: str):
        return self._conn.execute(
            f"SELECT * FROM {table} WHERE id = ?", (row_id,)
        ).fetchone()

    @staticmethod
    def _row_to_reservation(row) -> ReservationContext:
        return ReservationContext(
            id=row["id"],
            guest_name=row["guest_name"],
            guest_email=row["guest_email"],
            check_in=row["check_in"],
            check_out=row["check_out"],
            guests_count=row["guests_count"],
            total_price=row["total_price"],
            status=row["status"],
            payment_status=row["payment_status"],
            channel=row["channel"],
        )

    @staticmethod
    def _row_to_lot(row) -> LotContext:
        return LotContext(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            bedrooms=row["bedrooms"],
            bathrooms=row["bathrooms"],
            max_guests=row["max_guests"],
            base_price=row["base_price"],
            cleaning_fee=row["cleaning_fee"],
            pets_allowed=bool(row["pets_allowed"]),
            amenities=tuple(json.loads(row["amenities"])),
        )

    @staticmethod
    def _row_to_property(row) -> PropertyContext:
        return PropertyContext(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            address=row["address"],
            city=row["city"],
            country=row["country"],
            check_in_time=row["check_in_time"],
            check_out_time=row["check_out_time"],
            house_rules=row["house_rules"],
            wifi_info=row["wifi_info"],
        )

    @staticmethod
    def _row_to_message(row) -> StoredMessage:
        return StoredMessage(
            message_id=row["id"],
            thread_id=row["thread_id"],
            author_type=row["author_type"],
            body=row["body"],
            created_at=row["created_at"],
            meta=json.loads(row["meta"]),
        )

    # -- traces --------------------------------------------------------------

    async def insert_trace(self, trace: TraceRecord) -> str:
        trace_id = str(uuid.uuid4())
        try:
            self._conn.execute(
                "INSERT INTO ai_traces"
                " (id, thread_id, model, prompt_tokens, completion_tokens,"
                "  latency_ms, confidence, safety_flags, created_at)"
                " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (trace_id, trace.thread_id, trace.model, trace.prompt_tokens,
                 trace.completion_tokens, trace.latency_ms, trace.confidence,
                 json.dumps(trace.safety_flags), _now()),
            )
            self._conn.commit()
        except sqlite3.Error as exc:
            raise TraceWriteError(str(exc)) from exc
        return trace_id

    async def get_traces(self, thread_id: str) -> list[TraceRecord]:
        rows = self._conn.execute(
            "SELECT * FROM ai_traces WHERE thread_id = ? ORDER BY created_at DESC, rowid DESC",
            (thread_id,),
        ).fetchall()
        return [
            TraceRecord(
                thread_id=r["thread_id"],
                model=r["model"],
                prompt_tokens=r["prompt_tokens"],
                completion_tokens=r["completion_tokens"],
                latency_ms=r["latency_ms"],
                confidence=r["confidence"],
                safety_flags=json.loads(r["safety_flags"]),
                trace_id=r["id"],
                created_at=_parse_dt(r["created_at"]),
            )
            for r in rows
        ]

    async def get_ai_stats(
        self,
        org_id: str | None = None,
        low_confidence_threshold: float = LOW_CONFIDENCE_THRESHOLD,
    ) -> AIStats:
        threads = self._conn.execute(
            "SELECT COUNT(*) AS total,"
            "  SUM(status = 'open') AS open_threads,"
            "  SUM(status = 'escalated') AS escalated_threads,"
            "  SUM(status = 'closed') AS closed_threads"
            " FROM threads WHERE ? IS NULL OR org_id = ?",
            (org_id, org_id),
        ).fetchone()
        traces = self._conn.execute(
            "SELECT COUNT(*) AS total,"
            "  AVG(ai.confidence) AS avg_confidence,"
            "  AVG(ai.latency_ms) AS avg_latency_ms,"
            "  SUM(ai.prompt_tokens + ai.completion_tokens) AS total_tokens,"
            "  SUM(ai.confidence < ?) AS low_confidence"
            " FROM ai_traces ai LEFT JOIN threads t ON ai.thread_id = t.id"
            " WHERE ? IS NULL OR t.org_id = ?",
            (low_confidence_threshold, org_id, org_id),
        ).fetchone()
        return AIStats(
            total_threads=threads["total"],
            open_threads=threads["open_threads"] or 0,
            escalated_threads=threads["escalated_threads"] or 0,
            closed_threads=threads["closed_threads"] or 0,
            total_ai_responses=traces["total"],
            avg_confidence=traces["avg_confidence"] or 0.0,
            avg_latency_ms=traces["avg_latency_ms"] or 0.0,
            total_tokens=traces["total_tokens"] or 0,
            low_confidence_count=traces["low_confidence"] or 0,
        )

    # -- messages and threads ------------------------------------------------

    async def save_message(
        self, thread_id: str, author_type: str, body: str, meta: dict | None = None
    ) -> str:
        message_id = str(uuid.uuid4())
        self._conn.execute(
            "INSERT INTO messages (id, thread_id, author_type, body, meta, created_at)"
            " VALUES (?, ?, ?, ?, ?, ?)",
            (message_id, thread_id, author_type, body, json.dumps(meta or {}), _now()),
        )
        self._conn.commit()
        return message_id

    async def get_message(self, message_id: str) -> StoredMessage | None:
        row = self._conn.execute(
            "SELECT * FROM messages WHERE id = ?", (message_id,)
        ).fetchone()
        if not row:
            return None
        return self._row_to_message(row)

    async def set_thread_status(self, thread_id: str, status: str) -> None:
        self._conn.execute(
            "UPDATE threads SET status = ? WHERE id = ?", (status, thread_id)
        )
        self._conn.commit()

    # -- handoffs ------------------------------------------------------------

    async def create_handoff(self, thread_id: str, reason: str, snapshot: dict) -> str:
        handoff_id = str(uuid.uuid4())
        self._conn.execute(
            "INSERT INTO handoffs (id, thread_id, reason, snapshot, created_at)"
            " VALUES (?, ?, ?, ?, ?)",
            (handoff_id, thread_id, reason, json.dumps(snapshot), _now()),
        )
        self._conn.commit()
        return handoff_id

    async def get_handoff(self, handoff_id: str) -> Handoff | None:
        row = self._conn.execute(
            "SELECT * FROM handoffs WHERE id = ?", (handoff_id,)
        ).fetchone()
        if not row:
            return None
        return self._row_to_handoff(row)

    async def get_pending_handoffs(self) -> list[Handoff]:
        rows = self._conn.execute(
            "SELECT * FROM handoffs WHERE resolved_at IS NULL ORDER BY created_at, rowid"
        ).fetchall()
        return [self._row_to_handoff(r) for r in rows]

    async def assign_handoff(self, handoff_id: str, agent_id: str) -> None:
        self._conn.execute(
            "UPDATE handoffs SET assigned_to = ? WHERE id = ?", (agent_id, handoff_id)
        )
        self._conn.commit()

    async def resolve_handoff(self, handoff_id: str, outcome: str) -> None:
        self._conn.execute(
            "UPDATE handoffs SET resolved_at = ?, outcome = ? WHERE id = ?",
            (_now(), outcome, handoff_id),
        )
        self._conn.commit()

    @staticmethod
    def _row_to_handoff(row) -> Handoff:
        return Handoff(
            handoff_id=row["id"],
            thread_id=row["thread_id"],
            reason=row["reason"],
            snapshot=json.loads(row["snapshot"]),
            created_at=_parse_dt(row["created_at"]),
            assigned_to=row["assigned_to"],
            resolved_at=_parse_dt(row["resolved_at"]) if row["resolved_at"] else None,
            outcome=row["outcome"],
        )
