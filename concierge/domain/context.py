"""
Context assembly: everything the reply generator may know about a thread.

ContextStore is the port to the external store.  build_context() turns what
the store returns into one read-only ContextData value; format_context_for_prompt()
renders it as a labelled text block.  Any missing piece simply drops out of
the rendering: absence is a valid state, not an error.
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Literal

from concierge.domain.errors import ContextError

log = logging.getLogger(__name__)

DEFAULT_MESSAGE_LIMIT = 20
PROMPT_HISTORY_TURNS = 10


@dataclass(frozen=True)
class ConversationMessage:
    role: Literal["user", "assistant"]
    content: str
    timestamp: str


@dataclass(frozen=True)
class ReservationContext:
    id: str
    guest_name: str
    check_in: str           # ISO date
    check_out: str          # ISO date
    guests_count: int
    total_price: float
    status: str
    guest_email: str = ""
    payment_status: str = ""
    channel: str = ""

    @property
    def nights(self) -> int:
        start = _parse_date(self.check_in)
        end = _parse_date(self.check_out)
        if start is None or end is None:
            return 0
        return math.ceil((end - start).total_seconds() / 86400)


@dataclass(frozen=True)
class PropertyContext:
    id: str
    name: str
    address: str
    city: str
    country: str
    description: str | None = None
    check_in_time: str | None = None
    check_out_time: str | None = None
    house_rules: str | None = None
    wifi_info: str | None = None


@dataclass(frozen=True)
class LotContext:
    id: str
    title: str
    bedrooms: int
    bathrooms: int
    max_guests: int
    base_price: float
    cleaning_fee: float
    pets_allowed: bool
    description: str | None = None
    amenities: tuple[str, ...] = ()


@dataclass(frozen=True)
class OrganizationContext:
    id: str
    name: str
    support_email: str | None = None
    support_phone: str | None = None


@dataclass(frozen=True)
class ContextData:
    thread_id: str
    conversation_history: tuple[ConversationMessage, ...] = ()
    reservation: ReservationContext | None = None
    property: PropertyContext | None = None
    lot: LotContext | None = None
    organization: OrganizationContext | None = None


@dataclass
class ThreadRecord:
    """A thread as the store returns it, with its linked records resolved."""
    thread_id: str
    status: str = "open"
    reservation: ReservationContext | None = None
    lot: LotContext | None = None
    property: PropertyContext | None = None
    organization: OrganizationContext | None = None


@dataclass
class StoredMessage:
    message_id: str
    thread_id: str
    author_type: str        # "guest", "owner" or "ai"
    body: str
    created_at: str
    meta: dict = field(default_factory=dict)


class ContextStore(ABC):
    """
    Port: read access to threads, their linked booking data, and messages.

    Implementations may talk to SQLite (SqliteStore) or hold records in
    memory (InMemoryStore).  Both must satisfy the same contract.
    """

    @abstractmethod
    async def load_thread(self, thread_id: str) -> ThreadRecord | None:
        """Return the thread with reservation/lot/property/org, or None if unknown."""
        ...

    @abstractmethod
    async def load_recent_messages(
        self, thread_id: str, limit: int = DEFAULT_MESSAGE_LIMIT
    ) -> list[StoredMessage]:
        """Return the most recent messages of a thread, newest first."""
        ...


async def build_context(
    store: ContextStore, thread_id: str, limit: int = DEFAULT_MESSAGE_LIMIT
) -> ContextData:
    """
    Load a thread and its recent messages into a ContextData.

    Raises ContextError when the thread is unknown or the store fails.
    """
    try:
        thread = await store.load_thread(thread_id)
        if thread is None:
            raise ContextError(thread_id, "thread not found")
        messages = await store.load_recent_messages(thread_id, limit)
    except ContextError:
        raise
    except Exception as exc:
        log.error("thread=%s context store failure: %s", thread_id, exc)
        raise ContextError(thread_id, f"context store failure: {exc}") from exc

    history = tuple(
        ConversationMessage(
            role="assistant" if m.author_type == "ai" else "user",
            content=m.body,
            timestamp=m.created_at,
        )
        for m in reversed(messages)
    )
    log.debug("thread=%s context loaded: %d message(s)", thread_id, len(history))

    return ContextData(
        thread_id=thread_id,
        conversation_history=history,
        reservation=thread.reservation,
        property=thread.property,
        lot=thread.lot,
        organization=thread.organization,
    )


def format_context_for_prompt(context: ContextData) -> str:
    """Render a ContextData as the CONTEXT block of the system prompt."""
    sections: list[str] = []

    if context.organization:
        sections.append(f"PROPERTY MANAGEMENT: {context.organization.name}")

    prop = context.property
    if prop:
        sections.append(f"PROPERTY: {prop.name}")
        sections.append(f"Location: {prop.address}, {prop.city}, {prop.country}")
        if prop.description:
            sections.append(f"Description: {prop.description}")
        if prop.check_in_time:
            sections.append(f"Check-in time: {prop.check_in_time}")
        if prop.check_out_time:
            sections.append(f"Check-out time: {prop.check_out_time}")
        if prop.house_rules:
            sections.append(f"House rules: {prop.house_rules}")
        if prop.wifi_info:
            sections.append(f"WiFi: {prop.wifi_info}")

    lot = context.lot
    if lot:
        sections.extend([
            f"\nACCOMMODATION: {lot.title}",
            f"Bedrooms: {lot.bedrooms}, Bathrooms: {lot.bathrooms}",
            f"Max Guests: {lot.max_guests}",
            f"Base Price: €{_money(lot.base_price)}/night",
            f"Cleaning Fee: €{_money(lot.cleaning_fee)}",
            f"Pets: {'Allowed' if lot.pets_allowed else 'Not allowed'}",
        ])
        if lot.amenities:
            sections.append(f"Amenities: {', '.join(lot.amenities)}")
        if lot.description:
            sections.append(f"Description: {lot.description}")

    res = context.reservation
    if res:
        sections.extend([
            "\nRESERVATION DETAILS:",
            f"Guest: {res.guest_name}",
            f"Check-in: {_display_date(res.check_in)}",
            f"Check-out: {_display_date(res.check_out)}",
            f"Nights: {res.nights}",
            f"Guests: {res.guests_count}",
            f"Total Price: €{_money(res.total_price)}",
            f"Status: {res.status}",
            f"Payment: {res.payment_status}",
            f"Booking Channel: {res.channel}",
        ])

    if context.conversation_history:
        sections.append("\nRECENT CONVERSATION:")
        for msg in context.conversation_history[-PROMPT_HISTORY_TURNS:]:
            speaker = "You" if msg.role == "assistant" else "Guest"
            sections.append(f"{speaker}: {msg.content}")

    return "\n".join(sections)


def has_minimum_context(context: ContextData) -> bool:
    """A reply needs at least property or lot information."""
    return context.property is not None or context.lot is not None


def extract_dates_from_context(context: ContextData) -> tuple[date | None, date | None]:
    """Return the reservation's (check_in, check_out), or (None, None)."""
    if context.reservation is None:
        return None, None
    return _parse_date(context.reservation.check_in), _parse_date(context.reservation.check_out)


def _parse_date(value: str) -> date | None:
    try:
        return datetime.fromisoformat(value[:10]).date()
    except (TypeError, ValueError):
        return None


def _display_date(value: str) -> str:
    d = _parse_date(value)
    if d is None:
        return value
    return f"{d:%b} {d.day}, {d.year}"


def _money(amount: float) -> str:
    return f"{amount:.2f}".rstrip("0").rstrip(".")
