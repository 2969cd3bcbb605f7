"""Per-call session state and the keyed session store.

Every call gets one CallSession, created on its first turn and dropped
when the call ends (Twilio status callback) or after an inactivity
horizon.  Turns for the same call are serialized by a per-call
asyncio.Lock; different calls run concurrently.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Optional

from reservations.models.dialogue import ConversationState
from reservations.models.restaurant import RestaurantContext
from reservations.models.slots import ReservationSlots
from reservations.trace import TraceRecorder

log = logging.getLogger("reservations.session")

# Model context window: once past the limit keep only the most recent turns
MAX_MESSAGES = 30
KEEP_MESSAGES = 20


def redact_pii(value: Optional[str]) -> str:
    """Mask PII for logging — show first 3 and last 2 chars only."""
    if not value or len(value) <= 5:
        return "***"
    return value[:3] + "***" + value[-2:]


class CallSession:
    """One phone call's booking conversation."""

    def __init__(
        self,
        call_id: str,
        restaurant: RestaurantContext,
        language: str = "",
        caller_id: str = "",
    ) -> None:
        self.call_id = call_id
        self.restaurant = restaurant
        self.language = language or restaurant.default_language
        self.caller_id = caller_id

        self.state = ConversationState.COLLECTING
        self.reservation = ReservationSlots()
        # Raw caller utterances, never truncated (temporal inference reads all of it)
        self.utterance_history: list[str] = []
        # Model context window, trimmed
        self.messages: list[dict[str, str]] = []

        self.turn_count = 0
        self.started_at = time.time()
        self.last_seen = time.monotonic()
        self.trace = TraceRecorder(call_id)

    @property
    def is_closed(self) -> bool:
        return self.state is ConversationState.CLOSED

    def add_message(self, role: str, content: str) -> None:
        self.messages.append({"role": role, "content": content})
        if len(self.messages) > MAX_MESSAGES:
            self.messages = self.messages[-KEEP_MESSAGES:]

    def transition(self, new_state: ConversationState, reason: str = "") -> None:
        if new_state is self.state:
            return
        log.info(
            "Call %s: %s → %s%s",
            self.call_id, self.state.value, new_state.value,
            f" ({reason})" if reason else "",
        )
        self.trace.record("transition", new_state.value, {
            "from": self.state.value, "to": new_state.value, "reason": reason,
        })
        self.state = new_state

    def to_dict(self, detail: bool = False) -> dict[str, Any]:
        """Serialize session state for the admin API.

        With detail=False: summary suitable for listing.
        With detail=True: adds the reservation, history and recent trace.
        PII is redacted in both.
        """
        slots = self.reservation
        d: dict[str, Any] = {
            "call_id": self.call_id,
            "state": self.state.value,
            "language": self.language,
            "caller_id": redact_pii(self.caller_id),
            "turn_count": self.turn_count,
            "started_at": self.started_at,
            "missing": slots.missing(),
        }
        if detail:
            d["reservation"] = {
                "date": slots.date,
                "time": slots.time,
                "party_size": slots.party_size,
                "customer_name": redact_pii(slots.customer_name) if slots.customer_name else None,
                "customer_email": redact_pii(slots.customer_email) if slots.customer_email else None,
            }
            d["utterance_count"] = len(self.utterance_history)
            d["message_count"] = len(self.messages)
            d["trace"] = self.trace.events[-50:]
        return d


# ── Session store ─────────────────────────────────────────────────────

class SessionStore:
    """CallSessions keyed by call id, one lock per call."""

    def __init__(
        self,
        ttl_seconds: float = 1800,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._sessions: dict[str, CallSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @asynccontextmanager
    async def acquire(
        self,
        call_id: str,
        factory: Callable[[], CallSession],
    ) -> AsyncIterator[CallSession]:
        """Hold the session for ``call_id`` exclusively, creating it if needed."""
        self.purge_expired()
        lock = self._locks.setdefault(call_id, asyncio.Lock())
        try:
            async with lock:
                session = self._sessions.get(call_id)
                if session is None:
                    session = factory()
                    session.last_seen = self._clock()
                    self._sessions[call_id] = session
                    log.info("Session created: %s", call_id)
                try:
                    yield session
                finally:
                    session.last_seen = self._clock()
        finally:
            # remove() during the turn leaves this lock behind
            if call_id not in self._sessions and self._locks.get(call_id) is lock \
                    and not lock.locked():
                del self._locks[call_id]

    def get(self, call_id: str) -> CallSession | None:
        return self._sessions.get(call_id)

    def all(self) -> dict[str, CallSession]:
        return dict(self._sessions)

    def remove(self, call_id: str) -> bool:
        """Drop a session when its call ends. Returns whether it existed."""
        session = self._sessions.pop(call_id, None)
        lock = self._locks.get(call_id)
        if lock is not None and not lock.locked():
            del self._locks[call_id]
        if session is not None:
            log.info("Session removed: %s (%d turns)", call_id, session.turn_count)
        return session is not None

    def purge_expired(self) -> int:
        """Drop sessions idle longer than the TTL; returns how many went."""
        now = self._clock()
        expired = [
            call_id for call_id, session in self._sessions.items()
            if now - session.last_seen > self._ttl
            and not (call_id in self._locks and self._locks[call_id].locked())
        ]
        for call_id in expired:
            self._sessions.pop(call_id, None)
            self._locks.pop(call_id, None)
        if expired:
            log.info("Purged %d idle session(s)", len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._sessions)
