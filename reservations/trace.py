"""Per-call turn tracing for the admin WebSocket.

Each CallSession owns a TraceRecorder.  The orchestrator records what
happened in a turn (the utterance, the model's proposal, intent
corrections, escalation, booking outcome, state transitions); events are
kept in a bounded log and pushed to every connected subscriber's
asyncio.Queue.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import TypedDict

log = logging.getLogger("reservations.trace")


class TraceEvent(TypedDict):
    type: str          # turn | nlu_response | intent_corrected | escalation | booking | transition | error
    timestamp: float
    call_id: str
    state: str
    data: dict


class TraceRecorder:
    """Bounded event log plus one asyncio.Queue per subscriber."""

    def __init__(self, call_id: str, max_events: int = 500) -> None:
        self._call_id = call_id
        self._subscribers: list[asyncio.Queue[TraceEvent]] = []
        self._events: deque[TraceEvent] = deque(maxlen=max_events)

    def subscribe(self) -> asyncio.Queue[TraceEvent]:
        """Create a new subscriber queue and return it."""
        q: asyncio.Queue[TraceEvent] = asyncio.Queue(maxsize=200)
        self._subscribers.append(q)
        log.info("Trace subscriber added for call %s (total: %d)",
                 self._call_id, len(self._subscribers))
        return q

    def unsubscribe(self, q: asyncio.Queue[TraceEvent]) -> None:
        """Remove a subscriber queue."""
        if q in self._subscribers:
            self._subscribers.remove(q)
        log.info("Trace subscriber removed for call %s (total: %d)",
                 self._call_id, len(self._subscribers))

    def record(self, event_type: str, state: str, data: dict) -> None:
        """Append an event to the log and broadcast it."""
        event: TraceEvent = {
            "type": event_type,
            "timestamp": time.time(),
            "call_id": self._call_id,
            "state": state,
            "data": data,
        }
        self._events.append(event)

        for q in self._subscribers:
            if q.full():
                # Slow reader: drop its oldest event
                q.get_nowait()
            q.put_nowait(event)

    @property
    def events(self) -> list[TraceEvent]:
        return list(self._events)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
