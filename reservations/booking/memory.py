"""In-process booking backend for development and tests."""

from __future__ import annotations

import logging
import secrets

from reservations.booking.base import BookingBackend
from reservations.models.booking import (
    RESERVATION_NOT_FOUND,
    SLOT_FULL,
    BookingRequest,
    BookingResult,
    CancelRequest,
)

log = logging.getLogger("reservations.booking")


class InMemoryBookingBackend(BookingBackend):
    """Keeps reservations in a dict; ``bookings_per_slot`` per exact date+time."""

    def __init__(self, bookings_per_slot: int = 8) -> None:
        self._bookings_per_slot = bookings_per_slot
        self.bookings: dict[str, BookingRequest] = {}

    async def create(self, request: BookingRequest) -> BookingResult:
        taken = sum(
            1 for b in self.bookings.values()
            if b.date == request.date and b.time == request.time
        )
        if taken >= self._bookings_per_slot:
            return BookingResult(success=False, reason=SLOT_FULL)

        event_id = secrets.token_hex(8)
        self.bookings[event_id] = request
        log.info("Booked %s %s (%d in slot)", request.date, request.time, taken + 1)
        return BookingResult(success=True, event_id=event_id)

    async def cancel(self, request: CancelRequest) -> BookingResult:
        name = (request.customer_name or "").casefold()
        for event_id, booking in self.bookings.items():
            if booking.date != request.date:
                continue
            if request.time and booking.time != request.time:
                continue
            if name and booking.customer_name.casefold() != name:
                continue
            del self.bookings[event_id]
            return BookingResult(success=True, event_id=event_id)
        return BookingResult(success=False, reason=RESERVATION_NOT_FOUND)
