"""Booking backend that stores reservations as calendar events.

Capacity is counted per seating window: a new booking at 20:00 with a
two-hour seating overlaps every event running between 20:00 and 22:00.  When the
window already holds ``bookings_per_slot`` reservations the request is
rejected with ``slot_full``.
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from reservations.booking.base import BookingBackend
from reservations.calendar_providers.base import CalendarEvent, CalendarProvider
from reservations.errors import BookingBackendError
from reservations.models.booking import (
    RESERVATION_NOT_FOUND,
    SLOT_FULL,
    BookingRequest,
    BookingResult,
    CancelRequest,
)

log = logging.getLogger("reservations.booking")


class CalendarBookingBackend(BookingBackend):
    """Reservations on a calendar, with a per-window table limit."""

    def __init__(
        self,
        provider: CalendarProvider,
        calendar_id: str = "primary",
        timezone: str = "Europe/Rome",
        seating_minutes: int = 120,
        bookings_per_slot: int = 8,
    ) -> None:
        self._provider = provider
        self._calendar_id = calendar_id
        self._tz = ZoneInfo(timezone)
        self._seating = timedelta(minutes=seating_minutes)
        self._bookings_per_slot = bookings_per_slot

    def _start_of(self, date_str: str, time_str: str) -> datetime:
        try:
            return datetime.strptime(
                f"{date_str} {time_str}", "%Y-%m-%d %H:%M:%S"
            ).replace(tzinfo=self._tz)
        except ValueError as e:
            raise BookingBackendError(f"Invalid date/time: {date_str} {time_str}") from e

    async def create(self, request: BookingRequest) -> BookingResult:
        start_dt = self._start_of(request.date, request.time)
        end_dt = start_dt + self._seating

        try:
            overlapping = await self._provider.list_events(
                self._calendar_id, start_dt, end_dt
            )
        except Exception as e:
            raise BookingBackendError(f"Calendar lookup failed: {e}") from e

        if len(overlapping) >= self._bookings_per_slot:
            log.info(
                "Slot %s %s full (%d bookings)",
                request.date, request.time, len(overlapping),
            )
            return BookingResult(success=False, reason=SLOT_FULL)

        party = f"{request.party_size} pax" if request.party_size else "party size n/d"
        properties = {
            "customer_name": request.customer_name,
            "caller_id": request.caller_id,
        }
        if request.party_size:
            properties["party_size"] = str(request.party_size)
        event = CalendarEvent(
            summary=f"{request.customer_name} - {party}",
            start=start_dt,
            end=end_dt,
            description=(
                f"Reservation for {request.customer_name} ({party}).\n"
                f"Phone: {request.caller_id or 'unknown'}\n"
                f"Email: {request.customer_email or 'not given'}"
            ),
            attendees=[request.customer_email] if request.customer_email else [],
            properties=properties,
        )

        try:
            result = await self._provider.create_event(
                calendar_id=self._calendar_id,
                event=event,
            )
        except Exception as e:
            raise BookingBackendError(f"Calendar insert failed: {e}") from e

        return BookingResult(success=True, event_id=result.get("event_id", ""))

    async def cancel(self, request: CancelRequest) -> BookingResult:
        day_start = datetime.combine(
            datetime.strptime(request.date, "%Y-%m-%d").date(), time.min, tzinfo=self._tz
        )
        try:
            events = await self._provider.list_events(
                self._calendar_id, day_start, day_start + timedelta(days=1)
            )
        except Exception as e:
            raise BookingBackendError(f"Calendar lookup failed: {e}") from e

        match = self._find(events, request)
        if match is None:
            return BookingResult(success=False, reason=RESERVATION_NOT_FOUND)

        try:
            cancelled = await self._provider.cancel_event(self._calendar_id, match.event_id)
        except Exception as e:
            raise BookingBackendError(f"Calendar delete failed: {e}") from e
        if not cancelled:
            raise BookingBackendError(f"Calendar refused to delete {match.event_id}")
        return BookingResult(success=True, event_id=match.event_id)

    def _find(
        self, events: list[CalendarEvent], request: CancelRequest
    ) -> Optional[CalendarEvent]:
        name = (request.customer_name or "").casefold()
        for event in events:
            if name and event.properties.get("customer_name", "").casefold() != name:
                continue
            if request.time and event.start.astimezone(self._tz).strftime("%H:%M:%S") != request.time:
                continue
            return event
        return None
