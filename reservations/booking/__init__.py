"""Booking backends."""

from __future__ import annotations

import logging

from reservations.config import Settings
from reservations.errors import ConfigurationError

from .base import BookingBackend
from .calendar import CalendarBookingBackend
from .memory import InMemoryBookingBackend

log = logging.getLogger("reservations.booking")


def build_backend(settings: Settings) -> BookingBackend:
    """Google Calendar when a service account is configured, memory otherwise."""
    if not settings.google_service_account_json:
        log.warning("No calendar configured, bookings are kept in memory")
        return InMemoryBookingBackend(settings.bookings_per_slot)

    from reservations.calendar_providers.google import GoogleCalendarProvider

    try:
        provider = GoogleCalendarProvider(settings.google_service_account_json)
    except Exception as e:
        raise ConfigurationError(
            f"Cannot open Google Calendar with {settings.google_service_account_json}: {e}"
        ) from e

    return CalendarBookingBackend(
        provider,
        calendar_id=settings.google_calendar_id,
        timezone=settings.calendar_timezone,
        seating_minutes=settings.seating_minutes,
        bookings_per_slot=settings.bookings_per_slot,
    )


__all__ = [
    "BookingBackend",
    "CalendarBookingBackend",
    "InMemoryBookingBackend",
    "build_backend",
]
