"""Abstract base class for calendar providers.

Reservations are stored as calendar events, one per table booking.  The
interface covers what the booking backend needs: list the events that
overlap a seating window, create one, cancel one.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class CalendarEvent:
    """A reservation as stored on the calendar."""

    summary: str
    start: datetime
    end: datetime
    description: str = ""
    attendees: list[str] = field(default_factory=list)  # email addresses
    # Machine-readable booking fields (Google: extendedProperties.private)
    properties: dict[str, str] = field(default_factory=dict)
    event_id: str = ""


class CalendarProvider(ABC):
    """Abstract calendar backend."""

    @abstractmethod
    async def list_events(
        self,
        calendar_id: str,
        start: datetime,
        end: datetime,
    ) -> list[CalendarEvent]:
        """Return events overlapping ``[start, end)``.

        Args:
            calendar_id: The calendar to query.
            start: Beginning of the window.
            end: End of the window.

        Returns:
            Events ordered by start time.
        """

    @abstractmethod
    async def create_event(
        self, calendar_id: str, event: CalendarEvent
    ) -> dict:
        """Create a calendar event.

        Args:
            calendar_id: The calendar to create the event on.
            event: Event details.

        Returns:
            Dict containing at least ``"event_id"`` and ``"html_link"``.
        """

    @abstractmethod
    async def cancel_event(
        self, calendar_id: str, event_id: str
    ) -> bool:
        """Cancel / delete a calendar event.

        Args:
            calendar_id: The calendar that owns the event.
            event_id: Provider-specific event identifier.

        Returns:
            True if the event was successfully cancelled.
        """
