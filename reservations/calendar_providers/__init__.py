"""Calendar provider abstractions and implementations."""

from .base import CalendarEvent, CalendarProvider

__all__ = ["CalendarProvider", "CalendarEvent"]
