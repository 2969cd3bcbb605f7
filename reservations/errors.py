"""Exception hierarchy for the reservation intake service."""

from __future__ import annotations


class ReservationError(Exception):
    """Base class for errors raised by the reservation service."""


class ConfigurationError(ReservationError):
    """A required setting (credential, calendar key, ...) is missing.

    Fatal for the turn that hit it: the caller hears a generic apology
    and the call is closed.
    """


class NluError(ReservationError):
    """The completion service could not be reached or returned no text."""


class BookingBackendError(ReservationError):
    """The scheduling backend failed hard (network error, 5xx, bad payload)."""
