"""Booking backend interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from reservations.models.booking import BookingRequest, BookingResult, CancelRequest


class BookingBackend(ABC):
    """Where finalized reservations go.

    Capacity rejections and unknown reservations are normal outcomes,
    reported as ``BookingResult(success=False, reason=...)``.  Transport
    failures raise ``BookingBackendError``.
    """

    @abstractmethod
    async def create(self, request: BookingRequest) -> BookingResult:
        """Create a reservation."""

    @abstractmethod
    async def cancel(self, request: CancelRequest) -> BookingResult:
        """Cancel the reservation matching ``request``."""
