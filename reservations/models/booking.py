"""Pydantic models for the booking backend boundary."""

from typing import Optional

from pydantic import BaseModel

SLOT_FULL = "slot_full"
RESERVATION_NOT_FOUND = "reservation_not_found"


class BookingRequest(BaseModel):
    """A finalized reservation handed to the scheduling backend."""

    customer_name: str
    party_size: Optional[int] = None
    date: str  # YYYY-MM-DD
    time: str  # HH:MM:SS
    caller_id: str = ""
    customer_email: Optional[str] = None


class CancelRequest(BaseModel):
    """Identifies an existing reservation to cancel."""

    customer_name: Optional[str] = None
    date: str  # YYYY-MM-DD
    time: Optional[str] = None  # HH:MM:SS


class BookingResult(BaseModel):
    """Backend verdict on a create or cancel request."""

    success: bool
    reason: Optional[str] = None  # "slot_full", "reservation_not_found", ...
    event_id: str = ""


class OwnerNotice(BaseModel):
    """Payload sent to the restaurant owner for private-event requests."""

    customer_name: Optional[str] = None
    party_size: Optional[int] = None
    date: Optional[str] = None
    time: Optional[str] = None
    caller_id: str = ""
    customer_email: Optional[str] = None
