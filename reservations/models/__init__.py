"""Data models for the reservation engine."""

from .booking import BookingRequest, BookingResult, CancelRequest, OwnerNotice
from .dialogue import ConversationState, DialogueIntent, EscalationTier
from .restaurant import EscalationThresholds, RestaurantContext, TimeDefaults
from .slots import PartialReservationSlots, ReservationSlots, merge

__all__ = [
    "BookingRequest",
    "BookingResult",
    "CancelRequest",
    "ConversationState",
    "DialogueIntent",
    "EscalationThresholds",
    "EscalationTier",
    "OwnerNotice",
    "PartialReservationSlots",
    "ReservationSlots",
    "RestaurantContext",
    "TimeDefaults",
    "merge",
]
