"""Closed enumerations for the dialogue engine."""

from __future__ import annotations

from enum import Enum


class DialogueIntent(str, Enum):
    """The next step of the conversation, exactly one per turn."""

    NO_OP = "no-op"
    ASK_DATE = "ask-date"
    ASK_TIME = "ask-time"
    ASK_PARTY_SIZE = "ask-party-size"
    ASK_NAME = "ask-name"
    ASK_EMAIL = "ask-email"
    ANSWER_INFORMATIONAL = "answer-informational"
    FINALIZE_BOOKING = "finalize-booking"
    CANCEL_BOOKING = "cancel-booking"

    @property
    def is_question(self) -> bool:
        return self.value.startswith("ask-")


class ConversationState(str, Enum):
    COLLECTING = "collecting"
    FINALIZING = "finalizing"
    CLOSED = "closed"


class EscalationTier(str, Enum):
    NORMAL = "normal"
    LARGE_GROUP = "large-group"
    PRIVATE_EVENT = "private-event"
