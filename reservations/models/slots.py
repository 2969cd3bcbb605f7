"""Reservation slot records and the per-call slot accumulator.

``ReservationSlots`` is the accumulated state of one call.  The completion
service proposes a ``PartialReservationSlots`` each turn; ``merge`` folds it
into the accumulated record field by field.  Validation happens here, at the
boundary, so the rest of the engine only ever sees well-formed values or
``None``.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from reservations.email_spelling import sanitize, is_valid

SLOT_FIELDS = ("date", "time", "party_size", "customer_name", "customer_email")

# Placeholders the model emits instead of leaving a field out
_NULL_TOKENS = {"", "null", "none", "undefined", "n/a", "na", "nil", "unknown", "-"}

_TIME_RE = re.compile(r"^(\d{1,2})[:.](\d{2})(?:[:.](\d{2}))?$")


def _is_placeholder(value: Any) -> bool:
    return isinstance(value, str) and value.strip().lower() in _NULL_TOKENS


def normalize_time(value: Any) -> Optional[str]:
    """Return ``HH:MM:SS`` for ``H:MM``/``HH:MM:SS`` input, else None."""
    if not isinstance(value, str):
        return None
    match = _TIME_RE.match(value.strip())
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    second = int(match.group(3) or 0)
    if hour > 23 or minute > 59 or second > 59:
        return None
    return f"{hour:02d}:{minute:02d}:{second:02d}"


def normalize_date(value: Any) -> Optional[str]:
    """Return ``YYYY-MM-DD`` for an ISO date (or datetime prefix), else None."""
    if isinstance(value, date):
        return value.isoformat()
    if not isinstance(value, str):
        return None
    candidate = value.strip()[:10]
    try:
        return date.fromisoformat(candidate).isoformat()
    except ValueError:
        return None


class ReservationSlots(BaseModel):
    """Booking information accumulated over one call.

    A field only ever goes from unknown to known, or from one known value
    to another.  Nothing in the engine clears a field; a correction by the
    caller arrives as a new value proposed by the model.
    """

    model_config = ConfigDict(frozen=True)

    date: Optional[str] = None  # YYYY-MM-DD
    time: Optional[str] = None  # HH:MM:SS
    party_size: Optional[int] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None

    def missing(self, fields: tuple[str, ...] = SLOT_FIELDS) -> list[str]:
        """Names of ``fields`` that are still unknown, in the given order."""
        return [name for name in fields if getattr(self, name) is None]

    def has(self, *fields: str) -> bool:
        return not self.missing(fields)


class PartialReservationSlots(BaseModel):
    """A slot update proposed by the completion service for one turn.

    Every field is optional.  Placeholders such as ``"null"`` are read as
    absence; values that do not validate are dropped rather than guessed.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    date: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("date", "data", "day")
    )
    time: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("time", "ora", "orario")
    )
    party_size: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices(
            "party_size", "partySize", "people", "guests", "persone", "covers"
        ),
    )
    customer_name: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("customer_name", "customerName", "name", "nome"),
    )
    customer_email: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("customer_email", "customerEmail", "email"),
    )

    @field_validator("date", mode="before")
    @classmethod
    def _check_date(cls, value: Any) -> Optional[str]:
        if value is None or _is_placeholder(value):
            return None
        return normalize_date(value)

    @field_validator("time", mode="before")
    @classmethod
    def _check_time(cls, value: Any) -> Optional[str]:
        if value is None or _is_placeholder(value):
            return None
        return normalize_time(value)

    @field_validator("party_size", mode="before")
    @classmethod
    def _check_party_size(cls, value: Any) -> Optional[int]:
        if value is None or isinstance(value, bool) or _is_placeholder(value):
            return None
        try:
            size = int(float(value))
        except (TypeError, ValueError):
            return None
        return size if size > 0 else None

    @field_validator("customer_name", mode="before")
    @classmethod
    def _check_name(cls, value: Any) -> Optional[str]:
        if not isinstance(value, str) or _is_placeholder(value):
            return None
        return " ".join(value.split())

    @field_validator("customer_email", mode="before")
    @classmethod
    def _check_email(cls, value: Any) -> Optional[str]:
        if not isinstance(value, str) or _is_placeholder(value):
            return None
        cleaned = sanitize(value)
        return cleaned if is_valid(cleaned) else None

    def supplied(self) -> dict[str, Any]:
        """Only the fields this proposal actually carries."""
        return {k: v for k, v in self.model_dump().items() if v is not None}


def merge(
    previous: ReservationSlots, proposed: PartialReservationSlots
) -> ReservationSlots:
    """Fold a proposal into the accumulated slots.

    Non-null proposed values replace; everything else is kept.  Pure, so
    merging P1 then P2 equals merging their field-wise union with P2
    winning on overlap, and re-merging the same proposal is a no-op.
    """
    return previous.model_copy(update=proposed.supplied())
