"""Intent safety net — corrects the intent the completion service declared.

The model labels its own reply with an intent, and the label is often
wrong: it asks for a name it already has, finalizes with the time still
missing, or "confirms" while its reply is a question.  ``correct()`` runs a
fixed, ordered list of rules over the declared intent and the merged slots.
Each rule sees the intent left by the previous one.

Pure and synchronous; the orchestrator logs and traces ``rules_applied``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional

from reservations.models.dialogue import DialogueIntent
from reservations.models.slots import ReservationSlots

# finalize-booking cannot go out without these, asked in this order
_FINALIZE_REQUIRED = (
    ("date", DialogueIntent.ASK_DATE),
    ("time", DialogueIntent.ASK_TIME),
    ("customer_name", DialogueIntent.ASK_NAME),
)


@dataclass
class CorrectedIntent:
    """Result of the safety net for one turn."""

    intent: DialogueIntent
    reply_slots: ReservationSlots
    rules_applied: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.rules_applied)


def _is_question(reply_text: Optional[str]) -> bool:
    return bool(reply_text) and "?" in reply_text


# ── Rules ────────────────────────────────────────────────────────────
# Each takes the evolving result and returns the intent it should become,
# or None to leave it alone.


def _name_already_known(result: CorrectedIntent, slots: ReservationSlots, reply: str):
    if result.intent is DialogueIntent.ASK_NAME and slots.customer_name is not None:
        return DialogueIntent.ASK_EMAIL
    return None


def _informational_reply(result: CorrectedIntent, slots: ReservationSlots, reply: str):
    if result.intent is DialogueIntent.ANSWER_INFORMATIONAL:
        # Stored slots are untouched; only the reply payload is blanked
        result.reply_slots = ReservationSlots()
    return None


def _finalize_with_gaps(result: CorrectedIntent, slots: ReservationSlots, reply: str):
    if result.intent is not DialogueIntent.FINALIZE_BOOKING:
        return None
    for name, ask in _FINALIZE_REQUIRED:
        if getattr(slots, name) is None:
            return ask
    return None


def _email_step_complete(result: CorrectedIntent, slots: ReservationSlots, reply: str):
    if (
        result.intent is DialogueIntent.ASK_EMAIL
        and slots.has("date", "time", "customer_name", "customer_email")
        and not _is_question(reply)
    ):
        return DialogueIntent.FINALIZE_BOOKING
    return None


def _finalize_phrased_as_question(result: CorrectedIntent, slots: ReservationSlots, reply: str):
    if result.intent is DialogueIntent.FINALIZE_BOOKING and _is_question(reply):
        return DialogueIntent.ASK_TIME
    return None


RULES: list[tuple[str, Callable]] = [
    ("name_already_known", _name_already_known),
    ("informational_reply", _informational_reply),
    ("finalize_with_gaps", _finalize_with_gaps),
    ("email_step_complete", _email_step_complete),
    ("finalize_phrased_as_question", _finalize_phrased_as_question),
]


def correct(
    intent: DialogueIntent,
    slots: ReservationSlots,
    reply_text: Optional[str] = "",
) -> CorrectedIntent:
    """Apply every rule in order and return the corrected intent.

    ``slots`` are the merged slots for the call.  After correction a
    finalize-booking intent always has date, time and name known.
    """
    result = CorrectedIntent(intent=intent, reply_slots=slots)
    reply = reply_text or ""

    for name, rule in RULES:
        before_slots = result.reply_slots
        replacement = rule(result, slots, reply)
        if replacement is not None and replacement is not result.intent:
            result.intent = replacement
            result.rules_applied.append(name)
        elif result.reply_slots is not before_slots:
            result.rules_applied.append(name)
    return result
