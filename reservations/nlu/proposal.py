"""Parsing of completion-service output into a validated proposal.

The model is asked for a single JSON object::

    {"reply": "...", "intent": "ask-time", "slots": {...}}

It does not always comply.  It wraps the object in a fenced block, puts
prose around it, invents intent names, or returns text only.  Everything
goes through ``parse_proposal``, which either returns a valid
``NluProposal`` or the fallback ("please repeat", no-op, no slots).
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from reservations.models.dialogue import DialogueIntent
from reservations.models.slots import PartialReservationSlots

log = logging.getLogger("reservations.nlu")

# Labels the model tends to use instead of the closed set
INTENT_SYNONYMS: dict[str, DialogueIntent] = {
    "none": DialogueIntent.NO_OP,
    "noop": DialogueIntent.NO_OP,
    "smalltalk": DialogueIntent.NO_OP,
    "greeting": DialogueIntent.NO_OP,
    "ask-party": DialogueIntent.ASK_PARTY_SIZE,
    "ask-people": DialogueIntent.ASK_PARTY_SIZE,
    "ask-guests": DialogueIntent.ASK_PARTY_SIZE,
    "ask-customer-name": DialogueIntent.ASK_NAME,
    "ask-customer-email": DialogueIntent.ASK_EMAIL,
    "info": DialogueIntent.ANSWER_INFORMATIONAL,
    "information": DialogueIntent.ANSWER_INFORMATIONAL,
    "informational": DialogueIntent.ANSWER_INFORMATIONAL,
    "answer": DialogueIntent.ANSWER_INFORMATIONAL,
    "confirm": DialogueIntent.FINALIZE_BOOKING,
    "confirm-booking": DialogueIntent.FINALIZE_BOOKING,
    "finalize": DialogueIntent.FINALIZE_BOOKING,
    "book": DialogueIntent.FINALIZE_BOOKING,
    "booking": DialogueIntent.FINALIZE_BOOKING,
    "cancel": DialogueIntent.CANCEL_BOOKING,
    "cancellation": DialogueIntent.CANCEL_BOOKING,
}

FALLBACK_REPLIES = {
    "it": "Scusi, non ho capito bene. Può ripetere, per favore?",
    "en": "Sorry, I didn't quite catch that. Could you repeat, please?",
}


def coerce_intent(value: Any) -> DialogueIntent:
    """Map a model-supplied label onto the closed intent set (no-op if unknown)."""
    if isinstance(value, DialogueIntent):
        return value
    if not isinstance(value, str):
        return DialogueIntent.NO_OP
    label = value.strip().lower().replace("_", "-").replace(" ", "-")
    try:
        return DialogueIntent(label)
    except ValueError:
        return INTENT_SYNONYMS.get(label, DialogueIntent.NO_OP)


class NluProposal(BaseModel):
    """One turn's proposal from the completion service, validated."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    reply: str
    intent: DialogueIntent = DialogueIntent.NO_OP
    slots: PartialReservationSlots = Field(default_factory=PartialReservationSlots)
    fallback: bool = False

    @field_validator("reply", mode="before")
    @classmethod
    def _check_reply(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("reply must be non-empty text")
        return value.strip()

    @field_validator("intent", mode="before")
    @classmethod
    def _check_intent(cls, value: Any) -> DialogueIntent:
        return coerce_intent(value)

    @field_validator("slots", mode="before")
    @classmethod
    def _check_slots(cls, value: Any) -> Any:
        return value if isinstance(value, (dict, PartialReservationSlots)) else {}


def fallback_proposal(language: str = "it") -> NluProposal:
    """The "please repeat" proposal used whenever the model output is unusable."""
    return NluProposal(
        reply=FALLBACK_REPLIES.get(language, FALLBACK_REPLIES["en"]),
        intent=DialogueIntent.NO_OP,
        fallback=True,
    )


# ── JSON extraction ──────────────────────────────────────────────────

_FENCED_RE = re.compile(r"```(?:json)?\s*\n?({.*?})\s*\n?```", re.DOTALL)


def extract_json_object(text: str) -> dict | None:
    """Find a JSON object in model output.

    Tries, in order: a fenced code block, the whole text, a bare JSON line,
    and finally the span from the first ``{`` to the last ``}``.
    """
    if not text:
        return None

    match = _FENCED_RE.search(text)
    candidates = [match.group(1)] if match else []
    candidates.append(text.strip())
    for line in text.split("\n"):
        line = line.strip()
        if line.startswith("{") and line.endswith("}"):
            candidates.append(line)
    start, end = text.find("{"), text.rfind("}")
    if 0 <= start < end:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def strip_json(text: str) -> str:
    """Remove JSON blocks from model output, keeping the spoken text."""
    cleaned = _FENCED_RE.sub("", text)
    lines = []
    for line in cleaned.split("\n"):
        stripped = line.strip()
        if stripped.startswith("{") and stripped.endswith("}"):
            try:
                json.loads(stripped)
                continue
            except json.JSONDecodeError:
                pass
        lines.append(line)
    return "\n".join(lines).strip()


def parse_proposal(raw: Optional[str], language: str = "it") -> NluProposal:
    """Turn raw completion text into an ``NluProposal``; never raises."""
    if not raw or not raw.strip():
        log.warning("Empty completion, using fallback proposal")
        return fallback_proposal(language)

    data = extract_json_object(raw)
    if data is None:
        log.warning("No JSON object in completion, using fallback proposal")
        return fallback_proposal(language)

    # Some models answer with the prose outside the object
    if not data.get("reply"):
        data = {**data, "reply": data.get("response") or data.get("text") or strip_json(raw)}

    try:
        return NluProposal.model_validate(data)
    except ValidationError as e:
        log.warning("Malformed proposal (%d errors), using fallback", e.error_count())
        return fallback_proposal(language)
