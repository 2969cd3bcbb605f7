"""System prompt rendering for the completion service.

One prompt per turn, rebuilt from the session: persona, today's date in
the restaurant's timezone, what is already known, and the JSON contract
the parser expects.  The model sees the known slots so it stops asking
for them; the engine still re-validates everything it sends back.
"""

from __future__ import annotations

from datetime import date

from reservations.models.restaurant import RestaurantContext
from reservations.models.slots import ReservationSlots

_PERSONA = {
    "it": (
        "Sei {assistant}, la receptionist del ristorante {restaurant}. "
        "Rispondi in italiano, in tono naturale, cordiale e realistico, "
        "con frasi brevi adatte a una telefonata. "
        "Il tuo compito è raccogliere una prenotazione: data, ora, numero di persone, "
        "nome e, se il cliente vuole, un indirizzo email."
    ),
    "en": (
        "You are {assistant}, the receptionist at the restaurant {restaurant}. "
        "Answer in English, in a natural, friendly and realistic tone, "
        "with short sentences suited to a phone call. "
        "Your job is to take a reservation: date, time, number of people, "
        "name and, if the caller wants, an email address."
    ),
}

_TODAY = {
    "it": "Oggi è {weekday} {today} (fuso orario {timezone}).",
    "en": "Today is {weekday} {today} (timezone {timezone}).",
}

_WEEKDAY_NAMES = {
    "it": ["lunedì", "martedì", "mercoledì", "giovedì", "venerdì", "sabato", "domenica"],
    "en": ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"],
}

_KNOWN = {
    "it": "Dati già raccolti (non richiederli): {known}.",
    "en": "Already collected (do not ask again): {known}.",
}

_NOTHING_KNOWN = {
    "it": "Non è ancora stato raccolto nessun dato.",
    "en": "Nothing has been collected yet.",
}

_CONTRACT = """
Reply ONLY with one JSON object, no text before or after it:
{"reply": "<what you say to the caller>",
 "intent": "<one of: no-op, ask-date, ask-time, ask-party-size, ask-name, ask-email, answer-informational, finalize-booking, cancel-booking>",
 "slots": {"date": "YYYY-MM-DD or null", "time": "HH:MM or null", "party_size": <integer or null>,
           "customer_name": "<name or null>", "customer_email": "<email or null>"}}

Rules:
- Put in "slots" only what the caller said in this conversation; use null for anything unknown.
- Use "finalize-booking" only when date, time and name are known and the caller has confirmed.
- Use "cancel-booking" when the caller wants to cancel an existing reservation.
- Use "answer-informational" for questions about the restaurant (hours, menu, parking).
- The email is optional: if the caller does not want to give one, finalize without it.
- Your reply is read aloud by text-to-speech: write numbers and times as words, no lists, no emoji.
- NEVER say "null", "none" or "not available" to the caller.
""".strip()


def _describe_known(slots: ReservationSlots) -> str:
    parts = []
    for name in ("date", "time", "party_size", "customer_name", "customer_email"):
        value = getattr(slots, name)
        if value is not None:
            parts.append(f"{name}={value}")
    return ", ".join(parts)


def render_system_prompt(
    restaurant: RestaurantContext,
    slots: ReservationSlots,
    language: str,
    today: date,
) -> str:
    """Build the system prompt for one turn."""
    lang = language if language in _PERSONA else "en"

    sections = [
        _PERSONA[lang].format(assistant=restaurant.assistant_name, restaurant=restaurant.name),
        _TODAY[lang].format(
            weekday=_WEEKDAY_NAMES[lang][today.weekday()],
            today=today.isoformat(),
            timezone=restaurant.timezone,
        ),
    ]

    known = _describe_known(slots)
    sections.append(_KNOWN[lang].format(known=known) if known else _NOTHING_KNOWN[lang])
    sections.append(_CONTRACT)
    return "\n\n".join(sections)
