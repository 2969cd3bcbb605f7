"""Dialogue turn orchestrator — one caller utterance in, one reply out.

Per turn, under the call's lock:

  1. record the utterance, apply a requested language switch
  2. ask the completion service for (reply, intent, slots); fall back to
     "please repeat" when its output is unusable
  3. pick up a dictated email the model missed
  4. merge slots, let the temporal resolver fix the date and default time
  5. run the intent safety net
  6. finalize (escalation policy + booking) or cancel when asked
  7. decide whether the call ends

State machine: collecting → finalizing (one turn) → closed, or back to
collecting when the backend rejects or fails.  A closed session only says
goodbye.
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import date
from typing import Callable, Optional

from pydantic import BaseModel

from reservations import email_spelling
from reservations.booking.base import BookingBackend
from reservations.config import settings
from reservations.errors import BookingBackendError, NluError
from reservations.escalation import calls_backend, classify
from reservations.models.booking import (
    RESERVATION_NOT_FOUND,
    SLOT_FULL,
    BookingRequest,
    BookingResult,
    CancelRequest,
    OwnerNotice,
)
from reservations.models.dialogue import ConversationState, DialogueIntent, EscalationTier
from reservations.models.restaurant import RestaurantContext
from reservations.models.slots import ReservationSlots, merge
from reservations.nlu.clients import NluClient
from reservations.nlu.proposal import NluProposal, fallback_proposal, parse_proposal
from reservations.notify import OwnerNotifier
from reservations.prompts import render_system_prompt
from reservations.safety_net import correct
from reservations.session import CallSession, SessionStore, redact_pii
from reservations.temporal import infer_default_time, resolve_date, today_in

log = logging.getLogger("reservations.orchestrator")

SUPPORTED_LANGUAGES = ("it", "en")


class TurnRequest(BaseModel):
    call_id: str
    recognized_text: str = ""
    language_hint: Optional[str] = None
    caller_id: str = ""


class TurnResponse(BaseModel):
    reply_text: str
    should_end_call: bool
    language: str
    intent: DialogueIntent = DialogueIntent.NO_OP
    slots: ReservationSlots = ReservationSlots()


# ── Localized lines ───────────────────────────────────────────────────

LINES: dict[str, dict[str, str]] = {
    "it": {
        "goodbye": "Grazie per aver chiamato. Arrivederci!",
        "please_repeat": "Scusi, non ho sentito bene. Può ripetere, per favore?",
        "ask_date": "Per quale giorno desidera prenotare?",
        "ask_time": "A che ora desidera il tavolo?",
        "ask_party_size": "Per quante persone?",
        "ask_name": "A che nome posso registrare la prenotazione?",
        "ask_email": "Desidera lasciarmi un indirizzo email per la conferma?",
        "confirmed": "Perfetto {name}, ho prenotato un tavolo{party} {day} alle {time}.",
        "confirmed_pending": (
            "Perfetto {name}, ho registrato la richiesta per un tavolo{party} {day} "
            "alle {time}. Trattandosi di un gruppo numeroso, la prenotazione è in attesa "
            "di conferma da parte del ristorante: la ricontatteremo al più presto."
        ),
        "email_confirmation": " Le invieremo la conferma a {email}.",
        "closing": " Grazie e a presto!",
        "slot_full": (
            "Mi dispiace, {day} alle {time} siamo al completo. "
            "Le andrebbe bene un altro orario?"
        ),
        "booking_failed": (
            "Mi scusi, in questo momento non riesco a registrare la prenotazione. "
            "Possiamo riprovare con un altro orario?"
        ),
        "private_event": (
            "Per gruppi di {party_size} persone organizziamo eventi privati. "
            "La preghiamo di scriverci a {email} con i dettagli: il titolare "
            "è già stato avvisato e la contatterà. Grazie e arrivederci!"
        ),
        "private_event_no_email": (
            "Per gruppi di {party_size} persone organizziamo eventi privati. "
            "Il titolare è stato avvisato e la richiamerà al più presto. "
            "Grazie e arrivederci!"
        ),
        "cancel_need_date": "Certo. Per quale giorno era la prenotazione da annullare?",
        "cancelled": "Ho annullato la prenotazione per {day}. Grazie e arrivederci!",
        "cancel_not_found": (
            "Non trovo nessuna prenotazione per {day} a questo nome. "
            "Può ripetermi il nome o la data?"
        ),
    },
    "en": {
        "goodbye": "Thank you for calling. Goodbye!",
        "please_repeat": "Sorry, I didn't hear that. Could you repeat, please?",
        "ask_date": "For which day would you like to book?",
        "ask_time": "What time would you like the table?",
        "ask_party_size": "For how many people?",
        "ask_name": "What name should I put the reservation under?",
        "ask_email": "Would you like to leave an email address for the confirmation?",
        "confirmed": "Perfect {name}, I've booked a table{party} {day} at {time}.",
        "confirmed_pending": (
            "Perfect {name}, I've registered your request for a table{party} {day} "
            "at {time}. As it's a large group, the booking is pending confirmation "
            "from the restaurant: we'll get back to you shortly."
        ),
        "email_confirmation": " We'll send the confirmation to {email}.",
        "closing": " Thank you, see you soon!",
        "slot_full": (
            "I'm sorry, we're fully booked at {time} {day}. "
            "Would another time work for you?"
        ),
        "booking_failed": (
            "I'm sorry, I can't register the booking right now. "
            "Shall we try another time?"
        ),
        "private_event": (
            "For groups of {party_size} people we organize private events. "
            "Please write to us at {email} with the details: the owner has already "
            "been informed and will contact you. Thank you, goodbye!"
        ),
        "private_event_no_email": (
            "For groups of {party_size} people we organize private events. "
            "The owner has been informed and will call you back shortly. "
            "Thank you, goodbye!"
        ),
        "cancel_need_date": "Of course. For which day was the reservation you want to cancel?",
        "cancelled": "I've cancelled your reservation {day}. Thank you, goodbye!",
        "cancel_not_found": (
            "I can't find a reservation {day} under that name. "
            "Could you tell me the name or the date again?"
        ),
    },
}

_ASK_LINES = {
    DialogueIntent.ASK_DATE: "ask_date",
    DialogueIntent.ASK_TIME: "ask_time",
    DialogueIntent.ASK_PARTY_SIZE: "ask_party_size",
    DialogueIntent.ASK_NAME: "ask_name",
    DialogueIntent.ASK_EMAIL: "ask_email",
}

# Corrections after which the model's own reply no longer fits the intent
_REPLY_REPLACING_RULES = {"name_already_known", "finalize_with_gaps"}

_MONTHS = {
    "it": ["gennaio", "febbraio", "marzo", "aprile", "maggio", "giugno", "luglio",
           "agosto", "settembre", "ottobre", "novembre", "dicembre"],
    "en": ["January", "February", "March", "April", "May", "June", "July",
           "August", "September", "October", "November", "December"],
}

_TO_ENGLISH_RE = re.compile(
    r"\b(in english|speak english|english please|parl\w* (in )?inglese|in inglese)\b", re.I
)
_TO_ITALIAN_RE = re.compile(
    r"\b(in italian|speak italian|italian please|parl\w* (in )?italiano|in italiano)\b", re.I
)


def line(language: str, key: str, **values) -> str:
    table = LINES.get(language, LINES["en"])
    return table[key].format(**values)


def spoken_day(iso_date: Optional[str], language: str) -> str:
    """"il 14 giugno" / "on June 14" for a YYYY-MM-DD date."""
    if not iso_date:
        return ""
    d = date.fromisoformat(iso_date)
    month = _MONTHS.get(language, _MONTHS["en"])[d.month - 1]
    if language == "it":
        article = "l'" if d.day in (1, 8, 11) else "il "
        return f"{article}{d.day} {month}"
    return f"on {month} {d.day}"


def spoken_time(hms: Optional[str]) -> str:
    return hms[:5] if hms else ""


def detect_language_request(text: str) -> Optional[str]:
    """Language the caller explicitly asked to switch to, if any."""
    if _TO_ENGLISH_RE.search(text):
        return "en"
    if _TO_ITALIAN_RE.search(text):
        return "it"
    return None


class Orchestrator:
    """Runs turns for every active call."""

    def __init__(
        self,
        nlu: NluClient,
        backend: BookingBackend,
        notifier: Optional[OwnerNotifier] = None,
        store: Optional[SessionStore] = None,
        restaurant: Optional[Callable[[], RestaurantContext]] = None,
        today: Callable[[str], date] = today_in,
        booking_timeout: float = 10.0,
    ) -> None:
        self._nlu = nlu
        self._backend = backend
        self._notifier = notifier
        self._store = store or SessionStore(settings.session_ttl_seconds)
        self._restaurant = restaurant or (lambda: RestaurantContext.from_settings(settings))
        self._today = today
        self._booking_timeout = booking_timeout

    @property
    def store(self) -> SessionStore:
        return self._store

    def end_call(self, call_id: str) -> bool:
        return self._store.remove(call_id)

    async def handle_turn(self, request: TurnRequest) -> TurnResponse:
        """Process one utterance for ``request.call_id``."""

        def new_session() -> CallSession:
            return CallSession(
                call_id=request.call_id,
                restaurant=self._restaurant(),
                caller_id=request.caller_id,
            )

        async with self._store.acquire(request.call_id, new_session) as session:
            return await self._run_turn(session, request)

    # ── Turn ──────────────────────────────────────────────────────────

    async def _run_turn(self, session: CallSession, request: TurnRequest) -> TurnResponse:
        text = (request.recognized_text or "").strip()
        session.turn_count += 1
        if request.caller_id and not session.caller_id:
            session.caller_id = request.caller_id
        if text:
            session.utterance_history.append(text)

        self._apply_language(session, text, request.language_hint)
        session.trace.record("turn", session.state.value, {
            "turn": session.turn_count, "text": text,
        })

        if session.is_closed:
            return self._respond(session, line(session.language, "goodbye"), True)
        if not text:
            return self._respond(session, line(session.language, "please_repeat"), False)

        proposal = await self._propose(session, text)

        slots = proposal.slots
        if slots.customer_email is None:
            dictated = email_spelling.extract(text)
            if dictated:
                slots = slots.model_copy(update={"customer_email": dictated})

        merged = self._resolve_temporal(session, merge(session.reservation, slots))
        session.reservation = merged

        corrected = correct(proposal.intent, merged, proposal.reply)
        reply = proposal.reply
        if corrected.changed:
            log.info(
                "Call %s: intent %s → %s (%s)",
                session.call_id, proposal.intent.value, corrected.intent.value,
                ", ".join(corrected.rules_applied),
            )
            session.trace.record("intent_corrected", session.state.value, {
                "from": proposal.intent.value,
                "to": corrected.intent.value,
                "rules": corrected.rules_applied,
            })
            if _REPLY_REPLACING_RULES.intersection(corrected.rules_applied):
                reply = line(session.language, _ASK_LINES[corrected.intent])

        if corrected.intent is DialogueIntent.FINALIZE_BOOKING:
            return await self._finalize(session, merged)
        if corrected.intent is DialogueIntent.CANCEL_BOOKING:
            return await self._cancel(session, merged)
        return self._respond(
            session, reply, False, corrected.intent, corrected.reply_slots
        )

    def _apply_language(self, session: CallSession, text: str, hint: Optional[str]) -> None:
        requested = None
        if hint and hint[:2].lower() in SUPPORTED_LANGUAGES:
            requested = hint[:2].lower()
        requested = detect_language_request(text) or requested
        if requested and requested != session.language:
            log.info("Call %s: language %s → %s", session.call_id, session.language, requested)
            session.trace.record("language", session.state.value, {
                "from": session.language, "to": requested,
            })
            session.language = requested

    async def _propose(self, session: CallSession, text: str) -> NluProposal:
        today = self._today(session.restaurant.timezone)
        system = render_system_prompt(
            session.restaurant, session.reservation, session.language, today
        )
        session.add_message("user", text)

        try:
            raw = await self._nlu.complete(system, list(session.messages))
        except NluError as e:
            log.warning("Call %s: completion failed: %s", session.call_id, e)
            session.trace.record("error", session.state.value, {"nlu": str(e)})
            return fallback_proposal(session.language)

        proposal = parse_proposal(raw, session.language)
        session.trace.record("nlu_response", session.state.value, {
            "intent": proposal.intent.value,
            "slots": proposal.slots.supplied(),
            "fallback": proposal.fallback,
        })
        return proposal

    def _resolve_temporal(self, session: CallSession, merged: ReservationSlots) -> ReservationSlots:
        today = self._today(session.restaurant.timezone)
        resolved = resolve_date(session.utterance_history, today, merged.date)
        if resolved is not None and resolved.isoformat() != merged.date:
            merged = merged.model_copy(update={"date": resolved.isoformat()})

        if merged.time is None:
            inferred = infer_default_time(
                session.utterance_history, session.restaurant.time_defaults
            )
            if inferred is not None:
                merged = merged.model_copy(update={"time": inferred})
        return merged

    # ── Side effects ──────────────────────────────────────────────────

    async def _finalize(self, session: CallSession, slots: ReservationSlots) -> TurnResponse:
        lang = session.language
        session.transition(ConversationState.FINALIZING, "finalize-booking")

        tier = classify(slots.party_size, session.restaurant.thresholds)
        session.trace.record("escalation", session.state.value, {
            "party_size": slots.party_size, "tier": tier.value,
        })
        if tier is not EscalationTier.NORMAL:
            log.info("Call %s: escalation tier %s", session.call_id, tier.value)

        if not calls_backend(tier):
            await self._notify_owner(session, slots)
            session.transition(ConversationState.CLOSED, "private-event")
            contact = session.restaurant.contact_email
            if contact:
                reply = line(
                    lang, "private_event",
                    party_size=slots.party_size,
                    email=email_spelling.render(contact, lang),
                )
            else:
                reply = line(lang, "private_event_no_email", party_size=slots.party_size)
            return self._respond(session, reply, True, DialogueIntent.FINALIZE_BOOKING, slots)

        request = BookingRequest(
            customer_name=slots.customer_name,
            party_size=slots.party_size,
            date=slots.date,
            time=slots.time,
            caller_id=session.caller_id,
            customer_email=slots.customer_email,
        )
        result = await self._call_backend(session, self._backend.create(request))

        if result is None or not result.success:
            session.transition(ConversationState.COLLECTING, "booking rejected")
            if result is not None and result.reason == SLOT_FULL:
                reply = line(
                    lang, "slot_full",
                    time=spoken_time(slots.time), day=spoken_day(slots.date, lang),
                )
            else:
                reply = line(lang, "booking_failed")
            return self._respond(session, reply, False, DialogueIntent.ASK_TIME, slots)

        session.transition(ConversationState.CLOSED, "booked")
        key = "confirmed_pending" if tier is EscalationTier.LARGE_GROUP else "confirmed"
        party = ""
        if slots.party_size:
            party = f" per {slots.party_size}" if lang == "it" else f" for {slots.party_size}"
        reply = line(
            lang, key,
            name=slots.customer_name,
            party=party,
            day=spoken_day(slots.date, lang),
            time=spoken_time(slots.time),
        )
        if slots.customer_email:
            reply += line(lang, "email_confirmation",
                          email=email_spelling.render(slots.customer_email, lang))
        reply += line(lang, "closing")
        return self._respond(session, reply, True, DialogueIntent.FINALIZE_BOOKING, slots)

    async def _cancel(self, session: CallSession, slots: ReservationSlots) -> TurnResponse:
        lang = session.language
        if slots.date is None:
            return self._respond(
                session, line(lang, "cancel_need_date"), False, DialogueIntent.ASK_DATE, slots
            )

        session.transition(ConversationState.FINALIZING, "cancel-booking")
        request = CancelRequest(
            customer_name=slots.customer_name, date=slots.date, time=slots.time
        )
        result = await self._call_backend(session, self._backend.cancel(request))
        day = spoken_day(slots.date, lang)

        if result is not None and result.success:
            session.transition(ConversationState.CLOSED, "cancelled")
            return self._respond(
                session, line(lang, "cancelled", day=day), True,
                DialogueIntent.CANCEL_BOOKING, slots,
            )

        session.transition(ConversationState.COLLECTING, "cancel failed")
        if result is not None and result.reason == RESERVATION_NOT_FOUND:
            reply = line(lang, "cancel_not_found", day=day)
            return self._respond(session, reply, False, DialogueIntent.ASK_NAME, slots)
        return self._respond(
            session, line(lang, "booking_failed"), False, DialogueIntent.ASK_TIME, slots
        )

    async def _call_backend(self, session: CallSession, call) -> Optional[BookingResult]:
        """Await a backend call under the timeout; None means it failed."""
        try:
            result = await asyncio.wait_for(call, timeout=self._booking_timeout)
        except (asyncio.TimeoutError, BookingBackendError) as e:
            log.warning("Call %s: booking backend failed: %s", session.call_id, str(e) or "timeout")
            session.trace.record("error", session.state.value, {"booking": str(e) or "timeout"})
            return None
        except Exception:
            log.exception("Call %s: unexpected booking backend error", session.call_id)
            session.trace.record("error", session.state.value, {"booking": "unexpected"})
            return None

        session.trace.record("booking", session.state.value, result.model_dump())
        return result

    async def _notify_owner(self, session: CallSession, slots: ReservationSlots) -> None:
        if self._notifier is None:
            log.warning("Call %s: no owner notifier configured", session.call_id)
            return
        notice = OwnerNotice(
            customer_name=slots.customer_name,
            party_size=slots.party_size,
            date=slots.date,
            time=slots.time,
            caller_id=session.caller_id,
            customer_email=slots.customer_email,
        )
        try:
            sent = await asyncio.wait_for(
                self._notifier.notify(notice), timeout=self._booking_timeout
            )
        except asyncio.TimeoutError:
            sent = False
            log.warning("Call %s: owner notification timed out", session.call_id)
        log.info(
            "Call %s: owner notice for %s %s",
            session.call_id, redact_pii(session.caller_id), "sent" if sent else "not sent",
        )
        session.trace.record("owner_notified", session.state.value, {"sent": sent})

    def _respond(
        self,
        session: CallSession,
        reply: str,
        end: bool,
        intent: DialogueIntent = DialogueIntent.NO_OP,
        slots: Optional[ReservationSlots] = None,
    ) -> TurnResponse:
        session.add_message("assistant", reply)
        session.trace.record("reply", session.state.value, {
            "intent": intent.value, "end": end,
        })
        return TurnResponse(
            reply_text=reply,
            should_end_call=end,
            language=session.language,
            intent=intent,
            slots=slots if slots is not None else session.reservation,
        )
