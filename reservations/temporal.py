"""Temporal resolution — turns spoken date/time references into calendar values.

The completion service is unreliable with dates: it defaults to a stale
year, drops "tomorrow" between turns, or leaves the time empty when the
caller only said "for dinner".  This module looks at the caller's own
words (the full, untruncated utterance history of the call) and resolves:

  resolve_date()         today / tomorrow / weekdays / weekends / holidays
                         → absolute date, or the model's date rolled forward
  infer_default_time()   "lunch", "tonight", "at 8", "as late as possible"
                         → HH:MM:SS when no time was stated explicitly

Both functions are pure, accept English and Italian, and never raise.
Utterances are scanned newest first so that a later correction ("no,
make it Friday") beats an earlier mention ("tomorrow").
"""

from __future__ import annotations

import logging
import re
import unicodedata
from datetime import date, datetime, timedelta
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from reservations.models.restaurant import TimeDefaults
from reservations.models.slots import normalize_date

log = logging.getLogger("reservations.temporal")


def today_in(timezone: str) -> date:
    """Today's date in the restaurant's reference timezone."""
    return datetime.now(ZoneInfo(timezone)).date()


def _normalize(text: str) -> str:
    """Lowercase, strip accents and unify apostrophes ("lunedì" → "lunedi")."""
    text = text.replace("’", "'").replace("`", "'").lower()
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


# ── Rule 1: named fixed-calendar occasions ───────────────────────────
# More specific phrases come first ("christmas eve" before "christmas").

_OCCASIONS: list[tuple[re.Pattern[str], int, int]] = [
    (re.compile(r"\bchristmas eve\b|\bvigilia di natale\b"), 12, 24),
    (re.compile(r"\bchristmas\b|\bxmas\b|\bnatale\b"), 12, 25),
    (re.compile(r"\bboxing day\b|\bsanto stefano\b"), 12, 26),
    (re.compile(r"\bnew year'?s eve\b|\bsan silvestro\b|\bultimo dell'?anno\b"), 12, 31),
    (re.compile(r"\bnew year'?s( day)?\b|\bcapodanno\b|\bprimo dell'?anno\b"), 1, 1),
    (re.compile(r"\bepiphany\b|\bepifania\b|\bbefana\b"), 1, 6),
    (re.compile(r"\bvalentine'?s( day)?\b|\bsan valentino\b"), 2, 14),
    (re.compile(r"\bliberation day\b|\bfesta della liberazione\b|\b25 aprile\b"), 4, 25),
    (re.compile(r"\blabou?r day\b|\bfesta dei lavoratori\b|\bprimo maggio\b|\b1 maggio\b"), 5, 1),
    (re.compile(r"\brepublic day\b|\bfesta della repubblica\b|\b2 giugno\b"), 6, 2),
    (re.compile(r"\bferragosto\b"), 8, 15),
    (re.compile(r"\bhalloween\b"), 10, 31),
]


def _match_occasion(text: str, today: date) -> Optional[date]:
    for pattern, month, day in _OCCASIONS:
        if pattern.search(text):
            occasion = date(today.year, month, day)
            # Capodanno asked for in December is next January's
            if occasion < today:
                occasion = date(today.year + 1, month, day)
            return occasion
    return None


# ── Rule 2: relative days ────────────────────────────────────────────

_RELATIVE_DAYS: list[tuple[re.Pattern[str], int]] = [
    (re.compile(r"\bday after tomorrow\b|\bdopodomani\b|\bdopo domani\b"), 2),
    (re.compile(r"\btomorrow\b|\bdomani\b|\bdomattina\b"), 1),
    (
        re.compile(
            r"\btoday\b|\btonight\b|\bthis evening\b|\boggi\b|\bstasera\b"
            r"|\bquesta sera\b|\bstanotte\b"
        ),
        0,
    ),
]


def _match_relative_day(text: str, today: date) -> Optional[date]:
    for pattern, offset in _RELATIVE_DAYS:
        if pattern.search(text):
            return today + timedelta(days=offset)
    return None


# ── Rule 3: weekdays ─────────────────────────────────────────────────

WEEKDAYS = {
    "monday": 0, "lunedi": 0,
    "tuesday": 1, "martedi": 1,
    "wednesday": 2, "mercoledi": 2,
    "thursday": 3, "giovedi": 3,
    "friday": 4, "venerdi": 4,
    "saturday": 5, "sabato": 5,
    "sunday": 6, "domenica": 6,
}

_THIS_WORDS = {"this", "coming", "questo", "questa"}
_NEXT_WORDS = {"next", "prossimo", "prossima"}

_WEEKDAY_RE = re.compile(
    r"\b(?:(this|coming|next|questo|questa|prossimo|prossima)\s+)?"
    r"(" + "|".join(WEEKDAYS) + r")s?\b"
    r"(?:\s+(prossimo|prossima))?"
)


def _match_weekday(text: str, today: date) -> Optional[date]:
    matches = list(_WEEKDAY_RE.finditer(text))
    if not matches:
        return None

    # The last weekday named in an utterance is the one the caller settled on
    match = matches[-1]
    prefix, name, suffix = match.group(1), match.group(2), match.group(3)
    delta = (WEEKDAYS[name] - today.weekday()) % 7

    if prefix in _NEXT_WORDS or suffix in _NEXT_WORDS:
        return today + timedelta(days=7 + delta)
    if prefix in _THIS_WORDS:
        return today + timedelta(days=delta)
    return today + timedelta(days=delta or 7)


# ── Rule 4: this weekend ─────────────────────────────────────────────

_WEEKEND_RE = re.compile(r"\b(weekend|week-end|fine settimana|finesettimana)\b")
_SUNDAY_RE = re.compile(r"\b(sunday|domenica)\b")


def _match_weekend(text: str, today: date) -> Optional[date]:
    if not _WEEKEND_RE.search(text):
        return None
    target = 6 if _SUNDAY_RE.search(text) else 5
    return today + timedelta(days=(target - today.weekday()) % 7)


_DATE_RULES = (_match_occasion, _match_relative_day, _match_weekday, _match_weekend)


# ── Rule 5: model-supplied dates with a stale year ───────────────────

def roll_forward(supplied: Optional[str], today: date) -> Optional[date]:
    """Move a supplied date forward whole years until it is not in the past.

    Feb 29 lands on the next leap year.  Returns None for unparseable input.
    """
    iso = normalize_date(supplied)
    if iso is None:
        return None
    original = date.fromisoformat(iso)
    if original >= today:
        return original

    year = max(original.year, today.year)
    for _ in range(9):
        try:
            candidate = original.replace(year=year)
        except ValueError:
            year += 1
            continue
        if candidate >= today:
            if candidate != original:
                log.info("Rolled stale model date %s forward to %s", iso, candidate)
            return candidate
        year += 1
    return None


def resolve_date(
    history: Iterable[str],
    today: date,
    supplied: Optional[str] = None,
) -> Optional[date]:
    """Resolve the booking date from the caller's utterances.

    Rules, first match wins: named occasions, relative days, weekdays,
    "this weekend"; failing those the model's own date (year rolled
    forward); failing that None.
    """
    for utterance in reversed(list(history)):
        if not utterance:
            continue
        text = _normalize(utterance)
        for rule in _DATE_RULES:
            resolved = rule(text, today)
            if resolved is not None:
                return resolved
    return roll_forward(supplied, today)


# ── Default time of day ──────────────────────────────────────────────

_LATE_RE = re.compile(
    r"\b(latest|very late|as late as possible|il piu tardi|piu tardi possibile"
    r"|tardissimo|molto tardi)\b"
)
_LUNCH_RE = re.compile(r"\b(lunch|lunchtime|midday|noon|pranzo|mezzogiorno)\b")
_EVENING_RE = re.compile(
    r"\b(evening|night|tonight|dinner|sera|stasera|serata|cena|notte)\b"
)
_MORNING_RE = re.compile(
    r"\d\s*a\.?m\.?(?![a-z])|\b(morning|mattina|mattino|stamattina|domattina)\b"
)
_AFTERNOON_RE = re.compile(
    r"\d\s*p\.?m\.?(?![a-z])|\b(afternoon|pomeriggio)\b"
)

_NUMBER_WORDS = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "six": 6,
    "seven": 7, "eight": 8, "nine": 9, "ten": 10, "eleven": 11, "twelve": 12,
    "una": 1, "due": 2, "tre": 3, "quattro": 4, "cinque": 5, "sei": 6,
    "sette": 7, "otto": 8, "nove": 9, "dieci": 10, "undici": 11, "dodici": 12,
}
_LEAD = r"(?:at|around|alle|alla|all'|verso le|per le|ore)"
_WORD_HOUR_RE = re.compile(
    rf"\b({_LEAD})\s*(" + "|".join(_NUMBER_WORDS) + r")\b"
)
_MINUTES = r"(?:\s*(?:e|and)\s*(mezza|mezzo|trenta|a half|half|un quarto|quarto|quarter|quindici))?"
_HOUR_PATTERNS = [
    re.compile(r"\b(\d{1,2})[:.](\d{2})\b"),
    re.compile(r"\bhalf past (\d{1,2})\b()"),
    re.compile(rf"\b{_LEAD}\s*(\d{{1,2}})\b{_MINUTES}"),
    re.compile(r"\b(\d{1,2})\s*(?:a\.?m\.?|p\.?m\.?)(?![a-z])()"),
    re.compile(r"\b(\d{1,2})\s*o'?clock\b()"),
]
# "around 10 people" is a party size, not a clock time
_PARTY_NOUN_RE = re.compile(
    r"\s*(?:people|persons?|guests|pax|of us|persone|ospiti|coperti|posti|adulti|bambini)\b"
)
_HALF = {"mezza", "mezzo", "trenta", "a half", "half"}
_QUARTER = {"un quarto", "quarto", "quarter", "quindici"}


def _find_hour(text: str) -> Optional[tuple[int, int]]:
    """Return (hour, minute) for the first explicit clock time in ``text``."""
    text = _WORD_HOUR_RE.sub(
        lambda m: f"{m.group(1)} {_NUMBER_WORDS[m.group(2)]}", text
    )
    for index, pattern in enumerate(_HOUR_PATTERNS):
        for match in pattern.finditer(text):
            if _PARTY_NOUN_RE.match(text, match.end()):
                continue
            hour = int(match.group(1))
            minute_token = match.group(2) or ""
            if index == 0:
                minute = int(minute_token)
            elif index == 1:
                minute = 30
            elif minute_token in _HALF:
                minute = 30
            elif minute_token in _QUARTER:
                minute = 15
            else:
                minute = 0
            if hour > 23 or minute > 59:
                continue
            return hour, minute
    return None


def _qualify_hour(hour: int, text: str, defaults: TimeDefaults) -> int:
    """Apply AM/PM reading to a clock hour said without a 24h value."""
    if hour == 0 or hour >= 12:
        return hour
    if _MORNING_RE.search(text):
        return hour
    if _AFTERNOON_RE.search(text) or _EVENING_RE.search(text):
        return hour + 12
    if _LUNCH_RE.search(text):
        return hour + 12 if hour <= 3 else hour
    # Booking calls: "at 8" means 20:00 unless the policy is switched off
    if defaults.bare_hour_is_evening:
        return hour + 12
    return hour


def infer_default_time(
    history: Iterable[str],
    defaults: TimeDefaults = TimeDefaults(),
) -> Optional[str]:
    """Guess HH:MM:SS from meal words and bare hours in the utterances.

    Only meant to be used when the time slot is otherwise unknown.  This is
    a heuristic: the bare-hour-means-evening reading is a product policy
    controlled by ``defaults.bare_hour_is_evening``.
    """
    for utterance in reversed(list(history)):
        if not utterance:
            continue
        text = _normalize(utterance)

        if _LATE_RE.search(text):
            return defaults.late

        clock = _find_hour(text)
        if clock is not None:
            hour, minute = clock
            hour = _qualify_hour(hour, text, defaults)
            return f"{hour:02d}:{minute:02d}:00"

        if _LUNCH_RE.search(text):
            return defaults.lunch
        if _EVENING_RE.search(text):
            return defaults.evening
    return None
