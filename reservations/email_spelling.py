"""Email extraction, cleanup and spoken rendering for voice confirmation.

Callers dictate addresses ("mario punto rossi chiocciola libero punto it"),
pause halfway through, and expect to hear the address read back in a way
they can check.  Three steps:

  extract()   find an address in free text, dictated or literal
  sanitize()  drop whitespace the recognizer inserted, lowercase
  render()    spell the local part, speak well-known domains whole

None of these raise.  Text without a usable address gives ``None``.
"""

from __future__ import annotations

import re
from typing import Optional

_ADDRESS = r"[a-z0-9._%+-]+@[a-z0-9-]+(?:\.[a-z0-9-]+)*\.[a-z]{2,}"
EMAIL_RE = re.compile(_ADDRESS, re.IGNORECASE)
_FULL_EMAIL_RE = re.compile(rf"^{_ADDRESS}$", re.IGNORECASE)

# Spoken separators, applied in order ("trattino basso" before "trattino")
_DICTATION = [
    (re.compile(r"\s*\b(?:underscore|trattino basso)\b\s*", re.I), "_"),
    (re.compile(r"\s*\b(?:dash|hyphen|trattino)\b\s*", re.I), "-"),
    (re.compile(r"\s+(?:at sign|at|chiocciola|chiocciolina)\s+", re.I), "@"),
    (re.compile(r"\s+(?:dot|punto)\s+", re.I), "."),
]
_SPACED_AT = re.compile(r"\s*@\s*")
_SPACED_DOT = re.compile(r"(?<=[a-z0-9])\s*\.\s*(?=[a-z0-9])", re.I)

# Providers callers recognize by name; everything else gets spelled out
WHOLE_WORD_DOMAINS = {
    "gmail.com",
    "googlemail.com",
    "yahoo.com",
    "yahoo.it",
    "hotmail.com",
    "hotmail.it",
    "outlook.com",
    "outlook.it",
    "live.com",
    "live.it",
    "icloud.com",
    "me.com",
    "libero.it",
    "virgilio.it",
    "alice.it",
    "tiscali.it",
    "tim.it",
    "fastwebnet.it",
    "email.it",
}

_LOCALE_WORDS = {
    "it": {"@": "chiocciola", ".": "punto", "_": "trattino basso", "-": "trattino", "+": "più"},
    "en": {"@": "at", ".": "dot", "_": "underscore", "-": "dash", "+": "plus"},
}


def extract(text: str) -> Optional[str]:
    """Return the first email address found in ``text``, sanitized."""
    if not isinstance(text, str) or not text.strip():
        return None

    candidate = text
    if "@" not in candidate:
        for pattern, symbol in _DICTATION:
            candidate = pattern.sub(symbol, candidate)
    candidate = _SPACED_AT.sub("@", candidate)
    candidate = _SPACED_DOT.sub(".", candidate)

    match = EMAIL_RE.search(candidate)
    if not match:
        return None
    cleaned = sanitize(match.group(0))
    return cleaned if is_valid(cleaned) else None


def sanitize(email: str) -> str:
    """Remove embedded whitespace and surrounding punctuation, lowercase."""
    if not isinstance(email, str):
        return ""
    compact = "".join(email.split()).lower()
    return compact.strip(".,;:!?\"'<>()")


def is_valid(email: str) -> bool:
    return bool(email) and bool(_FULL_EMAIL_RE.match(email))


def _spell(part: str, words: dict[str, str], double_letters: bool) -> list[str]:
    spoken: list[str] = []
    i = 0
    while i < len(part):
        char = part[i]
        if double_letters and char.isalpha() and i + 1 < len(part) and part[i + 1] == char:
            # Italian dictation: "rr" is said "doppia r"
            spoken.append(f"doppia {char}")
            i += 2
            continue
        spoken.append(words.get(char, char))
        i += 1
    return spoken


def render(email: str, language: str = "it") -> str:
    """Spoken form of ``email`` for text-to-speech read-back.

    The local part is spelled one character at a time.  Italian renders a
    doubled letter as "doppia <letter>".  Domains on the allow-list are
    spoken as a single word; others are spelled label by label.
    """
    cleaned = sanitize(email)
    if "@" not in cleaned:
        return " ".join(_spell(cleaned, _LOCALE_WORDS.get(language, _LOCALE_WORDS["en"]), False))

    words = _LOCALE_WORDS.get(language, _LOCALE_WORDS["en"])
    double_letters = language == "it"
    local, _, domain = cleaned.rpartition("@")

    parts = _spell(local, words, double_letters)
    parts.append(words["@"])
    if domain in WHOLE_WORD_DOMAINS:
        parts.append(domain)
    else:
        parts.extend(_spell(domain, words, double_letters))
    return " ".join(parts)
