"""TwiML documents for the <Gather input="speech"> call loop."""

from __future__ import annotations

from xml.etree.ElementTree import Element, SubElement, tostring

# Twilio <Say>/<Gather> language codes
VOICE_LANGUAGES = {"it": "it-IT", "en": "en-US"}

APOLOGY = {
    "it": "Si è verificato un errore del server. Ti chiediamo di richiamare più tardi.",
    "en": "A server error occurred. Please call back later.",
}


def _say(parent: Element, text: str, language: str) -> None:
    say_el = SubElement(parent, "Say")
    say_el.set("language", VOICE_LANGUAGES.get(language, "it-IT"))
    say_el.text = text


def gather(text: str, language: str, action: str, timeout: int = 5) -> str:
    """Speak ``text`` and listen for the caller's next utterance.

    If the caller says nothing, Twilio falls through to the <Redirect>,
    which posts an empty SpeechResult to ``action``.
    """
    response_el = Element("Response")
    gather_el = SubElement(response_el, "Gather")
    gather_el.set("input", "speech")
    gather_el.set("action", action)
    gather_el.set("method", "POST")
    gather_el.set("language", VOICE_LANGUAGES.get(language, "it-IT"))
    gather_el.set("speechTimeout", "auto")
    gather_el.set("timeout", str(timeout))
    _say(gather_el, text, language)

    redirect_el = SubElement(response_el, "Redirect")
    redirect_el.set("method", "POST")
    redirect_el.text = action
    return tostring(response_el, encoding="unicode", xml_declaration=True)


def hangup(text: str, language: str) -> str:
    """Speak ``text`` and end the call."""
    response_el = Element("Response")
    _say(response_el, text, language)
    SubElement(response_el, "Hangup")
    return tostring(response_el, encoding="unicode", xml_declaration=True)


def apology(language: str = "it") -> str:
    """Generic server-error message, then hang up."""
    return hangup(APOLOGY.get(language, APOLOGY["it"]), language)
