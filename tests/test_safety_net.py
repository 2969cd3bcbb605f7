"""Tests for the intent safety net."""

import itertools

import pytest

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from reservations.models.dialogue import DialogueIntent
from reservations.models.slots import ReservationSlots
from reservations.safety_net import correct

COMPLETE = ReservationSlots(
    date="2025-06-11",
    time="20:00:00",
    party_size=4,
    customer_name="Marco",
    customer_email="marco@example.com",
)


class TestRules:
    def test_ask_name_with_name_known(self):
        result = correct(DialogueIntent.ASK_NAME, ReservationSlots(customer_name="Marco"), "Your name?")
        assert result.intent is DialogueIntent.ASK_EMAIL
        assert result.rules_applied == ["name_already_known"]

    def test_ask_name_without_name(self):
        result = correct(DialogueIntent.ASK_NAME, ReservationSlots(), "Your name?")
        assert result.intent is DialogueIntent.ASK_NAME
        assert not result.changed

    def test_informational_blanks_reply_slots_only(self):
        result = correct(DialogueIntent.ANSWER_INFORMATIONAL, COMPLETE, "We open at seven.")
        assert result.intent is DialogueIntent.ANSWER_INFORMATIONAL
        assert result.reply_slots == ReservationSlots()
        assert COMPLETE.customer_name == "Marco"
        assert "informational_reply" in result.rules_applied

    @pytest.mark.parametrize("missing, expected", [
        ("date", DialogueIntent.ASK_DATE),
        ("time", DialogueIntent.ASK_TIME),
        ("customer_name", DialogueIntent.ASK_NAME),
    ])
    def test_finalize_with_gap(self, missing, expected):
        slots = COMPLETE.model_copy(update={missing: None})
        result = correct(DialogueIntent.FINALIZE_BOOKING, slots, "Booked!")
        assert result.intent is expected

    def test_finalize_gap_priority(self):
        slots = ReservationSlots(customer_name="Marco")
        result = correct(DialogueIntent.FINALIZE_BOOKING, slots, "Booked!")
        assert result.intent is DialogueIntent.ASK_DATE

    def test_finalize_without_email_or_party_size_is_fine(self):
        slots = COMPLETE.model_copy(update={"customer_email": None, "party_size": None})
        result = correct(DialogueIntent.FINALIZE_BOOKING, slots, "Booked!")
        assert result.intent is DialogueIntent.FINALIZE_BOOKING

    def test_ask_email_with_everything_known(self):
        result = correct(DialogueIntent.ASK_EMAIL, COMPLETE, "Perfetto, grazie.")
        assert result.intent is DialogueIntent.FINALIZE_BOOKING
        assert result.rules_applied == ["email_step_complete"]

    def test_ask_email_still_a_question(self):
        result = correct(DialogueIntent.ASK_EMAIL, COMPLETE, "Can you spell it again?")
        assert result.intent is DialogueIntent.ASK_EMAIL

    def test_finalize_phrased_as_question(self):
        result = correct(DialogueIntent.FINALIZE_BOOKING, COMPLETE, "Shall I book it for eight?")
        assert result.intent is DialogueIntent.ASK_TIME
        assert result.rules_applied == ["finalize_phrased_as_question"]

    def test_none_reply_text(self):
        result = correct(DialogueIntent.FINALIZE_BOOKING, COMPLETE, None)
        assert result.intent is DialogueIntent.FINALIZE_BOOKING


class TestFinalizeInvariant:
    def test_finalize_never_leaves_with_gaps(self):
        """Whatever the model says, finalize-booking implies date, time and name."""
        values = {
            "date": [None, "2025-06-11"],
            "time": [None, "20:00:00"],
            "customer_name": [None, "Marco"],
            "customer_email": [None, "marco@example.com"],
        }
        replies = ["Done.", "Is that right?", ""]
        for combo in itertools.product(*values.values()):
            slots = ReservationSlots(**dict(zip(values.keys(), combo)))
            for intent in DialogueIntent:
                for reply in replies:
                    result = correct(intent, slots, reply)
                    if result.intent is DialogueIntent.FINALIZE_BOOKING:
                        assert slots.has("date", "time", "customer_name")
