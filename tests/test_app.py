"""Tests for the FastAPI surface — Twilio webhooks, JSON turns, admin API."""

import json
import xml.etree.ElementTree as ET
from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from reservations import twiml
from reservations.app import create_app
from reservations.booking.memory import InMemoryBookingBackend
from reservations.config import Settings, runtime_settings
from reservations.errors import ConfigurationError
from reservations.models.restaurant import RestaurantContext
from reservations.nlu.clients import NluClient
from reservations.orchestrator import Orchestrator
from reservations.session import SessionStore

RESTAURANT = RestaurantContext(name="Trattoria Test", default_language="en")
CALLER = "+393331234567"


class FakeSettings:
    def __init__(self, admin_api_key="", debug=False):
        self.admin_api_key = admin_api_key
        self.debug = debug


def completion(reply, intent="no-op", **slots):
    return json.dumps({"reply": reply, "intent": intent, "slots": slots})


def make_client(*completions):
    nlu = AsyncMock(spec=NluClient)
    nlu.complete.side_effect = list(completions)
    backend = InMemoryBookingBackend()
    orch = Orchestrator(
        nlu=nlu,
        backend=backend,
        store=SessionStore(),
        restaurant=lambda: RESTAURANT,
        today=lambda tz: date(2025, 6, 10),
    )
    return TestClient(create_app(orch)), orch, backend


@pytest.fixture
def admin(monkeypatch):
    monkeypatch.setattr("reservations.auth.settings", FakeSettings(admin_api_key="secret"))
    return {"Authorization": "Bearer secret"}


@pytest.fixture
def restore_runtime_settings():
    saved = dict(runtime_settings)
    yield
    runtime_settings.clear()
    runtime_settings.update(saved)


def parse(resp):
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("application/xml")
    return ET.fromstring(resp.content)


# ── Health ─────────────────────────────────────────────────────────


class TestHealth:
    def test_health(self):
        client, _, _ = make_client()
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"


# ── Twilio webhooks ────────────────────────────────────────────────


class TestTwilioWebhooks:
    def test_voice_greets_and_gathers(self):
        client, _, _ = make_client()
        root = parse(client.post("/twilio/voice", data={"CallSid": "CA1", "From": CALLER}))
        gather = root.find("Gather")
        assert gather.get("input") == "speech"
        assert gather.get("action") == "/twilio/gather"
        assert gather.find("Say").text

    def test_gather_turn_replies_and_listens(self):
        client, _, _ = make_client(completion("For which day?", "ask-date"))
        root = parse(client.post("/twilio/gather", data={
            "CallSid": "CA1", "From": CALLER, "SpeechResult": "A table for two please",
        }))
        assert root.find("Gather/Say").text == "For which day?"
        assert root.find("Gather").get("language") == "en-US"
        assert root.find("Hangup") is None

    def test_final_turn_hangs_up(self):
        client, _, backend = make_client(
            completion("Booking it.", "finalize-booking", party_size=2, customer_name="Anna"),
        )
        root = parse(client.post("/twilio/gather", data={
            "CallSid": "CA1", "From": CALLER,
            "SpeechResult": "Table for 2 tomorrow at 8, I'm Anna",
        }))
        assert root.find("Hangup") is not None
        assert root.find("Gather") is None
        assert "Anna" in root.find("Say").text
        assert len(backend.bookings) == 1

    def test_configuration_error_apologizes(self, monkeypatch):
        def broken():
            raise ConfigurationError("OPENAI_API_KEY is missing")

        monkeypatch.setattr("reservations.app.build_orchestrator", broken)
        client = TestClient(create_app())
        root = parse(client.post("/twilio/gather", data={
            "CallSid": "CA1", "SpeechResult": "ciao",
        }))
        assert root.find("Say").text in twiml.APOLOGY.values()
        assert root.find("Hangup") is not None

    def test_configuration_error_on_voice(self, monkeypatch):
        def broken():
            raise ConfigurationError("OPENAI_API_KEY is missing")

        monkeypatch.setattr("reservations.app.build_orchestrator", broken)
        client = TestClient(create_app())
        root = parse(client.post("/twilio/voice", data={"CallSid": "CA1"}))
        assert root.find("Hangup") is not None

    def test_unexpected_error_on_voice(self, monkeypatch):
        def broken():
            raise FileNotFoundError("service-account.json")

        monkeypatch.setattr("reservations.app.build_orchestrator", broken)
        client = TestClient(create_app())
        root = parse(client.post("/twilio/voice", data={"CallSid": "CA1"}))
        assert root.find("Say").text in twiml.APOLOGY.values()
        assert root.find("Hangup") is not None

    def test_missing_calendar_key_apologizes_on_voice(self, monkeypatch):
        monkeypatch.setattr("reservations.app.settings", Settings(
            openai_api_key="sk-test",
            google_service_account_json="/nonexistent/service-account.json",
        ))
        client = TestClient(create_app())
        root = parse(client.post("/twilio/voice", data={"CallSid": "CA1"}))
        assert root.find("Say").text in twiml.APOLOGY.values()
        assert root.find("Hangup") is not None

    def test_unexpected_error_apologizes(self):
        orch = MagicMock()
        orch.handle_turn = AsyncMock(side_effect=RuntimeError("boom"))
        client = TestClient(create_app(orch))
        root = parse(client.post("/twilio/gather", data={
            "CallSid": "CA1", "SpeechResult": "ciao",
        }))
        assert root.find("Hangup") is not None

    def test_status_completed_removes_session(self):
        client, orch, _ = make_client(completion("For which day?", "ask-date"))
        client.post("/twilio/gather", data={"CallSid": "CA1", "SpeechResult": "hi"})
        assert orch.store.get("CA1") is not None

        resp = client.post("/twilio/status", data={"CallSid": "CA1", "CallStatus": "completed"})
        assert resp.json() == {"call_id": "CA1", "status": "completed", "removed": True}
        assert orch.store.get("CA1") is None

    def test_status_in_progress_keeps_session(self):
        client, orch, _ = make_client(completion("For which day?", "ask-date"))
        client.post("/twilio/gather", data={"CallSid": "CA1", "SpeechResult": "hi"})
        resp = client.post("/twilio/status", data={"CallSid": "CA1", "CallStatus": "in-progress"})
        assert resp.json()["removed"] is False
        assert orch.store.get("CA1") is not None


# ── JSON turn endpoint ─────────────────────────────────────────────


class TestApiTurn:
    def test_turn(self):
        client, _, _ = make_client(completion("For which day?", "ask-date", party_size=2))
        resp = client.post("/api/turn", json={"call_id": "CA9", "recognized_text": "two of us"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["reply_text"] == "For which day?"
        assert body["should_end_call"] is False
        assert body["intent"] == "ask-date"
        assert body["language"] == "en"
        assert body["slots"]["party_size"] == 2

    def test_invalid_call_id(self):
        client, _, _ = make_client()
        resp = client.post("/api/turn", json={"call_id": "../etc", "recognized_text": "hi"})
        assert resp.status_code == 400

    def test_not_configured(self, monkeypatch):
        def broken():
            raise ConfigurationError("OPENAI_API_KEY is missing")

        monkeypatch.setattr("reservations.app.build_orchestrator", broken)
        client = TestClient(create_app())
        resp = client.post("/api/turn", json={"call_id": "CA9", "recognized_text": "hi"})
        assert resp.status_code == 503


# ── Admin API ──────────────────────────────────────────────────────


class TestAdminSessions:
    def test_requires_token(self, admin):
        client, _, _ = make_client()
        assert client.get("/api/sessions").status_code == 401

    def test_lists_sessions(self, admin):
        client, _, _ = make_client(completion("For which day?", "ask-date"))
        client.post("/twilio/gather", data={"CallSid": "CA1", "From": CALLER, "SpeechResult": "hi"})
        resp = client.get("/api/sessions", headers=admin)
        assert resp.status_code == 200
        body = resp.json()
        assert body["count"] == 1
        assert body["sessions"][0]["caller_id"] == "+39***67"

    def test_session_detail(self, admin):
        client, _, _ = make_client(completion("For which day?", "ask-date", customer_name="Marco Rossi"))
        client.post("/twilio/gather", data={"CallSid": "CA1", "SpeechResult": "I'm Marco Rossi"})
        body = client.get("/api/sessions/CA1", headers=admin).json()
        assert body["reservation"]["customer_name"] == "Mar***si"
        assert body["trace"]

    def test_session_not_found(self, admin):
        client, _, _ = make_client()
        assert client.get("/api/sessions/CA404", headers=admin).status_code == 404

    def test_session_bad_id(self, admin):
        client, _, _ = make_client()
        assert client.get("/api/sessions/bad.id", headers=admin).status_code == 400


class TestAdminConfig:
    def test_get(self, admin):
        client, _, _ = make_client()
        body = client.get("/api/config", headers=admin).json()
        assert set(body) == {"bare_hour_is_evening", "lunch_time", "evening_time", "late_time"}

    def test_update(self, admin, restore_runtime_settings):
        client, _, _ = make_client()
        resp = client.post(
            "/api/config", headers=admin,
            json={"lunch_time": "12:30", "bare_hour_is_evening": False},
        )
        assert resp.status_code == 200
        assert runtime_settings["lunch_time"] == "12:30:00"
        assert runtime_settings["bare_hour_is_evening"] is False

    @pytest.mark.parametrize("body", [
        {"lunch_time": "noon"},
        {"bare_hour_is_evening": "yes"},
        {"unknown": 1},
        ["lunch_time"],
    ])
    def test_rejects_invalid(self, admin, restore_runtime_settings, body):
        client, _, _ = make_client()
        before = dict(runtime_settings)
        resp = client.post("/api/config", headers=admin, json=body)
        assert resp.status_code == 400
        assert runtime_settings == before


class TestTraceWebSocket:
    def test_rejects_bad_token(self, admin):
        client, _, _ = make_client()
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/api/sessions/CA1/trace?token=wrong"):
                pass
        assert exc_info.value.code == 4001

    def test_unknown_session(self, admin):
        client, _, _ = make_client()
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/api/sessions/CA404/trace?token=secret"):
                pass
        assert exc_info.value.code == 4004
