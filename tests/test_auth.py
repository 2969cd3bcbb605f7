"""Tests for admin access decisions and input validation."""

import logging
import os
import sys
from unittest.mock import AsyncMock, MagicMock

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from reservations.app import _validate_id
from reservations.auth import AdminSurface, decide, require_admin, require_trace_access


# ── Fixture: mock settings for auth tests ──────────────────────────

class FakeSettings:
    def __init__(self, admin_api_key="", debug=False):
        self.admin_api_key = admin_api_key
        self.debug = debug


@pytest.fixture
def keyed(monkeypatch):
    monkeypatch.setattr("reservations.auth.settings", FakeSettings(admin_api_key="secret"))


@pytest.fixture
def debug_without_key(monkeypatch):
    monkeypatch.setattr("reservations.auth.settings", FakeSettings(admin_api_key="", debug=True))


@pytest.fixture
def production_without_key(monkeypatch):
    monkeypatch.setattr("reservations.auth.settings", FakeSettings(admin_api_key="", debug=False))


def bearer(token):
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


def fake_websocket():
    ws = MagicMock()
    ws.close = AsyncMock()
    ws.url.path = "/api/sessions/CA123/trace"
    return ws


# ── Tests: access decisions ────────────────────────────────────────

class TestDecide:
    @pytest.mark.parametrize("surface", list(AdminSurface))
    def test_matching_token(self, keyed, surface):
        assert decide("secret", surface).allowed is True

    @pytest.mark.parametrize("token", [None, "", "wrong", "secret "])
    def test_wrong_or_missing_token(self, keyed, token):
        decision = decide(token, AdminSurface.CALLS)
        assert decision.allowed is False
        assert decision.status_code == 401
        assert decision.ws_close_code == 4001

    def test_production_without_key_is_locked(self, production_without_key):
        decision = decide("anything", AdminSurface.TIME_POLICY)
        assert decision.allowed is False
        assert decision.status_code == 403
        assert decision.ws_close_code == 4003

    def test_debug_without_key_allows(self, debug_without_key):
        assert decide(None, AdminSurface.CALLS).allowed is True

    def test_debug_time_policy_change_is_logged(self, debug_without_key, caplog):
        with caplog.at_level(logging.WARNING, logger="reservations.auth"):
            assert decide(None, AdminSurface.TIME_POLICY).allowed is True
        assert "Time policy opened" in caplog.text


class TestRequireAdmin:
    """The HTTP guard turns a refusal into the matching HTTPException."""

    async def test_rejects_no_token_when_key_set(self, keyed):
        guard = require_admin(AdminSurface.CALLS)
        with pytest.raises(HTTPException) as exc_info:
            await guard(credentials=None)
        assert exc_info.value.status_code == 401
        assert exc_info.value.headers == {"WWW-Authenticate": "Bearer"}

    async def test_rejects_wrong_token(self, keyed):
        guard = require_admin(AdminSurface.TIME_POLICY)
        with pytest.raises(HTTPException) as exc_info:
            await guard(credentials=bearer("wrong"))
        assert exc_info.value.status_code == 401

    async def test_allows_correct_token(self, keyed):
        await require_admin(AdminSurface.TIME_POLICY)(credentials=bearer("secret"))

    async def test_rejects_no_key_production(self, production_without_key):
        with pytest.raises(HTTPException) as exc_info:
            await require_admin(AdminSurface.CALLS)(credentials=None)
        assert exc_info.value.status_code == 403
        assert exc_info.value.headers is None

    def test_guards_are_named_by_surface(self):
        assert require_admin(AdminSurface.CALLS).__name__ == "require_admin_calls"
        assert require_admin(AdminSurface.TIME_POLICY).__name__ == "require_admin_time_policy"


class TestRequireTraceAccess:
    """The trace WebSocket authenticates with ?token=."""

    async def test_allows_correct_token(self, keyed):
        ws = fake_websocket()
        await require_trace_access(ws, token="secret")
        ws.close.assert_not_awaited()

    async def test_rejects_wrong_token(self, keyed):
        ws = fake_websocket()
        with pytest.raises(HTTPException) as exc_info:
            await require_trace_access(ws, token="nope")
        assert exc_info.value.status_code == 401
        assert ws.close.await_args.kwargs["code"] == 4001

    async def test_no_key_production_closes(self, production_without_key):
        ws = fake_websocket()
        with pytest.raises(HTTPException) as exc_info:
            await require_trace_access(ws, token="")
        assert exc_info.value.status_code == 403
        assert ws.close.await_args.kwargs["code"] == 4003

    async def test_no_key_debug_allows(self, debug_without_key):
        ws = fake_websocket()
        await require_trace_access(ws, token="")
        ws.close.assert_not_awaited()


# ── Tests: Input validation ─────────────────────────────────────

class TestInputValidation:
    """_validate_id rejects path traversal and unsafe characters."""

    @pytest.mark.parametrize("value", [
        "CA0123456789abcdef0123456789abcdef",
        "my-call_1",
        "abc123",
    ])
    def test_valid(self, value):
        assert _validate_id(value) == value

    @pytest.mark.parametrize("value", [
        "../../etc/passwd",
        "foo/bar",
        "foo.bar",
        "",
        "a" * 65,
        "foo bar",
        "foo;rm -rf /",
    ])
    def test_rejected(self, value):
        with pytest.raises(HTTPException) as exc_info:
            _validate_id(value)
        assert exc_info.value.status_code == 400
