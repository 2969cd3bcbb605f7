"""Tests for CalendarProvider ABC and GoogleCalendarProvider."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from reservations.calendar_providers.base import CalendarEvent, CalendarProvider


# ── CalendarEvent dataclass tests ──────────────────────────────────


class TestDataclasses:
    def test_calendar_event_defaults(self):
        now = datetime.now(tz=timezone.utc)
        event = CalendarEvent(
            summary="Marco - 4 pax",
            start=now,
            end=now + timedelta(hours=2),
        )
        assert event.description == ""
        assert event.attendees == []
        assert event.properties == {}
        assert event.event_id == ""

    def test_calendar_event_with_properties(self):
        now = datetime.now(tz=timezone.utc)
        event = CalendarEvent(
            summary="Marco - 4 pax",
            start=now,
            end=now + timedelta(hours=2),
            attendees=["marco@example.com"],
            properties={"customer_name": "Marco", "party_size": "4"},
        )
        assert event.properties["party_size"] == "4"


# ── ABC contract tests ─────────────────────────────────────────────


class TestCalendarProviderABC:
    def test_cannot_instantiate(self):
        """CalendarProvider is abstract — can't be instantiated directly."""
        with pytest.raises(TypeError):
            CalendarProvider()

    def test_concrete_implementation(self):
        """A concrete subclass must implement all abstract methods."""
        class MockProvider(CalendarProvider):
            async def list_events(self, calendar_id, start, end):
                return []
            async def create_event(self, calendar_id, event):
                return {}
            async def cancel_event(self, calendar_id, event_id):
                return True

        provider = MockProvider()
        assert isinstance(provider, CalendarProvider)


# ── GoogleCalendarProvider tests (mocked API) ──────────────────────


class TestGoogleCalendarProvider:
    @pytest.fixture
    def mock_provider(self):
        """Create a GoogleCalendarProvider with mocked Google APIs."""
        with patch(
            "reservations.calendar_providers.google.Credentials"
        ) as mock_creds, patch(
            "reservations.calendar_providers.google.build"
        ) as mock_build:
            mock_creds.from_service_account_file.return_value = MagicMock()

            from reservations.calendar_providers.google import GoogleCalendarProvider

            provider = GoogleCalendarProvider(
                service_account_path="/fake/path.json"
            )
            provider._service = mock_build.return_value
            return provider

    def test_requires_service_account(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_SERVICE_ACCOUNT_JSON", raising=False)
        from reservations.calendar_providers.google import GoogleCalendarProvider
        with pytest.raises(ValueError):
            GoogleCalendarProvider()

    @pytest.mark.asyncio
    async def test_list_events(self, mock_provider):
        """Timed, non-cancelled events come back with their booking properties."""
        mock_provider._service.events.return_value.list.return_value.execute.return_value = {
            "items": [
                {
                    "id": "evt_1",
                    "summary": "Marco - 4 pax",
                    "start": {"dateTime": "2026-03-15T20:00:00+01:00"},
                    "end": {"dateTime": "2026-03-15T22:00:00+01:00"},
                    "attendees": [{"email": "marco@example.com"}],
                    "extendedProperties": {"private": {"customer_name": "Marco"}},
                },
                {
                    "id": "closed",
                    "summary": "Chiuso per ferie",
                    "start": {"date": "2026-03-15"},
                    "end": {"date": "2026-03-16"},
                },
                {
                    "id": "evt_gone",
                    "status": "cancelled",
                    "start": {"dateTime": "2026-03-15T20:00:00+01:00"},
                    "end": {"dateTime": "2026-03-15T22:00:00+01:00"},
                },
            ]
        }

        start = datetime(2026, 3, 15, 19, 0, tzinfo=timezone.utc)
        events = await mock_provider.list_events("primary", start, start + timedelta(hours=2))

        assert len(events) == 1
        assert events[0].event_id == "evt_1"
        assert events[0].properties == {"customer_name": "Marco"}
        assert events[0].attendees == ["marco@example.com"]
        assert events[0].start.hour == 20

        kwargs = mock_provider._service.events.return_value.list.call_args.kwargs
        assert kwargs["singleEvents"] is True
        assert kwargs["timeMin"] == "2026-03-15T19:00:00+00:00"

    @pytest.mark.asyncio
    async def test_list_events_utc_suffix(self, mock_provider):
        mock_provider._service.events.return_value.list.return_value.execute.return_value = {
            "items": [{
                "id": "evt_z",
                "start": {"dateTime": "2026-03-15T19:00:00Z"},
                "end": {"dateTime": "2026-03-15T21:00:00Z"},
            }]
        }
        start = datetime(2026, 3, 15, 0, 0, tzinfo=timezone.utc)
        events = await mock_provider.list_events("primary", start, start + timedelta(days=1))
        assert events[0].start == datetime(2026, 3, 15, 19, 0, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_create_event(self, mock_provider):
        """create_event should call events().insert() and return event data."""
        start = datetime(2026, 3, 15, 20, 0, tzinfo=timezone.utc)
        event = CalendarEvent(
            summary="Marco - 4 pax",
            start=start,
            end=start + timedelta(hours=2),
            attendees=["marco@example.com"],
            properties={"customer_name": "Marco", "party_size": "4"},
        )

        mock_provider._service.events.return_value.insert.return_value.execute.return_value = {
            "id": "evt_123",
            "htmlLink": "https://calendar.google.com/event/evt_123",
            "status": "confirmed",
        }

        result = await mock_provider.create_event("primary", event)

        assert result["event_id"] == "evt_123"
        assert result["html_link"] == "https://calendar.google.com/event/evt_123"
        kwargs = mock_provider._service.events.return_value.insert.call_args.kwargs
        assert kwargs["sendUpdates"] == "all"
        assert kwargs["body"]["extendedProperties"] == {
            "private": {"customer_name": "Marco", "party_size": "4"}
        }

    @pytest.mark.asyncio
    async def test_create_event_without_attendees(self, mock_provider):
        start = datetime(2026, 3, 15, 20, 0, tzinfo=timezone.utc)
        event = CalendarEvent(summary="Anna", start=start, end=start + timedelta(hours=2))
        mock_provider._service.events.return_value.insert.return_value.execute.return_value = {
            "id": "evt_124",
        }

        await mock_provider.create_event("primary", event)

        kwargs = mock_provider._service.events.return_value.insert.call_args.kwargs
        assert kwargs["sendUpdates"] == "none"
        assert "attendees" not in kwargs["body"]

    @pytest.mark.asyncio
    async def test_cancel_event(self, mock_provider):
        """cancel_event should call events().delete()."""
        mock_provider._service.events.return_value.delete.return_value.execute.return_value = None

        result = await mock_provider.cancel_event("primary", "evt_123")
        assert result is True

    @pytest.mark.asyncio
    async def test_cancel_event_failure(self, mock_provider):
        """cancel_event should return False on error."""
        mock_provider._service.events.return_value.delete.return_value.execute.side_effect = Exception(
            "Not found"
        )

        result = await mock_provider.cancel_event("primary", "evt_404")
        assert result is False
