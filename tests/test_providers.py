"""Google provider HTTP mapping, exercised against httpx.MockTransport"""

import asyncio
import json
from datetime import datetime, timezone

import httpx
import pytest

from slotbook.domain.calendar.providers import (
    GOOGLE_CALENDAR_API,
    GOOGLE_TOKEN_URL,
    CalendarProviderError,
    GoogleCalendarProvider,
    MockCalendarProvider,
)
from slotbook.domain.calendar.schemas import CalendarEventCreate

UTC = timezone.utc
TIME_MIN = datetime(2025, 3, 2, tzinfo=UTC)
TIME_MAX = datetime(2025, 3, 8, 23, 59, 59, tzinfo=UTC)


def _provider(handler):
    return GoogleCalendarProvider(
        "client-id", "client-secret", "http://api.test/callback", transport=httpx.MockTransport(handler)
    )


def test_authorization_url_requests_offline_access():
    url = _provider(lambda request: httpx.Response(200)).authorization_url("signed-state")

    assert url.startswith("https://accounts.google.com/o/oauth2/v2/auth?")
    assert "access_type=offline" in url
    assert "prompt=consent" in url
    assert "state=signed-state" in url
    assert "redirect_uri=http%3A%2F%2Fapi.test%2Fcallback" in url


def test_list_events_maps_timed_and_all_day_events():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(
            200,
            json={
                "items": [
                    {
                        "id": "timed",
                        "summary": "Standup",
                        "start": {"dateTime": "2025-03-03T09:00:00Z"},
                        "end": {"dateTime": "2025-03-03T09:15:00Z"},
                        "attendees": [{"email": "a@example.com"}, {"displayName": "no email"}],
                    },
                    {
                        "id": "all-day",
                        "start": {"date": "2025-03-04"},
                        "end": {"date": "2025-03-05"},
                    },
                ]
            },
        )

    events = asyncio.run(
        _provider(handler).list_events("token-1", "team@group.calendar.google.com", TIME_MIN, TIME_MAX)
    )

    assert seen["url"].startswith(
        f"{GOOGLE_CALENDAR_API}/calendars/team%40group.calendar.google.com/events"
    )
    assert "singleEvents=true" in seen["url"]
    assert seen["auth"] == "Bearer token-1"

    timed, all_day = events
    assert timed.title == "Standup"
    assert timed.attendees == ["a@example.com"]
    assert timed.calendarId == "team@group.calendar.google.com"
    assert all_day.title == ""
    assert all_day.startTime == datetime(2025, 3, 4, 0, 0, 0)
    assert all_day.endTime == datetime(2025, 3, 4, 23, 59, 59)


def test_error_status_raises_provider_error():
    provider = _provider(lambda request: httpx.Response(401, json={"error": "invalid_token"}))

    with pytest.raises(CalendarProviderError):
        asyncio.run(provider.list_calendars("expired"))


def test_transport_failure_raises_provider_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(CalendarProviderError):
        asyncio.run(_provider(handler).get_user_email("token"))


def test_refresh_keeps_existing_refresh_token():
    def handler(request):
        assert str(request.url) == GOOGLE_TOKEN_URL
        assert b"grant_type=refresh_token" in request.content
        return httpx.Response(200, json={"access_token": "new-access", "expires_in": 3599})

    tokens = asyncio.run(_provider(handler).refresh("old-refresh"))

    assert tokens.access_token == "new-access"
    assert tokens.refresh_token == "old-refresh"
    assert tokens.expires_at > datetime.utcnow()


def test_exchange_code_without_access_token_fails():
    provider = _provider(lambda request: httpx.Response(200, json={"token_type": "Bearer"}))

    with pytest.raises(CalendarProviderError):
        asyncio.run(provider.exchange_code("code"))


def test_list_calendars_maps_fields():
    def handler(request):
        return httpx.Response(
            200,
            json={
                "items": [
                    {"id": "owner@example.com", "summary": "Owner", "primary": True},
                    {"id": "holidays#group", "summary": "Holidays", "summaryOverride": "Days off"},
                ]
            },
        )

    primary, holidays = asyncio.run(_provider(handler).list_calendars("token"))

    assert (primary.name, primary.email, primary.primary) == ("Owner", "owner@example.com", True)
    assert (holidays.name, holidays.email, holidays.primary) == ("Days off", "", False)


def test_create_event_sends_google_body():
    captured = {}

    def handler(request):
        captured["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "id": "created-1",
                "summary": captured["body"]["summary"],
                "start": captured["body"]["start"],
                "end": captured["body"]["end"],
            },
        )

    data = CalendarEventCreate(
        title="Kickoff",
        startTime=datetime(2025, 3, 4, 10, 0, tzinfo=UTC),
        endTime=datetime(2025, 3, 4, 11, 0, tzinfo=UTC),
        attendees=["guest@example.com"],
    )

    event = asyncio.run(_provider(handler).create_event("token", "primary", data))

    assert captured["body"]["attendees"] == [{"email": "guest@example.com"}]
    assert "description" not in captured["body"]
    assert event.id == "created-1"
    assert event.startTime == datetime(2025, 3, 4, 10, 0, tzinfo=UTC)


def test_mock_provider_is_deterministic():
    provider = MockCalendarProvider()

    first = asyncio.run(provider.list_events("t", "cal", TIME_MIN, TIME_MAX))
    second = asyncio.run(provider.list_events("t", "cal", TIME_MIN, TIME_MAX))

    assert first == second
    assert all(TIME_MIN <= event.startTime <= TIME_MAX for event in first)
