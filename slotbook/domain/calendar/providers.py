"""
Calendar providers
Live Google Calendar access over httpx, plus a deterministic mock used for
local development. Both implement the same CalendarProvider capability.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Protocol
from urllib.parse import quote, urlencode

import httpx

from .schemas import CalendarEvent, CalendarEventCreate, ConnectedCalendar

logger = logging.getLogger(__name__)

# Google OAuth URLs
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"  # noqa: S105 - OAuth endpoint URL
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
GOOGLE_CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]
REQUEST_TIMEOUT = 15.0


class CalendarProviderError(Exception):
    """The calendar provider rejected a request or could not be reached"""


@dataclass
class TokenSet:
    access_token: str
    refresh_token: Optional[str]
    expires_at: datetime  # naive UTC, as stored


class CalendarProvider(Protocol):
    def authorization_url(self, state: str) -> str: ...

    async def exchange_code(self, code: str) -> TokenSet: ...

    async def refresh(self, refresh_token: str) -> TokenSet: ...

    async def get_user_email(self, access_token: str) -> Optional[str]: ...

    async def list_calendars(self, access_token: str) -> list[ConnectedCalendar]: ...

    async def list_events(
        self, access_token: str, calendar_id: str, time_min: datetime, time_max: datetime
    ) -> list[CalendarEvent]: ...

    async def create_event(
        self, access_token: str, calendar_id: str, data: CalendarEventCreate
    ) -> CalendarEvent: ...

    async def revoke(self, token: str) -> None: ...


def to_rfc3339(instant: datetime) -> str:
    """Google wants offsets on every instant; naive values are treated as UTC"""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.isoformat()


def parse_instant(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _event_time(node: dict, end_of_day: bool) -> datetime:
    if node.get("dateTime"):
        return parse_instant(node["dateTime"])
    day = date.fromisoformat(node["date"])
    if end_of_day:
        # All-day end dates are exclusive in the Calendar API
        return datetime.combine(day - timedelta(days=1), time(23, 59, 59))
    return datetime.combine(day, time(0, 0, 0))


def map_google_event(item: dict, calendar_id: str) -> CalendarEvent:
    return CalendarEvent(
        id=item["id"],
        title=item.get("summary") or "",
        description=item.get("description"),
        startTime=_event_time(item["start"], end_of_day=False),
        endTime=_event_time(item["end"], end_of_day=True),
        location=item.get("location"),
        attendees=[a["email"] for a in item.get("attendees", []) if a.get("email")],
        calendarId=calendar_id,
    )


def map_google_calendar(item: dict) -> ConnectedCalendar:
    calendar_id = item["id"]
    return ConnectedCalendar(
        id=calendar_id,
        provider="google",
        name=item.get("summaryOverride") or item.get("summary") or calendar_id,
        email=calendar_id if "@" in calendar_id else "",
        primary=bool(item.get("primary", False)),
    )


def _expires_at(tokens: dict) -> datetime:
    return datetime.utcnow() + timedelta(seconds=int(tokens.get("expires_in", 3600)))


class GoogleCalendarProvider:
    """Google OAuth + Calendar v3 REST client"""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=REQUEST_TIMEOUT)

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            async with self._client() as client:
                response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"❌ Google request {method} {url} failed: {str(e)}")
            raise CalendarProviderError(f"Google request failed: {e}") from e
        return response

    @staticmethod
    def _auth(access_token: str) -> dict:
        return {"Authorization": f"Bearer {access_token}"}

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(GOOGLE_CALENDAR_SCOPES),
            "access_type": "offline",  # Enable refresh tokens
            "prompt": "consent",
            "state": state,
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> TokenSet:
        response = await self._request(
            "POST",
            GOOGLE_TOKEN_URL,
            data={
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
                "grant_type": "authorization_code",
            },
        )
        if response.status_code != 200:
            logger.error(f"Token exchange failed: {response.text}")
            raise CalendarProviderError("Failed to exchange authorization code")

        tokens = response.json()
        if not tokens.get("access_token"):
            raise CalendarProviderError("Invalid token response")
        return TokenSet(
            access_token=tokens["access_token"],
            refresh_token=tokens.get("refresh_token"),
            expires_at=_expires_at(tokens),
        )

    async def refresh(self, refresh_token: str) -> TokenSet:
        response = await self._request(
            "POST",
            GOOGLE_TOKEN_URL,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
        )
        if response.status_code != 200:
            logger.error(f"❌ Token refresh failed: {response.text}")
            raise CalendarProviderError("Failed to refresh access token")

        tokens = response.json()
        if not tokens.get("access_token"):
            raise CalendarProviderError("No access token in refresh response")
        # Google usually omits the refresh token on refresh; keep the old one
        return TokenSet(
            access_token=tokens["access_token"],
            refresh_token=tokens.get("refresh_token") or refresh_token,
            expires_at=_expires_at(tokens),
        )

    async def get_user_email(self, access_token: str) -> Optional[str]:
        response = await self._request("GET", GOOGLE_USERINFO_URL, headers=self._auth(access_token))
        if response.status_code != 200:
            logger.error(f"Failed to get user info: {response.text}")
            raise CalendarProviderError("Failed to get user info")
        return response.json().get("email")

    async def list_calendars(self, access_token: str) -> list[ConnectedCalendar]:
        response = await self._request(
            "GET", f"{GOOGLE_CALENDAR_API}/users/me/calendarList", headers=self._auth(access_token)
        )
        if response.status_code != 200:
            logger.error(f"❌ Failed to list calendars: {response.text}")
            raise CalendarProviderError("Failed to list calendars")
        return [map_google_calendar(item) for item in response.json().get("items", [])]

    async def list_events(
        self, access_token: str, calendar_id: str, time_min: datetime, time_max: datetime
    ) -> list[CalendarEvent]:
        response = await self._request(
            "GET",
            f"{GOOGLE_CALENDAR_API}/calendars/{quote(calendar_id, safe='')}/events",
            headers=self._auth(access_token),
            params={
                "timeMin": to_rfc3339(time_min),
                "timeMax": to_rfc3339(time_max),
                "singleEvents": "true",
                "orderBy": "startTime",
            },
        )
        if response.status_code != 200:
            logger.error(f"❌ Failed to list events for {calendar_id}: {response.text}")
            raise CalendarProviderError("Failed to list events")
        return [map_google_event(item, calendar_id) for item in response.json().get("items", [])]

    async def create_event(
        self, access_token: str, calendar_id: str, data: CalendarEventCreate
    ) -> CalendarEvent:
        event_data = {
            "summary": data.title,
            "start": {"dateTime": to_rfc3339(data.startTime), "timeZone": data.timeZone},
            "end": {"dateTime": to_rfc3339(data.endTime), "timeZone": data.timeZone},
        }
        if data.description:
            event_data["description"] = data.description
        if data.location:
            event_data["location"] = data.location
        if data.attendees:
            event_data["attendees"] = [{"email": email} for email in data.attendees]

        response = await self._request(
            "POST",
            f"{GOOGLE_CALENDAR_API}/calendars/{quote(calendar_id, safe='')}/events",
            headers=self._auth(access_token),
            json=event_data,
        )
        if response.status_code not in [200, 201]:
            logger.error(f"❌ Failed to create calendar event: {response.text}")
            raise CalendarProviderError("Failed to create event")

        event = map_google_event(response.json(), calendar_id)
        logger.info(f"✅ Google Calendar event created: {event.id}")
        return event

    async def revoke(self, token: str) -> None:
        response = await self._request("POST", GOOGLE_REVOKE_URL, params={"token": token})
        if response.status_code != 200:
            raise CalendarProviderError("Failed to revoke token")


class MockCalendarProvider:
    """
    Offline stand-in for Google. Produces the same synthetic week every time
    for a given date range, so local development needs no OAuth client.
    """

    email = "user@example.com"

    def authorization_url(self, state: str) -> str:
        return f"/api/auth/callback/google?{urlencode({'code': 'mock-code', 'state': state})}"

    async def exchange_code(self, code: str) -> TokenSet:
        return TokenSet(
            access_token=f"mock-access-{code}",
            refresh_token="mock-refresh",
            expires_at=datetime.utcnow() + timedelta(hours=1),
        )

    async def refresh(self, refresh_token: str) -> TokenSet:
        return TokenSet(
            access_token="mock-access-refreshed",
            refresh_token=refresh_token,
            expires_at=datetime.utcnow() + timedelta(hours=1),
        )

    async def get_user_email(self, access_token: str) -> Optional[str]:
        return self.email

    async def list_calendars(self, access_token: str) -> list[ConnectedCalendar]:
        return [
            ConnectedCalendar(
                id="google-calendar-1",
                provider="google",
                name="Work Calendar",
                email=self.email,
                primary=True,
            )
        ]

    async def list_events(
        self, access_token: str, calendar_id: str, time_min: datetime, time_max: datetime
    ) -> list[CalendarEvent]:
        events = []
        day = time_min.date()
        while day <= time_max.date():
            ordinal = day.toordinal()
            # 1-3 events per day between 9 AM and 5 PM, 1-2 hours long
            for i in range(ordinal % 3 + 1):
                start_hour = 9 + (ordinal * 7 + i * 3) % 8
                start = datetime.combine(day, time(start_hour), tzinfo=time_min.tzinfo)
                events.append(
                    CalendarEvent(
                        id=f"event-{day.isoformat()}-{i}",
                        title=f"Mock Event {i + 1}",
                        description="This is a mock calendar event",
                        startTime=start,
                        endTime=start + timedelta(hours=1 + (ordinal + i) % 2),
                        calendarId=calendar_id,
                    )
                )
            day += timedelta(days=1)
        return events

    async def create_event(
        self, access_token: str, calendar_id: str, data: CalendarEventCreate
    ) -> CalendarEvent:
        return CalendarEvent(
            id=f"event-{int(data.startTime.timestamp())}",
            title=data.title,
            description=data.description,
            startTime=data.startTime,
            endTime=data.endTime,
            location=data.location,
            attendees=data.attendees,
            calendarId=calendar_id,
        )

    async def revoke(self, token: str) -> None:
        return None
