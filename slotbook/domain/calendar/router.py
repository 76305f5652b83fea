"""
Calendar router
Handles the Google OAuth connection, calendar/event proxying and the
day/week/month view.
"""

import logging
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...config import (
    CALENDAR_BACKEND,
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_REDIRECT_URI,
    RATE_LIMIT_OAUTH_PER_MINUTE,
)
from ...database import get_db
from ...models import User
from ...rate_limiter import create_rate_limiter
from .providers import CalendarProvider, GoogleCalendarProvider, MockCalendarProvider, parse_instant
from .schemas import (
    AuthUrlResponse,
    CalendarEventCreate,
    CalendarEventsResponse,
    CalendarListResponse,
    CalendarStatusResponse,
    CalendarViewResponse,
)
from .service import CalendarService, resolve_timezone
from .windowing import ViewMode, today

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Calendar"])

rate_limit_oauth = create_rate_limiter(
    limit=RATE_LIMIT_OAUTH_PER_MINUTE,
    window_seconds=60,
    key_prefix="calendar_oauth",
    use_ip=True,
)


def get_calendar_provider() -> CalendarProvider:
    """Provider selected by CALENDAR_BACKEND"""
    if CALENDAR_BACKEND == "mock":
        return MockCalendarProvider()
    return GoogleCalendarProvider(
        GOOGLE_CLIENT_ID or "", GOOGLE_CLIENT_SECRET or "", GOOGLE_REDIRECT_URI
    )


def get_calendar_service(
    db: Session = Depends(get_db),
    provider: CalendarProvider = Depends(get_calendar_provider),
) -> CalendarService:
    """Dependency injection for CalendarService"""
    return CalendarService(db, provider)


def missing_parameters_exception(message: str) -> HTTPException:
    return HTTPException(
        status_code=400, detail={"error": message, "code": "missing_parameters"}
    )


def _parse_instant_param(name: str, value: Optional[str]) -> datetime:
    if not value:
        raise missing_parameters_exception(f"Missing required parameter: {name}")
    try:
        return parse_instant(value)
    except ValueError as e:
        raise missing_parameters_exception(f"Invalid {name}: {value}") from e


# ============================================================================
# OAUTH CONNECTION
# ============================================================================


@router.get("/api/google/calendar/auth", response_model=AuthUrlResponse)
async def initiate_google_calendar_oauth(
    current_user: User = Depends(get_current_user),
    service: CalendarService = Depends(get_calendar_service),
    _: None = Depends(rate_limit_oauth),
):
    """Initiate Google Calendar OAuth flow"""
    if CALENDAR_BACKEND != "mock" and (not GOOGLE_CLIENT_ID or not GOOGLE_CLIENT_SECRET):
        raise HTTPException(status_code=500, detail="Google Calendar not configured")

    return AuthUrlResponse(url=service.authorization_url(current_user))


@router.get("/api/auth/callback/google")
async def handle_google_calendar_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    service: CalendarService = Depends(get_calendar_service),
    _: None = Depends(rate_limit_oauth),
):
    """Handle Google's OAuth redirect and send the browser back to the app"""
    redirect_url = await service.handle_callback(code, state)
    return RedirectResponse(url=redirect_url, status_code=302)


@router.get("/api/google/calendar/status", response_model=CalendarStatusResponse)
async def get_google_calendar_status(
    current_user: User = Depends(get_current_user),
    service: CalendarService = Depends(get_calendar_service),
):
    """Get Google Calendar connection status"""
    return service.status(current_user)


@router.post("/api/google/calendar/disconnect")
async def disconnect_google_calendar(
    current_user: User = Depends(get_current_user),
    service: CalendarService = Depends(get_calendar_service),
):
    """Disconnect Google Calendar integration"""
    await service.disconnect(current_user)
    return {"success": True, "message": "Google Calendar disconnected"}


# ============================================================================
# CALENDARS AND EVENTS
# ============================================================================


@router.get("/api/google/calendar/list", response_model=CalendarListResponse)
async def list_google_calendars(
    current_user: User = Depends(get_current_user),
    service: CalendarService = Depends(get_calendar_service),
):
    """List calendars in the connected Google account"""
    return CalendarListResponse(calendars=await service.list_calendars(current_user))


@router.get("/api/google/calendar/events", response_model=CalendarEventsResponse)
async def list_google_calendar_events(
    calendarId: Optional[str] = Query(None),
    timeMin: Optional[str] = Query(None),
    timeMax: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    service: CalendarService = Depends(get_calendar_service),
):
    """Events of one calendar between timeMin and timeMax"""
    if not calendarId:
        raise missing_parameters_exception("Missing required parameter: calendarId")
    time_min = _parse_instant_param("timeMin", timeMin)
    time_max = _parse_instant_param("timeMax", timeMax)

    events = await service.list_events(current_user, calendarId, time_min, time_max)
    return CalendarEventsResponse(events=events)


@router.post("/api/google/calendar/events", status_code=201)
async def create_google_calendar_event(
    data: CalendarEventCreate,
    calendarId: str = Query("primary"),
    current_user: User = Depends(get_current_user),
    service: CalendarService = Depends(get_calendar_service),
):
    """Create an event in a connected calendar"""
    event = await service.create_event(current_user, calendarId, data)
    return {"success": True, "event": event}


# ============================================================================
# VIEW
# ============================================================================


@router.get("/calendar/view", response_model=CalendarViewResponse)
async def get_calendar_view(
    date_param: Optional[str] = Query(None, alias="date"),
    mode: ViewMode = Query(ViewMode.WEEK),
    calendarId: str = Query("primary"),
    tz: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    service: CalendarService = Depends(get_calendar_service),
):
    """Day/week/month grid around a reference date (defaults to today)"""
    if date_param:
        try:
            reference = datetime.combine(date.fromisoformat(date_param), datetime.min.time())
        except ValueError:
            reference = _parse_instant_param("date", date_param)
    else:
        reference = today(resolve_timezone(tz))

    return await service.get_view(current_user, calendarId, reference, mode, tz)
