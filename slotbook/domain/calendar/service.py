"""
Calendar service
OAuth connection lifecycle, token refresh, and event/calendar reads for the
caller's single connected Google account.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import urlencode
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import (
    DAY_VIEW_END_HOUR,
    DAY_VIEW_START_HOUR,
    DEFAULT_TIMEZONE,
    ENFORCE_CALENDAR_EMAIL_MATCH,
    FRONTEND_URL,
    MIN_EVENT_HEIGHT_HOURS,
    TOKEN_REFRESH_MARGIN_MINUTES,
    WEEK_STARTS_ON,
)
from ...models import User
from ...security_utils import generate_timed_token, verify_timed_token
from .providers import CalendarProvider, CalendarProviderError, TokenSet
from .repository import CalendarTokenRepository
from .schemas import (
    CalendarEvent,
    CalendarEventCreate,
    CalendarStatusResponse,
    CalendarViewResponse,
    ConnectedCalendar,
    DayCellResponse,
    HourSlotResponse,
    PlacedEventResponse,
)
from .windowing import ViewMode, build_view, compute_range, shift, today

logger = logging.getLogger(__name__)

CALENDAR_PAGE_PATH = "/dashboard/calendar"
LOGIN_PAGE_PATH = "/login"
EVENTS_LOAD_FAILED_NOTICE = "Failed to load calendar events. Please try again."


class CallbackError:
    """Reason codes passed back to the calendar page as ?error=<reason>"""

    NO_CODE = "no_code"
    EMAIL_MISMATCH = "email_mismatch"
    TOKEN_STORAGE = "token_storage"
    CALLBACK_FAILED = "callback_failed"


def not_connected_exception() -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={"error": "Google Calendar not connected", "code": "not_connected"},
    )


def provider_exception(action: str) -> HTTPException:
    return HTTPException(
        status_code=500,
        detail={"error": f"Failed to {action}", "code": "provider_error"},
    )


def calendar_page_url(**params) -> str:
    return f"{FRONTEND_URL}{CALENDAR_PAGE_PATH}?{urlencode(params)}"


def resolve_timezone(name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise HTTPException(
            status_code=400,
            detail={"error": f"Unknown timezone '{name}'", "code": "invalid_timezone"},
        ) from e


class CalendarService:
    """Service layer for the calendar connection"""

    def __init__(self, db: Session, provider: CalendarProvider):
        self.db = db
        self.provider = provider
        self.tokens = CalendarTokenRepository(db)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def authorization_url(self, user: User) -> str:
        """Consent-screen URL; the signed state carries the caller across the redirect"""
        state = generate_timed_token({"uid": user.firebase_uid})
        logger.info(f"Google Calendar OAuth initiated for user: {user.email}")
        return self.provider.authorization_url(state)

    def user_from_state(self, state: Optional[str]) -> Optional[User]:
        if not state:
            return None
        data = verify_timed_token(state)
        if not data or not data.get("uid"):
            return None
        return self.db.query(User).filter(User.firebase_uid == data["uid"]).first()

    async def handle_callback(self, code: Optional[str], state: Optional[str]) -> str:
        """
        Finish the OAuth flow and return the URL to redirect the browser to.
        Every failure becomes an ?error=<reason> on the calendar page.
        """
        if not code:
            return calendar_page_url(error=CallbackError.NO_CODE)

        user = self.user_from_state(state)
        if user is None:
            return f"{FRONTEND_URL}{LOGIN_PAGE_PATH}"

        try:
            tokens = await self.provider.exchange_code(code)
            google_email = await self.provider.get_user_email(tokens.access_token)
        except CalendarProviderError as e:
            logger.error(f"❌ Google Calendar callback error: {str(e)}")
            return calendar_page_url(error=CallbackError.CALLBACK_FAILED)

        if google_email and google_email.lower() != (user.email or "").lower():
            logger.info(f"Email mismatch: Google account {google_email} vs. user account {user.email}")
            if ENFORCE_CALENDAR_EMAIL_MATCH:
                return calendar_page_url(error=CallbackError.EMAIL_MISMATCH)

        try:
            self.tokens.upsert(user.id, tokens, google_email)
        except SQLAlchemyError as e:
            logger.error(f"❌ Error storing tokens for user {user.id}: {str(e)}")
            self.db.rollback()
            return calendar_page_url(error=CallbackError.TOKEN_STORAGE)

        logger.info(f"✅ Google Calendar connected for user: {user.email}")
        return calendar_page_url(connected="true")

    def status(self, user: User) -> CalendarStatusResponse:
        record = self.tokens.get(user.id)
        if not record:
            return CalendarStatusResponse(connected=False)
        return CalendarStatusResponse(
            connected=True, email=record.email, expiresAt=record.token_expires_at
        )

    async def disconnect(self, user: User) -> None:
        record = self.tokens.get(user.id)
        if not record:
            raise not_connected_exception()

        # Revoke Google tokens; the local record goes regardless
        try:
            stored = self.tokens.decrypted(record)
            await self.provider.revoke(stored.refresh_token or stored.access_token)
        except (CalendarProviderError, ValueError) as e:
            logger.warning(f"Failed to revoke Google tokens: {str(e)}")

        self.tokens.delete(record)
        logger.info(f"✅ Google Calendar disconnected for user: {user.email}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _access_token(self, user: User) -> str:
        """
        Stored access token for the caller, refreshed first when it expires
        within TOKEN_REFRESH_MARGIN_MINUTES.

        Raises:
            HTTPException: 404 not_connected when no token record exists
            CalendarProviderError: when the stored token is unusable or refresh fails
        """
        record = self.tokens.get(user.id)
        if not record:
            raise not_connected_exception()

        try:
            stored = self.tokens.decrypted(record)
        except ValueError as e:
            raise CalendarProviderError("Stored calendar credentials are unreadable") from e

        margin = timedelta(minutes=TOKEN_REFRESH_MARGIN_MINUTES)
        if stored.expires_at > datetime.utcnow() + margin:
            return stored.access_token

        if not stored.refresh_token:
            raise CalendarProviderError("Access token expired and no refresh token is stored")

        logger.info("🔄 Google Calendar token expired, refreshing...")
        refreshed: TokenSet = await self.provider.refresh(stored.refresh_token)
        try:
            self.tokens.update_tokens(record, refreshed)
        except SQLAlchemyError as e:
            logger.error(f"❌ Error saving refreshed token for user {user.id}: {str(e)}")
            self.db.rollback()
            raise CalendarProviderError("Refreshed calendar credentials could not be saved") from e
        logger.info("✅ Google Calendar token refreshed successfully")
        return refreshed.access_token

    async def list_calendars(self, user: User) -> list[ConnectedCalendar]:
        try:
            access_token = await self._access_token(user)
            return await self.provider.list_calendars(access_token)
        except CalendarProviderError as e:
            logger.error(f"❌ Error fetching calendars for user {user.id}: {str(e)}")
            raise provider_exception("fetch calendars") from e

    async def _fetch_events(
        self, user: User, calendar_id: str, time_min: datetime, time_max: datetime
    ) -> list[CalendarEvent]:
        access_token = await self._access_token(user)
        return await self.provider.list_events(access_token, calendar_id, time_min, time_max)

    async def list_events(
        self, user: User, calendar_id: str, time_min: datetime, time_max: datetime
    ) -> list[CalendarEvent]:
        try:
            return await self._fetch_events(user, calendar_id, time_min, time_max)
        except CalendarProviderError as e:
            logger.error(f"❌ Error fetching events for user {user.id}: {str(e)}")
            raise provider_exception("fetch events") from e

    async def create_event(
        self, user: User, calendar_id: str, data: CalendarEventCreate
    ) -> CalendarEvent:
        try:
            access_token = await self._access_token(user)
            return await self.provider.create_event(access_token, calendar_id, data)
        except CalendarProviderError as e:
            logger.error(f"❌ Error creating event for user {user.id}: {str(e)}")
            raise provider_exception("create event") from e

    async def get_view(
        self,
        user: User,
        calendar_id: str,
        reference: datetime,
        mode: ViewMode,
        tz_name: Optional[str] = None,
    ) -> CalendarViewResponse:
        """
        Compute the visible range, fetch its events and bucket them.
        A failed fetch still returns the grid, empty, with a notice.
        """
        tz = resolve_timezone(tz_name)
        reference = reference.astimezone(tz) if reference.tzinfo else reference.replace(tzinfo=tz)
        date_range = compute_range(reference, mode, WEEK_STARTS_ON)

        notice = None
        try:
            events = await self._fetch_events(user, calendar_id, date_range.start, date_range.end)
        except CalendarProviderError as e:
            logger.error(f"❌ Error fetching events for calendar view: {str(e)}")
            events = []
            notice = EVENTS_LOAD_FAILED_NOTICE

        view = build_view(
            reference,
            mode,
            events,
            week_start=WEEK_STARTS_ON,
            start_hour=DAY_VIEW_START_HOUR,
            end_hour=DAY_VIEW_END_HOUR,
            min_height=MIN_EVENT_HEIGHT_HOURS,
            current_date=today(tz).date(),
        )

        return CalendarViewResponse(
            mode=view.mode.value,
            reference=view.reference,
            rangeStart=view.range.start,
            rangeEnd=view.range.end,
            title=view.title,
            cells=[
                DayCellResponse(
                    date=cell.date, inMonth=cell.in_month, isToday=cell.is_today, events=cell.events
                )
                for cell in view.cells
            ],
            slots=[
                HourSlotResponse(
                    hour=slot.hour,
                    label=slot.label,
                    events=[
                        PlacedEventResponse(
                            event=placed.event,
                            topFraction=placed.top_fraction,
                            heightHours=placed.height_hours,
                        )
                        for placed in slot.events
                    ],
                )
                for slot in view.slots
            ],
            notice=notice,
            previousDate=shift(reference, mode, -1),
            nextDate=shift(reference, mode, 1),
        )
