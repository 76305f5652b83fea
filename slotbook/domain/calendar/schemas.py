"""Calendar domain schemas"""

from datetime import date as calendar_date
from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

CalendarProviderName = Literal["google", "outlook", "apple"]


class CalendarEvent(BaseModel):
    """Event as returned by the provider; never stored locally"""

    id: str
    title: str = ""
    description: Optional[str] = None
    startTime: datetime
    endTime: datetime
    location: Optional[str] = None
    attendees: list[str] = Field(default_factory=list)
    calendarId: str


class ConnectedCalendar(BaseModel):
    id: str
    provider: CalendarProviderName = "google"
    name: str
    email: str = ""
    primary: bool = False


class CalendarEventCreate(BaseModel):
    """Schema for creating an event in a connected calendar"""

    title: str = Field(min_length=1)
    description: Optional[str] = None
    startTime: datetime
    endTime: datetime
    location: Optional[str] = None
    attendees: list[str] = Field(default_factory=list)
    timeZone: str = "UTC"

    @model_validator(mode="after")
    def check_order(self):
        # Naive instants are sent to Google as UTC
        start, end = (
            t if t.tzinfo else t.replace(tzinfo=timezone.utc) for t in (self.startTime, self.endTime)
        )
        if end < start:
            raise ValueError("endTime must not be before startTime")
        return self


class CalendarListResponse(BaseModel):
    calendars: list[ConnectedCalendar]


class CalendarEventsResponse(BaseModel):
    events: list[CalendarEvent]


class AuthUrlResponse(BaseModel):
    url: str


class CalendarStatusResponse(BaseModel):
    connected: bool
    email: Optional[str] = None
    expiresAt: Optional[datetime] = None


class PlacedEventResponse(BaseModel):
    event: CalendarEvent
    topFraction: float
    heightHours: float


class HourSlotResponse(BaseModel):
    hour: int
    label: str
    events: list[PlacedEventResponse]


class DayCellResponse(BaseModel):
    date: calendar_date
    inMonth: bool
    isToday: bool
    events: list[CalendarEvent]


class CalendarViewResponse(BaseModel):
    mode: str
    reference: datetime
    rangeStart: datetime
    rangeEnd: datetime
    title: str
    cells: list[DayCellResponse]
    slots: list[HourSlotResponse] = Field(default_factory=list)
    # Set when events could not be loaded; the grid is still returned, empty
    notice: Optional[str] = None
    previousDate: datetime
    nextDate: datetime
