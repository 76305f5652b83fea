"""
Calendar view windowing

Computes the visible date range for day/week/month views, moves the
reference date when navigating, and buckets fetched events into the grid.
Everything here is a pure function of (reference date, view mode, events);
no I/O and no clock reads unless a caller asks for "today".
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, tzinfo
from enum import Enum
from operator import attrgetter
from threading import Lock
from typing import Any, Callable, Optional

from dateutil.relativedelta import relativedelta

MONDAY = 0
SUNDAY = 6

DEFAULT_START_HOUR = 7
DEFAULT_END_HOUR = 20
DEFAULT_MIN_EVENT_HEIGHT_HOURS = 0.33


class ViewMode(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


@dataclass(frozen=True)
class DateRange:
    """Inclusive range: start is 00:00 of the first day, end is the last instant of the last day"""

    start: datetime
    end: datetime

    @property
    def tz(self) -> Optional[tzinfo]:
        return self.start.tzinfo

    def dates(self) -> list[date]:
        first, last = self.start.date(), self.end.date()
        return [first + timedelta(days=i) for i in range((last - first).days + 1)]

    @property
    def day_count(self) -> int:
        return (self.end.date() - self.start.date()).days + 1

    def contains(self, instant: datetime) -> bool:
        return self.start <= localize(instant, self.tz) <= self.end


# ============================================================================
# DATE ARITHMETIC
# ============================================================================


def localize(instant: datetime, tz: Optional[tzinfo]) -> datetime:
    """
    Express an instant in the view's timezone.
    Naive instants are taken to already be in that timezone.
    """
    if tz is None:
        return instant.replace(tzinfo=None) if instant.tzinfo is None else instant
    if instant.tzinfo is None:
        return instant.replace(tzinfo=tz)
    return instant.astimezone(tz)


def local_date(instant: datetime, tz: Optional[tzinfo]) -> date:
    if tz is None:
        return instant.date()
    return localize(instant, tz).date()


def start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=23, minute=59, second=59, microsecond=999999)


def start_of_week(dt: datetime, week_start: int = SUNDAY) -> datetime:
    offset = (dt.weekday() - week_start) % 7
    return start_of_day(dt - timedelta(days=offset))


def end_of_week(dt: datetime, week_start: int = SUNDAY) -> datetime:
    return end_of_day(start_of_week(dt, week_start) + timedelta(days=6))


def start_of_month(dt: datetime) -> datetime:
    return start_of_day(dt.replace(day=1))


def end_of_month(dt: datetime) -> datetime:
    # relativedelta(day=31) clamps to the month's last day
    return end_of_day(dt + relativedelta(day=31))


def compute_range(reference: datetime, mode: ViewMode, week_start: int = SUNDAY) -> DateRange:
    """Visible range for a view; month grids are padded out to whole weeks"""
    mode = ViewMode(mode)
    if mode is ViewMode.DAY:
        return DateRange(start_of_day(reference), end_of_day(reference))
    if mode is ViewMode.WEEK:
        return DateRange(start_of_week(reference, week_start), end_of_week(reference, week_start))
    return DateRange(
        start_of_week(start_of_month(reference), week_start),
        end_of_week(end_of_month(reference), week_start),
    )


def shift(reference: datetime, mode: ViewMode, steps: int = 1) -> datetime:
    """Move the reference by whole view units (negative steps go back)"""
    mode = ViewMode(mode)
    if mode is ViewMode.DAY:
        return reference + relativedelta(days=steps)
    if mode is ViewMode.WEEK:
        return reference + relativedelta(weeks=steps)
    return reference + relativedelta(months=steps)


def today(tz: Optional[tzinfo] = None) -> datetime:
    return datetime.now(tz)


@dataclass(frozen=True)
class ViewState:
    """Reference date plus view mode; navigation returns a new state"""

    reference: datetime
    mode: ViewMode = ViewMode.WEEK
    week_start: int = SUNDAY

    @property
    def range(self) -> DateRange:
        return compute_range(self.reference, self.mode, self.week_start)

    def previous(self) -> "ViewState":
        return replace(self, reference=shift(self.reference, self.mode, -1))

    def next(self) -> "ViewState":
        return replace(self, reference=shift(self.reference, self.mode, 1))

    def go_today(self, now: Optional[datetime] = None) -> "ViewState":
        return replace(self, reference=now or today(self.reference.tzinfo))

    def switch_mode(self, mode: ViewMode) -> "ViewState":
        return replace(self, mode=ViewMode(mode))

    def focus_day(self, day: datetime) -> "ViewState":
        """Clicking a day in week/month view opens it in day view"""
        return replace(self, reference=day, mode=ViewMode.DAY)


# ============================================================================
# BUCKETING
# ============================================================================

EventGetter = Callable[[Any], datetime]


@dataclass
class PlacedEvent:
    event: Any
    top_fraction: float  # offset inside the hour slot, 0.0 - 1.0
    height_hours: float


@dataclass
class HourSlot:
    hour: int
    label: str
    events: list[PlacedEvent] = field(default_factory=list)


@dataclass
class DayCell:
    date: date
    in_month: bool = True
    is_today: bool = False
    events: list = field(default_factory=list)


@dataclass
class CalendarView:
    mode: ViewMode
    reference: datetime
    range: DateRange
    title: str
    cells: list[DayCell]
    slots: list[HourSlot] = field(default_factory=list)


def bucket_by_day(
    events,
    date_range: DateRange,
    get_start: EventGetter = attrgetter("startTime"),
) -> dict[date, list]:
    """
    Group events by the calendar day of their start instant.

    Every day of the range gets a key. Multi-day events are not split, they
    only appear on their start day. Provider order is kept within a day and
    events starting outside the range are dropped.
    """
    buckets: dict[date, list] = {d: [] for d in date_range.dates()}
    for event in events:
        day = local_date(get_start(event), date_range.tz)
        if day in buckets:
            buckets[day].append(event)
    return buckets


def hour_label(hour: int) -> str:
    suffix = "AM" if hour < 12 else "PM"
    return f"{hour % 12 or 12}:00 {suffix}"


def hour_slots(start_hour: int = DEFAULT_START_HOUR, end_hour: int = DEFAULT_END_HOUR) -> list[HourSlot]:
    """Inclusive hourly ladder, e.g. 7:00 AM through 8:00 PM"""
    if not 0 <= start_hour <= end_hour <= 23:
        raise ValueError("Visible hours must satisfy 0 <= start <= end <= 23")
    return [HourSlot(hour=h, label=hour_label(h)) for h in range(start_hour, end_hour + 1)]


def event_height_hours(
    start: datetime, end: datetime, min_height: float = DEFAULT_MIN_EVENT_HEIGHT_HOURS
) -> float:
    """Rendered height in hours with a floor so very short events stay visible"""
    duration = (end - start).total_seconds() / 3600
    return max(duration, min_height)


def bucket_day_view(
    events,
    day: datetime,
    start_hour: int = DEFAULT_START_HOUR,
    end_hour: int = DEFAULT_END_HOUR,
    min_height: float = DEFAULT_MIN_EVENT_HEIGHT_HOURS,
    get_start: EventGetter = attrgetter("startTime"),
    get_end: EventGetter = attrgetter("endTime"),
) -> list[HourSlot]:
    """Place the day's events into hourly slots by start hour; overlaps simply stack"""
    tz = day.tzinfo
    target = day.date()
    slots = hour_slots(start_hour, end_hour)
    by_hour = {slot.hour: slot for slot in slots}

    for event in events:
        start = localize(get_start(event), tz)
        if start.date() != target:
            continue
        slot = by_hour.get(start.hour)
        if slot is None:
            continue
        end = localize(get_end(event), tz)
        slot.events.append(
            PlacedEvent(
                event=event,
                top_fraction=start.minute / 60,
                height_hours=event_height_hours(start, end, min_height),
            )
        )
    return slots


def view_title(reference: datetime, mode: ViewMode, date_range: DateRange) -> str:
    if mode is ViewMode.DAY:
        return f"{reference:%A, %B} {reference.day}, {reference.year}"
    if mode is ViewMode.WEEK:
        first, last = date_range.start, date_range.end
        return f"{first:%B} {first.day} - {last:%B} {last.day}, {last.year}"
    return f"{reference:%B %Y}"


def build_view(
    reference: datetime,
    mode: ViewMode,
    events,
    week_start: int = SUNDAY,
    start_hour: int = DEFAULT_START_HOUR,
    end_hour: int = DEFAULT_END_HOUR,
    min_height: float = DEFAULT_MIN_EVENT_HEIGHT_HOURS,
    current_date: Optional[date] = None,
    get_start: EventGetter = attrgetter("startTime"),
    get_end: EventGetter = attrgetter("endTime"),
) -> CalendarView:
    """Assemble the renderable grid for one view"""
    mode = ViewMode(mode)
    events = list(events)
    date_range = compute_range(reference, mode, week_start)
    buckets = bucket_by_day(events, date_range, get_start)

    cells = [
        DayCell(
            date=day,
            # Leading/trailing days from adjacent months are shown dimmed
            in_month=mode is not ViewMode.MONTH or day.month == reference.month,
            is_today=day == current_date,
            events=day_events,
        )
        for day, day_events in buckets.items()
    ]

    slots = []
    if mode is ViewMode.DAY:
        slots = bucket_day_view(
            events, reference, start_hour, end_hour, min_height, get_start, get_end
        )

    return CalendarView(
        mode=mode,
        reference=reference,
        range=date_range,
        title=view_title(reference, mode, date_range),
        cells=cells,
        slots=slots,
    )


# ============================================================================
# RESPONSE ORDERING
# ============================================================================


class FetchSequencer:
    """
    Orders overlapping fetches by when they were issued, not when they resolved.

    Each fetch takes a number from issue(); a response is applied only if its
    number is still the latest issued, so a slow earlier response can never
    overwrite a newer one.
    """

    def __init__(self):
        self._latest = 0
        self._lock = Lock()

    @property
    def latest(self) -> int:
        return self._latest

    def issue(self) -> int:
        with self._lock:
            self._latest += 1
            return self._latest

    def is_current(self, sequence: int) -> bool:
        return sequence == self._latest
