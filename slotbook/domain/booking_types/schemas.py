"""Booking type domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ...shared.validators import (
    MIN_DURATION_MINUTES,
    QUESTION_TYPES,
    WEEKDAYS,
    validate_slug,
    validate_time_of_day,
)


class DayAvailability(BaseModel):
    """Bookable window for one weekday"""

    enabled: bool = False
    start: str = "09:00"
    end: str = "17:00"

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, v):
        return validate_time_of_day(v)

    @model_validator(mode="after")
    def check_order(self):
        if self.enabled and self.start >= self.end:
            raise ValueError("End time must be after start time")
        return self


class BookingQuestion(BaseModel):
    """Intake question shown to invitees"""

    id: str
    label: str = Field(min_length=1)
    type: str = "text"
    required: bool = False
    options: list[str] = Field(default_factory=list)

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        if v not in QUESTION_TYPES:
            raise ValueError(f"Question type must be one of: {', '.join(sorted(QUESTION_TYPES))}")
        return v

    @model_validator(mode="after")
    def check_options(self):
        if self.type == "select" and not self.options:
            raise ValueError("Select questions need at least one option")
        return self


class BookingTypeBase(BaseModel):
    name: str
    slug: str
    description: Optional[str] = None
    duration: int = 30
    location: Optional[str] = None
    active: bool = True
    availability: Optional[dict[str, DayAvailability]] = None
    questions: Optional[list[BookingQuestion]] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("Name is required")
        return v.strip()

    @field_validator("slug")
    @classmethod
    def validate_slug_format(cls, v):
        return validate_slug(v)

    @field_validator("duration")
    @classmethod
    def validate_duration(cls, v):
        if v < MIN_DURATION_MINUTES:
            raise ValueError(f"Duration must be at least {MIN_DURATION_MINUTES} minutes")
        return v

    @field_validator("availability")
    @classmethod
    def validate_weekdays(cls, v):
        if v:
            unknown = set(v) - set(WEEKDAYS)
            if unknown:
                raise ValueError(f"Unknown weekday(s): {', '.join(sorted(unknown))}")
        return v


class BookingTypeCreate(BookingTypeBase):
    """Schema for creating a new booking type"""


class BookingTypeUpdate(BookingTypeBase):
    """Schema for replacing a booking type; ownership is never part of the payload"""

    # Left unset, the stored flag is kept; toggling has its own endpoint
    active: Optional[bool] = None


class BookingTypeToggle(BaseModel):
    """Explicit target state; when omitted the flag is flipped"""

    active: Optional[bool] = None


class BookingTypeResponse(BaseModel):
    """Schema for booking type response"""

    id: str
    name: str
    slug: str
    description: Optional[str] = None
    duration: int
    location: Optional[str] = None
    active: bool
    availability: Optional[dict[str, DayAvailability]] = None
    questions: Optional[list[BookingQuestion]] = None
    createdAt: datetime
    updatedAt: datetime

    @classmethod
    def from_record(cls, record) -> "BookingTypeResponse":
        return cls(
            id=record.id,
            name=record.name,
            slug=record.slug,
            description=record.description,
            duration=record.duration,
            location=record.location,
            active=record.active,
            availability=record.availability,
            questions=record.questions,
            createdAt=record.created_at,
            updatedAt=record.updated_at,
        )


class BookingTypeMutationResponse(BaseModel):
    message: str
    bookingType: BookingTypeResponse


class SlugAvailabilityResponse(BaseModel):
    slug: str
    available: bool
