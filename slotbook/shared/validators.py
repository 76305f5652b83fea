"""Shared validation utilities"""

import re
from typing import Optional

SLUG_PATTERN = re.compile(r"^[a-z0-9-]+$")
TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

MIN_DURATION_MINUTES = 5
WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
QUESTION_TYPES = {"text", "textarea", "email", "phone", "select"}


def is_valid_slug(slug: Optional[str]) -> bool:
    return bool(slug) and SLUG_PATTERN.match(slug) is not None


def validate_slug(slug: Optional[str]) -> str:
    """
    Validate a booking-type URL slug.

    Raises:
        ValueError: If the slug is empty or contains anything other than
            lowercase letters, digits and hyphens
    """
    if not slug:
        raise ValueError("URL is required")
    if not SLUG_PATTERN.match(slug):
        raise ValueError("URL can only contain lowercase letters, numbers, and hyphens")
    return slug


def validate_time_of_day(value: str) -> str:
    """Validate an HH:MM 24-hour time string"""
    if not TIME_PATTERN.match(value or ""):
        raise ValueError("Time must be in HH:MM format")
    return value
