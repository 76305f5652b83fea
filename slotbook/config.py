import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./slotbook.db")

# Firebase Configuration (session provider)
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Frontend base URL for redirects
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
API_URL = os.getenv("API_URL", "http://localhost:8000")

# Google Calendar OAuth Configuration
# OAuth flow: Frontend -> /api/google/calendar/auth -> Google -> /api/auth/callback/google -> Frontend
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
GOOGLE_REDIRECT_URI = os.getenv("GOOGLE_REDIRECT_URI", f"{API_URL}/api/auth/callback/google")
# When true the callback rejects Google accounts whose email differs from the login email
ENFORCE_CALENDAR_EMAIL_MATCH = os.getenv("ENFORCE_CALENDAR_EMAIL_MATCH", "false").lower() == "true"
# Refresh stored access tokens this many minutes before they expire
TOKEN_REFRESH_MARGIN_MINUTES = int(os.getenv("TOKEN_REFRESH_MARGIN_MINUTES", "5"))

# Backend selection: "database" or "memory" for booking types, "google" or "mock" for calendars
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "database").lower()
CALENDAR_BACKEND = os.getenv("CALENDAR_BACKEND", "google").lower()

# Calendar view configuration
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "UTC")
# Python weekday numbering (Monday=0 ... Sunday=6)
WEEK_STARTS_ON = int(os.getenv("WEEK_STARTS_ON", "6"))
DAY_VIEW_START_HOUR = int(os.getenv("DAY_VIEW_START_HOUR", "7"))
DAY_VIEW_END_HOUR = int(os.getenv("DAY_VIEW_END_HOUR", "20"))
MIN_EVENT_HEIGHT_HOURS = float(os.getenv("MIN_EVENT_HEIGHT_HOURS", "0.33"))

# Rate limiting for OAuth endpoints
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
RATE_LIMIT_OAUTH_PER_MINUTE = int(os.getenv("RATE_LIMIT_OAUTH_PER_MINUTE", "20"))
# Optional shared counter store; without it limits are kept per process
REDIS_URL = os.getenv("REDIS_URL")

# HTTP surface
ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower()
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", f"{FRONTEND_URL},http://localhost:3000").split(",")
    if origin.strip()
]
SECURITY_HEADERS_ENABLED = os.getenv("SECURITY_HEADERS_ENABLED", "true").lower() == "true"
