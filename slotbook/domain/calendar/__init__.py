"""Calendar domain - Google Calendar connection and view windowing"""

from .router import router

__all__ = ["router"]
