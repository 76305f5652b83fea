"""Booking type domain - CRUD for reusable meeting templates"""

from .router import router

__all__ = ["router"]
