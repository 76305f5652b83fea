"""Booking type service - Business logic for booking type operations"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError

from ...models import User
from .repository import BookingTypeRepository, SlugTakenError
from .schemas import BookingTypeBase, BookingTypeCreate, BookingTypeUpdate

logger = logging.getLogger(__name__)

SAVE_FAILED_MESSAGE = "Failed to save booking type. Please try again."


def slug_taken_exception(slug: str) -> HTTPException:
    return HTTPException(
        status_code=409,
        detail={
            "error": f"The URL '{slug}' is already used by another booking type",
            "code": "slug_taken",
            "field": "slug",
        },
    )


def _fields_from(data: BookingTypeBase) -> dict:
    return {
        "name": data.name,
        "slug": data.slug,
        "description": data.description,
        "duration": data.duration,
        "location": data.location,
        "active": data.active,
        "availability": (
            {day: rule.model_dump() for day, rule in data.availability.items()}
            if data.availability is not None
            else None
        ),
        "questions": (
            [q.model_dump() for q in data.questions] if data.questions is not None else None
        ),
    }


class BookingTypeService:
    """Service layer for booking type business logic"""

    def __init__(self, repo: BookingTypeRepository):
        self.repo = repo

    def list_booking_types(self, user: Optional[User]) -> list:
        """Newest first; an anonymous caller simply has none"""
        if user is None:
            return []
        return self.repo.list_for_user(user.id)

    def get_booking_type(self, booking_type_id: str, user: User):
        record = self.repo.get(booking_type_id, user.id)
        if not record:
            raise HTTPException(status_code=404, detail="Booking type not found")
        return record

    def is_slug_available(self, slug: str, user: User, exclude_id: Optional[str] = None) -> bool:
        return not self.repo.slug_exists(user.id, slug, exclude_id)

    def create_booking_type(self, data: BookingTypeCreate, user: User):
        logger.info(f"📥 Creating booking type '{data.slug}' for user_id: {user.id}")

        # Early, friendly rejection; the unique constraint below is what actually guarantees it
        if self.repo.slug_exists(user.id, data.slug):
            raise slug_taken_exception(data.slug)

        try:
            return self.repo.create(user.id, **_fields_from(data))
        except SlugTakenError as e:
            raise slug_taken_exception(e.slug) from e
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to create booking type for user {user.id}: {str(e)}")
            raise HTTPException(status_code=500, detail=SAVE_FAILED_MESSAGE) from e

    def update_booking_type(self, booking_type_id: str, data: BookingTypeUpdate, user: User):
        record = self.get_booking_type(booking_type_id, user)

        if self.repo.slug_exists(user.id, data.slug, exclude_id=record.id):
            raise slug_taken_exception(data.slug)

        try:
            fields = _fields_from(data)
            if data.active is None:
                fields.pop("active")
            return self.repo.update(record, **fields)
        except SlugTakenError as e:
            raise slug_taken_exception(e.slug) from e
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to update booking type {booking_type_id}: {str(e)}")
            raise HTTPException(status_code=500, detail=SAVE_FAILED_MESSAGE) from e

    def toggle_active(self, booking_type_id: str, user: User, active: Optional[bool] = None):
        """Set the active flag, or flip it when no target state is given"""
        record = self.get_booking_type(booking_type_id, user)
        target = (not record.active) if active is None else active

        try:
            return self.repo.set_active(record, target)
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to toggle booking type {booking_type_id}: {str(e)}")
            raise HTTPException(status_code=500, detail=SAVE_FAILED_MESSAGE) from e

    def delete_booking_type(self, booking_type_id: str, user: User) -> None:
        record = self.get_booking_type(booking_type_id, user)

        try:
            self.repo.delete(record)
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to delete booking type {booking_type_id}: {str(e)}")
            raise HTTPException(
                status_code=500, detail="Failed to delete booking type. Please try again."
            ) from e
        logger.info(f"🗑️ Booking type {booking_type_id} deleted by user {user.id}")
