"""Booking type router - FastAPI endpoints for booking type operations"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ...auth import get_current_user, get_optional_user
from ...config import STORAGE_BACKEND
from ...database import get_db
from ...models import User
from ...shared.validators import is_valid_slug
from .repository import get_repository
from .schemas import (
    BookingTypeCreate,
    BookingTypeMutationResponse,
    BookingTypeResponse,
    BookingTypeToggle,
    BookingTypeUpdate,
    SlugAvailabilityResponse,
)
from .service import BookingTypeService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/booking-types", tags=["Booking Types"])


def get_booking_type_service(db: Session = Depends(get_db)) -> BookingTypeService:
    """Dependency injection for BookingTypeService"""
    return BookingTypeService(get_repository(db, STORAGE_BACKEND))


@router.get("", response_model=list[BookingTypeResponse])
async def list_booking_types(
    current_user: Optional[User] = Depends(get_optional_user),
    service: BookingTypeService = Depends(get_booking_type_service),
):
    """List the caller's booking types, newest first"""
    return [BookingTypeResponse.from_record(r) for r in service.list_booking_types(current_user)]


@router.get("/slug-available", response_model=SlugAvailabilityResponse)
async def check_slug_available(
    slug: str = Query(...),
    exclude_id: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    service: BookingTypeService = Depends(get_booking_type_service),
):
    """Check whether a slug is free for the caller (malformed slugs are never available)"""
    available = is_valid_slug(slug) and service.is_slug_available(slug, current_user, exclude_id)
    return SlugAvailabilityResponse(slug=slug, available=available)


@router.get("/{booking_type_id}", response_model=BookingTypeResponse)
async def get_booking_type(
    booking_type_id: str,
    current_user: User = Depends(get_current_user),
    service: BookingTypeService = Depends(get_booking_type_service),
):
    return BookingTypeResponse.from_record(service.get_booking_type(booking_type_id, current_user))


@router.post("", response_model=BookingTypeMutationResponse, status_code=201)
async def create_booking_type(
    data: BookingTypeCreate,
    current_user: User = Depends(get_current_user),
    service: BookingTypeService = Depends(get_booking_type_service),
):
    """Create a new booking type"""
    record = service.create_booking_type(data, current_user)
    return BookingTypeMutationResponse(
        message="Booking type created", bookingType=BookingTypeResponse.from_record(record)
    )


@router.put("/{booking_type_id}", response_model=BookingTypeMutationResponse)
async def update_booking_type(
    booking_type_id: str,
    data: BookingTypeUpdate,
    current_user: User = Depends(get_current_user),
    service: BookingTypeService = Depends(get_booking_type_service),
):
    """Replace a booking type's editable fields"""
    record = service.update_booking_type(booking_type_id, data, current_user)
    return BookingTypeMutationResponse(
        message="Booking type updated", bookingType=BookingTypeResponse.from_record(record)
    )


@router.patch("/{booking_type_id}/active", response_model=BookingTypeMutationResponse)
async def toggle_booking_type(
    booking_type_id: str,
    data: Optional[BookingTypeToggle] = None,
    current_user: User = Depends(get_current_user),
    service: BookingTypeService = Depends(get_booking_type_service),
):
    """Toggle only the active flag"""
    record = service.toggle_active(
        booking_type_id, current_user, data.active if data is not None else None
    )
    message = "Booking type activated" if record.active else "Booking type deactivated"
    return BookingTypeMutationResponse(
        message=message, bookingType=BookingTypeResponse.from_record(record)
    )


@router.delete("/{booking_type_id}", status_code=204)
async def delete_booking_type(
    booking_type_id: str,
    current_user: User = Depends(get_current_user),
    service: BookingTypeService = Depends(get_booking_type_service),
):
    """Permanently delete a booking type"""
    service.delete_booking_type(booking_type_id, current_user)
    return Response(status_code=204)
