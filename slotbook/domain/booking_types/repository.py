"""Booking type repository - storage backends for booking types"""

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Optional, Protocol

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import BookingType, generate_public_id

logger = logging.getLogger(__name__)


class SlugTakenError(Exception):
    """The owner already has a booking type with this slug"""

    def __init__(self, slug: str):
        super().__init__(f"Slug '{slug}' is already in use")
        self.slug = slug


def _is_unique_violation(error: IntegrityError) -> bool:
    message = str(error.orig).lower()
    return "duplicate key" in message or "unique constraint" in message


class BookingTypeRepository(Protocol):
    """Storage capability shared by the database and in-memory backends"""

    def list_for_user(self, user_id: int) -> list: ...

    def get(self, booking_type_id: str, user_id: int): ...

    def slug_exists(self, user_id: int, slug: str, exclude_id: Optional[str] = None) -> bool: ...

    def create(self, user_id: int, **fields): ...

    def update(self, record, **fields): ...

    def set_active(self, record, active: bool): ...

    def delete(self, record) -> None: ...


class SqlBookingTypeRepository:
    """Repository for booking type database operations"""

    def __init__(self, db: Session):
        self.db = db

    def list_for_user(self, user_id: int) -> list[BookingType]:
        return (
            self.db.query(BookingType)
            .filter(BookingType.user_id == user_id)
            .order_by(BookingType.created_at.desc())
            .all()
        )

    def get(self, booking_type_id: str, user_id: int) -> Optional[BookingType]:
        return (
            self.db.query(BookingType)
            .filter(BookingType.id == booking_type_id, BookingType.user_id == user_id)
            .first()
        )

    def slug_exists(self, user_id: int, slug: str, exclude_id: Optional[str] = None) -> bool:
        query = self.db.query(BookingType.id).filter(
            BookingType.user_id == user_id, BookingType.slug == slug
        )
        if exclude_id:
            query = query.filter(BookingType.id != exclude_id)
        return query.first() is not None

    def create(self, user_id: int, **fields) -> BookingType:
        record = BookingType(user_id=user_id, **fields)
        self.db.add(record)
        self._commit(fields.get("slug"))
        self.db.refresh(record)
        return record

    def update(self, record: BookingType, **fields) -> BookingType:
        for key, value in fields.items():
            setattr(record, key, value)
        record.updated_at = datetime.utcnow()
        self._commit(fields.get("slug", record.slug))
        self.db.refresh(record)
        return record

    def set_active(self, record: BookingType, active: bool) -> BookingType:
        record.active = active
        record.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(record)
        return record

    def delete(self, record: BookingType) -> None:
        self.db.delete(record)
        self.db.commit()

    def _commit(self, slug: Optional[str]) -> None:
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if _is_unique_violation(e):
                logger.warning(f"⚠️ Unique constraint rejected slug '{slug}'")
                raise SlugTakenError(slug or "") from e
            raise


@dataclass
class BookingTypeRecord:
    """Plain record used by the in-memory backend; mirrors the ORM columns"""

    user_id: int
    name: str
    slug: str
    description: Optional[str] = None
    duration: int = 30
    location: Optional[str] = None
    active: bool = True
    availability: Optional[dict] = None
    questions: Optional[list] = None
    id: str = field(default_factory=generate_public_id)
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)


class InMemoryBookingTypeRepository:
    """
    Process-local backend for development and demos.

    The (user_id, slug) check and the insert happen under one lock, which gives
    the same guarantee as the database unique constraint.
    """

    def __init__(self):
        self._records: dict[str, BookingTypeRecord] = {}
        self._lock = Lock()

    def list_for_user(self, user_id: int) -> list[BookingTypeRecord]:
        with self._lock:
            owned = [copy.deepcopy(r) for r in self._records.values() if r.user_id == user_id]
        return sorted(owned, key=lambda r: r.created_at, reverse=True)

    def get(self, booking_type_id: str, user_id: int) -> Optional[BookingTypeRecord]:
        with self._lock:
            record = self._records.get(booking_type_id)
            if record is None or record.user_id != user_id:
                return None
            return copy.deepcopy(record)

    def slug_exists(self, user_id: int, slug: str, exclude_id: Optional[str] = None) -> bool:
        with self._lock:
            return self._slug_taken(user_id, slug, exclude_id)

    def create(self, user_id: int, **fields) -> BookingTypeRecord:
        record = BookingTypeRecord(user_id=user_id, **fields)
        with self._lock:
            if self._slug_taken(user_id, record.slug, None):
                raise SlugTakenError(record.slug)
            self._records[record.id] = record
            return copy.deepcopy(record)

    def update(self, record: BookingTypeRecord, **fields) -> BookingTypeRecord:
        with self._lock:
            stored = self._records[record.id]
            slug = fields.get("slug", stored.slug)
            if self._slug_taken(stored.user_id, slug, stored.id):
                raise SlugTakenError(slug)
            for key, value in fields.items():
                setattr(stored, key, value)
            stored.updated_at = datetime.utcnow()
            return copy.deepcopy(stored)

    def set_active(self, record: BookingTypeRecord, active: bool) -> BookingTypeRecord:
        with self._lock:
            stored = self._records[record.id]
            stored.active = active
            stored.updated_at = datetime.utcnow()
            return copy.deepcopy(stored)

    def delete(self, record: BookingTypeRecord) -> None:
        with self._lock:
            self._records.pop(record.id, None)

    def _slug_taken(self, user_id: int, slug: str, exclude_id: Optional[str]) -> bool:
        return any(
            r.user_id == user_id and r.slug == slug and r.id != exclude_id
            for r in self._records.values()
        )


_memory_repository = InMemoryBookingTypeRepository()


def get_repository(db: Session, backend: str) -> BookingTypeRepository:
    """Select the storage backend named by configuration"""
    if backend == "memory":
        return _memory_repository
    if backend == "database":
        return SqlBookingTypeRepository(db)
    raise ValueError(f"Unknown booking type storage backend: {backend}")
