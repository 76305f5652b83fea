import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_public_id():
    """Generate an opaque identifier for records exposed over the API"""
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    firebase_uid = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    booking_types = relationship(
        "BookingType", back_populates="user", cascade="all, delete-orphan"
    )


class BookingType(Base):
    __tablename__ = "booking_types"
    # Slug uniqueness is scoped to the owner and enforced here, not by a pre-check
    __table_args__ = (UniqueConstraint("user_id", "slug", name="uq_booking_types_user_slug"),)

    id = Column(String(36), primary_key=True, default=generate_public_id)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    duration = Column(Integer, nullable=False, default=30)  # minutes
    location = Column(String(500), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    # {"monday": {"enabled": true, "start": "09:00", "end": "17:00"}, ...}
    availability = Column(JSON, nullable=True)
    # [{"id": "...", "label": "...", "type": "text", "required": false, "options": []}]
    questions = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        server_default=func.now(),
        onupdate=datetime.utcnow,
        nullable=False,
    )

    user = relationship("User", back_populates="booking_types")
