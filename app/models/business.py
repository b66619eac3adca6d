import enum
import uuid

from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String, Text, Uuid

from app.core.database import Base
from app.utils.clock import utcnow


class BusinessType(enum.Enum):
    BARBERSHOP = "barbershop"
    BEAUTY_SALON = "beauty_salon"
    RESTAURANT = "restaurant"
    CAFE = "cafe"
    FOOTBALL_FIELD = "football_field"
    TENNIS_COURT = "tennis_court"
    GYM = "gym"
    CAR_WASH = "car_wash"
    SPA = "spa"
    DENTIST = "dentist"
    DOCTOR = "doctor"
    OTHER = "other"


class Business(Base):
    """Bookable business listed on the marketplace, owned by a single user."""

    __tablename__ = "businesses"

    # Core identity
    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(Uuid, unique=True, nullable=False, default=uuid.uuid4, index=True)
    owner_user_id = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    type = Column(
        String(30), nullable=False, default=BusinessType.OTHER.value, index=True
    )

    # Business profile
    description = Column(Text, nullable=True)
    phone = Column(String(50), nullable=True)

    # Location & timezone
    location = Column(Text, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    timezone = Column(String(50), nullable=False, default="UTC")

    is_active = Column(Boolean, default=True, nullable=False)

    # Audit timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Business(id={self.id}, name='{self.name}', type='{self.type}')>"
