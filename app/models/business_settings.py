from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
)

from app.core.database import Base
from app.utils.clock import utcnow

DEFAULT_SLOT_DURATION_MINUTES = 60
DEFAULT_BOOKING_WINDOW_DAYS = 30
DEFAULT_MIN_ADVANCE_BOOKING_HOURS = 2
DEFAULT_MAX_CAPACITY_PER_SLOT = 1
DEFAULT_BUFFER_TIME_MINUTES = 0
DEFAULT_CANCELLATION_CUTOFF_HOURS = 24


class BusinessSettings(Base):
    """Appointment settings and booking policy flags, one row per business."""

    __tablename__ = "business_settings"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(
        Integer, ForeignKey("businesses.id"), unique=True, nullable=False
    )

    # Slot grid
    slot_duration_minutes = Column(
        Integer, nullable=False, default=DEFAULT_SLOT_DURATION_MINUTES
    )
    buffer_time_minutes = Column(
        Integer, nullable=False, default=DEFAULT_BUFFER_TIME_MINUTES
    )
    max_capacity_per_slot = Column(
        Integer, nullable=False, default=DEFAULT_MAX_CAPACITY_PER_SLOT
    )

    # Booking horizon
    booking_window_days = Column(
        Integer, nullable=False, default=DEFAULT_BOOKING_WINDOW_DAYS
    )
    min_advance_booking_hours = Column(
        Integer, nullable=False, default=DEFAULT_MIN_ADVANCE_BOOKING_HOURS
    )

    # Policy flags
    auto_confirm = Column(Boolean, nullable=False, default=False)
    online_payment_enabled = Column(Boolean, nullable=False, default=False)
    cancellation_cutoff_hours = Column(
        Integer, nullable=False, default=DEFAULT_CANCELLATION_CUTOFF_HOURS
    )

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("slot_duration_minutes > 0", name="check_positive_slot_duration"),
        CheckConstraint("buffer_time_minutes >= 0", name="check_non_negative_buffer"),
        CheckConstraint("max_capacity_per_slot >= 1", name="check_positive_capacity"),
        CheckConstraint("booking_window_days >= 1", name="check_positive_booking_window"),
        CheckConstraint(
            "min_advance_booking_hours >= 0", name="check_non_negative_min_advance"
        ),
        CheckConstraint(
            "cancellation_cutoff_hours >= 0", name="check_non_negative_cutoff"
        ),
    )

    @classmethod
    def defaults(cls, business_id: int = None) -> "BusinessSettings":
        """Unsaved settings row carrying the marketplace defaults."""
        return cls(
            business_id=business_id,
            slot_duration_minutes=DEFAULT_SLOT_DURATION_MINUTES,
            buffer_time_minutes=DEFAULT_BUFFER_TIME_MINUTES,
            max_capacity_per_slot=DEFAULT_MAX_CAPACITY_PER_SLOT,
            booking_window_days=DEFAULT_BOOKING_WINDOW_DAYS,
            min_advance_booking_hours=DEFAULT_MIN_ADVANCE_BOOKING_HOURS,
            auto_confirm=False,
            online_payment_enabled=False,
            cancellation_cutoff_hours=DEFAULT_CANCELLATION_CUTOFF_HOURS,
        )

    def __repr__(self):
        return (
            f"<BusinessSettings(business_id={self.business_id}, "
            f"slot={self.slot_duration_minutes}m+{self.buffer_time_minutes}m, "
            f"capacity={self.max_capacity_per_slot})>"
        )
