import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Time,
    UniqueConstraint,
)

from app.core.database import Base
from app.utils.clock import utcnow


class WeekDay(enum.Enum):
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6


class WorkingHours(Base):
    """Recurring open interval of a business for one weekday."""

    __tablename__ = "working_hours"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)

    # Python weekday number, Monday is 0
    weekday = Column(Integer, nullable=False)
    is_enabled = Column(Boolean, default=True, nullable=False)
    open_time = Column(Time, nullable=False)
    close_time = Column(Time, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("business_id", "weekday", name="uq_working_hours_weekday"),
        CheckConstraint("weekday >= 0 AND weekday <= 6", name="check_weekday_range"),
        CheckConstraint(
            "is_enabled = false OR open_time < close_time",
            name="check_open_before_close",
        ),
    )

    def contains(self, check_time) -> bool:
        """Check if a wall-clock time falls inside the open interval."""
        if not self.is_enabled:
            return False
        return self.open_time <= check_time < self.close_time

    def __repr__(self):
        return (
            f"<WorkingHours(business_id={self.business_id}, "
            f"{WeekDay(self.weekday).name}: {self.open_time}-{self.close_time}, "
            f"enabled={self.is_enabled})>"
        )
