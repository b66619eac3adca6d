import enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)

from app.core.database import Base
from app.utils.clock import utcnow


class SpecialDateType(enum.Enum):
    CLOSED = "closed"
    CUSTOM_HOURS = "custom_hours"


class SpecialDate(Base):
    """Date-specific override of the weekly schedule (holiday, short day)."""

    __tablename__ = "special_dates"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)

    date = Column(Date, nullable=False)
    override_type = Column(String(20), nullable=False)
    open_time = Column(Time, nullable=True)
    close_time = Column(Time, nullable=True)
    reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("business_id", "date", name="uq_special_date_per_day"),
        CheckConstraint(
            "override_type = 'closed' OR "
            "(open_time IS NOT NULL AND close_time IS NOT NULL AND open_time < close_time)",
            name="check_custom_hours_interval",
        ),
    )

    @property
    def is_closed(self) -> bool:
        return self.override_type == SpecialDateType.CLOSED.value

    def __repr__(self):
        hours = "closed" if self.is_closed else f"{self.open_time}-{self.close_time}"
        return f"<SpecialDate(business_id={self.business_id}, {self.date}: {hours})>"
