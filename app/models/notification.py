import enum
import uuid

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Uuid

from app.core.database import Base
from app.utils.clock import utcnow


class NotificationEvent(enum.Enum):
    RESERVATION_CREATED = "reservation_created"
    RESERVATION_CONFIRMED = "reservation_confirmed"
    RESERVATION_COMPLETED = "reservation_completed"
    RESERVATION_CANCELLED = "reservation_cancelled"
    RESERVATION_RESCHEDULED = "reservation_rescheduled"


class Notification(Base):
    """Outbox row describing a reservation event for one recipient."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(Uuid, unique=True, nullable=False, default=uuid.uuid4, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=True)

    # Owner user id, customer user id, or None for guest customers
    recipient_user_id = Column(String(255), nullable=True, index=True)
    event = Column(String(40), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    dispatched_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return (
            f"<Notification(id={self.id}, event='{self.event}', "
            f"recipient='{self.recipient_user_id}')>"
        )
