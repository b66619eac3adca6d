import enum
import uuid
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
    Uuid,
)

from app.core.database import Base
from app.utils.clock import localize, utcnow


class ReservationStatus(enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Actor(enum.Enum):
    BUSINESS = "business"
    CUSTOMER = "customer"


class PaymentMethod(enum.Enum):
    CASH = "cash"
    ONLINE = "online"


class PaymentStatus(enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


# Reservations in these states can still be confirmed, cancelled or rescheduled
ACTIVE_STATUSES = (ReservationStatus.PENDING.value, ReservationStatus.CONFIRMED.value)
# Everything but cancelled counts against slot capacity
SLOT_HOLDING_STATUSES = (
    ReservationStatus.PENDING.value,
    ReservationStatus.CONFIRMED.value,
    ReservationStatus.COMPLETED.value,
)

# (from, to) -> actors allowed to perform the change
ALLOWED_TRANSITIONS = {
    (ReservationStatus.PENDING, ReservationStatus.CONFIRMED): {Actor.BUSINESS},
    (ReservationStatus.PENDING, ReservationStatus.CANCELLED): {
        Actor.BUSINESS,
        Actor.CUSTOMER,
    },
    (ReservationStatus.CONFIRMED, ReservationStatus.COMPLETED): {Actor.BUSINESS},
    (ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED): {
        Actor.BUSINESS,
        Actor.CUSTOMER,
    },
    # Reactivation; the caller must re-admit the slot first
    (ReservationStatus.CANCELLED, ReservationStatus.CONFIRMED): {Actor.BUSINESS},
}


class Reservation(Base):
    """Customer booking of one slot at one business, with its lifecycle."""

    __tablename__ = "reservations"

    # Core identity
    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(Uuid, unique=True, nullable=False, default=uuid.uuid4, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False)
    confirmation_code = Column(String(16), nullable=False, index=True)

    # Customer
    customer_user_id = Column(String(255), nullable=True, index=True)
    customer_name = Column(String(255), nullable=False)
    customer_phone = Column(String(50), nullable=False)
    customer_email = Column(String(255), nullable=True)

    # Slot
    booking_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    # Ordinal capacity unit held within the slot; NULL once released
    slot_index = Column(Integer, nullable=True)

    # Status management
    status = Column(
        String(20), nullable=False, default=ReservationStatus.PENDING.value, index=True
    )
    previous_status = Column(String(20), nullable=True)
    status_changed_at = Column(DateTime(timezone=True), default=utcnow)

    # Payment (recorded only)
    payment_method = Column(String(20), nullable=False, default=PaymentMethod.CASH.value)
    payment_status = Column(
        String(20), nullable=False, default=PaymentStatus.PENDING.value
    )
    amount = Column(Numeric(10, 2), nullable=True)

    notes = Column(Text, nullable=True)

    # Cancellation
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(String(20), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    # Rescheduling
    rescheduled_from_id = Column(Integer, ForeignKey("reservations.id"), nullable=True)
    reschedule_count = Column(Integer, nullable=False, default=0)

    # Audit timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint(
            "business_id",
            "booking_date",
            "start_time",
            "slot_index",
            name="uq_reservation_slot_capacity",
        ),
        CheckConstraint("end_time > start_time", name="check_end_after_start"),
        CheckConstraint("slot_index >= 0", name="check_non_negative_slot_index"),
        CheckConstraint("amount >= 0", name="check_non_negative_amount"),
        CheckConstraint(
            "reschedule_count >= 0", name="check_non_negative_reschedule_count"
        ),
        Index("ix_reservation_business_slot", "business_id", "booking_date", "start_time"),
    )

    @property
    def is_active(self) -> bool:
        """Check if the reservation can still be confirmed, cancelled or moved."""
        return self.status in ACTIVE_STATUSES

    def can_transition_to(self, new_status: ReservationStatus, actor: Actor) -> bool:
        """Check if ``actor`` may move the reservation to ``new_status``."""
        current = ReservationStatus(self.status)
        return actor in ALLOWED_TRANSITIONS.get((current, new_status), set())

    def transition_to(
        self,
        new_status: ReservationStatus,
        actor: Actor,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """Apply a status change. Returns False if the change is not allowed."""
        if not self.can_transition_to(new_status, actor):
            return False

        now = now or utcnow()
        self.previous_status = self.status
        self.status = new_status.value
        self.status_changed_at = now

        if new_status == ReservationStatus.CANCELLED:
            self.slot_index = None
            self.cancelled_at = now
            self.cancelled_by = actor.value
            if reason:
                self.cancellation_reason = reason
        elif new_status == ReservationStatus.CONFIRMED and self.cancelled_at:
            self.cancelled_at = None
            self.cancelled_by = None
            self.cancellation_reason = None

        return True

    def starts_at(self, tz_name: str) -> datetime:
        return localize(self.booking_date, self.start_time, tz_name)

    def is_within_cutoff(
        self, tz_name: str, cutoff_hours: int, current_time: Optional[datetime] = None
    ) -> bool:
        """True once the start is closer than ``cutoff_hours`` away."""
        current_time = current_time or utcnow()
        return current_time > self.starts_at(tz_name) - timedelta(hours=cutoff_hours)

    @staticmethod
    def make_confirmation_code(reservation_uuid: UUID) -> str:
        return "RZ" + reservation_uuid.hex[-6:].upper()

    def __repr__(self):
        return (
            f"<Reservation(id={self.id}, status='{self.status}', "
            f"business_id={self.business_id}, "
            f"slot='{self.booking_date} {self.start_time}', index={self.slot_index})>"
        )
