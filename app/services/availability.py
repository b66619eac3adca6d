from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import PersistenceError
from app.models.business import Business
from app.models.business_settings import BusinessSettings
from app.models.reservation import SLOT_HOLDING_STATUSES, Reservation
from app.models.special_date import SpecialDate
from app.models.working_hours import WorkingHours
from app.services.calendar import WorkingHoursCalendar, generate_slots
from app.utils.clock import localize, utcnow

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SlotRules:
    """Appointment settings that shape the slot grid and booking horizon."""

    slot_duration_minutes: int
    buffer_time_minutes: int
    max_capacity_per_slot: int
    booking_window_days: int
    min_advance_booking_hours: int
    timezone: str = "UTC"

    @classmethod
    def from_settings(cls, settings: BusinessSettings, tz_name: str) -> "SlotRules":
        return cls(
            slot_duration_minutes=settings.slot_duration_minutes,
            buffer_time_minutes=settings.buffer_time_minutes,
            max_capacity_per_slot=settings.max_capacity_per_slot,
            booking_window_days=settings.booking_window_days,
            min_advance_booking_hours=settings.min_advance_booking_hours,
            timezone=tz_name,
        )


@dataclass(frozen=True)
class AvailableSlot:
    time: time
    capacity_remaining: int


def count_booked(reservations: Iterable[Reservation], day: date) -> Counter:
    """Number of non-cancelled reservations per start time on ``day``."""
    return Counter(
        r.start_time
        for r in reservations
        if r.booking_date == day and r.status in SLOT_HOLDING_STATUSES
    )


def compute_available_slots(
    rules: SlotRules,
    calendar: WorkingHoursCalendar,
    day: date,
    reservations: Iterable[Reservation],
    now: datetime,
) -> list[AvailableSlot]:
    """Bookable slots of ``day`` with their remaining capacity.

    A slot is offered when its start lies within
    ``[now + min_advance, now + booking_window]`` (both ends inclusive) and
    fewer than ``max_capacity_per_slot`` non-cancelled reservations hold it.
    """
    earliest = now + timedelta(hours=rules.min_advance_booking_hours)
    latest = now + timedelta(days=rules.booking_window_days)
    booked = count_booked(reservations, day)

    available = []
    for start in generate_slots(
        calendar, day, rules.slot_duration_minutes, rules.buffer_time_minutes
    ):
        starts_at = localize(day, start, rules.timezone)
        if starts_at < earliest or starts_at > latest:
            continue
        remaining = rules.max_capacity_per_slot - booked[start]
        if remaining > 0:
            available.append(AvailableSlot(time=start, capacity_remaining=remaining))
    return available


@dataclass
class AvailabilitySnapshot:
    """Everything needed to evaluate one business day, read in one go."""

    business_id: int
    day: date
    settings: BusinessSettings
    calendar: WorkingHoursCalendar
    reservations: list[Reservation] = field(default_factory=list)

    def rules(self, tz_name: str) -> SlotRules:
        return SlotRules.from_settings(self.settings, tz_name)

    def used_slot_indexes(self, start: time) -> set[int]:
        return {
            r.slot_index
            for r in self.reservations
            if r.start_time == start
            and r.status in SLOT_HOLDING_STATUSES
            and r.slot_index is not None
        }


class AvailabilityService:
    """Loads availability snapshots and answers slot queries for a business."""

    def __init__(self, db: AsyncSession, clock=utcnow):
        self.db = db
        self.clock = clock

    async def get_settings(self, business_id: int) -> BusinessSettings:
        result = await self.db.execute(
            select(BusinessSettings).where(BusinessSettings.business_id == business_id)
        )
        return result.scalar_one_or_none() or BusinessSettings.defaults(business_id)

    async def get_calendar(
        self,
        business_id: int,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> WorkingHoursCalendar:
        hours = await self.db.execute(
            select(WorkingHours).where(WorkingHours.business_id == business_id)
        )
        special_query = select(SpecialDate).where(SpecialDate.business_id == business_id)
        if start is not None:
            special_query = special_query.where(SpecialDate.date >= start)
        if end is not None:
            special_query = special_query.where(SpecialDate.date <= end)
        special = await self.db.execute(special_query)
        return WorkingHoursCalendar.from_models(
            hours.scalars().all(), special.scalars().all()
        )

    async def load_snapshot(self, business_id: int, day: date) -> AvailabilitySnapshot:
        """Read settings, calendar and non-cancelled reservations of ``day``.

        Raises PersistenceError if the store cannot be read.
        """
        try:
            settings = await self.get_settings(business_id)
            calendar = await self.get_calendar(business_id, day, day)
            result = await self.db.execute(
                select(Reservation).where(
                    Reservation.business_id == business_id,
                    Reservation.booking_date == day,
                    Reservation.status.in_(SLOT_HOLDING_STATUSES),
                )
            )
            reservations = list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(
                "Failed to load availability snapshot",
                business_id=business_id,
                date=day.isoformat(),
                error=str(e),
            )
            raise PersistenceError(
                "Could not read availability", business_id=business_id, date=day
            ) from e

        return AvailabilitySnapshot(
            business_id=business_id,
            day=day,
            settings=settings,
            calendar=calendar,
            reservations=reservations,
        )

    async def get_available_slots(
        self, business: Business, day: date, now: Optional[datetime] = None
    ) -> list[AvailableSlot]:
        """Slots a customer can book right now.

        Read failures degrade to an empty list; the admission path re-checks
        against the store before any write.
        """
        now = now or self.clock()
        try:
            snapshot = await self.load_snapshot(business.id, day)
        except PersistenceError:
            logger.warning(
                "Availability degraded to empty result",
                business_id=business.id,
                date=day.isoformat(),
            )
            return []

        slots = compute_available_slots(
            snapshot.rules(business.timezone),
            snapshot.calendar,
            day,
            snapshot.reservations,
            now,
        )
        logger.debug(
            "Computed availability",
            business_id=business.id,
            date=day.isoformat(),
            slot_count=len(slots),
        )
        return slots
