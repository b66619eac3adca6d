import asyncio
import uuid
from dataclasses import dataclass
from datetime import date, time
from typing import Awaitable, Callable, Iterable, Optional, TypeVar

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    BookingError,
    BookingValidationError,
    PersistenceError,
    SlotConflictError,
)
from app.core.redis import RedisClient, redis_client
from app.models.business import Business
from app.models.business_settings import BusinessSettings
from app.models.notification import NotificationEvent
from app.models.reservation import (
    PaymentMethod,
    PaymentStatus,
    Reservation,
    ReservationStatus,
)
from app.schemas.reservation import BookingCreate
from app.services.availability import (
    AvailabilityService,
    AvailabilitySnapshot,
    compute_available_slots,
)
from app.services.calendar import slot_end_time
from app.services.notifications import NotificationService
from app.utils.clock import utcnow
from app.utils.validation import validate_customer_info

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class AdmittedSlot:
    """Slot granted to one admission attempt, valid until its transaction ends."""

    day: date
    start_time: time
    end_time: time
    slot_index: int
    settings: BusinessSettings


class BookingAdmissionService:
    """Commit-time availability check and atomic slot reservation.

    Every write that makes a reservation hold a slot (new booking,
    reactivation, reschedule) goes through ``admit``: under the per-slot lock
    it re-reads the day, recomputes availability, claims the lowest free
    capacity index and commits. The unique constraint on
    ``(business, date, start, slot_index)`` catches writers that slipped past
    the lock; those attempts are rolled back and retried.
    """

    def __init__(
        self,
        db: AsyncSession,
        redis: Optional[RedisClient] = None,
        clock: Callable = utcnow,
        notifications: Optional[NotificationService] = None,
    ):
        self.db = db
        self.redis = redis or redis_client
        self.clock = clock
        self.availability = AvailabilityService(db, clock)
        self.notifications = notifications or NotificationService(db)

    async def book(
        self,
        business: Business,
        booking: BookingCreate,
        customer_user_id: Optional[str] = None,
    ) -> Reservation:
        """Create a reservation for the requested slot or reject it."""
        errors = validate_customer_info(booking.customer.model_dump())
        if errors:
            raise BookingValidationError("; ".join(errors), business_id=business.id)

        async def create_reservation(slot: AdmittedSlot) -> Reservation:
            online = booking.payment_method == PaymentMethod.ONLINE
            if online and not slot.settings.online_payment_enabled:
                raise BookingValidationError(
                    "Online payment is not enabled for this business",
                    business_id=business.id,
                )

            reservation_uuid = uuid.uuid4()
            status = (
                ReservationStatus.CONFIRMED
                if slot.settings.auto_confirm
                else ReservationStatus.PENDING
            )
            reservation = Reservation(
                uuid=reservation_uuid,
                business_id=business.id,
                confirmation_code=Reservation.make_confirmation_code(reservation_uuid),
                customer_user_id=customer_user_id,
                customer_name=booking.customer.name,
                customer_phone=booking.customer.phone,
                customer_email=booking.customer.email,
                booking_date=slot.day,
                start_time=slot.start_time,
                end_time=slot.end_time,
                slot_index=slot.slot_index,
                status=status.value,
                status_changed_at=self.clock(),
                payment_method=booking.payment_method.value,
                payment_status=(
                    PaymentStatus.PAID.value if online else PaymentStatus.PENDING.value
                ),
                amount=booking.amount,
                notes=booking.notes,
                reschedule_count=0,
            )
            self.db.add(reservation)
            await self.db.flush()

            self.notifications.record(
                business,
                reservation,
                NotificationEvent.RESERVATION_CREATED,
                business.owner_user_id,
            )
            return reservation

        reservation = await self.admit(
            business, booking.booking_date, booking.start_time, create_reservation
        )
        logger.info(
            "Reservation created",
            business_id=reservation.business_id,
            reservation_id=reservation.id,
            confirmation_code=reservation.confirmation_code,
            status=reservation.status,
            slot_index=reservation.slot_index,
        )
        return reservation

    async def admit(
        self,
        business: Business,
        day: date,
        start_time: time,
        apply: Callable[[AdmittedSlot], Awaitable[T]],
        track: Iterable = (),
    ) -> T:
        """Run ``apply`` inside one transaction that owns a unit of the slot.

        ``apply`` receives the granted slot, adds or mutates rows and flushes;
        it is called again from scratch when an attempt is retried. ``track``
        lists loaded instances ``apply`` relies on; they are refreshed after
        every rollback so callers can keep using them. Reads and writes up to
        the commit share a ``BOOKING_TIMEOUT_SECONDS`` budget across attempts.

        Raises SlotConflictError, BookingValidationError (from ``apply``) or
        PersistenceError. No partial write survives a failure.
        """
        business_id = business.id
        tracked = [business, *track]
        log = logger.bind(
            business_id=business_id,
            date=day.isoformat(),
            time=start_time.strftime("%H:%M"),
        )
        deadline = asyncio.get_running_loop().time() + settings.BOOKING_TIMEOUT_SECONDS

        async with self.redis.slot_lock(business_id, day, start_time) as lock:
            if lock is None and self.redis.enabled:
                log.warning("Admitting without slot lock")
            result = await self._admit_with_retries(
                business, day, start_time, apply, tracked, log, deadline
            )

        await self.notifications.dispatch()
        return result

    async def _attempt(self, business_id, tz_name, day, start_time, apply):
        snapshot = await self.availability.load_snapshot(business_id, day)
        slot = self._claim_slot(snapshot, tz_name, day, start_time)
        return slot, await apply(slot)

    async def _admit_with_retries(
        self, business, day, start_time, apply, tracked, log, deadline
    ):
        business_id = business.id
        tz_name = business.timezone
        max_attempts = max(1, settings.BOOKING_MAX_ATTEMPTS)
        loop = asyncio.get_running_loop()

        for attempt in range(1, max_attempts + 1):
            self.notifications.reset()
            try:
                # Commit stays outside the deadline: once it returns the
                # booking is stored and must be reported as such.
                slot, result = await asyncio.wait_for(
                    self._attempt(business_id, tz_name, day, start_time, apply),
                    timeout=max(0.0, deadline - loop.time()),
                )
                await self.db.commit()
            except asyncio.TimeoutError:
                await self._safe_rollback(log)
                await self._refresh(tracked)
                log.error(
                    "Booking admission timed out",
                    attempt=attempt,
                    timeout_seconds=settings.BOOKING_TIMEOUT_SECONDS,
                )
                raise PersistenceError(
                    "Booking could not be completed in time, please try again",
                    business_id=business_id,
                    date=day,
                    time=start_time,
                )
            except IntegrityError as e:
                await self._safe_rollback(log)
                await self._refresh(tracked)
                log.warning(
                    "Slot index taken by a concurrent booking",
                    attempt=attempt,
                    max_attempts=max_attempts,
                    error=str(e.orig) if e.orig is not None else str(e),
                )
                continue
            except PersistenceError:
                await self._safe_rollback(log)
                raise
            except BookingError as e:
                await self._safe_rollback(log)
                await self._refresh(tracked)
                log.info("Booking rejected", reason=e.message, error_code=e.error_code)
                raise
            except SQLAlchemyError as e:
                await self._safe_rollback(log)
                log.error("Booking admission failed", error=str(e))
                raise PersistenceError(
                    "Booking could not be stored",
                    business_id=business_id,
                    date=day,
                    time=start_time,
                ) from e

            log.info("Slot admitted", attempt=attempt, slot_index=slot.slot_index)
            return result

        log.warning("Slot contention exhausted retries", max_attempts=max_attempts)
        raise SlotConflictError(
            "This slot was just taken, please choose another time",
            business_id=business_id,
            date=day,
            time=start_time,
        )

    def _claim_slot(
        self, snapshot: AvailabilitySnapshot, tz_name: str, day: date, start_time: time
    ) -> AdmittedSlot:
        rules = snapshot.rules(tz_name)
        offered = {
            slot.time
            for slot in compute_available_slots(
                rules, snapshot.calendar, day, snapshot.reservations, self.clock()
            )
        }
        if start_time not in offered:
            raise SlotConflictError(
                "Requested slot is not available",
                business_id=snapshot.business_id,
                date=day,
                time=start_time,
            )

        used = snapshot.used_slot_indexes(start_time)
        free = [i for i in range(rules.max_capacity_per_slot) if i not in used]
        if not free:
            raise SlotConflictError(
                "Requested slot is fully booked",
                business_id=snapshot.business_id,
                date=day,
                time=start_time,
            )

        return AdmittedSlot(
            day=day,
            start_time=start_time,
            end_time=slot_end_time(start_time, rules.slot_duration_minutes),
            slot_index=free[0],
            settings=snapshot.settings,
        )

    async def _refresh(self, instances):
        for instance in instances:
            await self.db.refresh(instance)

    async def _safe_rollback(self, log):
        try:
            await self.db.rollback()
        except SQLAlchemyError as e:
            log.error("Rollback failed", error=str(e))
