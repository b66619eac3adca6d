import uuid
from datetime import date, time
from typing import Callable, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    BookingValidationError,
    InvalidTransitionError,
    PersistenceError,
)
from app.core.redis import RedisClient
from app.models.business import Business
from app.models.notification import NotificationEvent
from app.models.reservation import (
    Actor,
    Reservation,
    ReservationStatus,
)
from app.services.admission import AdmittedSlot, BookingAdmissionService
from app.services.availability import AvailabilityService
from app.utils.clock import local_today, utcnow

logger = structlog.get_logger(__name__)

TRANSITION_EVENTS = {
    ReservationStatus.CONFIRMED: NotificationEvent.RESERVATION_CONFIRMED,
    ReservationStatus.COMPLETED: NotificationEvent.RESERVATION_COMPLETED,
    ReservationStatus.CANCELLED: NotificationEvent.RESERVATION_CANCELLED,
}


class ReservationService:
    """Reservation lifecycle: status transitions, reschedule, listings and stats."""

    def __init__(
        self,
        db: AsyncSession,
        redis: Optional[RedisClient] = None,
        clock: Callable = utcnow,
    ):
        self.db = db
        self.clock = clock
        self.admission = BookingAdmissionService(db, redis=redis, clock=clock)
        self.availability = AvailabilityService(db, clock)
        self.notifications = self.admission.notifications

    async def get_reservation_by_uuid(
        self, reservation_uuid: uuid.UUID
    ) -> Optional[Reservation]:
        """Get reservation by UUID."""
        result = await self.db.execute(
            select(Reservation).where(Reservation.uuid == reservation_uuid)
        )
        return result.scalar_one_or_none()

    async def get_business(self, reservation: Reservation) -> Business:
        return await self.db.get(Business, reservation.business_id)

    def resolve_actor(
        self, reservation: Reservation, business: Business, user_id: str
    ) -> Optional[Actor]:
        """Which side of the reservation ``user_id`` acts for, if any."""
        if business.owner_user_id == user_id:
            return Actor.BUSINESS
        if reservation.customer_user_id and reservation.customer_user_id == user_id:
            return Actor.CUSTOMER
        return None

    async def transition(
        self,
        reservation: Reservation,
        new_status: ReservationStatus,
        actor: Actor,
        reason: Optional[str] = None,
        only_from: Optional[ReservationStatus] = None,
    ) -> Reservation:
        """Move a reservation to ``new_status`` on behalf of ``actor``.

        Raises InvalidTransitionError for any change outside the lifecycle
        table, when the stored status is not ``only_from`` (if given), and
        for customer cancellations inside the cutoff window. Reactivating a
        cancelled reservation re-runs slot admission.
        """
        business = await self.get_business(reservation)
        await self._reload_for_update(reservation)
        current = ReservationStatus(reservation.status)

        if only_from is not None and current != only_from:
            raise InvalidTransitionError(
                f"Only {only_from.value} reservations can be changed this way",
                current=current.value,
                requested=new_status.value,
            )

        if not reservation.can_transition_to(new_status, actor):
            logger.info(
                "Rejected reservation transition",
                reservation_id=reservation.id,
                current=current.value,
                requested=new_status.value,
                actor=actor.value,
            )
            raise InvalidTransitionError(
                f"Cannot change reservation from {current.value} to {new_status.value}",
                current=current.value,
                requested=new_status.value,
                actor=actor.value,
            )

        if (
            actor == Actor.CUSTOMER
            and current == ReservationStatus.CONFIRMED
            and new_status == ReservationStatus.CANCELLED
        ):
            await self._check_customer_cutoff(reservation, business, "cancelled")

        if current == ReservationStatus.CANCELLED:
            return await self._reactivate(reservation, business)

        reservation.transition_to(new_status, actor, reason=reason, now=self.clock())
        self.notifications.reset()
        self.notifications.record_for_counterparty(
            business, reservation, TRANSITION_EVENTS[new_status], actor, reason=reason
        )
        await self._commit(reservation)
        await self.notifications.dispatch()

        logger.info(
            "Reservation status changed",
            reservation_id=reservation.id,
            business_id=reservation.business_id,
            previous=current.value,
            status=reservation.status,
            actor=actor.value,
        )
        return reservation

    async def accept(self, reservation: Reservation) -> Reservation:
        return await self.transition(
            reservation,
            ReservationStatus.CONFIRMED,
            Actor.BUSINESS,
            only_from=ReservationStatus.PENDING,
        )

    async def decline(
        self, reservation: Reservation, reason: Optional[str] = None
    ) -> Reservation:
        return await self.transition(
            reservation,
            ReservationStatus.CANCELLED,
            Actor.BUSINESS,
            reason=reason,
            only_from=ReservationStatus.PENDING,
        )

    async def _reactivate(
        self, reservation: Reservation, business: Business
    ) -> Reservation:
        async def restore(slot: AdmittedSlot) -> Reservation:
            await self._reload_for_update(reservation)
            if reservation.status != ReservationStatus.CANCELLED.value:
                raise InvalidTransitionError(
                    "Reservation is no longer cancelled",
                    current=reservation.status,
                    requested=ReservationStatus.CONFIRMED.value,
                )
            reservation.slot_index = slot.slot_index
            reservation.end_time = slot.end_time
            reservation.transition_to(
                ReservationStatus.CONFIRMED, Actor.BUSINESS, now=self.clock()
            )
            await self.db.flush()
            self.notifications.record_for_counterparty(
                business,
                reservation,
                NotificationEvent.RESERVATION_CONFIRMED,
                Actor.BUSINESS,
            )
            return reservation

        reservation = await self.admission.admit(
            business,
            reservation.booking_date,
            reservation.start_time,
            restore,
            track=[reservation],
        )
        logger.info(
            "Reservation reactivated",
            reservation_id=reservation.id,
            business_id=reservation.business_id,
            slot_index=reservation.slot_index,
        )
        return reservation

    async def reschedule(
        self,
        reservation: Reservation,
        new_date: date,
        new_time: time,
        actor: Actor,
        reason: Optional[str] = None,
    ) -> Reservation:
        """Move a reservation to another slot.

        The new slot goes through admission; in the same transaction the old
        reservation is cancelled and a successor referencing it is created.
        When admission fails the old reservation is left as it was.
        """
        current = ReservationStatus(reservation.status)
        if not reservation.is_active:
            raise InvalidTransitionError(
                f"Cannot reschedule a {current.value} reservation",
                current=current.value,
            )
        if reservation.booking_date == new_date and reservation.start_time == new_time:
            raise BookingValidationError(
                "Reservation is already booked for this slot",
                reservation_id=reservation.id,
            )

        business = await self.get_business(reservation)
        if actor == Actor.CUSTOMER and current == ReservationStatus.CONFIRMED:
            await self._check_customer_cutoff(reservation, business, "rescheduled")

        old_slot = f"{reservation.booking_date.isoformat()} {reservation.start_time.strftime('%H:%M')}"

        async def move(slot: AdmittedSlot) -> Reservation:
            await self._reload_for_update(reservation)
            if not reservation.is_active:
                raise InvalidTransitionError(
                    "Reservation was cancelled or moved meanwhile",
                    current=reservation.status,
                )
            if (
                actor == Actor.CUSTOMER
                and reservation.status == ReservationStatus.CONFIRMED.value
            ):
                await self._check_customer_cutoff(reservation, business, "rescheduled")

            if actor == Actor.BUSINESS or slot.settings.auto_confirm:
                status = ReservationStatus.CONFIRMED
            else:
                status = ReservationStatus.PENDING

            new_uuid = uuid.uuid4()
            successor = Reservation(
                uuid=new_uuid,
                business_id=reservation.business_id,
                confirmation_code=Reservation.make_confirmation_code(new_uuid),
                customer_user_id=reservation.customer_user_id,
                customer_name=reservation.customer_name,
                customer_phone=reservation.customer_phone,
                customer_email=reservation.customer_email,
                booking_date=slot.day,
                start_time=slot.start_time,
                end_time=slot.end_time,
                slot_index=slot.slot_index,
                status=status.value,
                status_changed_at=self.clock(),
                payment_method=reservation.payment_method,
                payment_status=reservation.payment_status,
                amount=reservation.amount,
                notes=reservation.notes,
                rescheduled_from_id=reservation.id,
                reschedule_count=(reservation.reschedule_count or 0) + 1,
            )
            reservation.transition_to(
                ReservationStatus.CANCELLED,
                actor,
                reason=reason or f"Rescheduled to {slot.day.isoformat()} {slot.start_time.strftime('%H:%M')}",
                now=self.clock(),
            )
            self.db.add(successor)
            await self.db.flush()

            self.notifications.record_for_counterparty(
                business,
                successor,
                NotificationEvent.RESERVATION_RESCHEDULED,
                actor,
                previous_slot=old_slot,
                reason=reason,
            )
            return successor

        successor = await self.admission.admit(
            business, new_date, new_time, move, track=[reservation]
        )
        logger.info(
            "Reservation rescheduled",
            reservation_id=reservation.id,
            new_reservation_id=successor.id,
            business_id=successor.business_id,
            actor=actor.value,
        )
        return successor

    async def _reload_for_update(self, reservation: Reservation) -> Reservation:
        """Re-read ``reservation`` under a row lock so checks see committed state."""
        result = await self.db.execute(
            select(Reservation)
            .where(Reservation.id == reservation.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def _check_customer_cutoff(
        self, reservation: Reservation, business: Business, action: str
    ):
        settings = await self.availability.get_settings(business.id)
        cutoff = settings.cancellation_cutoff_hours
        if reservation.is_within_cutoff(business.timezone, cutoff, self.clock()):
            raise InvalidTransitionError(
                f"Confirmed reservations can only be {action} "
                f"up to {cutoff} hours before the start",
                current=reservation.status,
                cutoff_hours=cutoff,
            )

    async def _commit(self, reservation: Reservation):
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "Failed to store reservation change",
                reservation_uuid=str(reservation.uuid),
                error=str(e),
            )
            raise PersistenceError("Reservation change could not be stored") from e

    async def list_business_reservations(
        self,
        business_id: int,
        status: Optional[ReservationStatus] = None,
        day: Optional[date] = None,
    ) -> list[Reservation]:
        query = select(Reservation).where(Reservation.business_id == business_id)
        if status is not None:
            query = query.where(Reservation.status == status.value)
        if day is not None:
            query = query.where(Reservation.booking_date == day)
        query = query.order_by(Reservation.booking_date, Reservation.start_time)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_customer_reservations(self, user_id: str) -> list[Reservation]:
        result = await self.db.execute(
            select(Reservation)
            .where(Reservation.customer_user_id == user_id)
            .order_by(Reservation.booking_date.desc(), Reservation.start_time.desc())
        )
        return list(result.scalars().all())

    async def get_stats(self, business: Business) -> dict:
        """Reservation counters for the owner dashboard."""
        today = local_today(business.timezone, self.clock())
        month_start = today.replace(day=1)
        next_month = (
            month_start.replace(year=month_start.year + 1, month=1)
            if month_start.month == 12
            else month_start.replace(month=month_start.month + 1)
        )

        result = await self.db.execute(
            select(Reservation.status, func.count())
            .where(Reservation.business_id == business.id)
            .group_by(Reservation.status)
        )
        by_status = dict(result.all())

        today_count = await self.db.scalar(
            select(func.count())
            .select_from(Reservation)
            .where(
                Reservation.business_id == business.id,
                Reservation.booking_date == today,
            )
        )
        month_count = await self.db.scalar(
            select(func.count())
            .select_from(Reservation)
            .where(
                Reservation.business_id == business.id,
                Reservation.booking_date >= month_start,
                Reservation.booking_date < next_month,
            )
        )
        recent = await self.db.execute(
            select(Reservation)
            .where(
                Reservation.business_id == business.id,
                Reservation.status == ReservationStatus.PENDING.value,
            )
            .order_by(Reservation.created_at.desc(), Reservation.id.desc())
            .limit(5)
        )

        return {
            "total": sum(by_status.values()),
            "pending": by_status.get(ReservationStatus.PENDING.value, 0),
            "confirmed": by_status.get(ReservationStatus.CONFIRMED.value, 0),
            "completed": by_status.get(ReservationStatus.COMPLETED.value, 0),
            "cancelled": by_status.get(ReservationStatus.CANCELLED.value, 0),
            "today": today_count or 0,
            "this_month": month_count or 0,
            "recent_pending": list(recent.scalars().all()),
        }
