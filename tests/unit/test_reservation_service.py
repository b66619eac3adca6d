from datetime import date, time

import pytest
from sqlalchemy import select, update

from app.core.exceptions import (
    BookingValidationError,
    InvalidTransitionError,
    SlotConflictError,
)
from app.models.notification import Notification
from app.models.reservation import Actor, Reservation, ReservationStatus
from app.services.reservation import ReservationService
from tests.fixtures.booking_fixtures import (
    FIXED_NOW,
    NEXT_DAY,
    booking_request,
    create_business,
    fixed_clock,
    make_reservation,
)

LATER_DAY = date(2030, 1, 10)


@pytest.fixture
def service(db):
    return ReservationService(db, clock=fixed_clock())


async def store(db, reservation):
    db.add(reservation)
    await db.commit()
    await db.refresh(reservation)
    return reservation


async def notifications_for(db, reservation):
    result = await db.execute(
        select(Notification)
        .where(Notification.reservation_id == reservation.id)
        .order_by(Notification.id)
    )
    return list(result.scalars().all())


class TestTransitions:
    """Test status changes through the service."""

    async def test_accept_pending(self, db, service):
        business = await create_business(db)
        reservation = await store(
            db,
            make_reservation(
                business, LATER_DAY, time(10),
                status=ReservationStatus.PENDING, customer_user_id="cust-1",
            ),
        )

        result = await service.accept(reservation)

        assert result.status == "confirmed"
        assert result.previous_status == "pending"
        assert result.slot_index == 0
        sent = await notifications_for(db, reservation)
        assert [n.event for n in sent] == ["reservation_confirmed"]
        assert sent[0].recipient_user_id == "cust-1"

    async def test_complete_confirmed(self, db, service):
        business = await create_business(db)
        reservation = await store(db, make_reservation(business, LATER_DAY, time(10)))

        result = await service.transition(
            reservation, ReservationStatus.COMPLETED, Actor.BUSINESS
        )

        assert result.status == "completed"

    async def test_customer_cannot_confirm(self, db, service):
        business = await create_business(db)
        reservation = await store(
            db,
            make_reservation(
                business, LATER_DAY, time(10), status=ReservationStatus.PENDING
            ),
        )

        with pytest.raises(InvalidTransitionError) as exc_info:
            await service.transition(
                reservation, ReservationStatus.CONFIRMED, Actor.CUSTOMER
            )

        assert exc_info.value.context["current"] == "pending"
        assert exc_info.value.context["requested"] == "confirmed"
        await db.refresh(reservation)
        assert reservation.status == "pending"

    async def test_completed_cannot_be_cancelled(self, db, service):
        business = await create_business(db)
        reservation = await store(
            db,
            make_reservation(
                business, LATER_DAY, time(10), status=ReservationStatus.COMPLETED
            ),
        )

        with pytest.raises(InvalidTransitionError):
            await service.transition(
                reservation, ReservationStatus.CANCELLED, Actor.BUSINESS
            )

    async def test_customer_cancel_outside_cutoff(self, db, service):
        business = await create_business(db)
        reservation = await store(
            db, make_reservation(business, LATER_DAY, time(10), customer_user_id="cust-1")
        )

        result = await service.transition(
            reservation, ReservationStatus.CANCELLED, Actor.CUSTOMER, reason="Trip"
        )

        assert result.status == "cancelled"
        assert result.slot_index is None
        assert result.cancelled_by == "customer"
        assert result.cancellation_reason == "Trip"
        sent = await notifications_for(db, reservation)
        assert sent[0].recipient_user_id == business.owner_user_id

    async def test_customer_cancel_inside_cutoff_rejected(self, db, service):
        business = await create_business(db)
        # Starts 23 hours after the fixed clock, cutoff is 24
        reservation = await store(db, make_reservation(business, NEXT_DAY, time(9)))

        with pytest.raises(InvalidTransitionError):
            await service.transition(
                reservation, ReservationStatus.CANCELLED, Actor.CUSTOMER
            )

        await db.refresh(reservation)
        assert reservation.status == "confirmed"
        assert reservation.slot_index == 0

    async def test_customer_cancel_exactly_at_cutoff_allowed(self, db, service):
        business = await create_business(db)
        reservation = await store(
            db, make_reservation(business, NEXT_DAY, FIXED_NOW.time())
        )

        result = await service.transition(
            reservation, ReservationStatus.CANCELLED, Actor.CUSTOMER
        )

        assert result.status == "cancelled"

    async def test_pending_cancel_ignores_cutoff(self, db, service):
        business = await create_business(db)
        reservation = await store(
            db,
            make_reservation(
                business, NEXT_DAY, time(9), status=ReservationStatus.PENDING
            ),
        )

        result = await service.transition(
            reservation, ReservationStatus.CANCELLED, Actor.CUSTOMER
        )

        assert result.status == "cancelled"

    async def test_business_cancel_ignores_cutoff(self, db, service):
        business = await create_business(db)
        reservation = await store(db, make_reservation(business, NEXT_DAY, time(9)))

        result = await service.transition(
            reservation, ReservationStatus.CANCELLED, Actor.BUSINESS
        )

        assert result.cancelled_by == "business"


class TestDecline:
    """Test declining pending reservations."""

    async def test_decline_pending(self, db, service):
        business = await create_business(db)
        reservation = await store(
            db,
            make_reservation(
                business, LATER_DAY, time(10), status=ReservationStatus.PENDING
            ),
        )

        result = await service.decline(reservation, reason="Fully staffed")

        assert result.status == "cancelled"
        assert result.cancellation_reason == "Fully staffed"
        assert result.cancelled_by == "business"

    async def test_decline_confirmed_rejected(self, db, service):
        business = await create_business(db)
        reservation = await store(db, make_reservation(business, LATER_DAY, time(10)))

        with pytest.raises(InvalidTransitionError):
            await service.decline(reservation)

    async def test_accept_cancelled_does_not_reactivate(self, db, service):
        business = await create_business(db)
        reservation = await store(
            db,
            make_reservation(
                business, LATER_DAY, time(10), status=ReservationStatus.CANCELLED
            ),
        )

        with pytest.raises(InvalidTransitionError) as exc_info:
            await service.accept(reservation)

        assert exc_info.value.context["current"] == "cancelled"
        assert reservation.status == "cancelled"


class TestReactivation:
    """Test confirming a cancelled reservation again."""

    async def test_reactivate_when_slot_free(self, db, service):
        business = await create_business(db)
        reservation = await store(
            db,
            make_reservation(
                business, LATER_DAY, time(10), status=ReservationStatus.CANCELLED
            ),
        )

        result = await service.transition(
            reservation, ReservationStatus.CONFIRMED, Actor.BUSINESS
        )

        assert result.status == "confirmed"
        assert result.slot_index == 0
        assert result.cancelled_at is None

    async def test_reactivate_when_slot_taken(self, db, service):
        business = await create_business(db)
        cancelled = await store(
            db,
            make_reservation(
                business, LATER_DAY, time(10), status=ReservationStatus.CANCELLED
            ),
        )
        await store(db, make_reservation(business, LATER_DAY, time(10)))

        with pytest.raises(SlotConflictError):
            await service.transition(
                cancelled, ReservationStatus.CONFIRMED, Actor.BUSINESS
            )

        assert cancelled.status == "cancelled"
        assert cancelled.slot_index is None

    async def test_customer_cannot_reactivate(self, db, service):
        business = await create_business(db)
        reservation = await store(
            db,
            make_reservation(
                business, LATER_DAY, time(10), status=ReservationStatus.CANCELLED
            ),
        )

        with pytest.raises(InvalidTransitionError):
            await service.transition(
                reservation, ReservationStatus.CONFIRMED, Actor.CUSTOMER
            )


class TestReschedule:
    """Test moving reservations between slots."""

    async def test_reschedule_rereads_stored_status(self, db, service):
        business = await create_business(db)
        original = await store(
            db,
            make_reservation(business, LATER_DAY, time(10), customer_user_id="cust-1"),
        )
        # Another request cancelled it; the loaded copy still says confirmed
        await db.execute(
            update(Reservation)
            .where(Reservation.id == original.id)
            .values(status=ReservationStatus.CANCELLED.value, slot_index=None)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        assert original.status == "confirmed"

        with pytest.raises(InvalidTransitionError):
            await service.reschedule(original, LATER_DAY, time(14), Actor.CUSTOMER)

        successors = await db.scalars(
            select(Reservation).where(Reservation.rescheduled_from_id == original.id)
        )
        assert successors.all() == []
        assert original.status == "cancelled"

    async def test_customer_reschedule(self, db, service):
        business = await create_business(db)
        original = await store(
            db,
            make_reservation(business, LATER_DAY, time(10), customer_user_id="cust-1"),
        )

        successor = await service.reschedule(
            original, LATER_DAY, time(14), Actor.CUSTOMER
        )

        assert successor.id != original.id
        assert successor.start_time == time(14)
        assert successor.rescheduled_from_id == original.id
        assert successor.reschedule_count == 1
        assert successor.customer_user_id == "cust-1"
        assert successor.status == "pending"
        assert original.status == "cancelled"
        assert original.slot_index is None
        assert original.cancellation_reason == "Rescheduled to 2030-01-10 14:00"

        slots = await service.availability.get_available_slots(business, LATER_DAY)
        times = [s.time for s in slots]
        assert time(10) in times
        assert time(14) not in times

    async def test_business_reschedule_is_confirmed(self, db, service):
        business = await create_business(db)
        original = await store(
            db,
            make_reservation(
                business, LATER_DAY, time(10), status=ReservationStatus.PENDING
            ),
        )

        successor = await service.reschedule(
            original, date(2030, 1, 12), time(11), Actor.BUSINESS,
            reason="Staff training",
        )

        assert successor.status == "confirmed"
        assert original.cancellation_reason == "Staff training"
        sent = await notifications_for(db, successor)
        assert sent[0].event == "reservation_rescheduled"
        assert sent[0].payload["previous_slot"] == "2030-01-10 10:00"

    async def test_reschedule_to_full_slot_leaves_original(self, db, service):
        business = await create_business(db)
        original = await store(db, make_reservation(business, LATER_DAY, time(10)))
        await store(db, make_reservation(business, LATER_DAY, time(14)))

        with pytest.raises(SlotConflictError):
            await service.reschedule(original, LATER_DAY, time(14), Actor.BUSINESS)

        assert original.status == "confirmed"
        assert original.slot_index == 0
        result = await db.execute(
            select(Reservation).where(Reservation.rescheduled_from_id == original.id)
        )
        assert result.scalars().all() == []

    async def test_reschedule_same_slot_rejected(self, db, service):
        business = await create_business(db)
        original = await store(db, make_reservation(business, LATER_DAY, time(10)))

        with pytest.raises(BookingValidationError):
            await service.reschedule(original, LATER_DAY, time(10), Actor.BUSINESS)

    async def test_reschedule_cancelled_rejected(self, db, service):
        business = await create_business(db)
        original = await store(
            db,
            make_reservation(
                business, LATER_DAY, time(10), status=ReservationStatus.CANCELLED
            ),
        )

        with pytest.raises(InvalidTransitionError):
            await service.reschedule(original, LATER_DAY, time(12), Actor.BUSINESS)

    async def test_customer_reschedule_inside_cutoff_rejected(self, db, service):
        business = await create_business(db)
        original = await store(db, make_reservation(business, NEXT_DAY, time(9)))

        with pytest.raises(InvalidTransitionError):
            await service.reschedule(original, LATER_DAY, time(9), Actor.CUSTOMER)

    async def test_rescheduled_twice_counts(self, db, service):
        business = await create_business(db)
        original = await store(db, make_reservation(business, LATER_DAY, time(10)))

        first = await service.reschedule(original, LATER_DAY, time(11), Actor.BUSINESS)
        second = await service.reschedule(first, LATER_DAY, time(12), Actor.BUSINESS)

        assert second.reschedule_count == 2
        assert second.rescheduled_from_id == first.id


class TestQueries:
    """Test listings, actor resolution and stats."""

    async def test_resolve_actor(self, db, service):
        business = await create_business(db, owner_user_id="owner-9")
        reservation = await store(
            db, make_reservation(business, LATER_DAY, time(10), customer_user_id="cust-1")
        )

        assert service.resolve_actor(reservation, business, "owner-9") == Actor.BUSINESS
        assert service.resolve_actor(reservation, business, "cust-1") == Actor.CUSTOMER
        assert service.resolve_actor(reservation, business, "stranger") is None

    async def test_business_listing_filters(self, db, service):
        business = await create_business(db)
        await store(db, make_reservation(business, LATER_DAY, time(12)))
        await store(db, make_reservation(business, LATER_DAY, time(9)))
        await store(
            db,
            make_reservation(
                business, NEXT_DAY, time(15), status=ReservationStatus.PENDING
            ),
        )

        everything = await service.list_business_reservations(business.id)
        assert [(r.booking_date, r.start_time) for r in everything] == [
            (NEXT_DAY, time(15)),
            (LATER_DAY, time(9)),
            (LATER_DAY, time(12)),
        ]
        pending = await service.list_business_reservations(
            business.id, status=ReservationStatus.PENDING
        )
        assert len(pending) == 1
        on_day = await service.list_business_reservations(business.id, day=LATER_DAY)
        assert len(on_day) == 2

    async def test_customer_listing(self, db, service):
        business = await create_business(db)
        await store(
            db, make_reservation(business, NEXT_DAY, time(15), customer_user_id="cust-1")
        )
        await store(
            db, make_reservation(business, LATER_DAY, time(9), customer_user_id="cust-1")
        )
        await store(
            db, make_reservation(business, LATER_DAY, time(10), customer_user_id="cust-2")
        )

        mine = await service.list_customer_reservations("cust-1")

        assert [r.booking_date for r in mine] == [LATER_DAY, NEXT_DAY]

    async def test_stats(self, db, service):
        business = await create_business(db)
        today = FIXED_NOW.date()
        await store(
            db, make_reservation(business, today, time(15), status=ReservationStatus.PENDING)
        )
        await store(db, make_reservation(business, LATER_DAY, time(9)))
        await store(
            db,
            make_reservation(
                business, LATER_DAY, time(10), status=ReservationStatus.COMPLETED
            ),
        )
        await store(
            db,
            make_reservation(
                business, date(2030, 2, 1), time(10), status=ReservationStatus.CANCELLED
            ),
        )

        stats = await service.get_stats(business)

        assert stats["total"] == 4
        assert stats["pending"] == 1
        assert stats["confirmed"] == 1
        assert stats["completed"] == 1
        assert stats["cancelled"] == 1
        assert stats["today"] == 1
        assert stats["this_month"] == 3
        assert [r.start_time for r in stats["recent_pending"]] == [time(15)]

    async def test_booked_reservation_found_by_uuid(self, db, service):
        business = await create_business(db)
        reservation = await service.admission.book(
            business, booking_request(business, LATER_DAY, time(10))
        )

        found = await service.get_reservation_by_uuid(reservation.uuid)

        assert found.id == reservation.id
