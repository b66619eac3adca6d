import asyncio
from datetime import time

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.database import Base
from app.core.exceptions import BookingError, InvalidTransitionError, SlotConflictError
from app.models.business import Business
from app.models.reservation import Actor, Reservation, ReservationStatus
from app.services.admission import BookingAdmissionService
from app.services.reservation import ReservationService
from tests.fixtures.booking_fixtures import (
    NEXT_DAY,
    booking_request,
    create_business,
    fixed_clock,
    make_reservation,
)


@pytest.fixture
async def sessionmaker(tmp_path):
    """Sessions on separate connections to one file database."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'rezervi.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


async def attempt(sessionmaker, business_id, request):
    async with sessionmaker() as session:
        business = await session.get(Business, business_id)
        try:
            return await BookingAdmissionService(session, clock=fixed_clock()).book(
                business, request
            )
        except BookingError as e:
            return e


@pytest.mark.integration
class TestConcurrentAdmission:
    """Simultaneous bookings of one slot."""

    @pytest.mark.parametrize("capacity", [1, 2])
    async def test_never_overbooks(self, sessionmaker, capacity):
        async with sessionmaker() as session:
            business = await create_business(session, max_capacity_per_slot=capacity)
        request = booking_request(business, NEXT_DAY, time(10))

        results = await asyncio.gather(
            *[attempt(sessionmaker, business.id, request) for _ in range(4)]
        )

        admitted = [r for r in results if isinstance(r, Reservation)]
        rejected = [r for r in results if isinstance(r, BookingError)]
        assert len(admitted) == capacity
        assert len(rejected) == 4 - capacity
        assert all(isinstance(e, SlotConflictError) for e in rejected)
        assert sorted(r.slot_index for r in admitted) == list(range(capacity))

        async with sessionmaker() as session:
            stored = await session.scalar(
                select(func.count())
                .select_from(Reservation)
                .where(Reservation.business_id == business.id)
            )
        assert stored == capacity


async def load_reservation(session, reservation_id):
    reservation = await session.get(Reservation, reservation_id)
    business = await session.get(Business, reservation.business_id)
    return reservation, business


@pytest.mark.integration
class TestStaleReservationCopies:
    """Two requests holding the same reservation loaded before either wrote."""

    async def test_second_reschedule_of_moved_reservation_rejected(self, sessionmaker):
        async with sessionmaker() as session:
            business = await create_business(session)
            original = make_reservation(
                business, NEXT_DAY, time(10), status=ReservationStatus.PENDING
            )
            session.add(original)
            await session.commit()

        async with sessionmaker() as first, sessionmaker() as second:
            first_copy, _ = await load_reservation(first, original.id)
            second_copy, _ = await load_reservation(second, original.id)

            moved = await ReservationService(first, clock=fixed_clock()).reschedule(
                first_copy, NEXT_DAY, time(12), Actor.CUSTOMER
            )
            with pytest.raises(InvalidTransitionError):
                await ReservationService(second, clock=fixed_clock()).reschedule(
                    second_copy, NEXT_DAY, time(14), Actor.CUSTOMER
                )
            assert second_copy.status == ReservationStatus.CANCELLED.value

        async with sessionmaker() as session:
            live = (
                await session.execute(
                    select(Reservation).where(
                        Reservation.business_id == business.id,
                        Reservation.status != ReservationStatus.CANCELLED.value,
                    )
                )
            ).scalars().all()
        assert [r.id for r in live] == [moved.id]
        assert live[0].rescheduled_from_id == original.id

    async def test_accept_of_cancelled_copy_rejected(self, sessionmaker):
        async with sessionmaker() as session:
            business = await create_business(session)
            original = make_reservation(
                business, NEXT_DAY, time(10), status=ReservationStatus.PENDING
            )
            session.add(original)
            await session.commit()

        async with sessionmaker() as first, sessionmaker() as second:
            first_copy, _ = await load_reservation(first, original.id)
            second_copy, _ = await load_reservation(second, original.id)

            await ReservationService(first, clock=fixed_clock()).transition(
                first_copy, ReservationStatus.CANCELLED, Actor.CUSTOMER
            )
            with pytest.raises(InvalidTransitionError):
                await ReservationService(second, clock=fixed_clock()).accept(second_copy)

        async with sessionmaker() as session:
            stored = await session.get(Reservation, original.id)
        assert stored.status == ReservationStatus.CANCELLED.value
        assert stored.slot_index is None
