from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps.auth import get_current_user_id
from app.core.database import get_db
from app.core.exceptions import BookingError
from app.models.business import Business
from app.models.reservation import Actor, Reservation
from app.schemas.reservation import (
    ReservationReschedule,
    ReservationResponse,
    ReservationStatusUpdate,
)
from app.services.reservation import ReservationService

logger = structlog.get_logger(__name__)

router = APIRouter()


async def _load_for_user(
    service: ReservationService, reservation_uuid: UUID, user_id: str
) -> tuple[Reservation, Business, Actor]:
    reservation = await service.get_reservation_by_uuid(reservation_uuid)
    if not reservation:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Reservation not found"
        )

    business = await service.get_business(reservation)
    actor = service.resolve_actor(reservation, business, user_id)
    if actor is None:
        logger.warning(
            "Reservation access denied",
            reservation_id=reservation.id,
            user_id=user_id,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to manage this reservation",
        )
    return reservation, business, actor


@router.get("/{reservation_uuid}", response_model=ReservationResponse)
async def get_reservation(
    reservation_uuid: UUID,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Reservation details for its customer or the business owner."""
    reservation, _, _ = await _load_for_user(
        ReservationService(db), reservation_uuid, user_id
    )
    return reservation


@router.put("/{reservation_uuid}", response_model=ReservationResponse)
async def update_reservation_status(
    reservation_uuid: UUID,
    update: ReservationStatusUpdate,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Change reservation status; the caller's side decides which changes are allowed."""
    service = ReservationService(db)
    reservation, _, actor = await _load_for_user(service, reservation_uuid, user_id)

    try:
        return await service.transition(
            reservation, update.status, actor, reason=update.reason
        )
    except BookingError:
        raise
    except Exception as e:
        await db.rollback()
        logger.error(
            "Failed to update reservation status",
            reservation_uuid=str(reservation_uuid),
            error=str(e),
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update reservation",
        )


@router.post(
    "/{reservation_uuid}/reschedule",
    response_model=ReservationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def reschedule_reservation(
    reservation_uuid: UUID,
    reschedule: ReservationReschedule,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Move a reservation to another slot; returns the new reservation."""
    service = ReservationService(db)
    reservation, _, actor = await _load_for_user(service, reservation_uuid, user_id)

    try:
        return await service.reschedule(
            reservation,
            reschedule.new_date,
            reschedule.new_time,
            actor,
            reason=reschedule.reason,
        )
    except BookingError:
        raise
    except Exception as e:
        await db.rollback()
        logger.error(
            "Failed to reschedule reservation",
            reservation_uuid=str(reservation_uuid),
            error=str(e),
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to reschedule reservation",
        )
