from datetime import date
from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps.auth import get_current_user_id
from app.api.deps.business import get_owned_business
from app.core.database import get_db
from app.core.exceptions import BookingError
from app.models.business import Business
from app.models.reservation import Reservation, ReservationStatus
from app.schemas.availability import AvailabilitySettings, AvailabilitySettingsUpdate
from app.schemas.business import BusinessCreate, BusinessResponse, BusinessUpdate
from app.schemas.reservation import (
    ReservationDecline,
    ReservationResponse,
    ReservationStats,
)
from app.services.business import business_service
from app.services.reservation import ReservationService

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.post("/", response_model=BusinessResponse, status_code=status.HTTP_201_CREATED)
async def register_business(
    business_data: BusinessCreate,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Register the caller's business. Each user owns at most one."""
    try:
        return await business_service.create_business(db, user_id, business_data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create business",
        )


@router.get("/me", response_model=BusinessResponse)
async def get_my_business(business: Business = Depends(get_owned_business)):
    """Get the caller's business profile."""
    return business


@router.put("/me", response_model=BusinessResponse)
async def update_my_business(
    business_update: BusinessUpdate,
    db: AsyncSession = Depends(get_db),
    business: Business = Depends(get_owned_business),
):
    """Update business profile."""
    try:
        return await business_service.update_business(db, business, business_update)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update business",
        )


@router.delete("/me", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate_my_business(
    db: AsyncSession = Depends(get_db),
    business: Business = Depends(get_owned_business),
):
    """Soft delete: the business disappears from discovery and stops taking bookings."""
    await business_service.deactivate_business(db, business)


@router.get("/me/availability", response_model=AvailabilitySettings)
async def get_my_availability(
    db: AsyncSession = Depends(get_db),
    business: Business = Depends(get_owned_business),
):
    """Working hours, appointment settings and special dates."""
    return await business_service.get_availability_settings(db, business)


@router.put("/me/availability", response_model=AvailabilitySettings)
async def update_my_availability(
    update: AvailabilitySettingsUpdate,
    db: AsyncSession = Depends(get_db),
    business: Business = Depends(get_owned_business),
):
    """Replace the availability sections present in the request."""
    try:
        return await business_service.update_availability_settings(
            db, business, update
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update availability",
        )


@router.get("/me/reservations", response_model=list[ReservationResponse])
async def list_my_reservations(
    status_filter: Optional[ReservationStatus] = Query(None, alias="status"),
    day: Optional[date] = Query(None, alias="date"),
    db: AsyncSession = Depends(get_db),
    business: Business = Depends(get_owned_business),
):
    """Reservations of the caller's business ordered by date and time."""
    return await ReservationService(db).list_business_reservations(
        business.id, status=status_filter, day=day
    )


@router.get("/me/reservations/stats", response_model=ReservationStats)
async def get_my_reservation_stats(
    db: AsyncSession = Depends(get_db),
    business: Business = Depends(get_owned_business),
):
    """Dashboard counters and the most recent pending requests."""
    return await ReservationService(db).get_stats(business)


async def _get_business_reservation(
    service: ReservationService, business: Business, reservation_uuid: UUID
) -> Reservation:
    reservation = await service.get_reservation_by_uuid(reservation_uuid)
    # Ensure owners can only reach reservations of their own business
    if not reservation or reservation.business_id != business.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Reservation not found"
        )
    return reservation


@router.put("/me/reservations/{reservation_uuid}/accept", response_model=ReservationResponse)
async def accept_reservation(
    reservation_uuid: UUID,
    db: AsyncSession = Depends(get_db),
    business: Business = Depends(get_owned_business),
):
    """Confirm a pending reservation."""
    service = ReservationService(db)
    reservation = await _get_business_reservation(service, business, reservation_uuid)
    try:
        return await service.accept(reservation)
    except BookingError:
        raise
    except Exception as e:
        await db.rollback()
        logger.error("Failed to accept reservation", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to accept reservation",
        )


@router.put("/me/reservations/{reservation_uuid}/decline", response_model=ReservationResponse)
async def decline_reservation(
    reservation_uuid: UUID,
    decline: ReservationDecline,
    db: AsyncSession = Depends(get_db),
    business: Business = Depends(get_owned_business),
):
    """Decline a pending reservation, optionally telling the customer why."""
    service = ReservationService(db)
    reservation = await _get_business_reservation(service, business, reservation_uuid)
    try:
        return await service.decline(reservation, reason=decline.reason)
    except BookingError:
        raise
    except Exception as e:
        await db.rollback()
        logger.error("Failed to decline reservation", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to decline reservation",
        )
