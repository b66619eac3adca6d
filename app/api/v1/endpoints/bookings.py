from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps.auth import get_optional_user_id
from app.core.database import get_db
from app.core.exceptions import BookingError
from app.schemas.reservation import BookingCreate, BookingResponse, ReservationResponse
from app.services.admission import BookingAdmissionService
from app.services.business import business_service

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking: BookingCreate,
    db: AsyncSession = Depends(get_db),
    user_id: Optional[str] = Depends(get_optional_user_id),
):
    """Book a slot. Guests may book; signed-in customers see it under their bookings."""
    business = await business_service.get_business_by_uuid(db, booking.business_uuid)
    if not business or not business.is_active:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Business not found"
        )

    try:
        reservation = await BookingAdmissionService(db).book(
            business, booking, customer_user_id=user_id
        )
    except BookingError:
        raise
    except Exception as e:
        await db.rollback()
        logger.error("Failed to create booking", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create booking",
        )

    return BookingResponse(
        reservation=ReservationResponse.model_validate(reservation),
        confirmation_code=reservation.confirmation_code,
    )
