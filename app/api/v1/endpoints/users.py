from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps.auth import get_current_user_id
from app.core.database import get_db
from app.schemas.reservation import ReservationResponse
from app.services.reservation import ReservationService

router = APIRouter()


@router.get("/me/bookings", response_model=list[ReservationResponse])
async def list_my_bookings(
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Bookings made while signed in, latest date first."""
    return await ReservationService(db).list_customer_reservations(user_id)
