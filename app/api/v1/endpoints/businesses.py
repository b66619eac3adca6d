from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.models.business import Business, BusinessType
from app.schemas.availability import AvailabilityResponse, SlotResponse
from app.schemas.business import BusinessDetailResponse, BusinessResponse
from app.services.availability import AvailabilityService
from app.services.business import business_service

router = APIRouter()


async def get_active_business(
    business_uuid: UUID, db: AsyncSession = Depends(get_db)
) -> Business:
    business = await business_service.get_business_by_uuid(db, business_uuid)
    if not business or not business.is_active:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Business not found"
        )
    return business


@router.get("/", response_model=list[BusinessResponse])
async def discover_businesses(
    type: Optional[BusinessType] = Query(None, description="Filter by business category"),
    skip: int = Query(0, ge=0, description="Number of businesses to skip"),
    limit: int = Query(50, ge=1, le=200, description="Number of businesses to return"),
    db: AsyncSession = Depends(get_db),
):
    """List active businesses, optionally filtered by category."""
    return await business_service.get_businesses(
        db, business_type=type, skip=skip, limit=limit
    )


@router.get("/{business_uuid}", response_model=BusinessDetailResponse)
async def get_business_details(
    business: Business = Depends(get_active_business),
    db: AsyncSession = Depends(get_db),
):
    """Business profile with weekly hours and booking terms."""
    availability = await business_service.get_availability_settings(db, business)
    return BusinessDetailResponse(
        **BusinessResponse.model_validate(business).model_dump(),
        working_hours=availability.working_hours,
        appointment_settings=availability.appointment_settings,
    )


@router.get("/{business_uuid}/availability", response_model=AvailabilityResponse)
async def get_business_availability(
    date: date = Query(..., description="Day to list bookable slots for (YYYY-MM-DD)"),
    business: Business = Depends(get_active_business),
    db: AsyncSession = Depends(get_db),
):
    """Bookable slots of one day with remaining capacity, ascending by time."""
    slots = await AvailabilityService(db).get_available_slots(business, date)
    return AvailabilityResponse(
        date=date,
        slots=[
            SlotResponse(time=slot.time, capacity_remaining=slot.capacity_remaining)
            for slot in slots
        ],
    )
