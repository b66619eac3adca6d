from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.core.config import settings
from app.models.business import BusinessType
from app.schemas.availability import AppointmentSettings, WeeklyHours
from app.utils.clock import get_zone
from app.utils.validation import validate_phone_number


def validate_timezone(timezone: str) -> str:
    """Validate timezone string."""
    get_zone(timezone)
    return timezone


def validate_business_phone(phone: Optional[str]) -> Optional[str]:
    if phone and not validate_phone_number(phone):
        raise ValueError("Invalid phone number format")
    return phone


class BusinessBase(BaseModel):
    """Base business schema with common fields."""
    name: str = Field(..., min_length=1, max_length=255, description="Business name")
    type: BusinessType = Field(BusinessType.OTHER, description="Business category")
    description: Optional[str] = Field(None, description="Business description")
    phone: Optional[str] = Field(None, max_length=50, description="Business phone number")
    location: Optional[str] = Field(None, description="Free text address")
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    timezone: str = Field(
        settings.DEFAULT_TIMEZONE, max_length=50, description="Business timezone"
    )

    @field_validator('timezone')
    @classmethod
    def validate_timezone_field(cls, v):
        return validate_timezone(v)

    @field_validator('phone')
    @classmethod
    def validate_phone_field(cls, v):
        return validate_business_phone(v)


class BusinessCreate(BusinessBase):
    """Schema for registering a business."""
    pass


class BusinessUpdate(BaseModel):
    """Schema for updating business information."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    type: Optional[BusinessType] = None
    description: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=50)
    location: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    timezone: Optional[str] = Field(None, max_length=50)
    is_active: Optional[bool] = None

    @field_validator('name', 'type', 'timezone', 'is_active')
    @classmethod
    def reject_null(cls, v, info):
        # Omitted fields keep their value; these columns cannot be cleared
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

    @field_validator('timezone')
    @classmethod
    def validate_timezone_field(cls, v):
        return validate_timezone(v)

    @field_validator('phone')
    @classmethod
    def validate_phone_field(cls, v):
        return validate_business_phone(v)


class BusinessResponse(BusinessBase):
    """Schema for business responses."""
    uuid: UUID
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class BusinessDetailResponse(BusinessResponse):
    """Public business page: profile plus opening hours and booking terms."""
    working_hours: WeeklyHours
    appointment_settings: AppointmentSettings
