from datetime import date as date_type, datetime, time
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

# Import enums from the model to avoid duplication
from app.models.reservation import PaymentMethod, PaymentStatus, ReservationStatus
from app.utils.validation import validate_email_format, validate_phone_number


class CustomerInfo(BaseModel):
    name: str = Field(..., max_length=255)
    phone: str = Field(..., max_length=50)
    email: Optional[str] = Field(None, max_length=255)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("Customer name is required")
        return v.strip()

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        if not validate_phone_number(v):
            raise ValueError("Invalid phone number format")
        return v.strip()

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        if v is not None and not validate_email_format(v):
            raise ValueError("Invalid email format")
        return v


class BookingCreate(BaseModel):
    business_uuid: UUID
    booking_date: date_type
    start_time: time
    customer: CustomerInfo
    payment_method: PaymentMethod = PaymentMethod.CASH
    amount: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = Field(None, max_length=1000)


class ReservationStatusUpdate(BaseModel):
    status: ReservationStatus
    reason: Optional[str] = Field(None, max_length=500)


class ReservationDecline(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class ReservationReschedule(BaseModel):
    new_date: date_type
    new_time: time
    reason: Optional[str] = Field(None, max_length=500)


# Response schemas
class ReservationResponse(BaseModel):
    uuid: UUID
    business_id: int
    confirmation_code: str

    customer_user_id: Optional[str] = None
    customer_name: str
    customer_phone: str
    customer_email: Optional[str] = None

    booking_date: date_type
    start_time: time
    end_time: time

    status: ReservationStatus
    previous_status: Optional[ReservationStatus] = None
    status_changed_at: Optional[datetime] = None

    payment_method: PaymentMethod
    payment_status: PaymentStatus
    amount: Optional[Decimal] = None
    notes: Optional[str] = None

    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    cancellation_reason: Optional[str] = None

    rescheduled_from_id: Optional[int] = None
    reschedule_count: int = 0

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class BookingResponse(BaseModel):
    reservation: ReservationResponse
    confirmation_code: str


class ReservationStats(BaseModel):
    total: int = 0
    pending: int = 0
    confirmed: int = 0
    completed: int = 0
    cancelled: int = 0
    today: int = 0
    this_month: int = 0
    recent_pending: list[ReservationResponse] = Field(default_factory=list)
