from datetime import date as date_type, time
from typing import Optional

from pydantic import BaseModel, Field, field_serializer, field_validator, model_validator

from app.models.special_date import SpecialDateType
from app.models.working_hours import WeekDay

WEEKDAY_FIELDS = [day.name.lower() for day in WeekDay]


class SlotResponse(BaseModel):
    time: time
    capacity_remaining: int

    @field_serializer("time")
    def serialize_time(self, value: time) -> str:
        return value.strftime("%H:%M")


class AvailabilityResponse(BaseModel):
    date: date_type
    slots: list[SlotResponse]


class DayHours(BaseModel):
    """Opening hours of one weekday."""
    enabled: bool = True
    open: time
    close: time

    @model_validator(mode="after")
    def validate_interval(self):
        if self.enabled and not self.open < self.close:
            raise ValueError("Opening time must be before closing time")
        return self


def _default_day(enabled: bool, open_at: time, close_at: time):
    return Field(default_factory=lambda: DayHours(enabled=enabled, open=open_at, close=close_at))


class WeeklyHours(BaseModel):
    """Weekly schedule. Monday to Friday open 09:00-17:00 by default."""
    monday: DayHours = _default_day(True, time(9), time(17))
    tuesday: DayHours = _default_day(True, time(9), time(17))
    wednesday: DayHours = _default_day(True, time(9), time(17))
    thursday: DayHours = _default_day(True, time(9), time(17))
    friday: DayHours = _default_day(True, time(9), time(17))
    saturday: DayHours = _default_day(False, time(10), time(15))
    sunday: DayHours = _default_day(False, time(10), time(15))

    def by_weekday(self) -> dict[int, DayHours]:
        return {index: getattr(self, name) for index, name in enumerate(WEEKDAY_FIELDS)}


class AppointmentSettings(BaseModel):
    slot_duration_minutes: int = Field(60, gt=0, le=24 * 60)
    booking_window_days: int = Field(30, ge=1, le=365)
    min_advance_booking_hours: int = Field(2, ge=0)
    max_capacity_per_slot: int = Field(1, ge=1)
    buffer_time_minutes: int = Field(0, ge=0)
    auto_confirm: bool = Field(False, description="Confirm new bookings without owner review")
    online_payment_enabled: bool = False
    cancellation_cutoff_hours: int = Field(24, ge=0)

    model_config = {"from_attributes": True}


class SpecialDateSchema(BaseModel):
    date: date_type
    type: SpecialDateType = SpecialDateType.CLOSED
    open: Optional[time] = None
    close: Optional[time] = None
    reason: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def validate_custom_hours(self):
        if self.type == SpecialDateType.CUSTOM_HOURS:
            if self.open is None or self.close is None:
                raise ValueError("Custom hours require open and close times")
            if not self.open < self.close:
                raise ValueError("Opening time must be before closing time")
        return self


def _unique_sorted_dates(specials: list[SpecialDateSchema]) -> list[SpecialDateSchema]:
    seen = set()
    for special in specials:
        if special.date in seen:
            raise ValueError(f"Duplicate special date: {special.date}")
        seen.add(special.date)
    return sorted(specials, key=lambda s: s.date)


class AvailabilitySettings(BaseModel):
    """Full availability document of a business."""
    working_hours: WeeklyHours = Field(default_factory=WeeklyHours)
    appointment_settings: AppointmentSettings = Field(default_factory=AppointmentSettings)
    special_dates: list[SpecialDateSchema] = Field(default_factory=list)

    @field_validator("special_dates")
    @classmethod
    def validate_unique_dates(cls, v):
        return _unique_sorted_dates(v)


class AvailabilitySettingsUpdate(BaseModel):
    """Partial update; any section that is present replaces the stored one."""
    working_hours: Optional[WeeklyHours] = None
    appointment_settings: Optional[AppointmentSettings] = None
    special_dates: Optional[list[SpecialDateSchema]] = None

    @field_validator("special_dates")
    @classmethod
    def validate_unique_dates(cls, v):
        if v is None:
            return v
        return _unique_sorted_dates(v)
