import uuid
from datetime import date, time

import pytest
from pydantic import ValidationError

from app.models.business import BusinessType
from app.models.special_date import SpecialDateType
from app.schemas.availability import (
    AppointmentSettings,
    AvailabilitySettings,
    AvailabilitySettingsUpdate,
    DayHours,
    SlotResponse,
    SpecialDateSchema,
    WeeklyHours,
)
from app.schemas.business import BusinessCreate, BusinessUpdate, validate_timezone
from app.schemas.reservation import BookingCreate, CustomerInfo


@pytest.mark.unit
class TestBusinessSchemas:
    """Unit tests for Business schemas."""

    def test_business_create_defaults(self):
        business = BusinessCreate(name="Corner Cafe")

        assert business.type == BusinessType.OTHER
        assert business.timezone == "UTC"

    def test_invalid_timezone(self):
        with pytest.raises(ValidationError):
            BusinessCreate(name="Corner Cafe", timezone="Mars/Olympus")

    def test_validate_timezone(self):
        assert validate_timezone("Asia/Tbilisi") == "Asia/Tbilisi"
        with pytest.raises(ValueError):
            validate_timezone("Invalid/Zone")

    def test_invalid_phone(self):
        with pytest.raises(ValidationError):
            BusinessCreate(name="Corner Cafe", phone="call me")

    def test_coordinates_range(self):
        with pytest.raises(ValidationError):
            BusinessCreate(name="Corner Cafe", latitude=91)

    def test_update_is_partial(self):
        update = BusinessUpdate(name="New Name")

        assert update.model_dump(exclude_unset=True) == {"name": "New Name"}

    @pytest.mark.parametrize("field", ["name", "type", "timezone", "is_active"])
    def test_update_rejects_null_for_required_fields(self, field):
        with pytest.raises(ValidationError):
            BusinessUpdate(**{field: None})

    def test_update_allows_clearing_optional_fields(self):
        update = BusinessUpdate(description=None, phone=None)

        assert update.model_dump(exclude_unset=True) == {
            "description": None,
            "phone": None,
        }


@pytest.mark.unit
class TestAvailabilitySchemas:
    """Unit tests for availability settings schemas."""

    def test_weekly_defaults(self):
        weekly = WeeklyHours()

        assert weekly.monday == DayHours(enabled=True, open=time(9), close=time(17))
        assert weekly.sunday.enabled is False
        assert list(weekly.by_weekday()) == list(range(7))

    def test_day_open_must_precede_close(self):
        with pytest.raises(ValidationError):
            DayHours(enabled=True, open=time(17), close=time(9))

    def test_disabled_day_skips_interval_check(self):
        day = DayHours(enabled=False, open=time(17), close=time(9))
        assert day.enabled is False

    @pytest.mark.parametrize(
        "field, value",
        [
            ("slot_duration_minutes", 0),
            ("max_capacity_per_slot", 0),
            ("booking_window_days", 0),
            ("buffer_time_minutes", -1),
            ("min_advance_booking_hours", -1),
        ],
    )
    def test_appointment_settings_bounds(self, field, value):
        with pytest.raises(ValidationError):
            AppointmentSettings(**{field: value})

    def test_custom_hours_need_interval(self):
        with pytest.raises(ValidationError):
            SpecialDateSchema(date=date(2030, 1, 1), type=SpecialDateType.CUSTOM_HOURS)
        with pytest.raises(ValidationError):
            SpecialDateSchema(
                date=date(2030, 1, 1),
                type=SpecialDateType.CUSTOM_HOURS,
                open=time(14),
                close=time(10),
            )

    def test_duplicate_special_dates_rejected(self):
        with pytest.raises(ValidationError):
            AvailabilitySettingsUpdate(
                special_dates=[
                    SpecialDateSchema(date=date(2030, 1, 1)),
                    SpecialDateSchema(date=date(2030, 1, 1), reason="Again"),
                ]
            )

    def test_special_dates_sorted(self):
        document = AvailabilitySettings(
            special_dates=[
                SpecialDateSchema(date=date(2030, 3, 1)),
                SpecialDateSchema(date=date(2030, 1, 1)),
            ]
        )

        assert [s.date for s in document.special_dates] == [
            date(2030, 1, 1),
            date(2030, 3, 1),
        ]

    def test_update_sections_optional(self):
        update = AvailabilitySettingsUpdate()

        assert update.working_hours is None
        assert update.special_dates is None

    def test_slot_time_serialized_as_hours_minutes(self):
        assert SlotResponse(time=time(9, 30), capacity_remaining=2).model_dump(
            mode="json"
        ) == {"time": "09:30", "capacity_remaining": 2}


@pytest.mark.unit
class TestBookingSchemas:
    """Unit tests for booking request schemas."""

    def test_customer_requires_name_and_phone(self):
        with pytest.raises(ValidationError):
            CustomerInfo(name="  ", phone="+995555000111")
        with pytest.raises(ValidationError):
            CustomerInfo(name="Ana", phone="")

    def test_customer_email_checked(self):
        with pytest.raises(ValidationError):
            CustomerInfo(name="Ana", phone="+995555000111", email="not-an-email")

    def test_customer_name_stripped(self):
        assert CustomerInfo(name=" Ana ", phone="+995555000111").name == "Ana"

    def test_booking_defaults_to_cash(self):
        booking = BookingCreate(
            business_uuid=uuid.uuid4(),
            booking_date=date(2030, 1, 8),
            start_time=time(10),
            customer={"name": "Ana", "phone": "+995555000111"},
        )

        assert booking.payment_method.value == "cash"
        assert booking.amount is None

    def test_negative_amount_rejected(self):
        with pytest.raises(ValidationError):
            BookingCreate(
                business_uuid=uuid.uuid4(),
                booking_date=date(2030, 1, 8),
                start_time=time(10),
                customer={"name": "Ana", "phone": "+995555000111"},
                amount=-5,
            )
