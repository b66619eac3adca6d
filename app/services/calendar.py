from datetime import date, datetime, time, timedelta
from typing import Iterable, NamedTuple, Optional

from app.models.special_date import SpecialDate
from app.models.working_hours import WorkingHours


class OpenInterval(NamedTuple):
    open: time
    close: time


class WorkingHoursCalendar:
    """Weekly opening schedule of a business plus date-specific overrides.

    ``weekly`` maps a weekday number (Monday is 0) to an ``OpenInterval`` or
    ``None`` for a closed day. ``special_dates`` maps a date to an
    ``OpenInterval`` or ``None`` for closed. A special date always wins over
    the weekday rule for that exact date.
    """

    def __init__(
        self,
        weekly: dict[int, Optional[OpenInterval]],
        special_dates: Optional[dict[date, Optional[OpenInterval]]] = None,
    ):
        for weekday, interval in weekly.items():
            if not 0 <= weekday <= 6:
                raise ValueError(f"Invalid weekday: {weekday}")
            if interval is not None and not interval.open < interval.close:
                raise ValueError(
                    f"Opening time must be before closing time on weekday {weekday}"
                )
        for day, interval in (special_dates or {}).items():
            if interval is not None and not interval.open < interval.close:
                raise ValueError(f"Opening time must be before closing time on {day}")

        self.weekly = dict(weekly)
        self.special_dates = dict(special_dates or {})

    @classmethod
    def from_models(
        cls,
        working_hours: Iterable[WorkingHours],
        special_dates: Iterable[SpecialDate] = (),
    ) -> "WorkingHoursCalendar":
        weekly = {
            wh.weekday: OpenInterval(wh.open_time, wh.close_time)
            if wh.is_enabled
            else None
            for wh in working_hours
        }
        overrides = {
            sd.date: None if sd.is_closed else OpenInterval(sd.open_time, sd.close_time)
            for sd in special_dates
        }
        return cls(weekly, overrides)

    def hours_for(self, day: date) -> Optional[OpenInterval]:
        """Resolved open interval for ``day``, or None when closed."""
        if day in self.special_dates:
            return self.special_dates[day]
        return self.weekly.get(day.weekday())

    def is_open_at(self, moment: datetime) -> bool:
        """Check if a business-local wall-clock instant is inside opening hours."""
        interval = self.hours_for(moment.date())
        if interval is None:
            return False
        return interval.open <= moment.time() < interval.close


def generate_slots(
    calendar: WorkingHoursCalendar,
    day: date,
    slot_duration_minutes: int,
    buffer_time_minutes: int = 0,
) -> list[time]:
    """Candidate slot start times for ``day``, ascending.

    Starts are spaced by duration plus buffer from the opening time. A start
    is emitted only while the full slot fits before closing; buffer time is
    never offered on its own and a trailing partial period is dropped.
    """
    if slot_duration_minutes <= 0:
        raise ValueError("Slot duration must be positive")
    if buffer_time_minutes < 0:
        raise ValueError("Buffer time cannot be negative")

    interval = calendar.hours_for(day)
    if interval is None:
        return []

    duration = timedelta(minutes=slot_duration_minutes)
    step = duration + timedelta(minutes=buffer_time_minutes)
    close_at = datetime.combine(day, interval.close)

    slots = []
    current = datetime.combine(day, interval.open)
    while current + duration <= close_at:
        slots.append(current.time())
        current += step
    return slots


def slot_end_time(start: time, slot_duration_minutes: int) -> time:
    return (
        datetime.combine(date.min, start) + timedelta(minutes=slot_duration_minutes)
    ).time()
