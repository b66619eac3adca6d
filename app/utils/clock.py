from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_zone(name: str) -> ZoneInfo:
    """Resolve an IANA zone name, raising ValueError for unknown zones."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Invalid timezone: {name}")


def localize(day: date, at: time, tz_name: str) -> datetime:
    """Combine a business-local date and wall-clock time into an aware datetime."""
    return datetime.combine(day, at, tzinfo=get_zone(tz_name))


def local_today(tz_name: str, now: datetime = None) -> date:
    now = now or utcnow()
    return now.astimezone(get_zone(tz_name)).date()
