"""
Clock helpers.

All timestamps are stored timezone-aware in UTC; practice-local time is only
used for calendar decisions (same day, business hours, time of day).
"""

from datetime import UTC, datetime, tzinfo

from pytz import timezone

from practice_scheduling.config.settings import Settings, get_settings


def utc_now() -> datetime:
    return datetime.now(UTC)


def practice_timezone(settings: Settings | None = None) -> tzinfo:
    """Timezone of the practice, from PRACTICE_TIMEZONE."""
    return timezone((settings or get_settings()).PRACTICE_TIMEZONE)


def is_business_hours(value: datetime, tz: tzinfo, start_hour: int, end_hour: int) -> bool:
    """Mon-Fri between start_hour (inclusive) and end_hour (exclusive), local time."""
    local = value.astimezone(tz)
    return local.weekday() < 5 and start_hour <= local.hour < end_hour
