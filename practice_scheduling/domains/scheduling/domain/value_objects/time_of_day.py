"""Time of Day Value Object."""

from datetime import datetime
from enum import Enum


class TimeOfDay(str, Enum):
    """Coarse time-of-day buckets used for preferences."""

    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"

    @classmethod
    def from_datetime(cls, value: datetime) -> "TimeOfDay":
        """Bucket a local datetime: before 12 morning, before 17 afternoon, else evening."""
        if value.hour < 12:
            return cls.MORNING
        if value.hour < 17:
            return cls.AFTERNOON
        return cls.EVENING
